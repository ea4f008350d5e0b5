"""
Recommendation tracking: lifecycle store, performance metrics, reports.

Modules
-------
store       : RecommendationStore — create / list / refresh / update_status /
              refresh_all with per-id serialization; derive_status().
performance : compute_performance() — pure aggregation, no DB or I/O.
reporter    : write_recommendations_csv() + write_performance_json() — file output.
"""
