"""
SQLite persistence for recommendations and run audit records.

Modules
-------
connection   : get_connection() context manager (WAL, FK, commit/rollback).
schema       : idempotent DDL, apply_schema().
repositories : RecommendationRepository, RunMetadataRepository.
"""
