"""
Technical indicator engine.

Modules
-------
core     : moving_average(), standard_deviation(), bollinger_bands(),
           momentum(), volume_ratio(), woodie_pivot_points(), golden_cross()
           — pure functions over ascending-ordered sequences, no I/O.
snapshot : IndicatorSnapshot dataclass + build_snapshot() assembling the
           latest reading of every indicator from a PriceSeries.
"""
