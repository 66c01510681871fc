"""
Market snapshot assembly.

Modules
-------
builder : build_market_snapshot() — bounded, optionally parallel lookups
          scored with the Quality Scorer.
"""
