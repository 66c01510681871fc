"""
Scoring: pure functions, no DB or I/O.

Modules
-------
quality   : QualityPolicy + quality_score() + compute_quality_metrics()
            + check_compliance().
portfolio : summarize_holdings() + compute_packet_metrics().
"""
