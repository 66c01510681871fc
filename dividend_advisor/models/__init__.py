"""
Domain models — frozen pydantic models shared by every pipeline stage.

Modules
-------
market         : FundamentalRecord, QualityMetrics, SnapshotEntry, MarketSnapshot,
                 PricePoint, DividendEvent, ticker helpers.
portfolio      : Holding, Constraints, HoldingsSummary.
recommendation : RecommendationPacket, Explanation, Recommendation, AuditEvent.
result         : Ok / Err tagged pipeline result.
"""
