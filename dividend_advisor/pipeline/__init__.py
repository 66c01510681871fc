"""
dividend_advisor.pipeline — recommendation pipeline core and wiring.

Modules:
  collaborators — protocols for holdings, market data, model, store, audit.
  assembler     — terminal ``Recommendation`` and audit-event construction.
  runner        — ``RecommendationPipeline`` and ``run_recommendation_pipeline``.
  orchestrator  — builds real collaborators from ``AppConfig`` for the CLI.
"""
