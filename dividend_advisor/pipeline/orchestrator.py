"""
Wiring for a real pipeline run: ``AppConfig`` → collaborators → result.

The pipeline core never builds clients; this module does, for the CLI.
Tests construct ``Collaborators`` from fakes instead.

Usage::

    config = load_config()
    result = run_for_owner(config, "alice", correlation_id=str(uuid4()))
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Optional

from dividend_advisor.config import AppConfig
from dividend_advisor.db.store import SqliteStore
from dividend_advisor.models.result import PipelineResult
from dividend_advisor.pipeline.collaborators import Collaborators, ReasoningModel
from dividend_advisor.pipeline.runner import (
    CancellationToken,
    PipelineSettings,
    RecommendationPipeline,
)
from dividend_advisor.taxonomy.pipeline_taxonomy import FallbackMode
from dividend_advisor.utils.time_utils import today_utc

logger = logging.getLogger(__name__)


def build_collaborators(
    config: AppConfig,
    db_path: Optional[str] = None,
    model: Optional[ReasoningModel] = None,
) -> Collaborators:
    """SQLite store for every storage role plus the configured reasoning model.

    Args:
        config:  Application configuration.
        db_path: Overrides ``config.database.db_path``.
        model:   Pre-built model; defaults to ``OpenAIReasoningModel``.

    Raises:
        RuntimeError: No model given and ``OPENAI_API_KEY`` is not set.
    """
    store = SqliteStore.from_config(config.database, db_path=db_path)
    if model is None:
        from dividend_advisor.reasoning.openai_model import OpenAIReasoningModel

        model = OpenAIReasoningModel(
            model=config.reasoning.model,
            base_url=config.reasoning.base_url,
            timeout_seconds=config.reasoning.timeout_seconds,
        )
    return Collaborators(
        holdings=store,
        market_data=store,
        model=model,
        store=store,
        audit=store,
    )


def run_for_owner(
    config: AppConfig,
    owner: str,
    *,
    correlation_id: str,
    as_of_date: Optional[date] = None,
    constraint_overrides: Optional[dict[str, Any]] = None,
    fallback_mode: Optional[FallbackMode] = None,
    db_path: Optional[str] = None,
    model: Optional[ReasoningModel] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> PipelineResult:
    """Run one recommendation for ``owner`` with config defaults plus overrides.

    Constraints are passed to the pipeline as a plain mapping so that bad
    overrides come back as ``Err(InvalidConstraints)`` rather than raising.
    ``None`` override values keep the configured default.
    """
    constraints = config.constraints.model_dump()
    constraints.update(
        {k: v for k, v in (constraint_overrides or {}).items() if v is not None}
    )

    settings = PipelineSettings.from_config(config)
    if fallback_mode is not None:
        settings = replace(settings, fallback_mode=fallback_mode)

    collaborators = build_collaborators(config, db_path=db_path, model=model)
    return RecommendationPipeline(collaborators, settings).run(
        owner,
        constraints,
        correlation_id,
        as_of_date or today_utc(),
        cancel_token,
    )
