"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``DIVIDEND_ADVISOR_*`` (see ``_ENV_OVERRIDES``)

Entry point: ``load_config(config_path=None) -> AppConfig``

Provider secrets (``OPENAI_API_KEY``, ``ALPHA_VANTAGE_API_KEY``) are read
from the environment at adapter construction time and never stored here.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from dividend_advisor.models.portfolio import MAX_HOLDINGS_CEILING, Constraints
from dividend_advisor.scoring.quality import QualityPolicy
from dividend_advisor.taxonomy.pipeline_taxonomy import FallbackMode
from dividend_advisor.utils.retry import RetryPolicy

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/dividend_advisor.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/dividend_advisor.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class ConstraintsConfig(BaseModel):
    """Default advisory constraints used when the caller supplies none."""

    model_config = ConfigDict(frozen=True)

    max_holdings: int = 40
    payout_ceiling: float = 0.8
    leverage_ceiling: float = 2.0
    benchmark_ticker: str = "VIG"
    target_yield: Optional[float] = None

    @field_validator("max_holdings")
    @classmethod
    def validate_max_holdings(cls, v: int) -> int:
        if not 1 <= v <= MAX_HOLDINGS_CEILING:
            raise ValueError(f"max_holdings must be in [1, {MAX_HOLDINGS_CEILING}], got {v}.")
        return v

    def to_constraints(self, **overrides: Any) -> Constraints:
        """Build validated ``Constraints``; ``None`` overrides keep the default."""
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return Constraints(**values)


class ScoringConfig(BaseModel):
    """Quality score policy constants."""

    model_config = ConfigDict(frozen=True)

    payout_threshold: float = 0.8
    payout_penalty: int = 40
    leverage_threshold: float = 2.0
    leverage_penalty: int = 30

    def to_policy(self) -> QualityPolicy:
        return QualityPolicy(
            payout_threshold=self.payout_threshold,
            payout_penalty=self.payout_penalty,
            leverage_threshold=self.leverage_threshold,
            leverage_penalty=self.leverage_penalty,
        )


class RetryConfig(BaseModel):
    """Retry policy for idempotent external calls."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    backoff_factor: float = 2.0
    max_delay_seconds: float = 15.0

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempts must be >= 1, got {v}.")
        return v

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay_seconds=self.base_delay_seconds,
            backoff_factor=self.backoff_factor,
            max_delay_seconds=self.max_delay_seconds,
        )


class MarketDataConfig(BaseModel):
    """Market-data lookups during the pipeline and provider refresh settings."""

    model_config = ConfigDict(frozen=True)

    lookup_timeout_seconds: float = 3.0
    max_workers: int = 4
    retry: RetryConfig = RetryConfig()
    alpha_vantage_base_url: str = "https://www.alphavantage.co/query"
    request_timeout_seconds: float = 30.0
    dividend_cut_threshold: float = 0.10

    @field_validator("lookup_timeout_seconds", "request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeouts must be > 0, got {v}.")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_workers must be >= 1, got {v}.")
        return v


class ReasoningConfig(BaseModel):
    """Reasoning-model invocation bounds."""

    model_config = ConfigDict(frozen=True)

    model: str = "gpt-4o-mini"
    max_prompt_chars: int = 24_000
    max_tokens: int = 1_500
    timeout_seconds: float = 45.0
    base_url: Optional[str] = None

    @field_validator("max_prompt_chars", "max_tokens")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Size bounds must be > 0, got {v}.")
        return v


class ValidationConfig(BaseModel):
    """Output Validator tunables."""

    model_config = ConfigDict(frozen=True)

    weight_tolerance: float = 1e-3
    summary_min_chars: int = 1
    strict_prose_guard: bool = False
    known_acronyms: list[str] = [
        "ETF", "USA", "USD", "GDP", "CPI", "CAGR", "EPS", "FCF", "ROIC", "LLC", "INC",
    ]

    @field_validator("weight_tolerance")
    @classmethod
    def validate_tolerance(cls, v: float) -> float:
        if not 0.0 < v < 0.1:
            raise ValueError(f"weight_tolerance must be in (0, 0.1), got {v}.")
        return v


class PipelineConfig(BaseModel):
    """Pipeline runner behaviour."""

    model_config = ConfigDict(frozen=True)

    persist_max_attempts: int = 3
    fallback_mode: FallbackMode = FallbackMode.NONE
    fallback_top_n: int = 10
    log_snippet_chars: int = 500


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth."""

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    constraints: ConstraintsConfig = ConstraintsConfig()
    scoring: ScoringConfig = ScoringConfig()
    market_data: MarketDataConfig = MarketDataConfig()
    reasoning: ReasoningConfig = ReasoningConfig()
    validation: ValidationConfig = ValidationConfig()
    pipeline: PipelineConfig = PipelineConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return AppConfig.model_validate(raw)


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


# env var → (section, key, parser); section None means top level
_ENV_OVERRIDES: dict[str, tuple[Optional[str], str, Any]] = {
    "DIVIDEND_ADVISOR_DB_PATH": ("database", "db_path", str),
    "DIVIDEND_ADVISOR_LOG_LEVEL": ("logging", "level", str),
    "DIVIDEND_ADVISOR_REASONING_MODEL": ("reasoning", "model", str),
    "DIVIDEND_ADVISOR_STRICT_PROSE_GUARD": ("validation", "strict_prose_guard", _truthy),
    "DIVIDEND_ADVISOR_FALLBACK_MODE": ("pipeline", "fallback_mode", str.lower),
    "DIVIDEND_ADVISOR_DEBUG": (None, "debug", _truthy),
}


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply the ``DIVIDEND_ADVISOR_*`` variables in ``_ENV_OVERRIDES``; empty values are ignored."""
    for name, (section, key, parse) in _ENV_OVERRIDES.items():
        value = os.environ.get(name)
        if not value:
            continue
        target = raw if section is None else raw.setdefault(section, {})
        target[key] = parse(value)
    return raw
