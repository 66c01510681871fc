"""
Dividend Advisor — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, holding edit, refresh, recommendation, etc.).
  5. Report result to stdout.

Install and run::

    pip install -e .
    dividend-advisor --help
    dividend-advisor init-db
    dividend-advisor add-holding --owner alice --ticker KO --shares 10 --cost-basis 58.20
    dividend-advisor refresh-market-data
    dividend-advisor recommend --owner alice --max-holdings 15
    dividend-advisor show-recommendation --owner alice
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Optional
from uuid import uuid4

import typer

app = typer.Typer(
    name="dividend-advisor",
    help="Dividend portfolio advisor — holdings, market data, and AI recommendations.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from dividend_advisor.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from dividend_advisor.utils.logging import configure_logging
    configure_logging(config.logging)


def _connect(config, db_path: Optional[str] = None):
    """Open a configured connection with the schema applied."""
    from dividend_advisor.db.connection import get_connection

    return get_connection(
        db_path or config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    )


def _ensure_schema(config, db_path: Optional[str] = None) -> None:
    from dividend_advisor.db.schema import apply_schema

    with _connect(config, db_path) as conn:
        apply_schema(conn)


def _parse_date_or_exit(value: Optional[str], flag: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        typer.echo(f"[ERROR] Invalid {flag}: {exc}", err=True)
        raise typer.Exit(code=1)


def _split_tickers(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [t.strip() for t in value.split(",") if t.strip()]


# ── Setup ─────────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    """
    from dividend_advisor.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    _ensure_schema(config, db_path)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Max holdings:     {config.constraints.max_holdings}")
    typer.echo(f"  Benchmark:        {config.constraints.benchmark_ticker}")
    typer.echo(f"  Reasoning model:  {config.reasoning.model}")
    typer.echo(f"  Fallback mode:    {config.pipeline.fallback_mode.value}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(mode="json"), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


# ── Holdings ──────────────────────────────────────────────────────────────────

@app.command("add-holding")
def add_holding(
    owner: str = typer.Option(..., "--owner", help="Owning user id."),
    ticker: str = typer.Option(..., "--ticker", help="Ticker symbol (e.g. KO)."),
    shares: float = typer.Option(..., "--shares", help="Share count (> 0)."),
    cost_basis: float = typer.Option(0.0, "--cost-basis", help="Cost per share."),
    purchase_date: Optional[str] = typer.Option(
        None, "--purchase-date", help="ISO purchase date (e.g. 2023-04-01)."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Add a holding for an owner."""
    from dividend_advisor.db.repositories.holding_repo import HoldingRepository
    from dividend_advisor.models.portfolio import Holding

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        holding = Holding(
            owner=owner,
            ticker=ticker,
            shares=shares,
            cost_basis=cost_basis,
            purchase_date=_parse_date_or_exit(purchase_date, "--purchase-date"),
        )
    except ValueError as exc:
        typer.echo(f"[ERROR] Invalid holding: {exc}", err=True)
        raise typer.Exit(code=1)

    _ensure_schema(config, db_path)
    with _connect(config, db_path) as conn:
        holding_id = HoldingRepository(conn).insert(holding)

    typer.echo(f"  {holding.ticker} x {holding.shares} @ {holding.cost_basis:.2f} (id={holding_id})")
    typer.echo("[OK] Holding added.")


@app.command("remove-holding")
def remove_holding(
    owner: str = typer.Option(..., "--owner", help="Owning user id."),
    holding_id: int = typer.Option(..., "--id", help="Holding id (see list-holdings)."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Delete one of an owner's holdings."""
    from dividend_advisor.db.repositories.holding_repo import HoldingRepository

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    _ensure_schema(config, db_path)
    with _connect(config, db_path) as conn:
        removed = HoldingRepository(conn).delete(owner, holding_id)

    if not removed:
        typer.echo(f"[ERROR] Holding {holding_id} not found for owner '{owner}'.", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] Holding removed.")


@app.command("list-holdings")
def list_holdings(
    owner: str = typer.Option(..., "--owner", help="Owning user id."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List an owner's holdings."""
    from dividend_advisor.db.repositories.holding_repo import HoldingRepository
    from dividend_advisor.reporting.formatters import format_holdings_table

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    _ensure_schema(config, db_path)
    with _connect(config, db_path) as conn:
        holdings = HoldingRepository(conn).list_for_owner(owner)

    typer.echo(f"Holdings for {owner}: {len(holdings)}")
    typer.echo(format_holdings_table(holdings))


@app.command("portfolio-summary")
def portfolio_summary(
    owner: str = typer.Option(..., "--owner", help="Owning user id."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Show invested amount, market value, dividend income, and ROI.

    Values use the latest stored prices and yields; run
    ``refresh-market-data`` first for current numbers.
    """
    from dividend_advisor.db.store import SqliteStore
    from dividend_advisor.errors import PipelineError
    from dividend_advisor.reporting.formatters import format_holdings_summary
    from dividend_advisor.scoring.portfolio import summarize_holdings
    from dividend_advisor.snapshot.builder import build_market_snapshot
    from dividend_advisor.utils.time_utils import today_utc

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    _ensure_schema(config, db_path)
    store = SqliteStore.from_config(config.database, db_path=db_path)
    holdings = store.fetch_holdings(owner)
    if not holdings:
        typer.echo(f"  (no holdings for {owner})")
        return

    try:
        snapshot = build_market_snapshot(
            {h.ticker for h in holdings},
            store,
            today_utc(),
            lookup_timeout=config.market_data.lookup_timeout_seconds,
            policy=config.scoring.to_policy(),
        )
    except PipelineError as exc:
        typer.echo(f"[ERROR] {exc.user_message}", err=True)
        raise typer.Exit(code=1)

    typer.echo(format_holdings_summary(owner, summarize_holdings(holdings, snapshot)))


# ── Market data ───────────────────────────────────────────────────────────────

@app.command("refresh-market-data")
def refresh_market_data(
    tickers: Optional[str] = typer.Option(
        None,
        "--tickers",
        help="Comma-separated tickers. Defaults to every ticker held by any owner.",
    ),
    kind: str = typer.Option(
        "all",
        "--kind",
        help="What to refresh: price, fundamental, or all.",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Pull prices, dividends, and fundamentals from Alpha Vantage.

    \b
    Credential setup (.env, gitignored):
      ALPHA_VANTAGE_API_KEY=...

    Each ticker/kind is an independent job: a failure is logged and counted
    and the batch continues.  Re-running is safe (all writes are upserts).
    """
    from functools import partial

    from dividend_advisor.db.connection import get_connection
    from dividend_advisor.db.repositories.holding_repo import HoldingRepository
    from dividend_advisor.ingestion.alpha_vantage_client import AlphaVantageClient
    from dividend_advisor.ingestion.refresh import refresh_tickers
    from dividend_advisor.taxonomy.pipeline_taxonomy import RefreshKind

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    kind_map = {
        "price": (RefreshKind.PRICE,),
        "fundamental": (RefreshKind.FUNDAMENTAL,),
        "all": (RefreshKind.PRICE, RefreshKind.FUNDAMENTAL),
    }
    if kind.lower() not in kind_map:
        typer.echo("[ERROR] --kind must be one of: price, fundamental, all.", err=True)
        raise typer.Exit(code=1)

    _ensure_schema(config, db_path)
    targets = _split_tickers(tickers)
    if not targets:
        with _connect(config, db_path) as conn:
            targets = HoldingRepository(conn).distinct_tickers()
    if not targets:
        typer.echo("  (nothing to refresh — add holdings or pass --tickers)")
        return

    md = config.market_data
    client = AlphaVantageClient.from_env(
        base_url=md.alpha_vantage_base_url,
        timeout_seconds=md.request_timeout_seconds,
    )
    if not client.api_key:
        client.close()
        typer.echo("[ERROR] ALPHA_VANTAGE_API_KEY must be set in .env.", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"refresh-market-data | tickers={', '.join(targets)} | kind={kind.lower()}")
    try:
        with client:
            summary = refresh_tickers(
                targets,
                client,
                partial(
                    get_connection,
                    db_path or config.database.db_path,
                    wal_mode=config.database.wal_mode,
                    busy_timeout_ms=config.database.busy_timeout_ms,
                ),
                kinds=kind_map[kind.lower()],
                retry_policy=md.retry.to_policy(),
                cut_threshold=md.dividend_cut_threshold,
            )
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    for result in summary.results:
        flag = " [DIVIDEND CUT]" if result.dividend_cut_flag else ""
        typer.echo(f"  {result.kind.value:<11} {result.ticker:<6} rows={result.rows_written}{flag}")
    for job, error in summary.failures:
        typer.echo(f"  {job.kind.value:<11} {job.ticker:<6} FAILED: {error}", err=True)

    typer.echo("")
    typer.echo(f"  Succeeded: {summary.succeeded}  Failed: {summary.failed}")
    if summary.succeeded == 0:
        typer.echo("[ERROR] No refresh job succeeded.", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] Market data refreshed.")


@app.command("check-provider")
def check_provider(
    symbol: Optional[str] = typer.Option(None, "--symbol", help="Probe symbol (default SPY)."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Probe Alpha Vantage connectivity and API key validity."""
    from dividend_advisor.ingestion.alpha_vantage_client import AlphaVantageClient
    from dividend_advisor.reporting.formatters import format_provider_health
    from dividend_advisor.taxonomy.pipeline_taxonomy import ProviderHealthStatus

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    md = config.market_data
    with AlphaVantageClient.from_env(
        base_url=md.alpha_vantage_base_url,
        timeout_seconds=md.request_timeout_seconds,
    ) as client:
        health = client.health_check(symbol)

    typer.echo(format_provider_health(health))
    if health.status not in (ProviderHealthStatus.SUCCESS, ProviderHealthStatus.WARNING):
        raise typer.Exit(code=1)


# ── Recommendations ───────────────────────────────────────────────────────────

@app.command("recommend")
def recommend(
    owner: str = typer.Option(..., "--owner", help="Owning user id."),
    max_holdings: Optional[int] = typer.Option(None, "--max-holdings", help="1-100."),
    payout_ceiling: Optional[float] = typer.Option(None, "--payout-ceiling", help="e.g. 0.8"),
    leverage_ceiling: Optional[float] = typer.Option(None, "--leverage-ceiling", help="e.g. 2.0"),
    benchmark: Optional[str] = typer.Option(None, "--benchmark", help="Benchmark ticker."),
    target_yield: Optional[float] = typer.Option(None, "--target-yield", help="e.g. 0.035"),
    watchlist: Optional[str] = typer.Option(
        None, "--watchlist", help="Comma-separated tickers to consider beyond holdings."
    ),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="ISO as-of date (default today, UTC)."),
    correlation_id: Optional[str] = typer.Option(
        None, "--correlation-id", help="Run id for logs and audit (default: random UUID)."
    ),
    fallback: bool = typer.Option(
        False, "--fallback", help="On failure, attach a quality-score ranking."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the transport envelope as JSON."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Run the recommendation pipeline once for an owner.

    \b
    Credential setup (.env, gitignored):
      OPENAI_API_KEY=...

    Exits 0 on a COMPLETED recommendation, 1 otherwise.  Failed runs are
    still saved and audited (except invalid input and cancellation).
    """
    from dividend_advisor.models.result import Ok
    from dividend_advisor.pipeline.orchestrator import run_for_owner
    from dividend_advisor.reporting.envelope import to_envelope
    from dividend_advisor.reporting.formatters import format_recommendation
    from dividend_advisor.taxonomy.pipeline_taxonomy import FallbackMode

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    as_of_date = _parse_date_or_exit(as_of, "--as-of")
    run_id = correlation_id or str(uuid4())
    overrides = {
        "max_holdings": max_holdings,
        "payout_ceiling": payout_ceiling,
        "leverage_ceiling": leverage_ceiling,
        "benchmark_ticker": benchmark,
        "target_yield": target_yield,
        "watchlist": _split_tickers(watchlist) or None,
    }

    _ensure_schema(config, db_path)
    try:
        result = run_for_owner(
            config,
            owner,
            correlation_id=run_id,
            as_of_date=as_of_date,
            constraint_overrides=overrides,
            fallback_mode=FallbackMode.TOP_QUALITY if fallback else None,
            db_path=db_path,
        )
    except RuntimeError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(to_envelope(result), indent=2, sort_keys=True))
    elif result.recommendation is not None:
        typer.echo(format_recommendation(result.recommendation))

    if isinstance(result, Ok):
        if not as_json:
            typer.echo("")
            typer.echo(f"[OK] Recommendation {result.recommendation.id} saved (correlation_id={run_id}).")
        return

    if not as_json:
        typer.echo(f"[ERROR] {result.user_message} (correlation_id={run_id})", err=True)
    raise typer.Exit(code=1)


@app.command("show-recommendation")
def show_recommendation(
    owner: str = typer.Option(..., "--owner", help="Owning user id."),
    rec_id: Optional[int] = typer.Option(
        None, "--id", help="Recommendation id. Omit to list recent recommendations."
    ),
    limit: int = typer.Option(20, "--limit", help="How many recent recommendations to list."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Show one saved recommendation, or list an owner's recent ones."""
    from dividend_advisor.db.repositories.recommendation_repo import RecommendationRepository
    from dividend_advisor.reporting.formatters import (
        format_recommendation,
        format_recommendation_list,
    )

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    _ensure_schema(config, db_path)
    with _connect(config, db_path) as conn:
        repo = RecommendationRepository(conn)
        if rec_id is None:
            typer.echo(format_recommendation_list(repo.list_for_owner(owner, limit=limit)))
            return
        rec = repo.get(rec_id, owner=owner)

    if rec is None:
        typer.echo(f"[ERROR] Recommendation {rec_id} not found for owner '{owner}'.", err=True)
        raise typer.Exit(code=1)
    typer.echo(format_recommendation(rec))


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
