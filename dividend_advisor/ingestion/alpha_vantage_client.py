"""
Alpha Vantage client — fundamentals, daily adjusted prices, and health check.

API:   https://www.alphavantage.co/query
Docs:  https://www.alphavantage.co/documentation/

Credential setup (.env, gitignored)::

    ALPHA_VANTAGE_API_KEY=your_key_here

Endpoints used
--------------
  OVERVIEW                    → ``FundamentalRecord`` (payout ratio, debt/equity,
                                dividend yield, beta, latest quarter)
  TIME_SERIES_DAILY_ADJUSTED  → ``DailySeries`` (closes + dividend amounts)
  GLOBAL_QUOTE                → ``ProviderHealth`` (connectivity + key check)

Error payloads
--------------
Alpha Vantage answers HTTP 200 even on failure:
  ``{"Error Message": ...}``           → ``AlphaVantageError``
  ``{"Note": ...}`` / ``{"Information": ...}`` → ``ProviderThrottledError``
    (free tier: 5 requests/minute, 25/day)

The API key travels as a query parameter, so it is redacted from every log
line and exception message this module produces.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

import httpx

from dividend_advisor.models.market import DividendEvent, FundamentalRecord, PricePoint
from dividend_advisor.taxonomy.pipeline_taxonomy import ProviderHealthStatus
from dividend_advisor.utils.logging import truncate_for_log
from dividend_advisor.utils.time_utils import parse_provider_date, today_utc

logger = logging.getLogger(__name__)


# ── Errors ─────────────────────────────────────────────────────────────────────

class AlphaVantageError(RuntimeError):
    """Provider rejected the request (``Error Message`` payload or bad shape)."""


class ProviderThrottledError(AlphaVantageError):
    """Provider returned a rate-limit ``Note`` / ``Information`` notice."""


# ── Response types ─────────────────────────────────────────────────────────────

@dataclass
class DailySeries:
    """Parsed TIME_SERIES_DAILY_ADJUSTED response, oldest first."""

    ticker: str
    prices: list[PricePoint] = field(default_factory=list)
    dividends: list[DividendEvent] = field(default_factory=list)

    @property
    def latest_close(self) -> Optional[float]:
        return self.prices[-1].close if self.prices else None


@dataclass(frozen=True)
class ProviderHealth:
    """Result of ``AlphaVantageClient.health_check()``."""

    status: ProviderHealthStatus
    latency_ms: int
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)


# ── Client ─────────────────────────────────────────────────────────────────────

class AlphaVantageClient:
    """Synchronous Alpha Vantage client over ``httpx``.

    Usage::

        with AlphaVantageClient.from_env() as client:
            record = client.fetch_overview("MSFT")

    Args:
        api_key:         Defaults to ``ALPHA_VANTAGE_API_KEY``.
        base_url:        Query endpoint.
        timeout_seconds: Per-request HTTP timeout.
        http_client:     Pre-built ``httpx.Client`` (tests use ``MockTransport``).
    """

    BASE_URL: ClassVar[str] = "https://www.alphavantage.co/query"
    HEALTH_SYMBOL: ClassVar[str] = "SPY"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url or self.BASE_URL
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout_seconds)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "AlphaVantageClient":
        return cls(api_key=os.environ.get("ALPHA_VANTAGE_API_KEY"), **kwargs)

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> "AlphaVantageClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── Endpoints ──────────────────────────────────────────────────────────────

    def fetch_overview(self, ticker: str) -> FundamentalRecord:
        """Fetch company OVERVIEW and map it to a ``FundamentalRecord``.

        ``as_of_date`` is the reported ``LatestQuarter`` (today when absent).
        ``dividend_cut_flag`` is left False; the refresh job sets it from
        stored dividend history.

        Raises:
            ProviderThrottledError: Rate-limit notice.
            AlphaVantageError: Error payload or no overview data.
            httpx.HTTPError: Transport or non-2xx failure.
        """
        payload = self._get("OVERVIEW", ticker)
        if not payload.get("Symbol"):
            raise AlphaVantageError(f"No OVERVIEW data for {ticker}.")

        debt_to_equity = _to_float(payload.get("DebtToEquityRatioTTM"))
        if debt_to_equity is None:
            debt_to_equity = _to_float(payload.get("DebtToEquity"))

        return FundamentalRecord(
            ticker=ticker,
            as_of_date=parse_provider_date(payload.get("LatestQuarter")) or today_utc(),
            payout_ratio=_non_negative(_to_float(payload.get("PayoutRatio"))),
            debt_to_equity=_non_negative(debt_to_equity),
            dividend_yield=_non_negative(_to_float(payload.get("DividendYield"))),
            beta=_to_float(payload.get("Beta")),
            raw_payload=json.dumps(payload, sort_keys=True),
        )

    def fetch_daily_adjusted(self, ticker: str, outputsize: str = "compact") -> DailySeries:
        """Fetch TIME_SERIES_DAILY_ADJUSTED closes and dividend amounts.

        Args:
            ticker:     Canonical ticker.
            outputsize: ``"compact"`` (100 days) or ``"full"``.
        """
        payload = self._get("TIME_SERIES_DAILY_ADJUSTED", ticker, outputsize=outputsize)
        daily = payload.get("Time Series (Daily)")
        if not isinstance(daily, dict):
            raise AlphaVantageError(f"No daily series for {ticker}.")

        series = DailySeries(ticker=ticker)
        for day in sorted(daily):
            bar = daily[day]
            price_date = parse_provider_date(day)
            close = _to_float(bar.get("4. close"))
            if price_date is None or close is None or close < 0:
                logger.debug("Skipping malformed bar %s %s", ticker, day)
                continue
            series.prices.append(
                PricePoint(
                    ticker=ticker,
                    price_date=price_date,
                    close=close,
                    adjusted_close=_to_float(bar.get("5. adjusted close")),
                    volume=_to_float(bar.get("6. volume")),
                )
            )
            amount = _to_float(bar.get("7. dividend amount"))
            if amount is not None and amount > 0:
                series.dividends.append(
                    DividendEvent(ticker=ticker, ex_date=price_date, amount=amount)
                )

        logger.info(
            "Fetched %d daily bar(s) and %d dividend(s) for %s",
            len(series.prices), len(series.dividends), ticker,
        )
        return series

    def health_check(self, symbol: Optional[str] = None) -> ProviderHealth:
        """Probe GLOBAL_QUOTE and classify the answer; never raises."""
        if not self.api_key:
            logger.error("Alpha Vantage API key missing")
            return ProviderHealth(ProviderHealthStatus.ERROR, 0, "API key missing")

        symbol = symbol or self.HEALTH_SYMBOL
        start = time.monotonic()
        try:
            payload = self._request("GLOBAL_QUOTE", symbol)
        except httpx.HTTPError as exc:
            latency = _elapsed_ms(start)
            message = self._redact(str(exc))
            logger.error("Alpha Vantage health check failed: %s", message)
            return ProviderHealth(ProviderHealthStatus.FAILED, latency, message)
        except AlphaVantageError as exc:
            return ProviderHealth(ProviderHealthStatus.UNKNOWN, _elapsed_ms(start), str(exc))
        latency = _elapsed_ms(start)

        if payload.get("Error Message"):
            return ProviderHealth(ProviderHealthStatus.ERROR, latency, str(payload["Error Message"]))
        notice = payload.get("Note") or payload.get("Information")
        if notice:
            logger.warning("Alpha Vantage notice: %s", notice)
            return ProviderHealth(ProviderHealthStatus.WARNING, latency, str(notice))

        quote = payload.get("Global Quote")
        if isinstance(quote, dict) and quote.get("05. price"):
            return ProviderHealth(
                ProviderHealthStatus.SUCCESS,
                latency,
                "OK",
                data={
                    "ticker": quote.get("01. symbol"),
                    "price": quote.get("05. price"),
                    "day": quote.get("07. latest trading day"),
                    "changePercent": quote.get("10. change percent"),
                },
            )

        logger.error(
            "Unexpected GLOBAL_QUOTE payload: %s",
            truncate_for_log(json.dumps(payload), 200),
        )
        return ProviderHealth(
            ProviderHealthStatus.UNKNOWN, latency, "Unexpected response structure"
        )

    # ── Internals ──────────────────────────────────────────────────────────────

    def _get(self, function: str, ticker: str, **params: str) -> dict[str, Any]:
        """Request ``function`` and raise on Alpha Vantage error payloads."""
        payload = self._request(function, ticker, **params)
        if payload.get("Error Message"):
            raise AlphaVantageError(f"{function} {ticker}: {payload['Error Message']}")
        notice = payload.get("Note") or payload.get("Information")
        if notice:
            raise ProviderThrottledError(f"{function} {ticker}: {notice}")
        return payload

    def _request(self, function: str, symbol: str, **params: str) -> dict[str, Any]:
        if not self.api_key:
            raise RuntimeError("ALPHA_VANTAGE_API_KEY must be set in .env.")

        query = {"function": function, "symbol": symbol, **params, "apikey": self.api_key}
        logger.info("[ALPHAVANTAGE] %s symbol=%s", function, symbol)
        try:
            resp = self._http.get(self.base_url, params=query)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise httpx.HTTPStatusError(
                self._redact(str(exc)), request=exc.request, response=exc.response
            ) from None
        except httpx.HTTPError as exc:
            logger.warning("[ALPHAVANTAGE] %s %s failed: %s", function, symbol, self._redact(str(exc)))
            raise

        try:
            payload = resp.json()
        except ValueError as exc:
            raise AlphaVantageError(f"{function} {symbol}: response was not JSON") from exc
        if not isinstance(payload, dict):
            raise AlphaVantageError(f"{function} {symbol}: payload was not an object")
        return payload

    def _redact(self, text: str) -> str:
        if self.api_key:
            return text.replace(self.api_key, "***")
        return text


def _to_float(value: Any) -> Optional[float]:
    """Parse a provider numeric string; ``"None"``, ``"-"`` and blanks become ``None``."""
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if result != result or result in (float("inf"), float("-inf")):
        return None
    return result


def _non_negative(value: Optional[float]) -> Optional[float]:
    """Negative ratios (e.g. negative-earnings payout) carry no signal; drop them."""
    if value is None or value < 0:
        return None
    return value


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
