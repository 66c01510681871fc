"""
Tests for the Alpha Vantage client, served by ``httpx.MockTransport``.

What we test
------------
1. OVERVIEW mapping: ratios parsed, "None"/negative values dropped,
   LatestQuarter becomes as_of_date, raw payload kept.
2. TIME_SERIES_DAILY_ADJUSTED: bars oldest first, malformed bars skipped,
   only positive dividend amounts become events.
3. Error payloads: "Error Message" -> AlphaVantageError, "Note"/"Information"
   -> ProviderThrottledError.
4. health_check classification: SUCCESS, WARNING, ERROR, UNKNOWN, FAILED.
5. The API key never appears in exception text or health messages.
"""

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from dividend_advisor.ingestion.alpha_vantage_client import (
    AlphaVantageClient,
    AlphaVantageError,
    ProviderThrottledError,
)
from dividend_advisor.taxonomy.pipeline_taxonomy import ProviderHealthStatus

API_KEY = "SECRETKEY123"

OVERVIEW = {
    "Symbol": "KO",
    "LatestQuarter": "2024-03-31",
    "PayoutRatio": "0.742",
    "DebtToEquityRatioTTM": "None",
    "DebtToEquity": "1.62",
    "DividendYield": "0.0312",
    "Beta": "0.59",
}

DAILY = {
    "Meta Data": {"2. Symbol": "KO"},
    "Time Series (Daily)": {
        "2024-03-15": {
            "4. close": "60.10", "5. adjusted close": "59.80",
            "6. volume": "1200000", "7. dividend amount": "0.4850",
        },
        "2024-03-14": {
            "4. close": "60.00", "5. adjusted close": "59.70",
            "6. volume": "1100000", "7. dividend amount": "0.0000",
        },
        "bad-date": {"4. close": "1.0"},
        "2024-03-13": {"4. close": "None"},
    },
}

QUOTE = {
    "Global Quote": {
        "01. symbol": "SPY",
        "05. price": "528.11",
        "07. latest trading day": "2024-05-31",
        "10. change percent": "0.85%",
    }
}


def _client(handler) -> AlphaVantageClient:
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return AlphaVantageClient(api_key=API_KEY, http_client=http)


def _serve(payload, status_code: int = 200, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(dict(request.url.params))
        return httpx.Response(status_code, json=payload)
    return handler


class TestFetchOverview:
    def test_maps_fields(self):
        seen: list = []
        record = _client(_serve(OVERVIEW, seen=seen)).fetch_overview("KO")

        assert seen[0]["function"] == "OVERVIEW"
        assert seen[0]["symbol"] == "KO"
        assert record.as_of_date == date(2024, 3, 31)
        assert record.payout_ratio == pytest.approx(0.742)
        assert record.debt_to_equity == pytest.approx(1.62)
        assert record.dividend_yield == pytest.approx(0.0312)
        assert record.beta == pytest.approx(0.59)
        assert record.dividend_cut_flag is False
        assert json.loads(record.raw_payload)["Symbol"] == "KO"

    def test_negative_payout_dropped(self):
        payload = {**OVERVIEW, "PayoutRatio": "-0.35", "Beta": "-0.2"}
        record = _client(_serve(payload)).fetch_overview("KO")
        assert record.payout_ratio is None
        # beta may legitimately be negative
        assert record.beta == pytest.approx(-0.2)

    def test_empty_overview(self):
        with pytest.raises(AlphaVantageError, match="No OVERVIEW data"):
            _client(_serve({})).fetch_overview("ZZZZ")


class TestFetchDailyAdjusted:
    def test_bars_and_dividends(self):
        series = _client(_serve(DAILY)).fetch_daily_adjusted("KO")

        assert [p.price_date for p in series.prices] == [date(2024, 3, 14), date(2024, 3, 15)]
        assert series.latest_close == pytest.approx(60.10)
        assert series.prices[0].volume == pytest.approx(1100000)
        assert [(d.ex_date, d.amount) for d in series.dividends] == [(date(2024, 3, 15), 0.485)]

    def test_missing_series(self):
        with pytest.raises(AlphaVantageError, match="No daily series"):
            _client(_serve({"Meta Data": {}})).fetch_daily_adjusted("KO")


class TestErrorPayloads:
    def test_error_message(self):
        payload = {"Error Message": "Invalid API call."}
        with pytest.raises(AlphaVantageError) as exc_info:
            _client(_serve(payload)).fetch_overview("KO")
        assert not isinstance(exc_info.value, ProviderThrottledError)

    @pytest.mark.parametrize("key", ["Note", "Information"])
    def test_throttle_notice(self, key):
        payload = {key: "Our standard API rate limit is 25 requests per day."}
        with pytest.raises(ProviderThrottledError):
            _client(_serve(payload)).fetch_daily_adjusted("KO")

    def test_http_error_redacts_key(self):
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            _client(_serve({}, status_code=500)).fetch_overview("KO")
        assert API_KEY not in str(exc_info.value)
        assert "***" in str(exc_info.value)

    def test_non_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(AlphaVantageError, match="not JSON"):
            client.fetch_overview("KO")

    def test_missing_key(self):
        client = AlphaVantageClient(api_key=None, http_client=httpx.Client(
            transport=httpx.MockTransport(_serve(OVERVIEW))
        ))
        with pytest.raises(RuntimeError, match="ALPHA_VANTAGE_API_KEY"):
            client.fetch_overview("KO")


class TestHealthCheck:
    def test_success(self):
        seen: list = []
        health = _client(_serve(QUOTE, seen=seen)).health_check()
        assert health.status == ProviderHealthStatus.SUCCESS
        assert health.data["ticker"] == "SPY"
        assert health.data["price"] == "528.11"
        assert seen[0]["function"] == "GLOBAL_QUOTE"
        assert seen[0]["symbol"] == "SPY"

    def test_custom_symbol(self):
        seen: list = []
        _client(_serve(QUOTE, seen=seen)).health_check("MSFT")
        assert seen[0]["symbol"] == "MSFT"

    def test_warning_on_notice(self):
        health = _client(_serve({"Note": "slow down"})).health_check()
        assert health.status == ProviderHealthStatus.WARNING
        assert health.message == "slow down"

    def test_error_payload(self):
        health = _client(_serve({"Error Message": "bad key"})).health_check()
        assert health.status == ProviderHealthStatus.ERROR

    def test_unexpected_shape(self):
        health = _client(_serve({"Global Quote": {}})).health_check()
        assert health.status == ProviderHealthStatus.UNKNOWN

    def test_missing_key(self):
        assert AlphaVantageClient(api_key="").health_check().status == ProviderHealthStatus.ERROR

    def test_transport_failure_redacted(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

        health = _client(handler).health_check()
        assert health.status == ProviderHealthStatus.FAILED
        assert API_KEY not in health.message
