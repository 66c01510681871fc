"""
Tests for the output validator.

What we test
------------
1. Hallucination guard: a ticker outside the universe is rejected
   (TSLA vs {AAPL, MSFT}); tickers are compared verbatim.
2. Weight gate: [0.5, 0.3] rejected, [0.6, 0.4] accepted, tolerance edge,
   out-of-range weights; weights are never rescaled.
3. Schema gate: missing fields, wrong types (no coercion), empty portfolio,
   too many positions, duplicates, non-finite weights.
4. ``reason`` is accepted as an alias of ``rationale``.
5. Prose guard warns by default and rejects in strict mode; the allowlist
   suppresses known acronyms.
6. Rejections map to InvalidModelOutput with the right reason.
"""

from __future__ import annotations

import math

import pytest

from dividend_advisor.reasoning.validator import Accepted, OutputValidator, Rejected
from dividend_advisor.taxonomy.pipeline_taxonomy import (
    ErrorKind,
    RejectionReason,
    ValidationState,
)

UNIVERSE = {"AAPL", "MSFT"}


def _payload(positions, **explanation) -> dict:
    body = {
        "summary": "Balanced between two quality compounders.",
        "bullets": ["Both have low payout ratios"],
        "risksToWatch": ["Tech concentration"],
    }
    body.update(explanation)
    return {"targetPortfolio": positions, "explanation": body}


def _pos(ticker: str, weight, rationale: str = "Quality") -> dict:
    return {"ticker": ticker, "weight": weight, "rationale": rationale}


def _validator(**kwargs) -> OutputValidator:
    return OutputValidator(UNIVERSE, kwargs.pop("max_holdings", 5), **kwargs)


class TestUniverseGate:
    def test_unknown_ticker_rejected(self):
        result = _validator().validate(_payload([_pos("TSLA", 1.0)]))
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.UNKNOWN_TICKER
        assert "TSLA" in result.detail
        assert result.state == ValidationState.SCHEMA_CHECKED

    def test_lowercase_ticker_not_repaired(self):
        result = _validator().validate(_payload([_pos("msft", 1.0)]))
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.UNKNOWN_TICKER


class TestWeightGate:
    def test_unnormalized_rejected(self):
        result = _validator().validate(_payload([_pos("AAPL", 0.5), _pos("MSFT", 0.3)]))
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.WEIGHTS_UNNORMALIZED
        assert result.state == ValidationState.UNIVERSE_CHECKED

    def test_normalized_accepted_unchanged(self):
        result = _validator().validate(_payload([_pos("AAPL", 0.6), _pos("MSFT", 0.4)]))
        assert isinstance(result, Accepted)
        assert [p.weight for p in result.output.positions] == [0.6, 0.4]
        assert [p.ticker for p in result.output.positions] == ["AAPL", "MSFT"]

    def test_within_tolerance_accepted(self):
        result = _validator().validate(_payload([_pos("AAPL", 0.6), _pos("MSFT", 0.4005)]))
        assert isinstance(result, Accepted)

    def test_outside_tolerance_rejected(self):
        result = _validator().validate(_payload([_pos("AAPL", 0.6), _pos("MSFT", 0.402)]))
        assert isinstance(result, Rejected)

    def test_weight_above_one_rejected(self):
        result = _validator().validate(_payload([_pos("AAPL", 1.5), _pos("MSFT", -0.5)]))
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.WEIGHTS_UNNORMALIZED


class TestSchemaGate:
    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"targetPortfolio": []},
            {"targetPortfolio": [_pos("MSFT", 1.0)]},
            _payload([_pos("MSFT", "1.0")]),
            _payload([{"ticker": "MSFT", "weight": 1.0}]),
            _payload([_pos("MSFT", 1.0)], bullets=[]),
            _payload([_pos("MSFT", 1.0)], summary=""),
            _payload([_pos("MSFT", 1.0)], summary="   "),
            _payload([_pos("MSFT", math.nan)]),
            "not a dict",
        ],
    )
    def test_schema_violations(self, data):
        result = _validator().validate(data)
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.SCHEMA_VIOLATION
        assert result.state == ValidationState.EXTRACTED

    def test_missing_risks_rejected(self):
        data = _payload([_pos("MSFT", 1.0)])
        del data["explanation"]["risksToWatch"]
        result = _validator().validate(data)
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.SCHEMA_VIOLATION

    def test_too_many_positions(self):
        result = _validator(max_holdings=1).validate(
            _payload([_pos("AAPL", 0.5), _pos("MSFT", 0.5)])
        )
        assert isinstance(result, Rejected)
        assert "maxHoldings" in result.detail

    def test_duplicates_rejected(self):
        result = _validator().validate(_payload([_pos("MSFT", 0.5), _pos("MSFT", 0.5)]))
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.SCHEMA_VIOLATION
        assert "duplicate" in result.detail

    def test_summary_min_chars(self):
        result = _validator(summary_min_chars=100).validate(_payload([_pos("MSFT", 1.0)]))
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.SCHEMA_VIOLATION

    def test_reason_alias(self):
        data = _payload([{"ticker": "MSFT", "weight": 1.0, "reason": "Moat"}])
        result = _validator().validate(data)
        assert isinstance(result, Accepted)
        assert result.output.positions[0].rationale == "Moat"

    def test_extra_fields_ignored(self):
        data = _payload([_pos("MSFT", 1.0)])
        data["confidence"] = "high"
        assert isinstance(_validator().validate(data), Accepted)


class TestProseGuard:
    def test_unknown_mention_warns(self):
        data = _payload([_pos("MSFT", 1.0)], bullets=["Unlike TSLA, it pays a dividend"])
        result = _validator().validate(data)
        assert isinstance(result, Accepted)
        assert any("TSLA" in w for w in result.output.warnings)

    def test_rationale_is_scanned(self):
        data = _payload([_pos("MSFT", 1.0, rationale="Better than NVDA here")])
        result = _validator().validate(data)
        assert isinstance(result, Accepted)
        assert any("NVDA" in w for w in result.output.warnings)

    def test_strict_mode_rejects(self):
        data = _payload([_pos("MSFT", 1.0)], bullets=["Unlike TSLA, it pays a dividend"])
        result = _validator(strict_prose=True).validate(data)
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.UNKNOWN_TICKER

    def test_allowlist_suppresses(self):
        data = _payload([_pos("MSFT", 1.0)], bullets=["Cheaper than the VIG ETF"])
        result = _validator(prose_allowlist={"VIG", "ETF"}).validate(data)
        assert isinstance(result, Accepted)
        assert result.output.warnings == ()


class TestRejectionMapping:
    def test_to_error(self):
        result = _validator().validate(_payload([_pos("TSLA", 1.0)]))
        err = result.to_error()
        assert err.kind == ErrorKind.INVALID_MODEL_OUTPUT
        assert err.reason == RejectionReason.UNKNOWN_TICKER
        assert err.user_message.startswith("InvalidModelOutput(UnknownTicker):")
        assert "TSLA" not in err.user_message
