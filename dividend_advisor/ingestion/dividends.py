"""
Dividend cut detection.

A cut is flagged when the most recent dividend is lower than the one before
it by more than ``threshold`` (a fraction: 0.10 == 10%).  Special one-off
dividends are not distinguished; at least two events are required.
"""

from __future__ import annotations

from collections.abc import Sequence

from dividend_advisor.models.market import DividendEvent

DEFAULT_CUT_THRESHOLD = 0.10


def detect_dividend_cut(
    dividends: Sequence[DividendEvent],
    threshold: float = DEFAULT_CUT_THRESHOLD,
) -> bool:
    """True if the latest dividend fell more than ``threshold`` versus the previous one."""
    if not 0.0 <= threshold < 1.0:
        raise ValueError(f"threshold must be in [0, 1), got {threshold}.")
    ordered = sorted(dividends, key=lambda d: d.ex_date)
    if len(ordered) < 2:
        return False
    previous, latest = ordered[-2].amount, ordered[-1].amount
    if previous <= 0:
        return False
    return latest < previous * (1.0 - threshold)
