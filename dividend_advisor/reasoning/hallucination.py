"""
Prose-level hallucination heuristic.

Scans free-form explanation text for ticker-shaped tokens (2–5 uppercase
letters on word boundaries) that are neither in the universe nor in a known
acronym allowlist.  Soft by default: the Output Validator logs and records
the hits as warnings; only strict mode rejects on them.

The structured ``targetPortfolio`` check is separate and always hard.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

TICKER_LIKE_PATTERN = re.compile(r"\b[A-Z]{2,5}\b")

DEFAULT_KNOWN_ACRONYMS: frozenset[str] = frozenset(
    {"ETF", "USA", "USD", "GDP", "CPI", "CAGR", "EPS", "FCF", "ROIC", "LLC", "INC"}
)


def find_unknown_ticker_mentions(
    texts: Iterable[str],
    universe: Iterable[str],
    allowlist: Iterable[str] = DEFAULT_KNOWN_ACRONYMS,
) -> list[str]:
    """Return sorted, de-duplicated ticker-like tokens not in universe ∪ allowlist."""
    known = set(universe) | set(allowlist)
    hits: set[str] = set()
    for text in texts:
        for token in TICKER_LIKE_PATTERN.findall(text):
            if token not in known:
                hits.add(token)
    return sorted(hits)
