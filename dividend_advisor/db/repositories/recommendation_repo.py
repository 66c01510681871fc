"""
Repository for persisted recommendations.

Packet, explanation, and fallback are stored as camelCase JSON
(``model_dump(mode="json", by_alias=True)``), which is the interoperability
contract for existing records.

One row per correlation id.  A pipeline run inserts a PENDING row and later
moves it to COMPLETED or FAILED with ``update_status``; terminal rows are
never modified after that.  Both writes are safe to repeat: inserting an
existing correlation id returns the stored row's id, and finishing a row
that already carries the requested terminal status is a no-op.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Optional

from dividend_advisor.db.repositories.base import BaseRepository
from dividend_advisor.models.recommendation import (
    Explanation,
    FallbackAdvice,
    Recommendation,
    RecommendationPacket,
)
from dividend_advisor.taxonomy.pipeline_taxonomy import (
    ErrorKind,
    RecommendationStatus,
)

logger = logging.getLogger(__name__)


class TerminalRecommendationError(RuntimeError):
    """Raised when a write would modify a COMPLETED or FAILED recommendation."""


class RecommendationRepository(BaseRepository):
    """Read/write access to the ``recommendations`` table."""

    def insert(self, rec: Recommendation) -> int:
        """Insert ``rec`` and return its ``rec_id``.

        If a row for ``rec.correlation_id`` already exists (a retried write
        whose first attempt committed), its ``rec_id`` is returned instead.

        Raises:
            sqlite3.IntegrityError: The correlation id belongs to another owner.
        """
        cursor = self.execute(
            """
            INSERT INTO recommendations (
                owner, status, packet_json, explanation_json, fallback_json,
                error_kind, error_detail, correlation_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(correlation_id) DO NOTHING;
            """,
            _to_params(rec),
        )
        if cursor.rowcount == 1:
            return int(cursor.lastrowid)

        existing = self.get_by_correlation_id(rec.correlation_id)
        if existing is None or existing.owner != rec.owner:
            raise sqlite3.IntegrityError(
                f"correlation_id {rec.correlation_id!r} is already used by another owner."
            )
        logger.info(
            "Recommendation for correlation_id=%s already stored as %s",
            rec.correlation_id, existing.id,
        )
        return int(existing.id)

    def update_status(self, rec_id: int, rec: Recommendation) -> None:
        """Move a PENDING row to the terminal state described by ``rec``.

        A row already in ``rec.status`` is left as is (replayed write).

        Raises:
            TerminalRecommendationError: The stored row is in a different
                terminal state, or ``rec`` itself is not terminal.
            KeyError: No row with ``rec_id``.
        """
        if not rec.is_terminal:
            raise TerminalRecommendationError("update_status requires a terminal recommendation.")
        _, status, packet, explanation, fallback, kind, detail, _ = _to_params(rec)
        cursor = self.execute(
            """
            UPDATE recommendations
            SET status = ?, packet_json = ?, explanation_json = ?, fallback_json = ?,
                error_kind = ?, error_detail = ?,
                updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            WHERE rec_id = ? AND status = 'PENDING';
            """,
            (status, packet, explanation, fallback, kind, detail, rec_id),
        )
        if cursor.rowcount == 1:
            return

        row = self.fetchone("SELECT status FROM recommendations WHERE rec_id = ?;", (rec_id,))
        if row is None:
            raise KeyError(rec_id)
        if row["status"] != status:
            raise TerminalRecommendationError(
                f"Recommendation {rec_id} is already {row['status']}; create a new one instead."
            )
        logger.debug("Recommendation %d already %s", rec_id, status)

    def get(self, rec_id: int, owner: Optional[str] = None) -> Optional[Recommendation]:
        """Fetch one recommendation; ``owner`` restricts to that user's rows."""
        if owner is None:
            row = self.fetchone("SELECT * FROM recommendations WHERE rec_id = ?;", (rec_id,))
        else:
            row = self.fetchone(
                "SELECT * FROM recommendations WHERE rec_id = ? AND owner = ?;",
                (rec_id, owner),
            )
        return _row_to_recommendation(row) if row else None

    def list_for_owner(self, owner: str, limit: int = 20) -> list[Recommendation]:
        """Most recent recommendations of ``owner`` first."""
        rows = self.fetchall(
            """
            SELECT * FROM recommendations
            WHERE owner = ?
            ORDER BY rec_id DESC
            LIMIT ?;
            """,
            (owner, limit),
        )
        return [_row_to_recommendation(r) for r in rows]

    def get_by_correlation_id(self, correlation_id: str) -> Optional[Recommendation]:
        row = self.fetchone(
            "SELECT * FROM recommendations WHERE correlation_id = ?;", (correlation_id,)
        )
        return _row_to_recommendation(row) if row else None


def _dump(model) -> Optional[str]:
    if model is None:
        return None
    return json.dumps(model.model_dump(mode="json", by_alias=True), sort_keys=True)


def _to_params(rec: Recommendation) -> tuple:
    return (
        rec.owner,
        rec.status.value,
        _dump(rec.packet),
        _dump(rec.explanation),
        _dump(rec.fallback),
        rec.error_kind.value if rec.error_kind else None,
        rec.error_detail,
        rec.correlation_id,
    )


def _row_to_recommendation(row: sqlite3.Row) -> Recommendation:
    return Recommendation(
        id=str(row["rec_id"]),
        owner=row["owner"],
        status=RecommendationStatus(row["status"]),
        packet=(
            RecommendationPacket.model_validate_json(row["packet_json"])
            if row["packet_json"] else None
        ),
        explanation=(
            Explanation.model_validate_json(row["explanation_json"])
            if row["explanation_json"] else None
        ),
        fallback=(
            FallbackAdvice.model_validate_json(row["fallback_json"])
            if row["fallback_json"] else None
        ),
        error_kind=ErrorKind(row["error_kind"]) if row["error_kind"] else None,
        error_detail=row["error_detail"],
        correlation_id=row["correlation_id"],
    )
