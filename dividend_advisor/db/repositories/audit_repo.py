"""
Repository for the append-only audit log.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

from dividend_advisor.db.repositories.base import BaseRepository
from dividend_advisor.models.recommendation import AuditEvent
from dividend_advisor.taxonomy.pipeline_taxonomy import AuditAction

logger = logging.getLogger(__name__)


class AuditRepository(BaseRepository):
    """Append/read access to ``audit_log``."""

    def insert(self, event: AuditEvent) -> int:
        return self.insert_returning_id(
            """
            INSERT INTO audit_log (action, correlation_id, details_json, occurred_at)
            VALUES (?, ?, ?, ?);
            """,
            (
                event.action.value,
                event.correlation_id,
                json.dumps(event.details, sort_keys=True, default=str),
                event.occurred_at.isoformat(),
            ),
        )

    def list_for_correlation_id(self, correlation_id: str) -> list[AuditEvent]:
        rows = self.fetchall(
            "SELECT * FROM audit_log WHERE correlation_id = ? ORDER BY audit_id;",
            (correlation_id,),
        )
        return [
            AuditEvent(
                action=AuditAction(r["action"]),
                correlation_id=r["correlation_id"],
                details=json.loads(r["details_json"]),
                occurred_at=datetime.fromisoformat(r["occurred_at"]),
            )
            for r in rows
        ]
