"""Audit trail for the health data bank.

Every tool call, bulk read and deletion gets one row in ``audit_log``.
Rows never carry health values: tool arguments are reduced to a SHA-256
fingerprint, and ``llm_disclosed`` marks the calls that shipped a meal
photo to a remote vision model.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from diabfit.core.storage.database import HealthDatabase

logger = logging.getLogger(__name__)

TOOL_INVOCATION = "tool_invocation"
DATA_ACCESS = "data_access"
DATA_DELETE = "data_delete"

_INSERT_COLUMNS = (
    "id", "timestamp", "action", "tool_name", "tool_input_hash",
    "llm_provider", "llm_disclosed", "record_id",
    "duration_ms", "status", "error_type", "metadata_json",
)
_INSERT_SQL = "INSERT INTO audit_log ({}) VALUES ({})".format(
    ", ".join(_INSERT_COLUMNS), ", ".join("?" * len(_INSERT_COLUMNS))
)


def _hash_input(data: Any) -> str:
    """Fingerprint tool arguments; returns ``""`` for unserializable input."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass
class AuditEvent:
    """One row of the audit trail, before id and timestamp are assigned."""

    action: str
    tool_name: str = ""
    tool_input_hash: str = ""
    llm_provider: str | None = None
    llm_disclosed: bool = False
    record_id: str | None = None
    duration_ms: float | None = None
    status: str = "success"
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_row(self, event_id: str, timestamp: str) -> tuple:
        metadata_json = (
            json.dumps(self.metadata, separators=(",", ":"), default=str)
            if self.metadata else None
        )
        return (
            event_id,
            timestamp,
            self.action,
            self.tool_name or None,
            self.tool_input_hash or None,
            self.llm_provider,
            int(self.llm_disclosed),
            self.record_id,
            self.duration_ms,
            self.status,
            self.error_type,
            metadata_json,
        )


class AuditLogger:
    """Appends to and queries the ``audit_log`` table.

    Each write commits on its own. Auditing must not take a tool down, so
    a failed insert is logged here and reported back as an empty id.
    """

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    def log_event(self, event: AuditEvent) -> str:
        """Insert ``event`` and return its new UUID, or ``""`` if the write failed."""
        event_id = str(uuid.uuid4())
        row = event.to_row(event_id, datetime.now(timezone.utc).isoformat())
        try:
            conn = self._db.connection
            conn.execute(_INSERT_SQL, row)
            conn.commit()
        except Exception:
            logger.exception("Dropped audit event %s for tool %r", event.action, event.tool_name)
            return ""
        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        llm_provider: str | None = None,
        llm_disclosed: bool = False,
        record_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record a tool invocation.

        ``tool_input`` is fingerprinted, never stored. Set ``llm_disclosed``
        when a photo left the device, naming the vision ``llm_provider``.
        On failure pass ``status="failure"`` and the error kind as
        ``error_type``.
        """
        return self.log_event(AuditEvent(
            action=TOOL_INVOCATION,
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            llm_provider=llm_provider,
            llm_disclosed=llm_disclosed,
            record_id=record_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_access(self, *, tool_name: str, record_type: str, count: int = 0) -> str:
        return self.log_event(AuditEvent(
            action=DATA_ACCESS,
            tool_name=tool_name,
            metadata={"record_type": record_type, "records_read": count},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        record_id: str | None = None,
        count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        return self.log_event(AuditEvent(
            action=DATA_DELETE,
            tool_name=tool_name,
            record_id=record_id,
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Newest-first audit rows, filtered by action, tool and start timestamp."""
        filters = {"action = ?": action, "tool_name = ?": tool_name, "timestamp >= ?": since}
        clauses = [clause for clause, value in filters.items() if value]
        params: list[Any] = [value for value in filters.values() if value]

        sql = "SELECT * FROM audit_log"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)
        return [dict(row) for row in self._db.connection.execute(sql, params)]

    def count_events(self, *, since: str | None = None) -> int:
        return self._count([], since)

    def count_disclosures(self, *, since: str | None = None) -> int:
        """Events where a meal photo went to an external vision model."""
        return self._count(["llm_disclosed = 1"], since)

    def _count(self, clauses: list[str], since: str | None) -> int:
        params: list[Any] = []
        if since:
            clauses = [*clauses, "timestamp >= ?"]
            params.append(since)
        sql = "SELECT COUNT(*) FROM audit_log"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        return self._db.connection.execute(sql, params).fetchone()[0]
