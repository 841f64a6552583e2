"""MCP tools that let the user inspect, export and erase their data bank."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from diabfit.core.storage.repository import RepositoryError
from diabfit.domains.health.domain_logic.medication_tracker import MedicationServiceError
from diabfit.domains.health.tools.common import dump, error_json

if TYPE_CHECKING:
    from diabfit.core.audit.logger import AuditLogger
    from diabfit.core.storage.repository import HealthRepository
    from diabfit.domains.health.domain_logic.medication_tracker import MedicationTracker

logger = logging.getLogger(__name__)

RECORD_TABLES = {
    "meal": "meals",
    "glucose_reading": "glucose_readings",
    "exercise": "exercises",
    "health_metric": "health_metrics",
    "meal_analysis": "meal_analyses",
    "medication": "medications",
}

DELETE_ALL_PHRASE = "DELETE_ALL"


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 1)


def register_data_management_tools(
    mcp: FastMCP,
    repository: HealthRepository,
    user_id: str,
    audit_logger: AuditLogger | None = None,
    *,
    tracker: MedicationTracker | None = None,
) -> None:
    """Register export, inventory and deletion tools.

    With a ``tracker``, medication deletes and full erasure also cancel the
    reminders scheduled for the removed medications.
    """

    def _audit_delete(tool_name: str, count: int, record_id: str | None = None, **extra) -> None:
        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name=tool_name, record_id=record_id, count=count, metadata=extra
            )

    @mcp.tool
    async def delete_health_record(ctx: Context, record_type: str, record_id: str) -> str:
        """Delete one stored record. A medication takes its doses with it.

        Args:
            record_type: 'meal', 'glucose_reading', 'exercise', 'health_metric',
                'meal_analysis' or 'medication'.
            record_id: ID of the record.
        """
        if record_type not in RECORD_TABLES:
            return error_json(
                "invalid_input", f"record_type must be one of: {', '.join(RECORD_TABLES)}"
            )

        started = time.monotonic()
        try:
            if record_type == "medication" and tracker is not None:
                deleted = tracker.delete_medication(record_id)
            else:
                deleted = repository.delete_record(RECORD_TABLES[record_type], record_id)
        except MedicationServiceError as exc:
            return error_json(exc.kind, str(exc))
        except RepositoryError as exc:
            return error_json("invalid_input", str(exc))
        if not deleted:
            return json.dumps({
                "status": "not_found",
                "record_id": record_id,
                "message": f"No {record_type.replace('_', ' ')} with that ID.",
            })

        _audit_delete("delete_health_record", 1, record_id, record_type=record_type)
        logger.info("Deleted %s %s", record_type, record_id)
        return json.dumps({
            "status": "deleted",
            "record_type": record_type,
            "record_id": record_id,
            "duration_ms": _elapsed_ms(started),
        })

    @mcp.tool
    async def purge_old_data(ctx: Context, older_than_days: int = 365) -> str:
        """Drop logged history older than a cutoff; medications stay.

        Covers meals, glucose readings, workouts, vitals, cached photo
        analyses and doses scheduled before the cutoff.

        Args:
            older_than_days: Age cutoff in days (default: 365).
        """
        if older_than_days < 1:
            return error_json("invalid_input", "older_than_days must be at least 1.")

        started = time.monotonic()
        by_table = repository.purge_before_days(user_id, older_than_days)
        removed = sum(by_table.values())
        if removed:
            _audit_delete("purge_old_data", removed, older_than_days=older_than_days)
            logger.info("Purged %d records older than %d days", removed, older_than_days)

        return json.dumps({
            "status": "purged",
            "records_deleted": removed,
            "by_table": by_table,
            "older_than_days": older_than_days,
            "duration_ms": _elapsed_ms(started),
        })

    @mcp.tool
    async def delete_all_health_data(ctx: Context, confirm: str = "") -> str:
        """Erase every medication, dose, meal, reading, workout, vital and analysis.

        Irreversible. The user profile itself is kept.

        Args:
            confirm: Must be exactly 'DELETE_ALL'.
        """
        if confirm != DELETE_ALL_PHRASE:
            return json.dumps({
                "status": "cancelled",
                "message": (
                    f"Nothing was deleted. Call again with confirm='{DELETE_ALL_PHRASE}' "
                    "to erase all health data permanently."
                ),
            })

        started = time.monotonic()
        by_table = repository.delete_all_data(user_id)
        removed = sum(by_table.values())
        cancelled = tracker.cancel_all_reminders() if tracker is not None else 0
        _audit_delete("delete_all_health_data", removed, confirmed=True)
        logger.warning(
            "All health data erased (%d records, %d reminders cancelled)", removed, cancelled
        )

        return json.dumps({
            "status": "all_deleted",
            "records_deleted": removed,
            "reminders_cancelled": cancelled,
            "by_table": by_table,
            "duration_ms": _elapsed_ms(started),
            "message": "All health data has been permanently deleted.",
        })

    @mcp.tool
    async def export_health_data(ctx: Context) -> str:
        """Everything stored for this user, decrypted, as JSON."""
        try:
            data = repository.export_user_data(user_id)
        except RepositoryError as exc:
            return error_json("export_failed", str(exc))

        if audit_logger is not None:
            exported = sum(len(rows) for rows in data.values() if isinstance(rows, list))
            audit_logger.log_data_access(
                tool_name="export_health_data", record_type="all", count=exported
            )
        return dump({"status": "ok", "data": data})

    @mcp.tool
    async def data_inventory(ctx: Context) -> str:
        """How many records of each type are stored."""
        by_table = repository.count_records(user_id)
        return json.dumps({
            "status": "ok",
            "total_records": sum(by_table.values()),
            "by_table": by_table,
        })
