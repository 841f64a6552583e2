"""MCP tool exposing the audit trail to the user."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from diabfit.domains.health.tools.common import dump

if TYPE_CHECKING:
    from diabfit.core.audit.logger import AuditLogger

RECENT_EVENT_LIMIT = 20

_EVENT_FIELDS = (
    "timestamp", "action", "tool_name", "llm_provider",
    "status", "error_type", "duration_ms",
)


def _display_event(row: dict[str, Any]) -> dict[str, Any]:
    event = {name: row.get(name) for name in _EVENT_FIELDS}
    event["photo_sent"] = bool(row.get("llm_disclosed"))
    return event


def register_audit_tools(mcp: FastMCP, audit_logger: AuditLogger) -> None:

    @mcp.tool
    async def audit_summary(ctx: Context, days: int = 30) -> str:
        """Which tools touched your data lately, and how many meal photos left the device.

        Args:
            days: Look-back window in days (default: 30).
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        recent = audit_logger.get_events(since=since, limit=RECENT_EVENT_LIMIT)
        return dump({
            "status": "ok",
            "period_days": days,
            "total_events": audit_logger.count_events(since=since),
            "photos_sent_to_vision_model": audit_logger.count_disclosures(since=since),
            "recent_events": [_display_event(row) for row in recent],
        })
