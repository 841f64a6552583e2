"""MCP tool for importing an Apple Health export into the health data bank."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from diabfit.domains.health.connectors.apple_health import (
    AppleHealthParseError,
    import_apple_health_export,
)

if TYPE_CHECKING:
    from diabfit.core.audit.logger import AuditLogger
    from diabfit.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)


def register_import_tools(
    mcp: FastMCP,
    repository: HealthRepository,
    user_id: str,
    *,
    default_export_path: str = "",
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register the Apple Health import tool on the MCP server."""

    @mcp.tool
    async def import_apple_health(
        ctx: Context,
        export_path: str = "",
        days: int = 90,
    ) -> str:
        """Import glucose readings, vitals and workouts from an Apple Health export.xml.

        Records already stored at the same time are skipped, so importing the
        same export twice is safe.

        Args:
            export_path: Path to export.xml. Defaults to APPLE_HEALTH_EXPORT_PATH.
            days: Only import records from the last N days; 0 imports everything.
        """
        path = export_path or default_export_path
        if not path:
            return json.dumps({
                "status": "error",
                "error": "invalid_input",
                "message": "No export path given and APPLE_HEALTH_EXPORT_PATH is not set.",
            })
        since = datetime.now() - timedelta(days=days) if days > 0 else None

        start_time = time.monotonic()
        try:
            summary = import_apple_health_export(path, repository, user_id, since=since)
        except AppleHealthParseError as exc:
            logger.warning("Apple Health import failed: %s", exc)
            return json.dumps({"status": "error", "error": "parse_error", "message": str(exc)})
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                "import_apple_health",
                {"days": days},
                duration_ms=elapsed_ms,
                metadata=summary.to_dict(),
            )
        return json.dumps({
            "status": "imported",
            **summary.to_dict(),
            "duration_ms": round(elapsed_ms, 1),
        })
