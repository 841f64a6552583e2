"""MCP tools for blood glucose: logging, insights, alerts, risk and correlations."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from diabfit.core.storage.models import GlucoseReading
from diabfit.domains.health.domain_logic.glucose import (
    analyze_glucose,
    assess_risk,
    build_correlation_data,
    detect_alerts,
    exercise_impact,
    glucose_recommendations,
    glucose_status,
    health_recommendations,
)
from diabfit.domains.health.tools.common import (
    ToolInputError,
    dump,
    error_json,
    invalid_input,
    parse_datetime,
)

if TYPE_CHECKING:
    from diabfit.core.audit.logger import AuditLogger
    from diabfit.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)


def register_glucose_tools(
    mcp: FastMCP,
    repository: HealthRepository,
    user_id: str,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register glucose tracking and analysis tools on the MCP server."""

    def _readings(days: int) -> list[GlucoseReading]:
        now = datetime.now()
        return repository.get_glucose_readings(
            user_id, since=now - timedelta(days=days), until=now, limit=5000
        )

    @mcp.tool
    async def log_glucose(
        ctx: Context,
        level: int,
        measured_at: str = "",
        notes: str = "",
    ) -> str:
        """Record a blood glucose reading in mg/dL.

        Args:
            level: Glucose level in mg/dL (e.g., 110).
            measured_at: When it was measured (ISO 8601). Defaults to now.
            notes: Optional context, e.g. 'fasting' or 'after lunch' (encrypted at rest).
        """
        if not 10 <= level <= 1000:
            return error_json("invalid_input", "level must be between 10 and 1000 mg/dL")
        try:
            timestamp = parse_datetime(measured_at)
        except ToolInputError as exc:
            return invalid_input(exc)

        reading = GlucoseReading(
            id="", user_id=user_id, level=level, timestamp=timestamp, notes=notes or None
        )
        reading_id = repository.save_glucose_reading(reading)
        if audit_logger is not None:
            audit_logger.log_tool_call("log_glucose", {"level": level}, record_id=reading_id)
        logger.info("Glucose reading saved: %s", reading_id)

        recent = repository.get_glucose_readings(
            user_id, since=timestamp - timedelta(minutes=30), until=timestamp, limit=10
        )
        alerts = [a for a in detect_alerts(recent) if a.timestamp == timestamp]
        return dump({
            "status": "saved",
            "reading_id": reading_id,
            "glucose_status": glucose_status(level),
            "alerts": [a.to_dict() for a in alerts],
        })

    @mcp.tool
    async def glucose_insights(ctx: Context, days: int = 14) -> str:
        """Average, time in range, patterns (dawn phenomenon, post-meal spikes),
        2-hour predictions and recommendations.

        Args:
            days: Number of days to analyze (default: 14).
        """
        readings = _readings(days)
        now = datetime.now()
        meals = repository.get_meals(user_id, since=now - timedelta(days=days), limit=2000)
        if audit_logger is not None:
            audit_logger.log_data_access(
                tool_name="glucose_insights", record_type="glucose_readings", count=len(readings)
            )

        insights = analyze_glucose(readings, meals)
        if insights is None:
            return dump({
                "status": "no_data",
                "period_days": days,
                "message": "No glucose readings in this period. Use log_glucose to add some.",
            })
        return dump({
            "status": "ok",
            "period_days": days,
            "readings": len(readings),
            **insights.to_dict(),
            "recommendations": [r.to_dict() for r in glucose_recommendations(insights)],
        })

    @mcp.tool
    async def glucose_alerts(ctx: Context, hours: int = 24) -> str:
        """Low, high and rapid-change alerts from recent readings.

        Args:
            hours: How far back to look (default: 24).
        """
        now = datetime.now()
        readings = repository.get_glucose_readings(
            user_id, since=now - timedelta(hours=hours), until=now, limit=5000
        )
        alerts = detect_alerts(readings)
        return dump({
            "status": "ok",
            "period_hours": hours,
            "count": len(alerts),
            "alerts": [a.to_dict() for a in alerts],
        })

    @mcp.tool
    async def glucose_risk_assessment(ctx: Context, days: int = 30) -> str:
        """Overall risk from glucose variability and average level.

        Args:
            days: Number of days to assess (default: 30).
        """
        readings = _readings(days)
        return dump({
            "status": "ok",
            "period_days": days,
            "readings": len(readings),
            **assess_risk(readings).to_dict(),
        })

    @mcp.tool
    async def glucose_correlations(ctx: Context, days: int = 30) -> str:
        """How exercise and meals line up with glucose over a window.

        Args:
            days: Window length in days (default: 30).
        """
        data = build_correlation_data(repository, user_id, datetime.now(), days=days)
        return dump({
            "status": "ok",
            "period_days": days,
            "glucose_readings": len(data.glucose_readings),
            "meals": len(data.meals),
            "exercises": len(data.exercises),
            "exercise_impact": exercise_impact(data.exercises, data.glucose_readings).to_dict(),
            "recommendations": [r.to_dict() for r in health_recommendations(data)],
        })
