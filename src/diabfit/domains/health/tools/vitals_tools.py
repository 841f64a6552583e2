"""MCP tools for vitals: recording, insights, goals and longitudinal trends."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from diabfit.core.storage.models import HealthMetric
from diabfit.domains.health.domain_logic.health_models import METRIC_TYPES, METRIC_UNITS
from diabfit.domains.health.domain_logic.trend_analyzer import TrendAnalyzer
from diabfit.domains.health.domain_logic.vitals import (
    HealthGoal,
    display_value,
    metric_title,
    vitals_insights,
)
from diabfit.domains.health.tools.common import (
    ToolInputError,
    check_choice,
    dump,
    error_json,
    invalid_input,
    parse_datetime,
)

if TYPE_CHECKING:
    from diabfit.core.audit.logger import AuditLogger
    from diabfit.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)


def register_vitals_tools(
    mcp: FastMCP,
    repository: HealthRepository,
    user_id: str,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register vitals and trend tools on the MCP server."""

    trend_analyzer = TrendAnalyzer(repository, user_id)

    @mcp.tool
    async def record_vitals(
        ctx: Context,
        heart_rate: float | None = None,
        systolic_bp: float | None = None,
        diastolic_bp: float | None = None,
        weight_lbs: float | None = None,
        temperature_f: float | None = None,
        measured_at: str = "",
        notes: str = "",
    ) -> str:
        """Record vital signs from a home measurement or doctor visit.

        Args:
            heart_rate: Heart rate in BPM.
            systolic_bp: Systolic blood pressure (top number), mmHg.
            diastolic_bp: Diastolic blood pressure (bottom number), mmHg.
            weight_lbs: Body weight in pounds.
            temperature_f: Body temperature in Fahrenheit.
            measured_at: When measured (ISO 8601). Defaults to now.
            notes: Optional notes (encrypted at rest).
        """
        values = {
            "heart_rate": heart_rate,
            "systolic_bp": systolic_bp,
            "diastolic_bp": diastolic_bp,
            "weight": weight_lbs,
            "temperature": temperature_f,
        }
        provided = {k: v for k, v in values.items() if v is not None}
        if not provided:
            return error_json("invalid_input", "No vitals provided")
        try:
            timestamp = parse_datetime(measured_at)
        except ToolInputError as exc:
            return invalid_input(exc)

        recorded = []
        for metric_type, value in provided.items():
            metric = HealthMetric(
                id="",
                user_id=user_id,
                metric_type=metric_type,
                value=value,
                unit=METRIC_UNITS[metric_type],
                timestamp=timestamp,
                notes=notes or None,
            )
            repository.save_health_metric(metric)
            recorded.append({"metric": metric_title(metric_type), "value": display_value(metric)})

        if audit_logger is not None:
            audit_logger.log_tool_call("record_vitals", {"metrics": sorted(provided)})
        logger.info("Vitals saved: %s", sorted(provided))
        return dump({
            "status": "saved",
            "recorded": recorded,
            "measured_at": timestamp.isoformat(timespec="seconds"),
        })

    @mcp.tool
    async def vitals_summary(ctx: Context, days: int = 30) -> str:
        """Latest value per vital sign plus heart rate, blood pressure and weight insights.

        Args:
            days: How many days back to look (default: 30).
        """
        since = datetime.now() - timedelta(days=days)
        metrics = repository.get_health_metrics(user_id, since=since, limit=1000)
        latest: dict[str, dict] = {}
        for metric in metrics:
            if metric.metric_type not in latest:
                latest[metric.metric_type] = {
                    "title": metric_title(metric.metric_type),
                    "value": display_value(metric),
                    "timestamp": metric.timestamp.isoformat(timespec="seconds"),
                }
        return dump({
            "status": "ok",
            "period_days": days,
            "latest": latest,
            "insights": vitals_insights(metrics),
        })

    @mcp.tool
    async def goal_progress(
        ctx: Context,
        metric_type: str,
        target_value: float,
        current_value: float | None = None,
    ) -> str:
        """Progress toward a health goal: Achieved, On Track, Needs Attention or Off Track.

        Args:
            metric_type: 'heart_rate', 'systolic_bp', 'diastolic_bp', 'weight' or 'temperature'.
            target_value: Goal value.
            current_value: Current value; defaults to the latest stored reading.
        """
        try:
            check_choice("metric_type", metric_type, METRIC_TYPES)
        except ToolInputError as exc:
            return invalid_input(exc)
        if current_value is None:
            latest = repository.get_health_metrics(user_id, metric_type=metric_type, limit=1)
            if not latest:
                return dump({
                    "status": "no_data",
                    "message": f"No {metric_title(metric_type)} readings stored yet.",
                })
            current_value = latest[0].value
        goal = HealthGoal(
            metric_type=metric_type,
            target_value=target_value,
            current_value=current_value,
            unit=METRIC_UNITS[metric_type],
        )
        return dump({"status": "ok", "goal": goal.to_dict()})

    @mcp.tool
    async def health_trends(
        ctx: Context,
        metric: str = "glucose",
        days: int = 90,
    ) -> str:
        """Trend statistics (current, mean, median, range, direction, volatility) for one measure.

        Args:
            metric: 'glucose' or a vital: 'heart_rate', 'systolic_bp', 'diastolic_bp',
                'weight', 'temperature'.
            days: Number of days to analyze (default: 90).
        """
        try:
            check_choice("metric", metric, ("glucose", *METRIC_TYPES))
        except ToolInputError as exc:
            return invalid_input(exc)
        if metric == "glucose":
            trend = trend_analyzer.compute_glucose_trend(days=days)
        else:
            trend = trend_analyzer.compute_metric_trend(metric, days=days)
        return dump({"status": "ok", "period_days": days, "trend": trend})

    @mcp.tool
    async def health_divergences(ctx: Context, days: int = 90) -> str:
        """Measures moving in opposite directions (one improving while another declines).

        Args:
            days: Number of days to analyze (default: 90).
        """
        return dump({
            "status": "ok",
            "period_days": days,
            "divergences": trend_analyzer.detect_divergence_patterns(days=days),
            "history": trend_analyzer.get_history_summary(),
        })
