"""MCP tools for exercise logging and weekly activity progress."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from diabfit.core.storage.models import Exercise
from diabfit.domains.health.domain_logic.activity import (
    DEFAULT_WEEKLY_GOAL_MINUTES,
    minutes_by_category,
    summarize_activity,
    week_start,
)
from diabfit.domains.health.domain_logic.health_models import (
    EXERCISE_INTENSITIES,
    EXERCISE_TYPES,
    exercise_category,
)
from diabfit.domains.health.tools.common import (
    ToolInputError,
    check_choice,
    dump,
    invalid_input,
    parse_datetime,
)

if TYPE_CHECKING:
    from diabfit.core.audit.logger import AuditLogger
    from diabfit.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)


def register_activity_tools(
    mcp: FastMCP,
    repository: HealthRepository,
    user_id: str,
    *,
    weekly_goal_minutes: int = DEFAULT_WEEKLY_GOAL_MINUTES,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register exercise tools on the MCP server."""

    @mcp.tool
    async def log_exercise(
        ctx: Context,
        exercise_type: str,
        duration_minutes: int,
        intensity: str = "Moderate",
        calories_burned: float | None = None,
        performed_at: str = "",
        notes: str = "",
    ) -> str:
        """Record a workout.

        Args:
            exercise_type: 'Walking', 'Running', 'Cycling', 'Swimming', 'Strength Training',
                'Yoga', 'Dancing', 'Hiking', 'Tennis', 'Basketball', 'Soccer' or 'Other'.
            duration_minutes: Length of the workout in minutes.
            intensity: 'Light', 'Moderate' or 'Vigorous'.
            calories_burned: Calories burned, if known.
            performed_at: When it started (ISO 8601). Defaults to now.
            notes: Optional notes (encrypted at rest).
        """
        try:
            check_choice("exercise_type", exercise_type, EXERCISE_TYPES)
            check_choice("intensity", intensity, EXERCISE_INTENSITIES)
            if duration_minutes <= 0:
                raise ToolInputError("duration_minutes must be positive")
            timestamp = parse_datetime(performed_at)
        except ToolInputError as exc:
            return invalid_input(exc)

        exercise = Exercise(
            id="",
            user_id=user_id,
            exercise_type=exercise_type,
            duration_minutes=duration_minutes,
            intensity=intensity,
            timestamp=timestamp,
            calories_burned=calories_burned,
            notes=notes or None,
        )
        exercise_id = repository.save_exercise(exercise)
        if audit_logger is not None:
            audit_logger.log_tool_call(
                "log_exercise", {"exercise_type": exercise_type}, record_id=exercise_id
            )
        logger.info("Exercise saved: %s (%d min)", exercise_id, duration_minutes)
        return json.dumps({
            "status": "saved",
            "exercise_id": exercise_id,
            "category": exercise_category(exercise_type),
        })

    @mcp.tool
    async def activity_summary(ctx: Context) -> str:
        """Today's workouts, this week's minutes against the weekly goal, and insights."""
        now = datetime.now()
        exercises = repository.get_exercises(user_id, since=week_start(now), until=now)
        summary = summarize_activity(exercises, now, weekly_goal=weekly_goal_minutes)
        return dump({
            "status": "ok",
            **summary.to_dict(),
            "minutes_by_category": minutes_by_category(exercises),
        })

    @mcp.tool
    async def list_exercises(ctx: Context, days: int = 14, limit: int = 50) -> str:
        """List logged workouts, newest first.

        Args:
            days: How many days back to look (default: 14).
            limit: Maximum workouts to return.
        """
        since = datetime.now() - timedelta(days=days)
        exercises = repository.get_exercises(user_id, since=since, limit=limit)
        return dump({
            "status": "ok",
            "count": len(exercises),
            "exercises": [
                {
                    "id": e.id,
                    "exercise_type": e.exercise_type,
                    "category": exercise_category(e.exercise_type),
                    "duration_minutes": e.duration_minutes,
                    "intensity": e.intensity,
                    "calories_burned": e.calories_burned,
                    "timestamp": e.timestamp.isoformat(timespec="seconds"),
                    "source": e.source,
                }
                for e in exercises
            ],
        })
