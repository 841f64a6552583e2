"""Exercise summaries and weekly-goal insights."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from diabfit.core.storage.models import Exercise
from diabfit.domains.health.domain_logic.health_models import exercise_category

# WHO recommendation for adults: 150 minutes of moderate activity per week.
DEFAULT_WEEKLY_GOAL_MINUTES = 150


@dataclass
class ActivitySummary:
    """Today's and this week's workout totals with the three insight lines."""

    todays_workout_count: int
    todays_total_minutes: int
    todays_total_calories: int
    weekly_minutes: int
    weekly_goal: int
    weekly_progress_insight: str
    diabetes_benefits_insight: str
    recommendations_insight: str

    @property
    def weekly_progress_percentage(self) -> float:
        if self.weekly_goal <= 0:
            return 0.0
        return self.weekly_minutes / self.weekly_goal * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "today": {
                "workouts": self.todays_workout_count,
                "minutes": self.todays_total_minutes,
                "calories": self.todays_total_calories,
            },
            "week": {
                "minutes": self.weekly_minutes,
                "goal_minutes": self.weekly_goal,
                "progress_percentage": round(self.weekly_progress_percentage, 1),
            },
            "insights": {
                "weekly_progress": self.weekly_progress_insight,
                "diabetes_benefits": self.diabetes_benefits_insight,
                "recommendation": self.recommendations_insight,
            },
        }


def week_start(now: datetime) -> datetime:
    """Midnight on the Monday of ``now``'s week."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=midnight.weekday())


def todays_totals(exercises: list[Exercise], now: datetime) -> tuple[int, int, int]:
    """``(count, minutes, calories)`` for workouts logged today."""
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    today = [e for e in exercises if start <= e.timestamp < end]
    return (
        len(today),
        sum(e.duration_minutes for e in today),
        sum(int(e.calories_burned or 0) for e in today),
    )


def weekly_minutes(exercises: list[Exercise], now: datetime) -> int:
    start = week_start(now)
    return sum(e.duration_minutes for e in exercises if e.timestamp >= start)


def weekly_progress_insight(minutes: int, goal: int) -> str:
    percentage = minutes / goal * 100 if goal > 0 else 0.0
    if percentage >= 100:
        return "Excellent! You've exceeded your weekly exercise goal."
    if percentage >= 75:
        return "Great progress! You're almost at your weekly goal."
    if percentage >= 50:
        return "Good start! Keep going to reach your weekly goal."
    if percentage > 0:
        return "You've started exercising this week. Keep it up!"
    return "Start exercising to see your weekly progress."


def diabetes_benefits_insight(minutes: int) -> str:
    if minutes >= 150:
        return (
            "Excellent! Regular exercise helps improve insulin sensitivity "
            "and blood sugar control."
        )
    if minutes >= 75:
        return (
            "Good exercise routine! This helps with glucose metabolism "
            "and cardiovascular health."
        )
    if minutes > 0:
        return "Any exercise is beneficial for diabetes management. Try to increase gradually."
    return "Regular exercise is crucial for diabetes management. Start with light activities."


def next_step_recommendation(minutes: int, goal: int) -> str:
    remaining = max(0, goal - minutes)
    if remaining == 0:
        return "You've met your weekly goal! Consider adding strength training twice a week."
    if remaining <= 30:
        return f"Just {remaining} more minutes to reach your weekly goal!"
    sessions = math.ceil(remaining / 30)
    return f"Try {sessions} more 30-minute sessions this week to reach your goal."


def summarize_activity(
    exercises: list[Exercise],
    now: datetime,
    *,
    weekly_goal: int = DEFAULT_WEEKLY_GOAL_MINUTES,
) -> ActivitySummary:
    count, minutes_today, calories_today = todays_totals(exercises, now)
    week = weekly_minutes(exercises, now)
    return ActivitySummary(
        todays_workout_count=count,
        todays_total_minutes=minutes_today,
        todays_total_calories=calories_today,
        weekly_minutes=week,
        weekly_goal=weekly_goal,
        weekly_progress_insight=weekly_progress_insight(week, weekly_goal),
        diabetes_benefits_insight=diabetes_benefits_insight(week),
        recommendations_insight=next_step_recommendation(week, weekly_goal),
    )


def minutes_by_category(exercises: list[Exercise]) -> dict[str, int]:
    """Total minutes per exercise category, e.g. ``{'cardio': 90}``."""
    totals: dict[str, int] = {}
    for e in exercises:
        category = exercise_category(e.exercise_type)
        totals[category] = totals.get(category, 0) + e.duration_minutes
    return totals
