"""Tests for exercise summaries."""

from __future__ import annotations

from datetime import datetime, timedelta

from diabfit.core.storage.models import Exercise
from diabfit.domains.health.domain_logic.activity import (
    diabetes_benefits_insight,
    minutes_by_category,
    next_step_recommendation,
    summarize_activity,
    week_start,
    weekly_progress_insight,
)

# Wednesday
NOW = datetime(2026, 3, 11, 18, 0)


def _exercise(minutes: int, timestamp: datetime, kind: str = "Walking", calories=None) -> Exercise:
    return Exercise(
        id="", user_id="u", exercise_type=kind, duration_minutes=minutes,
        intensity="Moderate", timestamp=timestamp, calories_burned=calories,
    )


class TestWeek:
    def test_week_starts_monday(self):
        assert week_start(NOW) == datetime(2026, 3, 9)
        assert week_start(datetime(2026, 3, 9, 0, 0)) == datetime(2026, 3, 9)


class TestSummary:
    def test_today_and_week_totals(self):
        exercises = [
            _exercise(30, NOW.replace(hour=7), calories=150.7),
            _exercise(20, NOW.replace(hour=12), kind="Yoga"),
            _exercise(45, NOW - timedelta(days=2)),  # Monday
            _exercise(60, NOW - timedelta(days=3)),  # last Sunday
        ]
        summary = summarize_activity(exercises, NOW)
        assert summary.todays_workout_count == 2
        assert summary.todays_total_minutes == 50
        assert summary.todays_total_calories == 150
        assert summary.weekly_minutes == 95
        assert summary.to_dict()["week"]["progress_percentage"] == 63.3
        assert summary.weekly_progress_insight.startswith("Good start!")
        assert summary.recommendations_insight == (
            "Try 2 more 30-minute sessions this week to reach your goal."
        )

    def test_custom_goal(self):
        summary = summarize_activity([_exercise(60, NOW)], NOW, weekly_goal=60)
        assert summary.weekly_progress_percentage == 100.0
        assert summary.weekly_progress_insight.startswith("Excellent!")

    def test_no_exercise(self):
        summary = summarize_activity([], NOW)
        assert summary.weekly_progress_insight == "Start exercising to see your weekly progress."
        assert summary.diabetes_benefits_insight.startswith("Regular exercise is crucial")


class TestInsights:
    def test_progress_bands(self):
        assert weekly_progress_insight(120, 150).startswith("Great progress!")
        assert weekly_progress_insight(10, 150).startswith("You've started")
        assert weekly_progress_insight(10, 0) == "Start exercising to see your weekly progress."

    def test_benefit_bands(self):
        assert diabetes_benefits_insight(150).startswith("Excellent!")
        assert diabetes_benefits_insight(75).startswith("Good exercise routine!")
        assert diabetes_benefits_insight(10).startswith("Any exercise")

    def test_next_step(self):
        assert next_step_recommendation(150, 150).startswith("You've met your weekly goal!")
        assert next_step_recommendation(130, 150) == "Just 20 more minutes to reach your weekly goal!"
        assert next_step_recommendation(0, 150).startswith("Try 5 more")

    def test_minutes_by_category(self):
        exercises = [
            _exercise(30, NOW, "Running"),
            _exercise(20, NOW, "Walking"),
            _exercise(40, NOW, "Strength Training"),
            _exercise(15, NOW, "Parkour"),
        ]
        assert minutes_by_category(exercises) == {"cardio": 50, "strength": 40, "other": 15}
