"""Tests for vitals insights and goal status."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from diabfit.core.storage.models import HealthMetric
from diabfit.domains.health.domain_logic.vitals import (
    DEFAULT_BLOOD_PRESSURE_INSIGHT,
    DEFAULT_HEART_RATE_INSIGHT,
    DEFAULT_WEIGHT_INSIGHT,
    HealthGoal,
    display_value,
    goal_status,
    metric_title,
    vitals_insights,
)

NOW = datetime(2026, 3, 11, 9, 0)


def _metric(metric_type: str, value: float, hours_ago: int = 0, unit: str = "") -> HealthMetric:
    return HealthMetric(
        id="", user_id="u", metric_type=metric_type, value=value,
        timestamp=NOW - timedelta(hours=hours_ago), unit=unit,
    )


class TestDisplay:
    @pytest.mark.parametrize("metric,expected", [
        (("heart_rate", 72.6), "72 bpm"),
        (("systolic_bp", 128.0), "128 mmHg"),
        (("weight", 180.44), "180.4 lbs"),
        (("temperature", 98.61), "98.6°F"),
    ])
    def test_values(self, metric, expected):
        assert display_value(_metric(*metric)) == expected

    def test_unknown_metric_uses_unit(self):
        assert display_value(_metric("steps", 9000, unit="count")) == "9000 count"

    def test_titles(self):
        assert metric_title("systolic_bp") == "Systolic BP"
        assert metric_title("blood_oxygen") == "Blood Oxygen"


class TestInsights:
    def test_defaults_without_data(self):
        assert vitals_insights([]) == {
            "heart_rate": DEFAULT_HEART_RATE_INSIGHT,
            "blood_pressure": DEFAULT_BLOOD_PRESSURE_INSIGHT,
            "weight": DEFAULT_WEIGHT_INSIGHT,
        }

    def test_elevated_heart_rate(self):
        insights = vitals_insights([_metric("heart_rate", 110), _metric("heart_rate", 100)])
        assert insights["heart_rate"].startswith("Your average heart rate is elevated")

    def test_low_heart_rate(self):
        insights = vitals_insights([_metric("heart_rate", 55)])
        assert insights["heart_rate"].startswith("Your heart rate is on the lower side")

    def test_blood_pressure_uses_latest_systolic(self):
        metrics = [
            _metric("systolic_bp", 150, hours_ago=48),
            _metric("systolic_bp", 125, hours_ago=1),
        ]
        assert vitals_insights(metrics)["blood_pressure"] == (
            "Your blood pressure is slightly elevated. Consider lifestyle changes."
        )

    def test_weight_change(self):
        changed = [_metric("weight", 180, hours_ago=24), _metric("weight", 176.5)]
        assert vitals_insights(changed)["weight"].startswith("Significant weight change")
        stable = [_metric("weight", 180, hours_ago=24), _metric("weight", 179)]
        assert vitals_insights(stable)["weight"].startswith("Your weight is stable")


class TestGoals:
    @pytest.mark.parametrize("progress,expected", [
        (100, "Achieved"), (80, "On Track"), (50, "Needs Attention"), (10, "Off Track"),
    ])
    def test_status(self, progress, expected):
        assert goal_status(progress) == expected

    def test_progress_is_capped(self):
        goal = HealthGoal(metric_type="steps", target_value=8000, current_value=12000)
        assert goal.progress_percentage == 100.0
        assert goal.to_dict()["status"] == "Achieved"

    def test_zero_target(self):
        assert HealthGoal(metric_type="steps", target_value=0).progress_percentage == 0.0
