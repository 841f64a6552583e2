"""Heart rate, blood pressure and weight insights; health goal status."""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import Any

from diabfit.core.storage.models import HealthMetric

METRIC_TITLES: dict[str, str] = {
    "heart_rate": "Heart Rate",
    "systolic_bp": "Systolic BP",
    "diastolic_bp": "Diastolic BP",
    "weight": "Weight",
    "temperature": "Temperature",
}

DEFAULT_HEART_RATE_INSIGHT = "Track your heart rate to monitor cardiovascular health"
DEFAULT_BLOOD_PRESSURE_INSIGHT = "Regular blood pressure monitoring helps prevent complications"
DEFAULT_WEIGHT_INSIGHT = "Maintain a healthy weight for better diabetes management"


def metric_title(metric_type: str) -> str:
    return METRIC_TITLES.get(metric_type, metric_type.replace("_", " ").title())


def display_value(metric: HealthMetric) -> str:
    """Human-readable value with its unit, e.g. ``'72 bpm'`` or ``'180.4 lbs'``."""
    if metric.metric_type == "heart_rate":
        return f"{int(metric.value)} bpm"
    if metric.metric_type in ("systolic_bp", "diastolic_bp"):
        return f"{int(metric.value)} mmHg"
    if metric.metric_type == "weight":
        return f"{metric.value:.1f} lbs"
    if metric.metric_type == "temperature":
        return f"{metric.value:.1f}°F"
    return f"{metric.value} {metric.unit}".strip()


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

def heart_rate_insight(metrics: list[HealthMetric]) -> str:
    values = [m.value for m in metrics if m.metric_type == "heart_rate"]
    if not values:
        return DEFAULT_HEART_RATE_INSIGHT
    average = statistics.fmean(values)
    if average > 100:
        return "Your average heart rate is elevated. Consider consulting your doctor."
    if average < 60:
        return "Your heart rate is on the lower side. This could be normal if you're athletic."
    return "Your heart rate is within normal range. Keep up the good work!"


def blood_pressure_insight(metrics: list[HealthMetric]) -> str:
    """Judged on the most recent systolic reading; ``metrics`` are newest first."""
    systolic = [m for m in metrics if m.metric_type == "systolic_bp"]
    if not systolic:
        return DEFAULT_BLOOD_PRESSURE_INSIGHT
    latest = systolic[0].value
    if latest > 140:
        return "Your blood pressure is elevated. Monitor closely and consult your doctor."
    if latest > 120:
        return "Your blood pressure is slightly elevated. Consider lifestyle changes."
    return "Your blood pressure is within normal range."


def weight_insight(metrics: list[HealthMetric]) -> str:
    """Compares the two most recent weights; ``metrics`` are newest first."""
    weights = [m.value for m in metrics if m.metric_type == "weight"]
    if len(weights) < 2:
        return DEFAULT_WEIGHT_INSIGHT
    if abs(weights[0] - weights[1]) > 2:
        return "Significant weight change detected. Monitor your diabetes management closely."
    return "Your weight is stable. Great for diabetes management!"


def vitals_insights(metrics: list[HealthMetric]) -> dict[str, str]:
    """All three insight lines for a newest-first list of metrics."""
    ordered = sorted(metrics, key=lambda m: m.timestamp, reverse=True)
    return {
        "heart_rate": heart_rate_insight(ordered),
        "blood_pressure": blood_pressure_insight(ordered),
        "weight": weight_insight(ordered),
    }


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

def goal_status(progress: float) -> str:
    if progress >= 100:
        return "Achieved"
    if progress >= 75:
        return "On Track"
    if progress >= 50:
        return "Needs Attention"
    return "Off Track"


@dataclass
class HealthGoal:
    metric_type: str
    target_value: float
    current_value: float = 0.0
    unit: str = ""
    is_active: bool = True

    @property
    def progress_percentage(self) -> float:
        if self.target_value == 0:
            return 0.0
        return min(self.current_value / self.target_value * 100, 100.0)

    @property
    def status(self) -> str:
        return goal_status(self.progress_percentage)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_type": self.metric_type,
            "target_value": self.target_value,
            "current_value": self.current_value,
            "unit": self.unit,
            "progress_percentage": round(self.progress_percentage, 1),
            "status": self.status,
        }
