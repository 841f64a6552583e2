"""Glucose analytics: ranges, patterns, alerts and risk.

Works on plain lists of readings, meals and exercises. Callers that have a
repository can use :func:`build_correlation_data` to fetch a window of all
three at once.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from diabfit.core.storage.models import Exercise, GlucoseReading, Meal
from diabfit.domains.health.domain_logic.health_models import (
    GLUCOSE_HIGH_MG_DL,
    GLUCOSE_LOW_MG_DL,
)

if TYPE_CHECKING:
    from diabfit.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)

# Alert thresholds for consecutive readings.
RAPID_CHANGE_MG_DL_PER_MIN = 2.0
RAPID_CHANGE_MAX_GAP = timedelta(minutes=30)


def glucose_status(level: int) -> str:
    """'Low' below 70 mg/dL, 'High' above 180, otherwise 'Normal'."""
    if level < GLUCOSE_LOW_MG_DL:
        return "Low"
    if level <= GLUCOSE_HIGH_MG_DL:
        return "Normal"
    return "High"


def _chronological(readings: list[GlucoseReading]) -> list[GlucoseReading]:
    return sorted(readings, key=lambda r: r.timestamp)


# ---------------------------------------------------------------------------
# Range statistics
# ---------------------------------------------------------------------------

@dataclass
class TimeInRange:
    """Percentages of readings below, inside and above 70-180 mg/dL."""

    in_range: float
    below_range: float
    above_range: float

    def to_dict(self) -> dict[str, float]:
        return {
            "in_range": round(self.in_range, 1),
            "below_range": round(self.below_range, 1),
            "above_range": round(self.above_range, 1),
        }


def average_glucose(readings: list[GlucoseReading]) -> float:
    if not readings:
        return 0.0
    return statistics.fmean(r.level for r in readings)


def time_in_range(readings: list[GlucoseReading]) -> TimeInRange:
    total = len(readings)
    if total == 0:
        return TimeInRange(0.0, 0.0, 0.0)
    below = sum(1 for r in readings if r.level < GLUCOSE_LOW_MG_DL)
    above = sum(1 for r in readings if r.level > GLUCOSE_HIGH_MG_DL)
    inside = total - below - above
    return TimeInRange(
        in_range=inside / total * 100,
        below_range=below / total * 100,
        above_range=above / total * 100,
    )


# ---------------------------------------------------------------------------
# Patterns and predictions
# ---------------------------------------------------------------------------

@dataclass
class GlucosePattern:
    type: str  # 'dawn_phenomenon' | 'post_meal_spike'
    description: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "description": self.description, "confidence": self.confidence}


@dataclass
class GlucosePrediction:
    timeframe: str
    predicted_range: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeframe": self.timeframe,
            "predicted_range": self.predicted_range,
            "confidence": self.confidence,
        }


def detect_dawn_phenomenon(readings: list[GlucoseReading]) -> GlucosePattern | None:
    """Five or more 06:00-09:59 readings averaging above 140 mg/dL."""
    morning = [r.level for r in readings if 6 <= r.timestamp.hour <= 9]
    if len(morning) < 5 or statistics.fmean(morning) <= 140:
        return None
    return GlucosePattern(
        type="dawn_phenomenon",
        description="Elevated morning glucose levels detected",
        confidence=0.8,
    )


def detect_post_meal_spikes(
    meals: list[Meal], readings: list[GlucoseReading]
) -> list[GlucosePattern]:
    """One pattern per meal whose 1-3 hour window peaks above 180 mg/dL."""
    patterns: list[GlucosePattern] = []
    for meal in meals:
        window = [
            r.level for r in readings
            if timedelta(hours=1) < r.timestamp - meal.timestamp < timedelta(hours=3)
        ]
        if window and max(window) > GLUCOSE_HIGH_MG_DL:
            patterns.append(GlucosePattern(
                type="post_meal_spike",
                description=f"High glucose spike after {meal.name} ({meal.carbs:g}g carbs)",
                confidence=0.7,
            ))
    return patterns


def predict_trend(readings: list[GlucoseReading]) -> list[GlucosePrediction]:
    """Two-hour outlook from the change across the 10 most recent readings.

    Needs at least 10 readings; a change within +/-5 mg/dL predicts nothing.
    """
    if len(readings) < 10:
        return []
    recent = _chronological(readings)[-10:]
    change = recent[-1].level - recent[0].level
    if change > 5:
        return [GlucosePrediction("Next 2 hours", "Rising trend detected", 0.6)]
    if change < -5:
        return [GlucosePrediction("Next 2 hours", "Declining trend detected", 0.6)]
    return []


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

@dataclass
class HealthRecommendation:
    category: str  # 'glucose' | 'exercise' | 'nutrition' | 'medication' | 'lifestyle'
    title: str
    description: str
    priority: str  # 'low' | 'medium' | 'high' | 'critical'
    actionable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "actionable": self.actionable,
        }


@dataclass
class GlucoseInsights:
    average_level: float
    time_in_range: TimeInRange
    patterns: list[GlucosePattern] = field(default_factory=list)
    predictions: list[GlucosePrediction] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "average_level": round(self.average_level, 1),
            "time_in_range": self.time_in_range.to_dict(),
            "patterns": [p.to_dict() for p in self.patterns],
            "predictions": [p.to_dict() for p in self.predictions],
        }


def analyze_glucose(
    readings: list[GlucoseReading], meals: list[Meal] | None = None
) -> GlucoseInsights | None:
    """Averages, range, patterns and predictions; None without readings."""
    if not readings:
        return None
    patterns: list[GlucosePattern] = []
    dawn = detect_dawn_phenomenon(readings)
    if dawn is not None:
        patterns.append(dawn)
    patterns.extend(detect_post_meal_spikes(meals or [], readings))
    return GlucoseInsights(
        average_level=average_glucose(readings),
        time_in_range=time_in_range(readings),
        patterns=patterns,
        predictions=predict_trend(readings),
    )


def glucose_recommendations(insights: GlucoseInsights) -> list[HealthRecommendation]:
    recs: list[HealthRecommendation] = []
    if insights.time_in_range.in_range < 70:
        recs.append(HealthRecommendation(
            category="glucose",
            title="Improve Time in Range",
            description=(
                f"Your time in range is {int(insights.time_in_range.in_range)}%. "
                "Aim for 70% or higher."
            ),
            priority="high",
        ))
    if insights.average_level > GLUCOSE_HIGH_MG_DL:
        recs.append(HealthRecommendation(
            category="glucose",
            title="High Average Glucose",
            description=(
                f"Your average glucose is {int(insights.average_level)}mg/dL. "
                "Consider consulting your healthcare provider."
            ),
            priority="high",
        ))
    return recs


@dataclass
class ExerciseImpact:
    improves_glucose: bool
    average_improvement: float  # mg/dL drop, before minus after

    def to_dict(self) -> dict[str, Any]:
        return {
            "improves_glucose": self.improves_glucose,
            "average_improvement": round(self.average_improvement, 1),
        }


def exercise_impact(
    exercises: list[Exercise], readings: list[GlucoseReading]
) -> ExerciseImpact:
    """Mean drop between readings in the two hours before and after each workout.

    Workouts without readings on both sides are ignored.
    """
    two_hours = timedelta(hours=2)
    improvements: list[float] = []
    for exercise in exercises:
        before = [
            r.level for r in readings
            if timedelta(0) < exercise.timestamp - r.timestamp < two_hours
        ]
        after = [
            r.level for r in readings
            if timedelta(0) < r.timestamp - exercise.timestamp < two_hours
        ]
        if before and after:
            improvements.append(statistics.fmean(before) - statistics.fmean(after))

    average = statistics.fmean(improvements) if improvements else 0.0
    return ExerciseImpact(improves_glucose=average > 0, average_improvement=average)


def nutrition_pattern_recommendations(meals: list[Meal]) -> list[HealthRecommendation]:
    if not any(m.carbs > 45 for m in meals):
        return []
    return [HealthRecommendation(
        category="nutrition",
        title="High Carb Meal Impact",
        description="Consider reducing carbs in meals to 45g or less for better glucose control",
        priority="medium",
    )]


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------

_RISK_ADVICE = {
    "High glucose variability": "Focus on consistent meal timing and carb counting",
    "Elevated average glucose": "Consult with your healthcare provider about medication adjustments",
}


@dataclass
class RiskAssessment:
    overall_risk: str  # 'low' | 'medium' | 'high' | 'critical'
    risk_factors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_risk": self.overall_risk,
            "risk_factors": list(self.risk_factors),
            "recommendations": list(self.recommendations),
        }


def assess_risk(readings: list[GlucoseReading]) -> RiskAssessment:
    """Risk from glucose variability (population std dev) and the average level."""
    factors: list[str] = []
    risk = "low"

    levels = [float(r.level) for r in readings]
    if levels:
        std_dev = statistics.pstdev(levels)
        if std_dev > 50:
            factors.append("High glucose variability")
            risk = "high"
        elif std_dev > 30:
            factors.append("Moderate glucose variability")
            risk = "medium"

        if statistics.fmean(levels) > GLUCOSE_HIGH_MG_DL:
            factors.append("Elevated average glucose")
            risk = "high"

    return RiskAssessment(
        overall_risk=risk,
        risk_factors=factors,
        recommendations=[_RISK_ADVICE[f] for f in factors if f in _RISK_ADVICE],
    )


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

ALERT_SEVERITY = {
    "Low Glucose": "High",
    "High Glucose": "High",
    "Rapid Rise": "Medium",
    "Rapid Fall": "Medium",
}


@dataclass
class GlucoseAlert:
    type: str  # one of ALERT_SEVERITY's keys
    level: int
    timestamp: datetime
    notes: str | None = None

    @property
    def severity(self) -> str:
        return ALERT_SEVERITY[self.type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "level": self.level,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "notes": self.notes,
        }


def detect_alerts(readings: list[GlucoseReading]) -> list[GlucoseAlert]:
    """Out-of-range readings plus rapid changes between close consecutive readings.

    A rapid rise or fall is a change of at least 2 mg/dL per minute between
    consecutive readings taken no more than 30 minutes apart. Alerts are
    returned in chronological order.
    """
    alerts: list[GlucoseAlert] = []
    previous: GlucoseReading | None = None

    for reading in _chronological(readings):
        status = glucose_status(reading.level)
        if status == "Low":
            alerts.append(GlucoseAlert("Low Glucose", reading.level, reading.timestamp))
        elif status == "High":
            alerts.append(GlucoseAlert("High Glucose", reading.level, reading.timestamp))

        if previous is not None:
            gap = reading.timestamp - previous.timestamp
            if timedelta(0) < gap <= RAPID_CHANGE_MAX_GAP:
                rate = (reading.level - previous.level) / (gap.total_seconds() / 60)
                note = f"{rate:+.1f} mg/dL per minute since {previous.level} mg/dL"
                if rate >= RAPID_CHANGE_MG_DL_PER_MIN:
                    alerts.append(GlucoseAlert("Rapid Rise", reading.level, reading.timestamp, note))
                elif rate <= -RAPID_CHANGE_MG_DL_PER_MIN:
                    alerts.append(GlucoseAlert("Rapid Fall", reading.level, reading.timestamp, note))
        previous = reading

    return alerts


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------

@dataclass
class CorrelationData:
    """Readings, meals and workouts from one time window, oldest first."""

    start: datetime
    end: datetime
    glucose_readings: list[GlucoseReading] = field(default_factory=list)
    meals: list[Meal] = field(default_factory=list)
    exercises: list[Exercise] = field(default_factory=list)


def build_correlation_data(
    repository: HealthRepository,
    user_id: str,
    now: datetime,
    *,
    days: int = 30,
) -> CorrelationData:
    start = now - timedelta(days=days)
    readings = repository.get_glucose_readings(user_id, since=start, until=now, limit=5000)
    meals = repository.get_meals(user_id, since=start, until=now, limit=2000)
    exercises = repository.get_exercises(user_id, since=start, until=now, limit=2000)
    logger.debug(
        "Correlation window %d days: %d readings, %d meals, %d exercises",
        days, len(readings), len(meals), len(exercises),
    )
    return CorrelationData(
        start=start,
        end=now,
        glucose_readings=_chronological(readings),
        meals=sorted(meals, key=lambda m: m.timestamp),
        exercises=sorted(exercises, key=lambda e: e.timestamp),
    )


def health_recommendations(data: CorrelationData) -> list[HealthRecommendation]:
    """Exercise benefit and nutrition recommendations for a correlation window."""
    recs: list[HealthRecommendation] = []
    impact = exercise_impact(data.exercises, data.glucose_readings)
    if impact.improves_glucose:
        recs.append(HealthRecommendation(
            category="exercise",
            title="Exercise Benefits Detected",
            description=(
                "Your glucose levels improve by an average of "
                f"{int(impact.average_improvement)}mg/dL after exercise"
            ),
            priority="high",
        ))
    recs.extend(nutrition_pattern_recommendations(data.meals))
    return recs
