"""Data models for the health persistence layer.

Timestamps are naive local datetimes: reminders, meal times and calendar
reports are all expressed in the user's wall-clock time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any


@dataclass
class User:
    """The local profile every record links to."""

    id: str
    email: str
    name: str
    date_of_birth: date | None = None
    created_at: str = ""


@dataclass
class Medication:
    """A prescribed or self-managed medication with its reminder schedule."""

    id: str
    user_id: str
    name: str
    dosage: str
    frequency: str  # 'Once Daily', 'Twice Daily', ... (see health_models)
    medication_type: str  # 'Insulin', 'Metformin', ...
    start_date: datetime
    end_date: datetime | None = None
    prescribed_by: str | None = None

    # Encrypted at rest
    instructions: str | None = None
    side_effects: list[str] = field(default_factory=list)

    is_active: bool = True
    reminder_enabled: bool = True
    reminder_times: list[time] = field(default_factory=list)
    color: str = "White"
    shape: str = "Round"
    created_at: str = ""
    updated_at: str = ""


@dataclass
class MedicationDose:
    """One scheduled intake of a medication."""

    id: str
    medication_id: str
    scheduled_time: datetime
    actual_time: datetime | None = None
    status: str = "Pending"  # 'Pending' | 'Taken' | 'Skipped'

    # Encrypted at rest
    notes: str | None = None
    side_effects_experienced: list[str] = field(default_factory=list)
    skipped_reason: str | None = None


@dataclass
class Ingredient:
    """A single ingredient of a logged meal."""

    name: str
    quantity: float = 0.0
    unit: str = "g"
    calories: float = 0.0
    carbs: float = 0.0
    protein: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    category: str = "Other"  # 'Protein', 'Vegetables', 'Grains', ...

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "calories": self.calories,
            "carbs": self.carbs,
            "protein": self.protein,
            "fat": self.fat,
            "fiber": self.fiber,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Ingredient:
        return cls(
            name=str(data.get("name", "")),
            quantity=float(data.get("quantity", 0.0)),
            unit=str(data.get("unit", "g")),
            calories=float(data.get("calories", 0.0)),
            carbs=float(data.get("carbs", 0.0)),
            protein=float(data.get("protein", 0.0)),
            fat=float(data.get("fat", 0.0)),
            fiber=float(data.get("fiber", 0.0)),
            category=str(data.get("category", "Other")),
        )


@dataclass
class Meal:
    """A logged meal with its nutrition totals.

    Totals are stored unencrypted for daily/weekly aggregation; the
    ingredient list and notes are encrypted at rest.
    """

    id: str
    user_id: str
    name: str
    meal_type: str  # 'Breakfast' | 'Lunch' | 'Dinner' | 'Snack'
    timestamp: datetime
    ingredients: list[Ingredient] = field(default_factory=list)
    carbs: float = 0.0
    protein: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    calories: float = 0.0
    sugar: float = 0.0
    sodium: float = 0.0
    glucose_impact: int | None = None
    notes: str | None = None
    photo_analysis_id: str | None = None


@dataclass
class GlucoseReading:
    """A blood glucose measurement in mg/dL."""

    id: str
    user_id: str
    level: int
    timestamp: datetime
    notes: str | None = None
    source: str = "manual"  # 'manual' | 'apple_health'


@dataclass
class Exercise:
    """A logged workout."""

    id: str
    user_id: str
    exercise_type: str
    duration_minutes: int
    intensity: str  # 'Light' | 'Moderate' | 'Vigorous'
    timestamp: datetime
    calories_burned: float | None = None
    notes: str | None = None
    source: str = "manual"


@dataclass
class HealthMetric:
    """A single vital sign or body measurement."""

    id: str
    user_id: str
    metric_type: str  # 'heart_rate' | 'systolic_bp' | 'diastolic_bp' | 'weight' | 'temperature'
    value: float
    timestamp: datetime
    unit: str = ""
    notes: str | None = None
    source: str = "manual"


@dataclass
class StoredMealAnalysis:
    """A cached vision-model meal analysis, keyed by image hash."""

    id: str
    user_id: str
    image_hash: str
    timestamp: datetime
    payload: dict[str, Any]  # encrypted at rest
    model: str = ""
    confidence: float = 0.0
    total_tokens: int = 0
