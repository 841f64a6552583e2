"""Vocabulary shared by the health domain: categorical values and defaults."""

from __future__ import annotations

from datetime import time
from typing import Literal

# ---------------------------------------------------------------------------
# Medications
# ---------------------------------------------------------------------------

MEDICATION_FREQUENCIES = (
    "Once Daily",
    "Twice Daily",
    "Three Times Daily",
    "Four Times Daily",
    "Every Other Day",
    "Weekly",
    "As Needed",
    "Custom",
)

MEDICATION_TYPES = (
    "Insulin",
    "Metformin",
    "Blood Pressure",
    "Cholesterol",
    "Supplement",
    "Vitamin",
    "Antibiotic",
    "Pain Relief",
    "Other",
)

MEDICATION_COLORS = ("Red", "Blue", "Green", "Yellow", "Orange", "Purple", "Pink", "White")

MEDICATION_SHAPES = ("Round", "Oval", "Square", "Capsule")

DoseStatus = Literal["Pending", "Taken", "Skipped"]
DOSE_PENDING: DoseStatus = "Pending"
DOSE_TAKEN: DoseStatus = "Taken"
DOSE_SKIPPED: DoseStatus = "Skipped"

AdherencePeriod = Literal["Week", "Month", "3 Months", "Year"]
ADHERENCE_PERIODS = ("Week", "Month", "3 Months", "Year")

_DEFAULT_REMINDER_TIMES: dict[str, tuple[time, ...]] = {
    "Once Daily": (time(8, 0),),
    "Twice Daily": (time(8, 0), time(20, 0)),
    "Three Times Daily": (time(8, 0), time(14, 0), time(20, 0)),
    "Four Times Daily": (time(8, 0), time(12, 0), time(16, 0), time(20, 0)),
}


def default_reminder_times(frequency: str) -> list[time]:
    """Suggested times of day for a frequency; 08:00 when there is no pattern."""
    return list(_DEFAULT_REMINDER_TIMES.get(frequency, (time(8, 0),)))


# ---------------------------------------------------------------------------
# Meals
# ---------------------------------------------------------------------------

MEAL_TYPES = ("Breakfast", "Lunch", "Dinner", "Snack")

INGREDIENT_CATEGORIES = (
    "Protein",
    "Vegetables",
    "Fruits",
    "Grains",
    "Dairy",
    "Fats & Oils",
    "Spices & Herbs",
    "Other",
)

# Glycemic index bands, ordered best first.
GLYCEMIC_INDEX_LEVELS = ("Low", "Medium", "High")

# ---------------------------------------------------------------------------
# Exercise
# ---------------------------------------------------------------------------

EXERCISE_INTENSITIES = ("Light", "Moderate", "Vigorous")

EXERCISE_CATEGORIES: dict[str, str] = {
    "Walking": "cardio",
    "Running": "cardio",
    "Hiking": "cardio",
    "Cycling": "cardio",
    "Swimming": "cardio",
    "Dancing": "cardio",
    "Strength Training": "strength",
    "Yoga": "flexibility",
    "Tennis": "sports",
    "Basketball": "sports",
    "Soccer": "sports",
    "Other": "other",
}

EXERCISE_TYPES = tuple(EXERCISE_CATEGORIES)


def exercise_category(exercise_type: str) -> str:
    """Map a workout name to 'cardio', 'strength', 'flexibility', 'sports' or 'other'."""
    return EXERCISE_CATEGORIES.get(exercise_type, "other")


# ---------------------------------------------------------------------------
# Vitals
# ---------------------------------------------------------------------------

METRIC_UNITS: dict[str, str] = {
    "heart_rate": "bpm",
    "systolic_bp": "mmHg",
    "diastolic_bp": "mmHg",
    "weight": "lbs",
    "temperature": "°F",
}

METRIC_TYPES = tuple(METRIC_UNITS)

# ---------------------------------------------------------------------------
# Glucose
# ---------------------------------------------------------------------------

GLUCOSE_LOW_MG_DL = 70
GLUCOSE_HIGH_MG_DL = 180
