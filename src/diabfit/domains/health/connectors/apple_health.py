"""Apple Health XML export import.

Parses the ``export.xml`` file produced by Apple Health (iOS -> Share ->
Export Health Data) with iterparse, and stores glucose readings, vitals
and workouts in the encrypted repository. Records already present at the
same timestamp are skipped, so re-importing an export is harmless.

HealthKit type mappings:
- HKQuantityTypeIdentifierBloodGlucose -> glucose reading (mg/dL)
- HKQuantityTypeIdentifierHeartRate -> heart_rate
- HKQuantityTypeIdentifierBloodPressureSystolic/Diastolic -> systolic_bp / diastolic_bp
- HKQuantityTypeIdentifierBodyMass -> weight (lbs)
- HKQuantityTypeIdentifierBodyTemperature -> temperature (°F)
- HKWorkoutActivityType* -> exercise
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from diabfit.core.storage.models import Exercise, GlucoseReading, HealthMetric
from diabfit.core.storage.repository import HealthRepository
from diabfit.domains.health.domain_logic.health_models import METRIC_UNITS

logger = logging.getLogger(__name__)

SOURCE = "apple_health"

_GLUCOSE = "HKQuantityTypeIdentifierBloodGlucose"

_METRIC_TYPES = {
    "HKQuantityTypeIdentifierHeartRate": "heart_rate",
    "HKQuantityTypeIdentifierBloodPressureSystolic": "systolic_bp",
    "HKQuantityTypeIdentifierBloodPressureDiastolic": "diastolic_bp",
    "HKQuantityTypeIdentifierBodyMass": "weight",
    "HKQuantityTypeIdentifierBodyTemperature": "temperature",
}

_WORKOUT_TYPES = {
    "Walking": "Walking",
    "Running": "Running",
    "Hiking": "Hiking",
    "Cycling": "Cycling",
    "Swimming": "Swimming",
    "Dance": "Dancing",
    "SocialDance": "Dancing",
    "TraditionalStrengthTraining": "Strength Training",
    "FunctionalStrengthTraining": "Strength Training",
    "Yoga": "Yoga",
    "Tennis": "Tennis",
    "Basketball": "Basketball",
    "Soccer": "Soccer",
}

MG_DL_PER_MMOL_L = 18.0182


class AppleHealthParseError(Exception):
    """Raised when parsing Apple Health export XML fails."""


def _parse_date(date_str: str) -> datetime:
    """Parse Apple Health date format: '2025-12-01 08:30:00 -0500'.

    The wall-clock time of the export is kept; the offset is dropped.
    """
    try:
        dt = datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        dt = datetime.fromisoformat(date_str)
    return dt.replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Unit conversion
# ---------------------------------------------------------------------------

def glucose_to_mg_dl(value: float, unit: str) -> int:
    """Convert a glucose value to whole mg/dL; HealthKit writes mmol as 'mmol<180.15...>/L'."""
    if unit.lower().startswith("mmol"):
        value *= MG_DL_PER_MMOL_L
    return round(value)


def _metric_value(metric_type: str, value: float, unit: str) -> float:
    if metric_type == "weight" and unit == "kg":
        return round(value * 2.20462, 1)
    if metric_type == "temperature" and unit == "degC":
        return round(value * 9 / 5 + 32, 1)
    if metric_type == "heart_rate":
        return round(value, 1)
    return value


def workout_type(activity_type: str) -> str:
    """Map an HKWorkoutActivityType name to an exercise type."""
    return _WORKOUT_TYPES.get(activity_type.replace("HKWorkoutActivityType", ""), "Other")


def _workout_minutes(elem: ET.Element) -> int:
    duration = float(elem.get("duration", "0") or "0")
    unit = elem.get("durationUnit", "min")
    if unit == "s":
        duration /= 60
    elif unit == "hr":
        duration *= 60
    return round(duration)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_apple_health_export(
    export_path: str | Path,
    *,
    since: datetime | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Parse an Apple Health export.xml into glucose, metric and workout records.

    Args:
        export_path: Path to the Apple Health export.xml file.
        since: Ignore records that start before this time.

    Returns:
        ``{"glucose": [...], "metrics": [...], "workouts": [...]}`` with
        values already converted to the units the store uses.

    Raises:
        AppleHealthParseError: If the file is missing or is not valid XML.
    """
    path = Path(export_path)
    if not path.exists():
        raise AppleHealthParseError(f"Export file not found: {path}")

    glucose: list[dict[str, Any]] = []
    metrics: list[dict[str, Any]] = []
    workouts: list[dict[str, Any]] = []
    skipped = 0

    try:
        for _event, elem in ET.iterparse(str(path), events=("end",)):
            tag = elem.tag

            if tag == "Record":
                rec_type = elem.get("type", "")
                if rec_type == _GLUCOSE or rec_type in _METRIC_TYPES:
                    try:
                        dt = _parse_date(elem.get("startDate", ""))
                        value = float(elem.get("value", ""))
                    except (ValueError, TypeError):
                        skipped += 1
                        elem.clear()
                        continue
                    if since is None or dt >= since:
                        unit = elem.get("unit", "")
                        if rec_type == _GLUCOSE:
                            glucose.append({"level": glucose_to_mg_dl(value, unit), "timestamp": dt})
                        else:
                            metric_type = _METRIC_TYPES[rec_type]
                            metrics.append({
                                "metric_type": metric_type,
                                "value": _metric_value(metric_type, value, unit),
                                "unit": METRIC_UNITS[metric_type],
                                "timestamp": dt,
                            })
                elem.clear()

            elif tag == "Workout":
                try:
                    dt = _parse_date(elem.get("startDate", ""))
                    minutes = _workout_minutes(elem)
                    calories = elem.get("totalEnergyBurned")
                    calories_burned = float(calories) if calories else None
                except (ValueError, TypeError):
                    skipped += 1
                    elem.clear()
                    continue
                if since is None or dt >= since:
                    workouts.append({
                        "exercise_type": workout_type(elem.get("workoutActivityType", "")),
                        "duration_minutes": minutes,
                        "calories_burned": calories_burned,
                        "timestamp": dt,
                    })
                elem.clear()

    except ET.ParseError as exc:
        raise AppleHealthParseError(f"Invalid XML: {exc}") from exc

    if skipped:
        logger.warning("Skipped %d malformed Apple Health records", skipped)
    logger.info(
        "Parsed Apple Health export: %d glucose, %d metrics, %d workouts",
        len(glucose), len(metrics), len(workouts),
    )
    return {"glucose": glucose, "metrics": metrics, "workouts": workouts}


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

@dataclass
class ImportSummary:
    glucose_readings: int = 0
    health_metrics: int = 0
    exercises: int = 0
    duplicates_skipped: int = 0

    @property
    def total_imported(self) -> int:
        return self.glucose_readings + self.health_metrics + self.exercises

    def to_dict(self) -> dict[str, int]:
        return {
            "glucose_readings": self.glucose_readings,
            "health_metrics": self.health_metrics,
            "exercises": self.exercises,
            "duplicates_skipped": self.duplicates_skipped,
            "total_imported": self.total_imported,
        }


def import_apple_health_export(
    export_path: str | Path,
    repository: HealthRepository,
    user_id: str,
    *,
    since: datetime | None = None,
) -> ImportSummary:
    """Parse an export and store every record not already present.

    Raises:
        AppleHealthParseError: If the export cannot be parsed.
    """
    parsed = parse_apple_health_export(export_path, since=since)
    summary = ImportSummary()

    for rec in parsed["glucose"]:
        if repository.glucose_reading_exists(user_id, rec["timestamp"]):
            summary.duplicates_skipped += 1
            continue
        repository.save_glucose_reading(GlucoseReading(
            id="", user_id=user_id, level=rec["level"], timestamp=rec["timestamp"], source=SOURCE,
        ))
        summary.glucose_readings += 1

    for rec in parsed["metrics"]:
        if repository.health_metric_exists(user_id, rec["metric_type"], rec["timestamp"]):
            summary.duplicates_skipped += 1
            continue
        repository.save_health_metric(HealthMetric(
            id="",
            user_id=user_id,
            metric_type=rec["metric_type"],
            value=rec["value"],
            unit=rec["unit"],
            timestamp=rec["timestamp"],
            source=SOURCE,
        ))
        summary.health_metrics += 1

    for rec in parsed["workouts"]:
        if repository.exercise_exists(user_id, rec["timestamp"]):
            summary.duplicates_skipped += 1
            continue
        repository.save_exercise(Exercise(
            id="",
            user_id=user_id,
            exercise_type=rec["exercise_type"],
            duration_minutes=rec["duration_minutes"],
            intensity="Moderate",
            timestamp=rec["timestamp"],
            calories_burned=rec["calories_burned"],
            source=SOURCE,
        ))
        summary.exercises += 1

    logger.info("Imported Apple Health export: %s", summary.to_dict())
    return summary
