"""Tests for the Apple Health export parser and importer."""

from __future__ import annotations

from datetime import datetime

import pytest

from diabfit.domains.health.connectors.apple_health import (
    AppleHealthParseError,
    glucose_to_mg_dl,
    import_apple_health_export,
    parse_apple_health_export,
    workout_type,
)

_SAMPLE_XML = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE HealthData [
]>
<HealthData locale="en_US">
 <Record type="HKQuantityTypeIdentifierBloodGlucose"
         sourceName="Dexcom"
         unit="mg/dL"
         value="110"
         startDate="2026-02-01 07:00:00 -0500"
         endDate="2026-02-01 07:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBloodGlucose"
         sourceName="Contour"
         unit="mmol&lt;180.1558800000541&gt;/L"
         value="6.1"
         startDate="2026-02-02 07:00:00 -0500"
         endDate="2026-02-02 07:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierHeartRate"
         sourceName="Apple Watch"
         unit="count/min"
         value="68"
         startDate="2026-02-01 08:00:00 -0500"
         endDate="2026-02-01 08:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierHeartRate"
         sourceName="Apple Watch"
         unit="count/min"
         value="not-a-number"
         startDate="2026-02-01 09:00:00 -0500"
         endDate="2026-02-01 09:00:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBloodPressureSystolic"
         sourceName="Blood Pressure Monitor"
         unit="mmHg"
         value="120"
         startDate="2026-02-01 08:05:00 -0500"
         endDate="2026-02-01 08:05:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBloodPressureDiastolic"
         sourceName="Blood Pressure Monitor"
         unit="mmHg"
         value="80"
         startDate="2026-02-01 08:05:00 -0500"
         endDate="2026-02-01 08:05:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBodyMass"
         sourceName="Scale"
         unit="kg"
         value="80"
         startDate="2026-02-01 06:30:00 -0500"
         endDate="2026-02-01 06:30:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierBodyTemperature"
         sourceName="Thermometer"
         unit="degC"
         value="37"
         startDate="2026-02-01 06:45:00 -0500"
         endDate="2026-02-01 06:45:00 -0500"/>
 <Record type="HKQuantityTypeIdentifierStepCount"
         sourceName="iPhone"
         unit="count"
         value="8000"
         startDate="2026-02-01 00:00:00 -0500"
         endDate="2026-02-01 23:59:59 -0500"/>
 <Workout workoutActivityType="HKWorkoutActivityTypeRunning"
          duration="30"
          durationUnit="min"
          totalEnergyBurned="250"
          totalEnergyBurnedUnit="Cal"
          startDate="2026-02-01 18:00:00 -0500"
          endDate="2026-02-01 18:30:00 -0500"/>
 <Workout workoutActivityType="HKWorkoutActivityTypeTraditionalStrengthTraining"
          duration="1800"
          durationUnit="s"
          startDate="2026-02-01 19:00:00 -0500"
          endDate="2026-02-01 19:30:00 -0500"/>
 <Workout workoutActivityType="HKWorkoutActivityTypeRowing"
          duration="0.75"
          durationUnit="hr"
          startDate="2026-02-03 07:00:00 -0500"
          endDate="2026-02-03 07:45:00 -0500"/>
</HealthData>
"""


@pytest.fixture
def export_file(tmp_path):
    path = tmp_path / "export.xml"
    path.write_text(_SAMPLE_XML, encoding="utf-8")
    return path


class TestConversions:
    def test_mmol_to_mg_dl(self):
        assert glucose_to_mg_dl(6.1, "mmol<180.1558800000541>/L") == 110
        assert glucose_to_mg_dl(104.6, "mg/dL") == 105

    def test_workout_type_mapping(self):
        assert workout_type("HKWorkoutActivityTypeSocialDance") == "Dancing"
        assert workout_type("HKWorkoutActivityTypeFunctionalStrengthTraining") == "Strength Training"
        assert workout_type("HKWorkoutActivityTypeCurling") == "Other"


class TestParseExport:
    def test_parses_all_record_kinds(self, export_file):
        parsed = parse_apple_health_export(export_file)
        assert [g["level"] for g in parsed["glucose"]] == [110, 110]
        assert parsed["glucose"][0]["timestamp"] == datetime(2026, 2, 1, 7, 0)

        metrics = {m["metric_type"]: m for m in parsed["metrics"]}
        assert set(metrics) == {"heart_rate", "systolic_bp", "diastolic_bp", "weight", "temperature"}
        assert metrics["weight"]["value"] == 176.4
        assert metrics["weight"]["unit"] == "lbs"
        assert metrics["temperature"]["value"] == 98.6

        workouts = parsed["workouts"]
        assert [(w["exercise_type"], w["duration_minutes"]) for w in workouts] == [
            ("Running", 30),
            ("Strength Training", 30),
            ("Other", 45),
        ]
        assert workouts[0]["calories_burned"] == 250.0
        assert workouts[1]["calories_burned"] is None

    def test_since_filters_older_records(self, export_file):
        parsed = parse_apple_health_export(export_file, since=datetime(2026, 2, 2))
        assert len(parsed["glucose"]) == 1
        assert parsed["metrics"] == []
        assert len(parsed["workouts"]) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(AppleHealthParseError, match="not found"):
            parse_apple_health_export(tmp_path / "nope.xml")

    def test_invalid_xml(self, tmp_path):
        path = tmp_path / "broken.xml"
        path.write_text("<HealthData><Record", encoding="utf-8")
        with pytest.raises(AppleHealthParseError, match="Invalid XML"):
            parse_apple_health_export(path)


class TestImport:
    def test_import_stores_records(self, export_file, health_repository, user):
        summary = import_apple_health_export(export_file, health_repository, user.id)
        assert summary.to_dict() == {
            "glucose_readings": 2,
            "health_metrics": 5,
            "exercises": 3,
            "duplicates_skipped": 0,
            "total_imported": 10,
        }

        readings = health_repository.get_glucose_readings(user.id)
        assert {r.source for r in readings} == {"apple_health"}
        exercises = health_repository.get_exercises(user.id)
        assert {e.intensity for e in exercises} == {"Moderate"}

    def test_reimport_skips_duplicates(self, export_file, health_repository, user):
        import_apple_health_export(export_file, health_repository, user.id)
        summary = import_apple_health_export(export_file, health_repository, user.id)
        assert summary.total_imported == 0
        assert summary.duplicates_skipped == 10
