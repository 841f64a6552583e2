"""Tests for MedicationTracker: dose generation, reminders, adherence."""

from __future__ import annotations

from datetime import datetime, time, timedelta

import pytest

from diabfit.core.storage.models import Medication
from diabfit.domains.health.connectors.notifications import (
    InMemoryNotificationCenter,
    ReminderScheduler,
)
from diabfit.domains.health.domain_logic.medication_tracker import (
    MedicationServiceError,
    MedicationTracker,
    parse_reminder_times,
)

# Wednesday
NOW = datetime(2026, 3, 11, 10, 0)


def _medication(**overrides) -> Medication:
    defaults = dict(
        id="",
        user_id="",
        name="Metformin",
        dosage="500 mg",
        frequency="Twice Daily",
        medication_type="Metformin",
        start_date=datetime(2026, 3, 9),
        end_date=datetime(2026, 3, 15),
        reminder_times=[time(8, 0), time(20, 0)],
    )
    defaults.update(overrides)
    return Medication(**defaults)


@pytest.fixture
def tracker(medication_tracker):
    return medication_tracker


class TestParseReminderTimes:
    def test_sorted_and_deduplicated(self):
        assert parse_reminder_times(["20:00", "08:00", "08:00"]) == [time(8), time(20)]

    def test_bad_value(self):
        with pytest.raises(MedicationServiceError) as exc_info:
            parse_reminder_times(["8am"])
        assert exc_info.value.kind == "invalid_medication_data"


class TestAddMedication:
    def test_generates_doses_and_reminders(self, tracker, health_repository):
        med = tracker.add_medication(_medication(), now=NOW)
        assert med.id
        assert med.user_id == tracker.user_id
        doses = health_repository.get_doses(medication_id=med.id)
        assert len(doses) == 14  # 7 days x 2 times
        # Reminders only from now on: tonight plus four full days
        reminders = tracker.pending_reminders()
        assert len(reminders) == 9
        dose_ids = {d.id for d in doses}
        assert all(r.dose_id in dose_ids for r in reminders)

    def test_reminders_disabled(self, tracker):
        tracker.add_medication(_medication(reminder_enabled=False), now=NOW)
        assert tracker.pending_reminders() == []

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "  "},
            {"frequency": "Hourly"},
            {"medication_type": "Candy"},
            {"color": "Plaid"},
            {"end_date": datetime(2026, 3, 1)},
        ],
    )
    def test_invalid_medication_rejected(self, tracker, overrides):
        with pytest.raises(MedicationServiceError) as exc_info:
            tracker.add_medication(_medication(**overrides), now=NOW)
        assert exc_info.value.kind == "invalid_medication_data"

    def test_permission_denied(self, health_repository, user):
        center = InMemoryNotificationCenter(authorized=False, grant_on_request=False)
        tracker = MedicationTracker(health_repository, ReminderScheduler(center), user.id)
        with pytest.raises(MedicationServiceError) as exc_info:
            tracker.add_medication(_medication(), now=NOW)
        assert exc_info.value.kind == "notification_permission_denied"


class TestUpdateAndDelete:
    def test_update_reschedules_reminders(self, tracker):
        med = tracker.add_medication(_medication(), now=NOW)
        med.reminder_times = [time(9, 0)]
        tracker.update_medication(med, now=NOW)
        reminders = tracker.pending_reminders()
        assert reminders
        assert {r.fire_at.time() for r in reminders} == {time(9, 0)}

    def test_deactivate_cancels_reminders(self, tracker):
        med = tracker.add_medication(_medication(), now=NOW)
        med.is_active = False
        tracker.update_medication(med, now=NOW)
        assert tracker.pending_reminders() == []

    def test_update_unknown_medication(self, tracker):
        with pytest.raises(MedicationServiceError) as exc_info:
            tracker.update_medication(_medication(id="missing"), now=NOW)
        assert exc_info.value.kind == "update_failed"

    def test_delete_removes_doses_and_reminders(self, tracker, health_repository):
        med = tracker.add_medication(_medication(), now=NOW)
        assert tracker.delete_medication(med.id) is True
        assert health_repository.get_doses(medication_id=med.id) == []
        assert tracker.pending_reminders() == []
        assert tracker.get_medication(med.id) is None

    def test_cancel_all_reminders(self, tracker):
        tracker.add_medication(_medication(), now=NOW)
        tracker.add_medication(
            _medication(name="Lisinopril", medication_type="Blood Pressure"), now=NOW
        )
        assert tracker.cancel_all_reminders() == 18
        assert tracker.pending_reminders() == []


class TestDoses:
    def test_todays_and_upcoming(self, tracker):
        tracker.add_medication(_medication(), now=NOW)
        today = tracker.todays_doses(now=NOW)
        assert [d.scheduled_time for d in today] == [
            datetime(2026, 3, 11, 8, 0),
            datetime(2026, 3, 11, 20, 0),
        ]
        assert len(tracker.upcoming_doses(now=NOW, days=2)) == 4

    def test_inactive_medication_hidden_from_today(self, tracker):
        med = tracker.add_medication(_medication(), now=NOW)
        med.is_active = False
        tracker.update_medication(med, now=NOW)
        assert tracker.todays_doses(now=NOW) == []

    def test_mark_taken_cancels_reminder(self, tracker):
        tracker.add_medication(_medication(), now=NOW)
        evening = tracker.todays_doses(now=NOW)[1]
        dose = tracker.mark_dose_taken(
            evening.id, taken_at=NOW, notes="with dinner", side_effects=["nausea"]
        )
        assert dose.status == "Taken"
        assert dose.side_effects_experienced == ["nausea"]
        assert all(r.dose_id != evening.id for r in tracker.pending_reminders())

    def test_mark_skipped(self, tracker, health_repository):
        tracker.add_medication(_medication(), now=NOW)
        morning = tracker.todays_doses(now=NOW)[0]
        tracker.mark_dose_skipped(morning.id, reason="forgot")
        stored = health_repository.get_dose(morning.id)
        assert stored.status == "Skipped"
        assert stored.skipped_reason == "forgot"
        assert stored.actual_time is None

    def test_unknown_dose(self, tracker):
        with pytest.raises(MedicationServiceError):
            tracker.mark_dose_taken("missing")

    def test_snooze_uses_default_minutes(self, tracker):
        tracker.add_medication(_medication(), now=NOW)
        evening = tracker.todays_doses(now=NOW)[1]
        request = tracker.snooze_dose(evening.id, now=NOW)
        assert request.fire_at == datetime(2026, 3, 11, 10, 15)

    def test_notification_actions(self, tracker, health_repository):
        med = tracker.add_medication(_medication(), now=NOW)
        morning, evening = tracker.todays_doses(now=NOW)

        result = tracker.handle_notification_action(
            "DOSE_TAKEN", {"doseId": morning.id, "medicationId": med.id}, now=NOW
        )
        assert result == {"handled": True, "action": "taken", "dose_id": morning.id}
        assert health_repository.get_dose(morning.id).actual_time == NOW

        tracker.handle_notification_action(
            "DOSE_SKIP", {"doseId": evening.id, "medicationId": med.id}, now=NOW
        )
        assert health_repository.get_dose(evening.id).status == "Skipped"

        ignored = tracker.handle_notification_action(
            "DISMISS", {"doseId": evening.id, "medicationId": med.id}, now=NOW
        )
        assert ignored == {"handled": False}


class TestReports:
    def test_adherence_report_and_calendar(self, tracker):
        med = tracker.add_medication(_medication(), now=NOW)
        doses = tracker.upcoming_doses(now=datetime(2026, 3, 8), days=3)  # Mar 9-11
        for dose in doses[:3]:
            tracker.mark_dose_taken(dose.id, taken_at=dose.scheduled_time)
        tracker.mark_dose_skipped(doses[3].id)

        report = tracker.adherence_report(med.id, "Week", now=NOW)
        assert report.total_doses == 14
        assert report.taken_doses == 3
        assert report.skipped_doses == 1
        assert report.streak == 0
        assert report.longest_streak == 3

        days = tracker.calendar(2026, 3, now=NOW)
        assert len(days) == 31
        march_9 = days[8]
        assert march_9.completed_doses == 2
        assert march_9.adherence_score == 1.0

    def test_overall_adherence(self, tracker):
        tracker.add_medication(_medication(), now=NOW)
        morning = tracker.todays_doses(now=NOW)[0]
        tracker.mark_dose_taken(morning.id, taken_at=NOW)
        assert tracker.overall_adherence("Week", now=NOW) == pytest.approx(100 / 14)


class TestRestoreReminders:
    def test_restores_into_fresh_center(self, tracker, health_repository, user):
        tracker.add_medication(_medication(), now=NOW)
        tracker.add_medication(_medication(name="Vitamin D", medication_type="Vitamin",
                                           reminder_enabled=False), now=NOW)

        fresh = MedicationTracker(
            health_repository,
            ReminderScheduler(InMemoryNotificationCenter(), window_days=30),
            user.id,
        )
        assert fresh.pending_reminders() == []
        assert fresh.restore_reminders(now=NOW) == 1
        assert len(fresh.pending_reminders()) == 9


class TestOpenEndedDoses:
    def test_reminders_past_first_year_match_stored_doses(self, tracker, health_repository):
        med = tracker.add_medication(
            _medication(start_date=NOW - timedelta(days=400), end_date=None), now=NOW
        )
        dose_ids = {d.id for d in health_repository.get_doses(medication_id=med.id)}
        reminders = tracker.pending_reminders()
        assert reminders
        assert all(r.dose_id in dose_ids for r in reminders)

    def test_restore_tops_up_doses(self, tracker, health_repository, user):
        med = tracker.add_medication(_medication(end_date=None), now=NOW)
        later = NOW + timedelta(days=400)

        fresh = MedicationTracker(
            health_repository,
            ReminderScheduler(InMemoryNotificationCenter(), window_days=30),
            user.id,
        )
        assert fresh.restore_reminders(now=later) == 1
        doses = health_repository.get_doses(medication_id=med.id, since=later)
        reminders = fresh.pending_reminders()
        assert reminders
        assert {r.dose_id for r in reminders} <= {d.id for d in doses}

    def test_update_leaves_past_doses_alone(self, tracker, health_repository):
        med = tracker.add_medication(_medication(), now=NOW)
        med.reminder_times = [time(9, 0)]
        tracker.update_medication(med, now=NOW)
        past = health_repository.get_doses(medication_id=med.id, until=NOW)
        assert {d.scheduled_time.time() for d in past} == {time(8, 0), time(20, 0)}
