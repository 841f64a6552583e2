"""Tests for the in-memory notification center and ReminderScheduler."""

from __future__ import annotations

from datetime import datetime, time

import pytest

from diabfit.core.storage.models import Medication, MedicationDose
from diabfit.domains.health.connectors import NotificationCenter
from diabfit.domains.health.connectors.notifications import (
    InMemoryNotificationCenter,
    NotificationPermissionError,
    ReminderScheduler,
)
from diabfit.domains.health.domain_logic.reminders import REMINDER_CATEGORY

NOW = datetime(2026, 3, 10, 12, 0)


def _medication(med_id: str = "med-1", **overrides) -> Medication:
    defaults = dict(
        id=med_id, user_id="u", name="Metformin", dosage="500 mg",
        frequency="Twice Daily", medication_type="Metformin",
        start_date=datetime(2026, 3, 1), reminder_times=[time(8, 0), time(20, 0)],
    )
    defaults.update(overrides)
    return Medication(**defaults)


@pytest.fixture
def center():
    return InMemoryNotificationCenter()


@pytest.fixture
def scheduler(center):
    return ReminderScheduler(center, window_days=2)


def test_center_satisfies_protocol(center):
    assert isinstance(center, NotificationCenter)


class TestAuthorization:
    def test_grants_and_registers_category(self):
        center = InMemoryNotificationCenter(authorized=False)
        scheduler = ReminderScheduler(center)
        scheduler.schedule_reminders(_medication(), NOW)
        assert center.is_authorized()
        assert "DOSE_TAKEN" in center.categories[REMINDER_CATEGORY]

    def test_denied_raises(self):
        center = InMemoryNotificationCenter(authorized=False, grant_on_request=False)
        scheduler = ReminderScheduler(center)
        with pytest.raises(NotificationPermissionError):
            scheduler.schedule_reminders(_medication(), NOW)
        assert center.pending_requests() == []


class TestScheduling:
    def test_reschedule_replaces_previous(self, scheduler):
        scheduler.schedule_reminders(_medication(), NOW)
        scheduler.schedule_reminders(_medication(), NOW)
        assert len(scheduler.pending_reminders()) == 5

    def test_dose_ids_carried(self, scheduler):
        dose = MedicationDose(id="dose-7", medication_id="med-1",
                              scheduled_time=datetime(2026, 3, 10, 20, 0, 30))
        requests = scheduler.schedule_reminders(_medication(), NOW, [dose])
        assert requests[0].dose_id == "dose-7"

    def test_cancel_for_medication_leaves_others(self, scheduler):
        scheduler.schedule_reminders(_medication("med-1"), NOW)
        scheduler.schedule_reminders(_medication("med-2", name="Lisinopril"), NOW)
        assert scheduler.cancel_for_medication("med-1") == 5
        assert {r.medication_id for r in scheduler.pending_reminders()} == {"med-2"}

    def test_cancel_for_dose_matches_user_info(self, scheduler):
        dose = MedicationDose(id="dose-7", medication_id="med-1",
                              scheduled_time=datetime(2026, 3, 10, 20, 0))
        scheduler.schedule_reminders(_medication(), NOW, [dose])
        assert scheduler.cancel_for_dose("dose-7") == 1
        assert len(scheduler.pending_reminders()) == 4

    def test_snooze_replaces_dose_reminder(self, scheduler):
        dose = MedicationDose(id="dose-7", medication_id="med-1",
                              scheduled_time=datetime(2026, 3, 10, 20, 0))
        scheduler.schedule_reminders(_medication(), NOW, [dose])
        request = scheduler.schedule_snooze(dose, _medication(), NOW, minutes=10)
        assert scheduler.pending_snoozes() == [request]
        assert len(scheduler.pending_reminders()) == 4

    def test_cancel_all(self, scheduler):
        scheduler.schedule_reminders(_medication(), NOW)
        assert scheduler.cancel_all() == 5
        assert scheduler.pending_reminders() == []


class TestResolveAction:
    @pytest.mark.parametrize(
        ("identifier", "expected"),
        [("DOSE_TAKEN", "taken"), ("DOSE_SKIP", "skipped"), ("DOSE_SNOOZE", "snooze")],
    )
    def test_known_actions(self, identifier, expected):
        action = ReminderScheduler.resolve_action(
            identifier, {"doseId": "d1", "medicationId": "m1"}
        )
        assert action.action == expected
        assert action.dose_id == "d1"

    def test_dismiss_ignored(self):
        assert ReminderScheduler.resolve_action(
            "com.apple.UNNotificationDismissActionIdentifier",
            {"doseId": "d1", "medicationId": "m1"},
        ) is None

    def test_missing_ids_ignored(self):
        assert ReminderScheduler.resolve_action("DOSE_TAKEN", {"doseId": "d1"}) is None
