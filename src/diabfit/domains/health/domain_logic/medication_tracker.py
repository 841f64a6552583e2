"""Medication tracking service: persistence, dose generation and reminders.

Ties the repository, adherence math and the reminder scheduler together
for the medication tools.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Any

from diabfit.core.storage.database import DatabaseError
from diabfit.core.storage.models import Medication, MedicationDose
from diabfit.core.storage.repository import HealthRepository, RepositoryError
from diabfit.domains.health.connectors.notifications import (
    NotificationPermissionError,
    ReminderScheduler,
)
from diabfit.domains.health.domain_logic.adherence import (
    AdherenceReport,
    CalendarDay,
    build_adherence_report,
    calendar_days_for_month,
    overall_adherence,
)
from diabfit.domains.health.domain_logic.health_models import (
    DOSE_SKIPPED,
    DOSE_TAKEN,
    MEDICATION_COLORS,
    MEDICATION_FREQUENCIES,
    MEDICATION_SHAPES,
    MEDICATION_TYPES,
)
from diabfit.domains.health.domain_logic.reminders import (
    ReminderRequest,
    doses_for_day,
    minute_key,
)

logger = logging.getLogger(__name__)

# Horizon for open-ended medications; also the reminder window ceiling.
OPEN_ENDED_DOSE_DAYS = 365

_ERROR_MESSAGES = {
    "save_failed": "Failed to save medication",
    "load_failed": "Failed to load medications",
    "update_failed": "Failed to update medication",
    "delete_failed": "Failed to delete medication",
    "notification_permission_denied": (
        "Notification permission is required for medication reminders"
    ),
    "invalid_medication_data": "Invalid medication data",
}


class MedicationServiceError(Exception):
    """A medication operation failed.

    Attributes:
        kind: One of ``save_failed``, ``load_failed``, ``update_failed``,
            ``delete_failed``, ``notification_permission_denied``,
            ``invalid_medication_data``.
        detail: Underlying reason, if any.
    """

    def __init__(self, kind: str, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        base = _ERROR_MESSAGES.get(kind, "Medication error")
        super().__init__(f"{base}: {detail}" if detail else base)


def parse_reminder_times(values: list[str]) -> list[time]:
    """Parse ``HH:MM`` strings, de-duplicated and sorted.

    Raises:
        MedicationServiceError: ``invalid_medication_data`` on a bad value.
    """
    parsed: set[time] = set()
    for value in values:
        try:
            t = time.fromisoformat(value.strip())
        except ValueError as exc:
            raise MedicationServiceError(
                "invalid_medication_data", f"bad reminder time {value!r}"
            ) from exc
        parsed.add(t.replace(second=0, microsecond=0))
    return sorted(parsed)


def validate_medication(medication: Medication) -> None:
    """Check the fields a medication must have before it is stored.

    Raises:
        MedicationServiceError: ``invalid_medication_data``.
    """
    problems: list[str] = []
    if not medication.name.strip():
        problems.append("name is required")
    if not medication.dosage.strip():
        problems.append("dosage is required")
    if medication.frequency not in MEDICATION_FREQUENCIES:
        problems.append(f"unknown frequency {medication.frequency!r}")
    if medication.medication_type not in MEDICATION_TYPES:
        problems.append(f"unknown medication type {medication.medication_type!r}")
    if medication.color not in MEDICATION_COLORS:
        problems.append(f"unknown color {medication.color!r}")
    if medication.shape not in MEDICATION_SHAPES:
        problems.append(f"unknown shape {medication.shape!r}")
    if medication.end_date is not None and medication.end_date < medication.start_date:
        problems.append("end date is before start date")
    if problems:
        raise MedicationServiceError("invalid_medication_data", "; ".join(problems))


class MedicationTracker:
    """Medication CRUD plus dose tracking for a single user.

    Usage::

        tracker = MedicationTracker(repository, scheduler, user_id)
        med = tracker.add_medication(medication, now=datetime.now())
        tracker.mark_dose_taken(dose_id)
        report = tracker.adherence_report(med.id, "Week")
    """

    def __init__(
        self,
        repository: HealthRepository,
        scheduler: ReminderScheduler,
        user_id: str,
        *,
        snooze_minutes: int = 15,
    ) -> None:
        self._repo = repository
        self._scheduler = scheduler
        self._user_id = user_id
        self._snooze_minutes = snooze_minutes

    @property
    def user_id(self) -> str:
        return self._user_id

    # ------------------------------------------------------------------
    # Medications
    # ------------------------------------------------------------------

    def add_medication(self, medication: Medication, *, now: datetime | None = None) -> Medication:
        """Validate, store, generate doses and schedule reminders."""
        now = now or datetime.now()
        medication.user_id = self._user_id
        validate_medication(medication)
        try:
            self._repo.save_medication(medication)
            doses = self.generate_doses(medication, now=now)
        except (RepositoryError, DatabaseError) as exc:
            raise MedicationServiceError("save_failed", str(exc)) from exc

        if medication.reminder_enabled and medication.is_active:
            self._schedule(medication, now, doses)
        logger.info("Added medication %s with %d doses", medication.id, len(doses))
        return medication

    def update_medication(self, medication: Medication, *, now: datetime | None = None) -> Medication:
        """Store changes, regenerate future doses, and reschedule reminders."""
        now = now or datetime.now()
        if self._repo.get_medication(medication.id) is None:
            raise MedicationServiceError("update_failed", f"unknown medication {medication.id}")
        medication.user_id = self._user_id
        validate_medication(medication)
        try:
            self._repo.save_medication(medication)
            self._repo.delete_pending_doses(medication.id, after=now)
            self.generate_doses(medication, now=now, since=now)
        except (RepositoryError, DatabaseError) as exc:
            raise MedicationServiceError("update_failed", str(exc)) from exc

        self._scheduler.cancel_for_medication(medication.id)
        if medication.reminder_enabled and medication.is_active:
            doses = self._repo.get_doses(medication_id=medication.id, since=now)
            self._schedule(medication, now, doses)
        return medication

    def delete_medication(self, medication_id: str) -> bool:
        """Remove a medication with its doses and cancel its reminders."""
        try:
            deleted = self._repo.delete_medication(medication_id)
        except DatabaseError as exc:
            raise MedicationServiceError("delete_failed", str(exc)) from exc
        self._scheduler.cancel_for_medication(medication_id)
        return deleted

    def get_medication(self, medication_id: str) -> Medication | None:
        medication = self._repo.get_medication(medication_id)
        if medication is None or medication.user_id != self._user_id:
            return None
        return medication

    def list_medications(self, *, active_only: bool = False) -> list[Medication]:
        try:
            return self._repo.get_medications(self._user_id, active_only=active_only)
        except DatabaseError as exc:
            raise MedicationServiceError("load_failed", str(exc)) from exc

    def generate_doses(
        self,
        medication: Medication,
        *,
        now: datetime | None = None,
        since: datetime | None = None,
    ) -> list[MedicationDose]:
        """Create pending doses from the start date to the end date.

        Open-ended medications get doses through one year past the later of
        the start date and ``now``, which covers any reminder window. Times
        that already have a dose (matched to the minute) are skipped.

        Args:
            medication: The stored medication.
            now: Reference time for the open-ended horizon.
            since: Only create doses at or after this time, so history is
                left as it is.
        """
        now = now or datetime.now()
        end = medication.end_date or (
            max(medication.start_date, now) + timedelta(days=OPEN_ENDED_DOSE_DAYS)
        )
        existing = {
            minute_key(d.scheduled_time)
            for d in self._repo.get_doses(medication_id=medication.id)
        }
        doses: list[MedicationDose] = []
        day = max(medication.start_date, since or medication.start_date).date()
        while day <= end.date():
            doses.extend(doses_for_day(medication, day, existing))
            day += timedelta(days=1)
        if since is not None:
            doses = [d for d in doses if d.scheduled_time >= since]
        self._repo.save_doses(doses)
        return doses

    # ------------------------------------------------------------------
    # Doses
    # ------------------------------------------------------------------

    def mark_dose_taken(
        self,
        dose_id: str,
        *,
        taken_at: datetime | None = None,
        notes: str | None = None,
        side_effects: list[str] | None = None,
    ) -> MedicationDose:
        dose = self._require_dose(dose_id)
        dose.status = DOSE_TAKEN
        dose.actual_time = taken_at or datetime.now()
        dose.skipped_reason = None
        if notes:
            dose.notes = notes
        if side_effects:
            dose.side_effects_experienced = list(side_effects)
        self._save_dose(dose)
        self._scheduler.cancel_for_dose(dose.id)
        logger.info("Dose %s marked taken", dose.id)
        return dose

    def mark_dose_skipped(self, dose_id: str, *, reason: str | None = None) -> MedicationDose:
        dose = self._require_dose(dose_id)
        dose.status = DOSE_SKIPPED
        dose.actual_time = None
        dose.skipped_reason = reason
        self._save_dose(dose)
        self._scheduler.cancel_for_dose(dose.id)
        logger.info("Dose %s marked skipped", dose.id)
        return dose

    def snooze_dose(
        self, dose_id: str, *, minutes: int | None = None, now: datetime | None = None
    ) -> ReminderRequest:
        dose = self._require_dose(dose_id)
        medication = self._repo.get_medication(dose.medication_id)
        if medication is None:
            raise MedicationServiceError("load_failed", f"unknown medication {dose.medication_id}")
        try:
            return self._scheduler.schedule_snooze(
                dose,
                medication,
                now or datetime.now(),
                minutes=self._snooze_minutes if minutes is None else minutes,
            )
        except NotificationPermissionError as exc:
            raise MedicationServiceError("notification_permission_denied") from exc

    def handle_notification_action(
        self, action_identifier: str, user_info: dict[str, Any], *, now: datetime | None = None
    ) -> dict[str, Any]:
        """Apply a Mark as Taken / Skip / Snooze response from a reminder."""
        action = ReminderScheduler.resolve_action(action_identifier, user_info)
        if action is None:
            return {"handled": False}
        now = now or datetime.now()
        if action.action == "taken":
            self.mark_dose_taken(action.dose_id, taken_at=now)
        elif action.action == "skipped":
            self.mark_dose_skipped(action.dose_id, reason="Skipped from notification")
        else:
            self.snooze_dose(action.dose_id, now=now)
        return {"handled": True, "action": action.action, "dose_id": action.dose_id}

    def todays_doses(self, *, now: datetime | None = None) -> list[MedicationDose]:
        now = now or datetime.now()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1) - timedelta(seconds=1)
        return self._active_doses(start, end)

    def upcoming_doses(self, *, now: datetime | None = None, days: int = 7) -> list[MedicationDose]:
        """Doses on the ``days`` calendar days after today."""
        now = now or datetime.now()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
        end = start + timedelta(days=days) - timedelta(seconds=1)
        return self._active_doses(start, end)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def adherence_report(
        self, medication_id: str, period: str, *, now: datetime | None = None
    ) -> AdherenceReport:
        doses = self._repo.get_doses(medication_id=medication_id)
        return build_adherence_report(medication_id, doses, period, now or datetime.now())

    def overall_adherence(self, period: str, *, now: datetime | None = None) -> float:
        return overall_adherence(
            self._repo.get_doses(user_id=self._user_id), period, now or datetime.now()
        )

    def calendar(self, year: int, month: int, *, now: datetime | None = None) -> list[CalendarDay]:
        start = datetime(year, month, 1)
        end = datetime(year + month // 12, month % 12 + 1, 1) - timedelta(seconds=1)
        doses = self._repo.get_doses(user_id=self._user_id, since=start, until=end)
        return calendar_days_for_month(doses, year, month, now or datetime.now())

    def pending_reminders(self) -> list[ReminderRequest]:
        return self._scheduler.pending_reminders()

    def cancel_all_reminders(self) -> int:
        """Drop every scheduled reminder and snooze, e.g. after erasing all data."""
        return self._scheduler.cancel_all()

    def restore_reminders(self, *, now: datetime | None = None) -> int:
        """Reschedule reminders for every active medication, e.g. after a restart.

        Returns:
            Number of medications scheduled.
        """
        now = now or datetime.now()
        count = 0
        for medication in self._repo.get_medications(self._user_id, active_only=True):
            if not medication.reminder_enabled:
                continue
            self.generate_doses(medication, now=now, since=now)
            doses = self._repo.get_doses(medication_id=medication.id, since=now)
            self._schedule(medication, now, doses)
            count += 1
        return count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _schedule(
        self, medication: Medication, now: datetime, doses: list[MedicationDose]
    ) -> None:
        try:
            self._scheduler.schedule_reminders(medication, now, doses)
        except NotificationPermissionError as exc:
            raise MedicationServiceError("notification_permission_denied") from exc

    def _active_doses(self, start: datetime, end: datetime) -> list[MedicationDose]:
        active = {m.id for m in self._repo.get_medications(self._user_id, active_only=True)}
        doses = self._repo.get_doses(user_id=self._user_id, since=start, until=end)
        seen: set[tuple[str, datetime]] = set()
        result: list[MedicationDose] = []
        for dose in doses:
            key = (dose.medication_id, minute_key(dose.scheduled_time))
            if dose.medication_id not in active or key in seen:
                continue
            seen.add(key)
            result.append(dose)
        return result

    def _require_dose(self, dose_id: str) -> MedicationDose:
        dose = self._repo.get_dose(dose_id)
        if dose is None:
            raise MedicationServiceError("invalid_medication_data", f"unknown dose {dose_id}")
        return dose

    def _save_dose(self, dose: MedicationDose) -> None:
        try:
            self._repo.save_dose(dose)
        except RepositoryError as exc:
            raise MedicationServiceError("update_failed", str(exc)) from exc

