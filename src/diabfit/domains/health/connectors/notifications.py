"""Medication reminder scheduling on top of a notification center.

``InMemoryNotificationCenter`` stands in for the device notification
service: it keeps pending requests keyed by their composite identifiers.
``ReminderScheduler`` owns the reminder policy (cancel-then-reschedule,
snoozes, cancellation by medication or dose, action handling).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from diabfit.core.storage.models import Medication, MedicationDose
from diabfit.domains.health.connectors import NotificationCenter
from diabfit.domains.health.domain_logic.reminders import (
    ACTION_SKIP,
    ACTION_SNOOZE,
    ACTION_TAKEN,
    REMINDER_ACTIONS,
    REMINDER_CATEGORY,
    REMINDER_PREFIX,
    SNOOZE_PREFIX,
    ReminderRequest,
    expand_reminders,
    minute_key,
    snooze_request,
)

logger = logging.getLogger(__name__)


class NotificationPermissionError(Exception):
    """Raised when reminders cannot be scheduled because notifications are denied."""


class InMemoryNotificationCenter:
    """Process-local notification center.

    Usage::

        center = InMemoryNotificationCenter()
        center.add(request)
        center.pending_requests()
    """

    def __init__(self, *, authorized: bool = True, grant_on_request: bool = True) -> None:
        self._authorized = authorized
        self._grant_on_request = grant_on_request
        self._pending: dict[str, ReminderRequest] = {}
        self.categories: dict[str, dict[str, str]] = {}

    def is_authorized(self) -> bool:
        return self._authorized

    def request_authorization(self) -> bool:
        self._authorized = self._authorized or self._grant_on_request
        if self._authorized:
            self.categories[REMINDER_CATEGORY] = dict(REMINDER_ACTIONS)
        return self._authorized

    def add(self, request: ReminderRequest) -> None:
        self._pending[request.identifier] = request

    def pending_requests(self) -> list[ReminderRequest]:
        return sorted(self._pending.values(), key=lambda r: (r.fire_at, r.identifier))

    def remove_pending(self, identifiers: list[str]) -> None:
        for identifier in identifiers:
            self._pending.pop(identifier, None)


@dataclass(frozen=True)
class DoseAction:
    """A user response to a reminder, resolved from its user info."""

    dose_id: str
    medication_id: str
    action: str  # 'taken' | 'skipped' | 'snooze'


_ACTION_TYPES = {
    ACTION_TAKEN: "taken",
    ACTION_SKIP: "skipped",
    ACTION_SNOOZE: "snooze",
}


class ReminderScheduler:
    """Schedules, snoozes and cancels medication reminders.

    Args:
        center: Where requests are stored.
        window_days: How many days ahead reminders are expanded.
    """

    def __init__(self, center: NotificationCenter, *, window_days: int = 30) -> None:
        self._center = center
        self._window_days = window_days

    def ensure_authorized(self) -> None:
        """Request permission if needed.

        Raises:
            NotificationPermissionError: If the user denies notifications.
        """
        if self._center.is_authorized():
            return
        if not self._center.request_authorization():
            raise NotificationPermissionError("Notification permission denied")

    def schedule_reminders(
        self,
        medication: Medication,
        now: datetime,
        doses: list[MedicationDose] | None = None,
    ) -> list[ReminderRequest]:
        """Replace a medication's pending reminders with a freshly expanded set.

        Args:
            medication: Medication to schedule.
            now: Reference time.
            doses: Stored doses whose IDs the requests should carry.

        Returns:
            The requests that were added.

        Raises:
            NotificationPermissionError: If notifications are not allowed.
        """
        self.ensure_authorized()
        self.cancel_for_medication(medication.id)

        dose_ids = {minute_key(d.scheduled_time): d.id for d in doses or []}
        requests = expand_reminders(
            medication, now, window_days=self._window_days, dose_ids=dose_ids
        )
        for request in requests:
            self._center.add(request)
        logger.info(
            "Scheduled %d reminders for medication %s", len(requests), medication.id
        )
        return requests

    def schedule_snooze(
        self,
        dose: MedicationDose,
        medication: Medication,
        now: datetime,
        *,
        minutes: int = 15,
    ) -> ReminderRequest:
        """Cancel the dose's pending reminder and re-remind after ``minutes``."""
        self.ensure_authorized()
        self.cancel_for_dose(dose.id)
        request = snooze_request(dose, medication, now, minutes=minutes)
        self._center.add(request)
        logger.info("Snoozed dose %s for %d minutes", dose.id, minutes)
        return request

    def cancel_for_medication(self, medication_id: str) -> int:
        return self._remove_matching(lambda r: medication_id in r.identifier)

    def cancel_for_dose(self, dose_id: str) -> int:
        # Scheduled reminders embed the medication ID, not the dose ID, so
        # match on the user info as well as the identifier.
        return self._remove_matching(
            lambda r: dose_id in r.identifier or r.dose_id == dose_id
        )

    def cancel_all(self) -> int:
        return self._remove_matching(
            lambda r: r.identifier.startswith((REMINDER_PREFIX, SNOOZE_PREFIX))
        )

    def pending_reminders(self) -> list[ReminderRequest]:
        """Scheduled (non-snooze) medication reminders."""
        return [
            r for r in self._center.pending_requests()
            if r.identifier.startswith(REMINDER_PREFIX)
        ]

    def pending_snoozes(self) -> list[ReminderRequest]:
        return [
            r for r in self._center.pending_requests()
            if r.identifier.startswith(SNOOZE_PREFIX)
        ]

    @staticmethod
    def resolve_action(action_identifier: str, user_info: dict[str, Any]) -> DoseAction | None:
        """Map a notification response to a dose action.

        Returns None for dismissals, unknown actions, or user info without
        dose and medication IDs.
        """
        action = _ACTION_TYPES.get(action_identifier)
        dose_id = user_info.get("doseId")
        medication_id = user_info.get("medicationId")
        if action is None or not dose_id or not medication_id:
            return None
        return DoseAction(dose_id=str(dose_id), medication_id=str(medication_id), action=action)

    def _remove_matching(self, predicate) -> int:
        identifiers = [r.identifier for r in self._center.pending_requests() if predicate(r)]
        if identifiers:
            self._center.remove_pending(identifiers)
        return len(identifiers)
