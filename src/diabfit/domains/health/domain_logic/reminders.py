"""Medication reminder expansion.

Turns a medication's times of day into concrete, one-shot notification
requests for a bounded window of days, and builds snooze requests for a
single dose. Everything here is pure: the notification center that stores
the requests lives in ``connectors.notifications``.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any

from diabfit.core.storage.models import Medication, MedicationDose

REMINDER_PREFIX = "medication_"
SNOOZE_PREFIX = "snooze_"
REMINDER_CATEGORY = "MEDICATION_REMINDER"

REMINDER_TITLE = "\U0001F48A Medication Reminder"
SNOOZE_TITLE = "\U0001F48A Medication Reminder (Snoozed)"

# Action identifiers attached to the reminder category, in display order.
ACTION_TAKEN = "DOSE_TAKEN"
ACTION_SNOOZE = "DOSE_SNOOZE"
ACTION_SKIP = "DOSE_SKIP"
REMINDER_ACTIONS: dict[str, str] = {
    ACTION_TAKEN: "Mark as Taken",
    ACTION_SNOOZE: "Snooze 15 min",
    ACTION_SKIP: "Skip Dose",
}


@dataclass(frozen=True)
class CalendarTrigger:
    """Fires once at a wall-clock minute."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    repeats: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "calendar",
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "hour": self.hour,
            "minute": self.minute,
            "repeats": self.repeats,
        }


@dataclass(frozen=True)
class IntervalTrigger:
    """Fires once after a number of seconds."""

    seconds: float
    repeats: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"type": "interval", "seconds": self.seconds, "repeats": self.repeats}


@dataclass
class ReminderRequest:
    """A notification request ready to hand to a notification center."""

    identifier: str
    title: str
    body: str
    fire_at: datetime
    trigger: CalendarTrigger | IntervalTrigger
    category: str = REMINDER_CATEGORY
    user_info: dict[str, Any] = field(default_factory=dict)

    @property
    def medication_id(self) -> str:
        return self.user_info.get("medicationId", "")

    @property
    def dose_id(self) -> str:
        return self.user_info.get("doseId", "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "title": self.title,
            "body": self.body,
            "category": self.category,
            "fire_at": self.fire_at.isoformat(timespec="seconds"),
            "trigger": self.trigger.to_dict(),
            "user_info": dict(self.user_info),
        }


def reminder_identifier(medication_id: str, scheduled: datetime) -> str:
    return f"{REMINDER_PREFIX}{medication_id}_{int(scheduled.timestamp())}"


def snooze_identifier(dose_id: str, fire_at: datetime) -> str:
    return f"{SNOOZE_PREFIX}{dose_id}_{int(fire_at.timestamp())}"


def minute_key(value: datetime) -> datetime:
    """Truncate to the minute; doses are matched at minute granularity."""
    return value.replace(second=0, microsecond=0)


def _user_info(medication: Medication, dose_id: str, scheduled: datetime) -> dict[str, Any]:
    return {
        "medicationId": medication.id,
        "doseId": dose_id,
        "medicationName": medication.name,
        "dosage": medication.dosage,
        "scheduledTime": scheduled.timestamp(),
    }


def scheduled_times(
    medication: Medication,
    first_day: date,
    last_day: date,
) -> Iterator[datetime]:
    """Every reminder datetime from ``first_day`` to ``last_day`` inclusive, in order.

    An end date carrying a time of day is a hard cutoff: nothing after it is
    yielded. A bare end date (midnight) covers that whole day.
    """
    times = sorted(medication.reminder_times)
    cutoff = medication.end_date
    if cutoff is not None and cutoff.time() == time.min:
        cutoff = None
    day = first_day
    while day <= last_day:
        for t in times:
            scheduled = datetime.combine(day, t)
            if cutoff is not None and scheduled > cutoff:
                return
            yield scheduled
        day += timedelta(days=1)


def reminder_window(
    medication: Medication, now: datetime, window_days: int = 30
) -> tuple[date, date]:
    """First and last calendar day that reminders are scheduled for.

    The window starts at the later of the start date and today and ends at
    the earlier of the end date (one year out when open-ended) and
    ``window_days`` from now.
    """
    end = medication.end_date or (now + timedelta(days=365))
    last = min(end, now + timedelta(days=window_days))
    first = max(medication.start_date, now)
    return first.date(), last.date()


def expand_reminders(
    medication: Medication,
    now: datetime,
    *,
    window_days: int = 30,
    dose_ids: Mapping[datetime, str] | None = None,
) -> list[ReminderRequest]:
    """Expand a medication's times of day into one-shot reminder requests.

    Only times strictly after ``now`` are produced. When ``dose_ids`` maps a
    minute-truncated scheduled time to a stored dose, the request carries
    that dose's ID so notification actions resolve to it; otherwise a fresh
    ID is minted.

    Args:
        medication: The medication to remind about.
        now: Reference time; nothing at or before it is scheduled.
        window_days: How far ahead to schedule.
        dose_ids: Known doses keyed by :func:`minute_key` of their time.
    """
    if not medication.reminder_times:
        return []

    first_day, last_day = reminder_window(medication, now, window_days)
    known = dose_ids or {}
    requests: list[ReminderRequest] = []

    for scheduled in scheduled_times(medication, first_day, last_day):
        if scheduled <= now:
            continue
        dose_id = known.get(minute_key(scheduled)) or str(uuid.uuid4())
        requests.append(ReminderRequest(
            identifier=reminder_identifier(medication.id, scheduled),
            title=REMINDER_TITLE,
            body=f"Time to take your {medication.name} ({medication.dosage})",
            fire_at=scheduled,
            trigger=CalendarTrigger(
                year=scheduled.year,
                month=scheduled.month,
                day=scheduled.day,
                hour=scheduled.hour,
                minute=scheduled.minute,
            ),
            user_info=_user_info(medication, dose_id, scheduled),
        ))
    return requests


def snooze_request(
    dose: MedicationDose,
    medication: Medication,
    now: datetime,
    *,
    minutes: int = 15,
) -> ReminderRequest:
    """A one-shot request that re-reminds about ``dose`` after ``minutes``."""
    fire_at = now + timedelta(minutes=minutes)
    user_info = _user_info(medication, dose.id, dose.scheduled_time)
    user_info["isSnooze"] = True
    return ReminderRequest(
        identifier=snooze_identifier(dose.id, fire_at),
        title=SNOOZE_TITLE,
        body=f"Don't forget to take your {medication.name} ({medication.dosage})",
        fire_at=fire_at,
        trigger=IntervalTrigger(seconds=max((fire_at - now).total_seconds(), 1.0)),
        user_info=user_info,
    )


def doses_for_day(
    medication: Medication,
    day: date,
    existing: set[datetime],
) -> list[MedicationDose]:
    """New pending doses for ``day``, skipping times already in ``existing``.

    ``existing`` holds minute-truncated scheduled times and is updated in
    place so repeated calls never produce duplicates.
    """
    doses: list[MedicationDose] = []
    for scheduled in scheduled_times(medication, day, day):
        key = minute_key(scheduled)
        if key in existing:
            continue
        existing.add(key)
        doses.append(MedicationDose(
            id=str(uuid.uuid4()),
            medication_id=medication.id,
            scheduled_time=scheduled,
        ))
    return doses
