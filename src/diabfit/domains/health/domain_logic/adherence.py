"""Medication adherence: dose scoring, period reports, streaks, calendar days."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from diabfit.core.storage.models import Medication, MedicationDose
from diabfit.domains.health.domain_logic.health_models import (
    ADHERENCE_PERIODS,
    DOSE_PENDING,
    DOSE_SKIPPED,
    DOSE_TAKEN,
)


# ---------------------------------------------------------------------------
# Single doses
# ---------------------------------------------------------------------------

def is_overdue(dose: MedicationDose, now: datetime) -> bool:
    """A dose is overdue while it is still pending past its scheduled time."""
    return dose.status == DOSE_PENDING and dose.scheduled_time < now


def dose_adherence_score(dose: MedicationDose, now: datetime) -> float:
    """1.0 for taken, 0.0 for skipped; pending doses count until they are overdue."""
    if dose.status == DOSE_TAKEN:
        return 1.0
    if dose.status == DOSE_SKIPPED:
        return 0.0
    return 0.0 if is_overdue(dose, now) else 1.0


def next_dose_time(medication: Medication, now: datetime) -> datetime | None:
    """The next reminder after ``now``: later today, else the first one tomorrow.

    Returns None for inactive medications, disabled reminders, or an empty
    reminder list.
    """
    if not medication.is_active or not medication.reminder_enabled:
        return None
    times = sorted(medication.reminder_times)
    if not times:
        return None

    today = now.date()
    for t in times:
        candidate = datetime.combine(today, t)
        if candidate > now:
            return candidate
    return datetime.combine(today + timedelta(days=1), times[0])


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------

def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole calendar months, clamping the day to the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def period_bounds(period: str, now: datetime) -> tuple[datetime, datetime]:
    """Inclusive ``(start, end)`` for an adherence period.

    ``Week``, ``Month`` and ``Year`` cover the calendar interval containing
    ``now`` (weeks start on Monday); ``3 Months`` is a trailing window that
    ends at ``now``.

    Raises:
        ValueError: For an unknown period name.
    """
    if period not in ADHERENCE_PERIODS:
        raise ValueError(f"Unknown adherence period: {period!r}")

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "Week":
        start = midnight - timedelta(days=midnight.weekday())
        next_start = start + timedelta(days=7)
    elif period == "Month":
        start = midnight.replace(day=1)
        next_start = add_months(start, 1)
    elif period == "Year":
        start = midnight.replace(month=1, day=1)
        next_start = start.replace(year=start.year + 1)
    else:
        return add_months(now, -3), now
    return start, next_start - timedelta(microseconds=1)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@dataclass
class AdherenceReport:
    """Adherence summary for one medication over one period."""

    medication_id: str
    period: str
    start_date: datetime
    end_date: datetime
    total_doses: int
    taken_doses: int
    skipped_doses: int
    adherence_percentage: float
    streak: int
    longest_streak: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "medication_id": self.medication_id,
            "period": self.period,
            "start_date": self.start_date.isoformat(timespec="seconds"),
            "end_date": self.end_date.isoformat(timespec="seconds"),
            "total_doses": self.total_doses,
            "taken_doses": self.taken_doses,
            "skipped_doses": self.skipped_doses,
            "adherence_percentage": round(self.adherence_percentage, 1),
            "streak": self.streak,
            "longest_streak": self.longest_streak,
        }


def compute_streaks(doses: list[MedicationDose], now: datetime) -> tuple[int, int]:
    """Return ``(current, longest)`` runs of consecutive taken doses.

    Only doses that are already due count; future doses have not had a
    chance to be taken yet. The current streak is the run ending at the most
    recent due dose.
    """
    due = sorted((d for d in doses if d.scheduled_time <= now), key=lambda d: d.scheduled_time)

    longest = run = 0
    for dose in due:
        if dose.status == DOSE_TAKEN:
            run += 1
            longest = max(longest, run)
        else:
            run = 0

    current = 0
    for dose in reversed(due):
        if dose.status != DOSE_TAKEN:
            break
        current += 1
    return current, longest


def build_adherence_report(
    medication_id: str,
    doses: list[MedicationDose],
    period: str,
    now: datetime,
) -> AdherenceReport:
    """Summarize the doses of one medication that fall inside ``period``."""
    start, end = period_bounds(period, now)
    period_doses = [
        d for d in doses
        if d.medication_id == medication_id and start <= d.scheduled_time <= end
    ]

    total = len(period_doses)
    taken = sum(1 for d in period_doses if d.status == DOSE_TAKEN)
    skipped = sum(1 for d in period_doses if d.status == DOSE_SKIPPED)
    percentage = taken / total * 100 if total else 0.0
    streak, longest = compute_streaks(period_doses, now)

    return AdherenceReport(
        medication_id=medication_id,
        period=period,
        start_date=start,
        end_date=end,
        total_doses=total,
        taken_doses=taken,
        skipped_doses=skipped,
        adherence_percentage=percentage,
        streak=streak,
        longest_streak=longest,
    )


def overall_adherence(doses: list[MedicationDose], period: str, now: datetime) -> float:
    """Percentage of taken doses scheduled since the start of ``period``.

    With nothing to measure the user is treated as fully adherent (100.0).
    """
    if not doses:
        return 100.0
    start, _ = period_bounds(period, now)
    period_doses = [d for d in doses if d.scheduled_time >= start]
    if not period_doses:
        return 100.0
    taken = sum(1 for d in period_doses if d.status == DOSE_TAKEN)
    return taken / len(period_doses) * 100


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

@dataclass
class CalendarDay:
    """All doses scheduled on one date."""

    date: date
    doses: list[MedicationDose] = field(default_factory=list)
    adherence_score: float = 1.0
    has_overdue_doses: bool = False
    completed_doses: int = 0
    total_doses: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "adherence_score": round(self.adherence_score, 3),
            "has_overdue_doses": self.has_overdue_doses,
            "completed_doses": self.completed_doses,
            "total_doses": self.total_doses,
        }


def calendar_day(day: date, doses: list[MedicationDose], now: datetime) -> CalendarDay:
    day_doses = sorted(
        (d for d in doses if d.scheduled_time.date() == day),
        key=lambda d: d.scheduled_time,
    )
    score = (
        sum(dose_adherence_score(d, now) for d in day_doses) / len(day_doses)
        if day_doses
        else 1.0
    )
    return CalendarDay(
        date=day,
        doses=day_doses,
        adherence_score=score,
        has_overdue_doses=any(is_overdue(d, now) for d in day_doses),
        completed_doses=sum(1 for d in day_doses if d.status == DOSE_TAKEN),
        total_doses=len(day_doses),
    )


def calendar_days_for_month(
    doses: list[MedicationDose], year: int, month: int, now: datetime
) -> list[CalendarDay]:
    """One :class:`CalendarDay` per date of the given month."""
    days_in_month = calendar.monthrange(year, month)[1]
    return [calendar_day(date(year, month, d), doses, now) for d in range(1, days_in_month + 1)]
