"""MCP tools for medications, doses, reminders and adherence.

Medications are stored in the encrypted health data bank; every add or
update regenerates pending doses and reschedules reminders through the
notification center.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from diabfit.core.storage.models import Medication
from diabfit.core.storage.repository import dose_to_dict, medication_to_dict
from diabfit.domains.health.domain_logic.adherence import next_dose_time
from diabfit.domains.health.domain_logic.health_models import (
    ADHERENCE_PERIODS,
    default_reminder_times,
)
from diabfit.domains.health.domain_logic.medication_tracker import (
    MedicationServiceError,
    parse_reminder_times,
)
from diabfit.domains.health.tools.common import (
    ToolInputError,
    check_choice,
    dump,
    error_json,
    invalid_input,
    parse_datetime,
)

if TYPE_CHECKING:
    from diabfit.core.audit.logger import AuditLogger
    from diabfit.domains.health.domain_logic.medication_tracker import MedicationTracker

logger = logging.getLogger(__name__)


def _service_error(exc: MedicationServiceError) -> str:
    return error_json(exc.kind, str(exc))


def register_medication_tools(
    mcp: FastMCP,
    tracker: MedicationTracker,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register medication and dose tracking tools on the MCP server."""

    def _audit(tool_name: str, tool_input: dict, record_id: str | None = None) -> None:
        if audit_logger is not None:
            audit_logger.log_tool_call(tool_name, tool_input, record_id=record_id)

    @mcp.tool
    async def add_medication(
        ctx: Context,
        name: str,
        dosage: str,
        frequency: str = "Once Daily",
        medication_type: str = "Other",
        start_date: str = "",
        end_date: str = "",
        reminder_times: list[str] | None = None,
        reminder_enabled: bool = True,
        instructions: str = "",
        prescribed_by: str = "",
        side_effects: list[str] | None = None,
        color: str = "White",
        shape: str = "Round",
    ) -> str:
        """Add a medication, generate its doses and schedule reminders.

        Args:
            name: Medication name (e.g., 'Metformin').
            dosage: Dose description (e.g., '500 mg').
            frequency: 'Once Daily', 'Twice Daily', 'Three Times Daily',
                'Four Times Daily', 'Every Other Day', 'Weekly', 'As Needed' or 'Custom'.
            medication_type: 'Insulin', 'Metformin', 'Blood Pressure', ... or 'Other'.
            start_date: First day (ISO 8601). Defaults to now.
            end_date: Last day (ISO 8601). Empty for open-ended.
            reminder_times: Times of day as HH:MM. Defaults follow the frequency.
            reminder_enabled: Schedule notification reminders.
            instructions: Free-text instructions (encrypted at rest).
            prescribed_by: Prescriber name.
            side_effects: Known side effects (encrypted at rest).
            color: Pill color.
            shape: Pill shape.
        """
        try:
            now = datetime.now()
            medication = Medication(
                id="",
                user_id=tracker.user_id,
                name=name,
                dosage=dosage,
                frequency=frequency,
                medication_type=medication_type,
                start_date=parse_datetime(start_date, now),
                end_date=parse_datetime(end_date) if end_date else None,
                prescribed_by=prescribed_by or None,
                instructions=instructions or None,
                side_effects=list(side_effects or []),
                reminder_enabled=reminder_enabled,
                reminder_times=(
                    parse_reminder_times(reminder_times)
                    if reminder_times
                    else default_reminder_times(frequency)
                ),
                color=color,
                shape=shape,
            )
            tracker.add_medication(medication, now=now)
        except ToolInputError as exc:
            return invalid_input(exc)
        except MedicationServiceError as exc:
            return _service_error(exc)

        _audit("add_medication", {"frequency": frequency, "type": medication_type}, medication.id)
        return dump({
            "status": "saved",
            "medication": medication_to_dict(medication),
            "next_dose": _iso(next_dose_time(medication, now)),
            "pending_reminders": sum(
                1 for r in tracker.pending_reminders() if r.medication_id == medication.id
            ),
        })

    @mcp.tool
    async def update_medication(
        ctx: Context,
        medication_id: str,
        dosage: str = "",
        frequency: str = "",
        end_date: str = "",
        reminder_times: list[str] | None = None,
        reminder_enabled: bool | None = None,
        is_active: bool | None = None,
        instructions: str = "",
    ) -> str:
        """Change a medication; future pending doses and reminders are regenerated.

        Args:
            medication_id: ID of the medication.
            dosage: New dosage, if changing.
            frequency: New frequency, if changing.
            end_date: New end date (ISO 8601), if changing.
            reminder_times: New reminder times as HH:MM, if changing.
            reminder_enabled: Turn reminders on or off.
            is_active: Mark the medication active or inactive.
            instructions: New instructions, if changing.
        """
        medication = tracker.get_medication(medication_id)
        if medication is None:
            return json.dumps({
                "status": "not_found",
                "medication_id": medication_id,
                "message": "No medication found with that ID.",
            })
        try:
            if dosage:
                medication.dosage = dosage
            if frequency:
                medication.frequency = frequency
            if end_date:
                medication.end_date = parse_datetime(end_date)
            if reminder_times is not None:
                medication.reminder_times = parse_reminder_times(reminder_times)
            if reminder_enabled is not None:
                medication.reminder_enabled = reminder_enabled
            if is_active is not None:
                medication.is_active = is_active
            if instructions:
                medication.instructions = instructions
            tracker.update_medication(medication)
        except ToolInputError as exc:
            return invalid_input(exc)
        except MedicationServiceError as exc:
            return _service_error(exc)

        _audit("update_medication", {"medication_id": medication_id}, medication_id)
        return dump({"status": "updated", "medication": medication_to_dict(medication)})

    @mcp.tool
    async def delete_medication(ctx: Context, medication_id: str) -> str:
        """Delete a medication, all of its doses and its pending reminders.

        Args:
            medication_id: ID of the medication.
        """
        try:
            deleted = tracker.delete_medication(medication_id)
        except MedicationServiceError as exc:
            return _service_error(exc)
        if not deleted:
            return json.dumps({
                "status": "not_found",
                "medication_id": medication_id,
                "message": "No medication found with that ID.",
            })
        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_medication", record_id=medication_id, count=1
            )
        return json.dumps({"status": "deleted", "medication_id": medication_id})

    @mcp.tool
    async def list_medications(ctx: Context, active_only: bool = False) -> str:
        """List stored medications with their next dose time.

        Args:
            active_only: Only include active medications.
        """
        try:
            medications = tracker.list_medications(active_only=active_only)
        except MedicationServiceError as exc:
            return _service_error(exc)
        now = datetime.now()
        return dump({
            "status": "ok",
            "count": len(medications),
            "medications": [
                {**medication_to_dict(m), "next_dose": _iso(next_dose_time(m, now))}
                for m in medications
            ],
        })

    @mcp.tool
    async def log_dose(
        ctx: Context,
        dose_id: str,
        action: str = "taken",
        notes: str = "",
        side_effects: list[str] | None = None,
        skipped_reason: str = "",
        taken_at: str = "",
    ) -> str:
        """Mark a scheduled dose as taken or skipped.

        Args:
            dose_id: ID of the dose (see todays_doses).
            action: 'taken' or 'skipped'.
            notes: Optional notes for a taken dose.
            side_effects: Side effects experienced.
            skipped_reason: Why the dose was skipped.
            taken_at: When it was taken (ISO 8601). Defaults to now.
        """
        try:
            check_choice("action", action, ("taken", "skipped"))
            if action == "taken":
                dose = tracker.mark_dose_taken(
                    dose_id,
                    taken_at=parse_datetime(taken_at),
                    notes=notes or None,
                    side_effects=side_effects,
                )
            else:
                dose = tracker.mark_dose_skipped(dose_id, reason=skipped_reason or None)
        except ToolInputError as exc:
            return invalid_input(exc)
        except MedicationServiceError as exc:
            return _service_error(exc)

        _audit("log_dose", {"action": action}, dose_id)
        return dump({"status": "saved", "dose": dose_to_dict(dose)})

    @mcp.tool
    async def snooze_dose(ctx: Context, dose_id: str, minutes: int = 0) -> str:
        """Snooze a dose reminder.

        Args:
            dose_id: ID of the dose.
            minutes: Snooze length; 0 uses the configured default.
        """
        try:
            request = tracker.snooze_dose(dose_id, minutes=minutes or None)
        except MedicationServiceError as exc:
            return _service_error(exc)
        return dump({"status": "snoozed", "reminder": request.to_dict()})

    @mcp.tool
    async def respond_to_reminder(
        ctx: Context,
        action_identifier: str,
        dose_id: str,
        medication_id: str,
    ) -> str:
        """Apply a reminder button press: DOSE_TAKEN, DOSE_SKIP or DOSE_SNOOZE.

        Args:
            action_identifier: The notification action identifier.
            dose_id: Dose the reminder was for.
            medication_id: Medication the reminder was for.
        """
        try:
            result = tracker.handle_notification_action(
                action_identifier, {"doseId": dose_id, "medicationId": medication_id}
            )
        except MedicationServiceError as exc:
            return _service_error(exc)
        return json.dumps({"status": "ok", **result})

    @mcp.tool
    async def todays_doses(ctx: Context) -> str:
        """List today's doses for active medications with their status."""
        doses = tracker.todays_doses()
        return dump({
            "status": "ok",
            "date": datetime.now().date().isoformat(),
            "taken": sum(1 for d in doses if d.status == "Taken"),
            "total": len(doses),
            "doses": [dose_to_dict(d) for d in doses],
        })

    @mcp.tool
    async def upcoming_doses(ctx: Context, days: int = 7) -> str:
        """List doses scheduled over the coming days.

        Args:
            days: Number of days after today to include (default: 7).
        """
        doses = tracker.upcoming_doses(days=days)
        return dump({"status": "ok", "days": days, "doses": [dose_to_dict(d) for d in doses]})

    @mcp.tool
    async def medication_adherence(
        ctx: Context,
        period: str = "Week",
        medication_id: str = "",
    ) -> str:
        """Adherence for one medication, or the overall percentage for all of them.

        Args:
            period: 'Week', 'Month', '3 Months' or 'Year'.
            medication_id: Limit to one medication. Empty for overall adherence.
        """
        try:
            check_choice("period", period, ADHERENCE_PERIODS)
        except ToolInputError as exc:
            return invalid_input(exc)

        if medication_id:
            if tracker.get_medication(medication_id) is None:
                return json.dumps({
                    "status": "not_found",
                    "medication_id": medication_id,
                    "message": "No medication found with that ID.",
                })
            report = tracker.adherence_report(medication_id, period)
            return dump({"status": "ok", "report": report.to_dict()})

        return dump({
            "status": "ok",
            "period": period,
            "overall_adherence_percentage": round(tracker.overall_adherence(period), 1),
        })

    @mcp.tool
    async def medication_calendar(ctx: Context, year: int = 0, month: int = 0) -> str:
        """Per-day dose completion for a month.

        Args:
            year: Calendar year. Defaults to the current year.
            month: Month 1-12. Defaults to the current month.
        """
        today = datetime.now()
        year = year or today.year
        month = month or today.month
        if not 1 <= month <= 12:
            return error_json("invalid_input", "month must be between 1 and 12")
        days = tracker.calendar(year, month)
        return dump({
            "status": "ok",
            "year": year,
            "month": month,
            "days": [d.to_dict() for d in days],
        })

    @mcp.tool
    async def pending_reminders(ctx: Context) -> str:
        """List medication reminders waiting to fire."""
        reminders = tracker.pending_reminders()
        return dump({
            "status": "ok",
            "count": len(reminders),
            "reminders": [r.to_dict() for r in reminders[:50]],
        })


def _iso(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value is not None else None
