"""Argument parsing and response helpers shared by the health tools."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any


class ToolInputError(ValueError):
    """A tool argument could not be parsed."""


def parse_datetime(value: str, default: datetime | None = None) -> datetime:
    """Parse an ISO 8601 date or datetime; empty means ``default`` (or now).

    Offsets are dropped: every stored timestamp is local wall-clock time,
    kept to whole seconds.
    """
    if not value:
        return (default or datetime.now()).replace(microsecond=0)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ToolInputError(f"Invalid date/time {value!r}; use ISO 8601 (e.g. 2026-01-15T08:30)") from exc
    return parsed.replace(tzinfo=None, microsecond=0)


def parse_date(value: str, default: date | None = None) -> date:
    if not value:
        return default or date.today()
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise ToolInputError(f"Invalid date {value!r}; use YYYY-MM-DD") from exc


def check_choice(name: str, value: str, choices: tuple[str, ...]) -> str:
    if value not in choices:
        raise ToolInputError(f"{name} must be one of: {', '.join(choices)}")
    return value


def error_json(kind: str, message: str) -> str:
    return json.dumps({"status": "error", "error": kind, "message": message})


def invalid_input(exc: ToolInputError) -> str:
    return error_json("invalid_input", str(exc))


def dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=str)
