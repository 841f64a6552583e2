"""Tests for the argument helpers shared by the health tools."""

from __future__ import annotations

import json
from datetime import date, datetime

import pytest

from diabfit.domains.health.tools.common import (
    ToolInputError,
    check_choice,
    error_json,
    parse_date,
    parse_datetime,
)


class TestParseDatetime:
    def test_empty_uses_default(self):
        default = datetime(2026, 3, 11, 9, 30, 15, 123456)
        assert parse_datetime("", default) == datetime(2026, 3, 11, 9, 30, 15)

    def test_offset_and_microseconds_dropped(self):
        parsed = parse_datetime("2026-03-11T09:30:15.5-05:00")
        assert parsed == datetime(2026, 3, 11, 9, 30, 15)
        assert parsed.tzinfo is None

    def test_date_only(self):
        assert parse_datetime("2026-03-11") == datetime(2026, 3, 11)

    def test_invalid(self):
        with pytest.raises(ToolInputError, match="ISO 8601"):
            parse_datetime("yesterday")


class TestParseDate:
    def test_datetime_string_truncated(self):
        assert parse_date("2026-03-11T18:00") == date(2026, 3, 11)

    def test_invalid(self):
        with pytest.raises(ToolInputError):
            parse_date("03/11/2026")


def test_check_choice():
    assert check_choice("period", "Week", ("Week", "Month")) == "Week"
    with pytest.raises(ToolInputError, match="period must be one of: Week, Month"):
        check_choice("period", "Decade", ("Week", "Month"))


def test_error_json():
    assert json.loads(error_json("invalid_input", "bad")) == {
        "status": "error", "error": "invalid_input", "message": "bad",
    }
