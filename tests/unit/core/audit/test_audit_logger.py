"""Tests for the audit trail: input fingerprints, event rows, queries and counts."""

from __future__ import annotations

import json
import time
from datetime import datetime

import pytest

from diabfit.core.audit.logger import (
    DATA_ACCESS,
    DATA_DELETE,
    TOOL_INVOCATION,
    AuditEvent,
    AuditLogger,
    _hash_input,
)


class TestInputFingerprint:
    def test_sha256_hex(self):
        assert len(_hash_input({"meal_type": "Lunch"})) == 64

    def test_key_order_does_not_matter(self):
        assert _hash_input({"level": 120, "notes": "x"}) == _hash_input({"notes": "x", "level": 120})

    def test_values_change_fingerprint(self):
        assert _hash_input({"level": 120}) != _hash_input({"level": 121})

    def test_datetimes_fingerprinted_via_str(self):
        assert len(_hash_input({"taken_at": datetime(2026, 3, 1, 8, 0)})) == 64


class TestToolCalls:
    def test_event_id_is_uuid(self, audit_logger):
        event_id = audit_logger.log_event(AuditEvent(action=TOOL_INVOCATION, tool_name="todays_doses"))
        assert len(event_id) == 36

    def test_row_contents(self, audit_logger):
        audit_logger.log_tool_call("log_meal", {"meal_type": "Lunch"}, record_id="meal-1")
        (event,) = audit_logger.get_events()
        assert event["action"] == TOOL_INVOCATION
        assert event["tool_name"] == "log_meal"
        assert event["record_id"] == "meal-1"
        assert event["llm_disclosed"] == 0
        assert event["metadata_json"] is None

    def test_photo_disclosure(self, audit_logger):
        audit_logger.log_tool_call(
            "analyze_meal_photo",
            {"meal_type": "Dinner"},
            llm_provider="openai",
            llm_disclosed=True,
            duration_ms=812.5,
        )
        event = audit_logger.get_events()[0]
        assert (event["llm_disclosed"], event["llm_provider"], event["duration_ms"]) == (
            1, "openai", 812.5,
        )

    def test_raw_input_never_stored(self, audit_logger):
        audit_logger.log_tool_call("log_glucose", {"level": 54, "notes": "felt shaky"})
        event = audit_logger.get_events()[0]
        assert event["tool_input_hash"] == _hash_input({"level": 54, "notes": "felt shaky"})
        assert "shaky" not in json.dumps(event)

    def test_no_input_leaves_hash_empty(self, audit_logger):
        audit_logger.log_tool_call("todays_doses")
        assert audit_logger.get_events()[0]["tool_input_hash"] is None

    def test_failed_call(self, audit_logger):
        audit_logger.log_tool_call("analyze_meal_photo", status="failure", error_type="rate_limited")
        event = audit_logger.get_events()[0]
        assert event["status"] == "failure"
        assert event["error_type"] == "rate_limited"

    def test_metadata(self, audit_logger):
        audit_logger.log_tool_call("analyze_meal_photo", metadata={"cached": True})
        assert json.loads(audit_logger.get_events()[0]["metadata_json"]) == {"cached": True}

    def test_closed_database_does_not_raise(self, health_db):
        audit = AuditLogger(health_db)
        health_db.close()
        assert audit.log_tool_call("log_meal") == ""


class TestDataEvents:
    def test_delete(self, audit_logger):
        audit_logger.log_data_delete(
            tool_name="delete_health_record",
            record_id="meal-123",
            count=1,
            metadata={"record_type": "meal"},
        )
        event = audit_logger.get_events(action=DATA_DELETE)[0]
        assert event["record_id"] == "meal-123"
        assert json.loads(event["metadata_json"]) == {"record_type": "meal", "records_deleted": 1}

    def test_access(self, audit_logger):
        audit_logger.log_data_access(tool_name="export_health_data", record_type="all", count=12)
        event = audit_logger.get_events(action=DATA_ACCESS)[0]
        assert json.loads(event["metadata_json"]) == {"record_type": "all", "records_read": 12}


class TestQueries:
    @pytest.fixture
    def populated(self, audit_logger):
        audit_logger.log_tool_call("log_glucose")
        audit_logger.log_data_delete(tool_name="purge_old_data", count=5)
        audit_logger.log_tool_call("log_meal")
        audit_logger.log_tool_call("log_glucose", llm_disclosed=False)
        return audit_logger

    def test_filter_by_action(self, populated):
        assert len(populated.get_events(action=TOOL_INVOCATION)) == 3
        assert len(populated.get_events(action=DATA_DELETE)) == 1

    def test_filter_by_tool(self, populated):
        assert len(populated.get_events(tool_name="log_glucose")) == 2

    def test_combined_filters(self, populated):
        assert populated.get_events(action=DATA_DELETE, tool_name="log_glucose") == []

    def test_limit(self, populated):
        assert len(populated.get_events(limit=2)) == 2

    def test_newest_first(self, audit_logger):
        audit_logger.log_tool_call("add_medication")
        time.sleep(0.01)
        audit_logger.log_tool_call("log_dose")
        assert [e["tool_name"] for e in audit_logger.get_events()] == ["log_dose", "add_medication"]


class TestCounts:
    def test_empty(self, audit_logger):
        assert audit_logger.count_events() == 0
        assert audit_logger.count_disclosures() == 0

    def test_disclosures_counted_separately(self, audit_logger):
        audit_logger.log_tool_call("analyze_meal_photo", llm_disclosed=True, llm_provider="anthropic")
        audit_logger.log_tool_call("log_meal")
        audit_logger.log_tool_call("analyze_meal_photo", llm_disclosed=True, llm_provider="openai")
        assert audit_logger.count_events() == 3
        assert audit_logger.count_disclosures() == 2

    def test_since(self, audit_logger):
        audit_logger.log_tool_call("analyze_meal_photo", llm_disclosed=True, llm_provider="openai")
        assert audit_logger.count_disclosures(since="2020-01-01T00:00:00+00:00") == 1
        assert audit_logger.count_events(since="2999-01-01T00:00:00+00:00") == 0
