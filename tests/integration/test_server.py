"""Integration tests for the DiabFit Health MCP server."""

from __future__ import annotations

import asyncio
import base64
import io
import json

import pytest
from fastmcp import Client
from PIL import Image

from diabfit.core.llm.providers.mock import MockVisionProvider
from diabfit.core.server.app import create_app
from diabfit.domains.health.domain_logic.meal_analysis import SAMPLE_ANALYSIS


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _text(result) -> str:
    content = getattr(result, "content", result)
    return content[0].text


def _call(client: Client, tool: str, args: dict | None = None) -> dict:
    async def _go():
        async with client:
            return await client.call_tool(tool, args or {})
    return json.loads(_text(_run(_go())))


# Registered with or without the health data bank
STATELESS_TOOLS = [
    "health_check",
    "score_meal",
    "predict_glucose_impact",
    "suggest_meals",
    "weekly_meal_plan",
]

STORAGE_TOOLS = [
    "add_medication",
    "log_dose",
    "respond_to_reminder",
    "medication_adherence",
    "log_meal",
    "analyze_meal_photo",
    "log_glucose",
    "glucose_alerts",
    "log_exercise",
    "activity_summary",
    "record_vitals",
    "health_trends",
    "import_apple_health",
    "export_health_data",
    "delete_all_health_data",
    "audit_summary",
]


@pytest.fixture
def vision_provider():
    return MockVisionProvider(json.dumps(SAMPLE_ANALYSIS))


@pytest.fixture
def client(health_repository, vision_provider):
    """MCP client for a server backed by the in-memory repository."""
    mcp = create_app(
        repository_override=health_repository,
        vision_provider_override=vision_provider,
    )
    return Client(mcp)


@pytest.fixture
def stateless_client():
    """MCP client for a server with no ENCRYPTION_KEY (no persistence)."""
    return Client(create_app())


def _tool_names(client: Client) -> list[str]:
    async def _go():
        async with client:
            return [t.name for t in await client.list_tools()]
    return _run(_go())


class TestRegistration:
    def test_storage_backed_server_lists_all_tools(self, client):
        names = _tool_names(client)
        for expected in STATELESS_TOOLS + STORAGE_TOOLS:
            assert expected in names, f"Missing tool: {expected}"

    def test_server_without_storage_lists_stateless_tools(self, stateless_client):
        names = _tool_names(stateless_client)
        for expected in STATELESS_TOOLS:
            assert expected in names, f"Missing tool: {expected}"
        for unexpected in STORAGE_TOOLS:
            assert unexpected not in names

    def test_prompts_registered(self, stateless_client):
        async def _go():
            async with stateless_client:
                return [p.name for p in await stateless_client.list_prompts()]
        names = _run(_go())
        assert "daily_checkin_prompt" in names
        assert "glucose_review_prompt" in names


class TestHealthCheck:
    def test_returns_ok(self, stateless_client):
        async def _go():
            async with stateless_client:
                return await stateless_client.call_tool("health_check", {})
        result_text = str(_run(_go()))
        assert "ok" in result_text
        assert "storage_enabled" in result_text

    def test_reports_vision_provider(self, client):
        async def _go():
            async with client:
                return await client.call_tool("health_check", {})
        result_text = str(_run(_go()))
        assert "override" in result_text
        assert "records_stored" in result_text


class TestGlucose:
    def test_high_reading_raises_alert(self, client):
        payload = _call(client, "log_glucose", {"level": 250, "measured_at": "2026-03-11T12:00"})
        assert payload["status"] == "saved"
        assert payload["glucose_status"] == "High"
        assert [a["type"] for a in payload["alerts"]] == ["High Glucose"]

    def test_out_of_range_level_rejected(self, client):
        payload = _call(client, "log_glucose", {"level": 5})
        assert payload["status"] == "error"
        assert payload["error"] == "invalid_input"


class TestMedications:
    def test_add_medication_schedules_reminders(self, client):
        payload = _call(client, "add_medication", {
            "name": "Metformin",
            "dosage": "500 mg",
            "frequency": "Twice Daily",
            "medication_type": "Metformin",
            "reminder_times": ["08:00", "20:00"],
        })
        assert payload["status"] == "saved"
        assert payload["medication"]["name"] == "Metformin"
        assert payload["pending_reminders"] > 0

    def test_invalid_medication_rejected(self, client):
        payload = _call(client, "add_medication", {
            "name": "Mystery",
            "dosage": "1 pill",
            "frequency": "Hourly",
        })
        assert payload["status"] == "error"
        assert payload["error"] == "invalid_medication_data"

    def test_unknown_medication_adherence(self, client):
        payload = _call(client, "medication_adherence", {"medication_id": "missing"})
        assert payload["status"] == "not_found"


class TestMeals:
    def test_score_meal_without_storage(self, stateless_client):
        payload = _call(stateless_client, "score_meal", {
            "name": "Pasta",
            "carbs": 70,
            "protein": 8,
            "fat": 4,
            "fiber": 2,
            "sugar": 12,
            "sodium": 1300,
            "calories": 650,
            "meal_type": "Dinner",
        })
        assert payload["status"] == "ok"
        assert payload["diabetic_friendliness"] == 35.0
        assert payload["glucose_impact"]["duration_minutes"] == 150

    def test_analyze_meal_photo_logs_meal(self, client, vision_provider):
        buffered = io.BytesIO()
        Image.new("RGB", (32, 32), (180, 90, 30)).save(buffered, format="PNG")
        image_b64 = base64.b64encode(buffered.getvalue()).decode("ascii")

        async def _go():
            async with client:
                analyzed = await client.call_tool("analyze_meal_photo", {"image_base64": image_b64})
                usage = await client.call_tool("meal_analysis_usage", {})
            return json.loads(_text(analyzed)), json.loads(_text(usage))

        payload, usage = _run(_go())
        assert payload["status"] == "ok"
        assert payload["cached"] is False
        assert payload["meal_id"]
        assert payload["analysis"]["healthScore"]["glp1Compatible"] == 8.5
        assert vision_provider.call_count == 1

        assert usage["total_analyses"] == 1

    def test_analyze_meal_photo_rejects_bad_base64(self, client):
        payload = _call(client, "analyze_meal_photo", {"image_base64": "***"})
        assert payload["status"] == "error"
        assert payload["error"] == "invalid_image"

    def test_missing_api_key_disables_photo_analysis(self, health_repository, monkeypatch):
        monkeypatch.setenv("VISION_PROVIDER", "openai")
        client = Client(create_app(repository_override=health_repository))

        async def _go():
            async with client:
                analyzed = await client.call_tool("analyze_meal_photo", {"image_base64": "aGk="})
                meals = await client.call_tool("list_meals", {})
            return json.loads(_text(analyzed)), json.loads(_text(meals))

        payload, meals = _run(_go())
        assert payload["status"] == "error"
        assert payload["error"] == "api_not_configured"
        assert meals["count"] == 0


METFORMIN = {
    "name": "Metformin",
    "dosage": "500 mg",
    "frequency": "Twice Daily",
    "medication_type": "Metformin",
    "reminder_times": ["08:00", "20:00"],
}


class TestDataManagement:
    def test_deleting_medication_record_cancels_its_reminders(self, client):
        async def _go():
            async with client:
                added = json.loads(_text(await client.call_tool("add_medication", METFORMIN)))
                deleted = await client.call_tool("delete_health_record", {
                    "record_type": "medication",
                    "record_id": added["medication"]["id"],
                })
                pending = await client.call_tool("pending_reminders", {})
            return added, json.loads(_text(deleted)), json.loads(_text(pending))

        added, deleted, pending = _run(_go())
        assert added["pending_reminders"] > 0
        assert deleted["status"] == "deleted"
        assert pending["count"] == 0

    def test_delete_all_cancels_reminders(self, client):
        async def _go():
            async with client:
                await client.call_tool("add_medication", METFORMIN)
                erased = await client.call_tool("delete_all_health_data", {"confirm": "DELETE_ALL"})
                pending = await client.call_tool("pending_reminders", {})
            return json.loads(_text(erased)), json.loads(_text(pending))

        erased, pending = _run(_go())
        assert erased["status"] == "all_deleted"
        assert erased["reminders_cancelled"] > 0
        assert pending["count"] == 0

    def test_unconfirmed_delete_all_keeps_reminders(self, client):
        async def _go():
            async with client:
                await client.call_tool("add_medication", METFORMIN)
                await client.call_tool("delete_all_health_data", {})
                pending = await client.call_tool("pending_reminders", {})
            return json.loads(_text(pending))

        assert _run(_go())["count"] > 0
