"""Builds the DiabFit Health FastMCP server.

``create_app()`` wires settings, storage, reminders and the vision client
into a fresh server, so integration tests can build isolated instances.
``fastmcp run src/diabfit/core/server/app.py:mcp`` picks up the lazily
created module attribute ``mcp``.
"""

from __future__ import annotations

import json
import logging

from fastmcp import FastMCP

from diabfit.core.config.settings import Settings, get_settings
from diabfit.core.llm.provider import VisionProvider, create_provider
from diabfit.core.storage.database import HealthDatabase
from diabfit.core.storage.encryption import EncryptionError, FieldEncryptor
from diabfit.core.storage.repository import HealthRepository
from diabfit.domains.health.connectors import NotificationCenter
from diabfit.domains.health.prompts.health_prompts import register_health_prompts
from diabfit.domains.health.tools.meal_tools import register_meal_scoring_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "DiabFit Health"
SERVER_VERSION = "0.1.0"

INSTRUCTIONS = (
    "DiabFit diabetes and GLP-1 self-management server. "
    "Tracks medications with dose reminders and adherence, meals with "
    "photo-based nutrition analysis, glucose readings, exercise and vitals, "
    "and turns them into diabetes-focused scores, alerts and meal plans."
)


def _open_repository(settings: Settings) -> HealthRepository | None:
    """Open the encrypted store, or return None when no key is configured or it is unusable."""
    if not settings.encryption_key:
        logger.info(
            "ENCRYPTION_KEY not set; tools that store data are disabled. "
            "Generate a Fernet key and set ENCRYPTION_KEY to enable them."
        )
        return None
    try:
        encryptor = FieldEncryptor(settings.encryption_key)
    except EncryptionError as exc:
        logger.error("Storage disabled, encryption key rejected: %s", exc)
        return None
    database = HealthDatabase(settings.db_path)
    database.initialize()
    logger.info("Health store %s open at schema v%d", settings.db_path, database.get_schema_version())
    return HealthRepository(database, encryptor)


def _create_vision_provider(settings: Settings) -> tuple[str, VisionProvider | None]:
    """Build the configured vision provider.

    Returns ``None`` for a remote provider without an API key, so photo
    analysis reports ``api_not_configured``. The canned mock is used only
    when ``VISION_PROVIDER=mock`` is set explicitly.
    """
    from diabfit.core.llm.providers.mock import MockVisionProvider
    from diabfit.domains.health.domain_logic.meal_analysis import SAMPLE_ANALYSIS

    credentials = {
        "openai": (settings.openai_api_key, settings.openai_model),
        "anthropic": (settings.anthropic_api_key, settings.anthropic_model),
    }
    if settings.vision_provider == "mock":
        return "mock", MockVisionProvider(json.dumps(SAMPLE_ANALYSIS))

    api_key, model = credentials[settings.vision_provider]
    if not api_key:
        logger.warning(
            "No API key configured for vision provider '%s'; meal photo analysis is disabled",
            settings.vision_provider,
        )
        return settings.vision_provider, None

    provider = create_provider(
        provider_name=settings.vision_provider,
        api_key=api_key,
        model=model,
        base_url=settings.openai_base_url,
        timeout=settings.vision_timeout_seconds,
    )
    return settings.vision_provider, provider


def create_app(
    *,
    repository_override: HealthRepository | None = None,
    vision_provider_override: VisionProvider | None = None,
    notification_center_override: NotificationCenter | None = None,
) -> FastMCP:
    """Build a configured server.

    Scoring, planning and prompt tools are always registered. Tools that
    read or write the health data bank (medications, meal logging and
    photo analysis, glucose, exercise, vitals, import, data management,
    audit) are only registered when storage is available.
    """
    settings = get_settings()
    server = FastMCP(SERVER_NAME, instructions=INSTRUCTIONS)

    if repository_override is not None:
        repository = repository_override
    else:
        repository = _open_repository(settings)
    user_id = (
        repository.get_or_create_user(settings.user_email, settings.user_name).id
        if repository is not None
        else None
    )

    if vision_provider_override is not None:
        provider_name, vision_provider = "override", vision_provider_override
    else:
        provider_name, vision_provider = _create_vision_provider(settings)
    if vision_provider is not None:
        logger.info("Meal photo analysis using vision provider '%s'", provider_name)

    @server.tool
    def health_check() -> dict:
        """Server status: version, storage availability, vision provider and record counts."""
        report = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage_enabled": repository is not None,
            "vision_provider": provider_name,
            "vision_configured": vision_provider is not None,
        }
        if repository is not None:
            report["records_stored"] = repository.count_records(user_id)
        return report

    register_meal_scoring_tools(server)

    if repository is not None:
        _register_storage_tools(
            server,
            settings,
            repository,
            user_id,
            vision_provider=vision_provider,
            provider_name=provider_name,
            notification_center=notification_center_override,
        )

    register_health_prompts(server)
    return server


def _register_storage_tools(
    server: FastMCP,
    settings: Settings,
    repository: HealthRepository,
    user_id: str,
    *,
    vision_provider: VisionProvider | None,
    provider_name: str,
    notification_center: NotificationCenter | None,
) -> None:
    from diabfit.core.audit.logger import AuditLogger
    from diabfit.core.llm.client import VisionClient
    from diabfit.domains.health.connectors.notifications import (
        InMemoryNotificationCenter,
        ReminderScheduler,
    )
    from diabfit.domains.health.domain_logic.meal_analysis import MealAnalyzer
    from diabfit.domains.health.domain_logic.medication_tracker import (
        MedicationServiceError,
        MedicationTracker,
    )
    from diabfit.domains.health.tools.activity_tools import register_activity_tools
    from diabfit.domains.health.tools.audit_tools import register_audit_tools
    from diabfit.domains.health.tools.data_management_tools import (
        register_data_management_tools,
    )
    from diabfit.domains.health.tools.glucose_tools import register_glucose_tools
    from diabfit.domains.health.tools.import_tools import register_import_tools
    from diabfit.domains.health.tools.meal_tools import register_meal_tools
    from diabfit.domains.health.tools.medication_tools import register_medication_tools
    from diabfit.domains.health.tools.vitals_tools import register_vitals_tools

    audit_logger = AuditLogger(repository.database)

    scheduler = ReminderScheduler(
        notification_center or InMemoryNotificationCenter(),
        window_days=settings.reminder_window_days,
    )
    tracker = MedicationTracker(
        repository, scheduler, user_id, snooze_minutes=settings.snooze_minutes
    )
    try:
        logger.info("Reminders restored for %d active medications", tracker.restore_reminders())
    except MedicationServiceError as exc:
        logger.warning("Could not restore medication reminders: %s", exc)
    register_medication_tools(server, tracker, audit_logger)

    analyzer: MealAnalyzer | None = None
    if vision_provider is not None:
        analyzer = MealAnalyzer(
            VisionClient(
                vision_provider,
                max_retries=settings.vision_max_retries,
                max_tokens=settings.vision_max_tokens,
                temperature=settings.vision_temperature,
            ),
            repository,
            user_id,
            max_dimension=settings.image_max_dimension,
            jpeg_quality=settings.image_jpeg_quality,
            cache_max_age_days=settings.analysis_cache_max_age_days,
            cache_max_entries=settings.analysis_cache_max_entries,
        )
    register_meal_tools(
        server,
        repository,
        user_id,
        analyzer=analyzer,
        provider_name=provider_name,
        audit_logger=audit_logger,
    )
    register_glucose_tools(server, repository, user_id, audit_logger)
    register_activity_tools(
        server,
        repository,
        user_id,
        weekly_goal_minutes=settings.weekly_exercise_goal_minutes,
        audit_logger=audit_logger,
    )
    register_vitals_tools(server, repository, user_id, audit_logger)
    register_import_tools(
        server,
        repository,
        user_id,
        default_export_path=settings.apple_health_export_path,
        audit_logger=audit_logger,
    )
    register_data_management_tools(server, repository, user_id, audit_logger, tracker=tracker)
    register_audit_tools(server, audit_logger)
    logger.info("Health data bank tools registered for user %s", user_id)


def __getattr__(name: str):
    # Built on first access so importing create_app has no side effects.
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
