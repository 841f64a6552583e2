"""Shared test fixtures for DiabFit Health tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VISION_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("APPLE_HEALTH_EXPORT_PATH", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def health_db():
    """Create an in-memory HealthDatabase for testing."""
    from diabfit.core.storage.database import HealthDatabase

    db = HealthDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from diabfit.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def health_repository(health_db, field_encryptor):
    """Create a HealthRepository backed by in-memory SQLite."""
    from diabfit.core.storage.repository import HealthRepository

    return HealthRepository(health_db, field_encryptor)


@pytest.fixture
def audit_logger(health_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from diabfit.core.audit.logger import AuditLogger

    return AuditLogger(health_db)


@pytest.fixture
def user(health_repository):
    """The single local user profile."""
    return health_repository.get_or_create_user("test@example.com", "Test User")


# ---------------------------------------------------------------------------
# Medication tracking fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def notification_center():
    """An authorized in-memory notification center."""
    from diabfit.domains.health.connectors.notifications import InMemoryNotificationCenter

    return InMemoryNotificationCenter()


@pytest.fixture
def reminder_scheduler(notification_center):
    from diabfit.domains.health.connectors.notifications import ReminderScheduler

    return ReminderScheduler(notification_center, window_days=30)


@pytest.fixture
def medication_tracker(health_repository, reminder_scheduler, user):
    """A MedicationTracker for the test user."""
    from diabfit.domains.health.domain_logic.medication_tracker import MedicationTracker

    return MedicationTracker(health_repository, reminder_scheduler, user.id)
