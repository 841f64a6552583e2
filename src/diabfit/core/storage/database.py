"""SQLite schema and connection handling for the DiabFit health store.

Free-text columns suffixed ``_enc`` hold Fernet tokens; numeric values stay
in plain columns so range queries and trends need no decryption.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 4

# V1: users, medications, doses and logged health records
_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS users (
    id            TEXT PRIMARY KEY,
    email         TEXT NOT NULL UNIQUE,
    name          TEXT NOT NULL,
    date_of_birth TEXT,
    created_at    TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS medications (
    id               TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name             TEXT NOT NULL,
    dosage           TEXT NOT NULL,
    frequency        TEXT NOT NULL,
    medication_type  TEXT NOT NULL,
    prescribed_by    TEXT,
    start_date       TEXT NOT NULL,
    end_date         TEXT,

    -- Encrypted free text
    instructions_enc TEXT,
    side_effects_enc TEXT,

    is_active        INTEGER NOT NULL DEFAULT 1,
    reminder_enabled INTEGER NOT NULL DEFAULT 1,
    reminder_times   TEXT NOT NULL DEFAULT '[]',
    color            TEXT NOT NULL DEFAULT 'White',
    shape            TEXT NOT NULL DEFAULT 'Round',
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS medication_doses (
    id                          TEXT PRIMARY KEY,
    medication_id               TEXT NOT NULL REFERENCES medications(id) ON DELETE CASCADE,
    scheduled_time              TEXT NOT NULL,
    actual_time                 TEXT,
    status                      TEXT NOT NULL DEFAULT 'Pending',
    notes_enc                   TEXT,
    side_effects_experienced_enc TEXT,
    skipped_reason_enc          TEXT
);

CREATE TABLE IF NOT EXISTS meals (
    id                TEXT PRIMARY KEY,
    user_id           TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name              TEXT NOT NULL,
    meal_type         TEXT NOT NULL,
    timestamp         TEXT NOT NULL,
    ingredients_enc   TEXT,
    carbs             REAL NOT NULL DEFAULT 0,
    protein           REAL NOT NULL DEFAULT 0,
    fat               REAL NOT NULL DEFAULT 0,
    fiber             REAL NOT NULL DEFAULT 0,
    calories          REAL NOT NULL DEFAULT 0,
    sugar             REAL NOT NULL DEFAULT 0,
    sodium            REAL NOT NULL DEFAULT 0,
    glucose_impact    INTEGER,
    notes_enc         TEXT,
    photo_analysis_id TEXT
);

CREATE TABLE IF NOT EXISTS glucose_readings (
    id        TEXT PRIMARY KEY,
    user_id   TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    level     INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    notes_enc TEXT,
    source    TEXT NOT NULL DEFAULT 'manual'
);

CREATE TABLE IF NOT EXISTS exercises (
    id               TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    exercise_type    TEXT NOT NULL,
    duration_minutes INTEGER NOT NULL,
    intensity        TEXT NOT NULL,
    calories_burned  REAL,
    timestamp        TEXT NOT NULL,
    notes_enc        TEXT,
    source           TEXT NOT NULL DEFAULT 'manual'
);

CREATE TABLE IF NOT EXISTS health_metrics (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    metric_type TEXT NOT NULL,
    value       REAL NOT NULL,
    unit        TEXT NOT NULL DEFAULT '',
    timestamp   TEXT NOT NULL,
    notes_enc   TEXT,
    source      TEXT NOT NULL DEFAULT 'manual'
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_medications_user  ON medications(user_id);
CREATE INDEX IF NOT EXISTS idx_doses_medication  ON medication_doses(medication_id);
CREATE INDEX IF NOT EXISTS idx_doses_scheduled   ON medication_doses(scheduled_time);
CREATE INDEX IF NOT EXISTS idx_meals_user_ts     ON meals(user_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_glucose_user_ts   ON glucose_readings(user_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_exercises_user_ts ON exercises(user_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_metrics_type_ts   ON health_metrics(user_id, metric_type, timestamp);
"""

# V2: audit trail

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    llm_provider    TEXT,
    llm_disclosed   INTEGER DEFAULT 0,
    record_id       TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
"""

# V3: cached photo analyses keyed by image hash
_SCHEMA_V3 = """
CREATE TABLE IF NOT EXISTS meal_analyses (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    image_hash   TEXT NOT NULL,
    timestamp    TEXT NOT NULL,
    model        TEXT NOT NULL DEFAULT '',
    confidence   REAL NOT NULL DEFAULT 0,
    total_tokens INTEGER NOT NULL DEFAULT 0,
    payload_enc  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_analyses_hash ON meal_analyses(image_hash);
CREATE INDEX IF NOT EXISTS idx_analyses_ts   ON meal_analyses(timestamp);
"""

# V4: lifetime photo analysis counters, kept apart from the evictable cache
_SCHEMA_V4 = """
CREATE TABLE IF NOT EXISTS analysis_usage (
    user_id            TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    total_analyses     INTEGER NOT NULL DEFAULT 0,
    total_tokens       INTEGER NOT NULL DEFAULT 0,
    average_confidence REAL NOT NULL DEFAULT 0,
    last_analysis      TEXT
);
"""

# Applied in order on top of V1; each entry is (version, description, DDL).
_MIGRATIONS: tuple[tuple[int, str, str], ...] = (
    (2, "audit_log table", _SCHEMA_V2),
    (3, "meal_analyses table", _SCHEMA_V3),
    (4, "analysis_usage table", _SCHEMA_V4),
)


class DatabaseError(Exception):
    """Raised when the health store cannot be opened or written."""


class HealthDatabase:
    """Owns the single SQLite connection behind the health data bank.

    ``db_path`` may be a file (parent directories are created, ``~`` is
    expanded) or ``":memory:"``. The connection is shared across the
    server's worker threads, runs in WAL mode and enforces foreign keys
    so deleting a user or medication cascades to dependent rows.
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and bring the schema up to date. Safe to repeat."""
        if self._conn is not None:
            return
        self._conn = self._connect()
        self._migrate()
        logger.info("Health database ready at %s", self._db_path)

    def _connect(self) -> sqlite3.Connection:
        target = self._db_path
        if target != ":memory:":
            path = Path(target).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            target = str(path)
        conn = sqlite3.connect(target, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _migrate(self) -> None:
        conn = self.connection
        conn.executescript(_SCHEMA_V1)
        found = self.get_schema_version()
        for version, description, ddl in _MIGRATIONS:
            if found < version:
                conn.executescript(ddl)
                logger.info("Applied schema migration V%d: %s", version, description)
        if found < SCHEMA_VERSION:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            conn.commit()
            logger.info("Health schema upgraded from v%d to v%d", found, SCHEMA_VERSION)

    def get_schema_version(self) -> int:
        version = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
        return version or 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection; commit if the block completes, roll back if it raises.

        SQLite failures surface as :class:`DatabaseError`; any other
        exception propagates unchanged after the rollback.
        """
        conn = self.connection
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise DatabaseError(f"Transaction failed: {exc}") from exc
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        logger.info("Health database closed")

    def __enter__(self) -> HealthDatabase:
        self.initialize()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
