"""Health data repository: CRUD operations for the encrypted health store.

The repository mediates between record dataclasses (Medication, Meal, ...)
and the SQLite database, using FieldEncryptor for free-text columns.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from diabfit.core.storage.database import DatabaseError, HealthDatabase
from diabfit.core.storage.encryption import FieldEncryptor
from diabfit.core.storage.models import (
    Exercise,
    GlucoseReading,
    HealthMetric,
    Ingredient,
    Meal,
    Medication,
    MedicationDose,
    StoredMealAnalysis,
    User,
)

logger = logging.getLogger(__name__)

# Tables that hold per-user records, in delete order (children first).
_USER_TABLES = (
    "meal_analyses",
    "health_metrics",
    "exercises",
    "glucose_readings",
    "meals",
)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


def _ts(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _time_to_str(value: time) -> str:
    return value.strftime("%H:%M")


def _str_to_time(value: str) -> time:
    return time.fromisoformat(value)


class HealthRepository:
    """CRUD repository for the encrypted health store.

    Usage::

        db = HealthDatabase(":memory:")
        db.initialize()
        repo = HealthRepository(db, FieldEncryptor(key))

        user = repo.get_or_create_user("me@example.com", "Me")
        repo.save_glucose_reading(GlucoseReading(id="", user_id=user.id, ...))
    """

    def __init__(self, database: HealthDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @property
    def database(self) -> HealthDatabase:
        return self._db

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_or_create_user(self, email: str, name: str) -> User:
        """Return the user with ``email``, creating it on first use."""
        conn = self._db.connection
        row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        if row is not None:
            return self._row_to_user(row)

        user = User(id=self._new_id(), email=email, name=name, created_at=self._now_iso())
        conn.execute(
            "INSERT INTO users (id, email, name, date_of_birth, created_at) VALUES (?, ?, ?, ?, ?)",
            (user.id, user.email, user.name, None, user.created_at),
        )
        conn.commit()
        logger.info("Created local user profile %s", user.id)
        return user

    def get_user(self, user_id: str) -> User | None:
        row = self._db.connection.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        return self._row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Medications
    # ------------------------------------------------------------------

    def save_medication(self, medication: Medication) -> str:
        """Insert or update a medication.

        Returns:
            The medication ID (generated when ``medication.id`` is empty).
        """
        medication.id = medication.id or self._new_id()
        now = self._now_iso()
        medication.created_at = medication.created_at or now
        medication.updated_at = now

        try:
            self._db.connection.execute(
                """INSERT INTO medications (
                    id, user_id, name, dosage, frequency, medication_type,
                    prescribed_by, start_date, end_date,
                    instructions_enc, side_effects_enc,
                    is_active, reminder_enabled, reminder_times, color, shape,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    dosage = excluded.dosage,
                    frequency = excluded.frequency,
                    medication_type = excluded.medication_type,
                    prescribed_by = excluded.prescribed_by,
                    start_date = excluded.start_date,
                    end_date = excluded.end_date,
                    instructions_enc = excluded.instructions_enc,
                    side_effects_enc = excluded.side_effects_enc,
                    is_active = excluded.is_active,
                    reminder_enabled = excluded.reminder_enabled,
                    reminder_times = excluded.reminder_times,
                    color = excluded.color,
                    shape = excluded.shape,
                    updated_at = excluded.updated_at""",
                (
                    medication.id,
                    medication.user_id,
                    medication.name,
                    medication.dosage,
                    medication.frequency,
                    medication.medication_type,
                    medication.prescribed_by,
                    _ts(medication.start_date),
                    _ts(medication.end_date),
                    self._enc.encrypt(medication.instructions),
                    self._enc.encrypt(medication.side_effects),
                    int(medication.is_active),
                    int(medication.reminder_enabled),
                    json.dumps([_time_to_str(t) for t in medication.reminder_times]),
                    medication.color,
                    medication.shape,
                    medication.created_at,
                    medication.updated_at,
                ),
            )
            self._db.connection.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(f"Failed to save medication: {exc}") from exc

        logger.info("Saved medication %s (%s)", medication.id, medication.frequency)
        return medication.id

    def get_medication(self, medication_id: str) -> Medication | None:
        row = self._db.connection.execute(
            "SELECT * FROM medications WHERE id = ?", (medication_id,)
        ).fetchone()
        return self._row_to_medication(row) if row is not None else None

    def get_medications(self, user_id: str, *, active_only: bool = False) -> list[Medication]:
        """List a user's medications, alphabetically."""
        query = "SELECT * FROM medications WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY name COLLATE NOCASE"
        rows = self._db.connection.execute(query, (user_id,)).fetchall()
        return [self._row_to_medication(r) for r in rows]

    def delete_medication(self, medication_id: str) -> bool:
        """Delete a medication and (via cascade) all of its doses.

        Returns:
            True if a medication was deleted, False if not found.
        """
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM medications WHERE id = ?", (medication_id,))
        conn.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted medication %s", medication_id)
        return deleted

    # ------------------------------------------------------------------
    # Doses
    # ------------------------------------------------------------------

    def save_dose(self, dose: MedicationDose) -> str:
        """Insert or update a single dose."""
        self.save_doses([dose])
        return dose.id

    def save_doses(self, doses: list[MedicationDose]) -> int:
        """Insert or update doses in one transaction.

        Returns:
            Number of doses written.
        """
        if not doses:
            return 0
        try:
            with self._db.transaction() as conn:
                for dose in doses:
                    dose.id = dose.id or self._new_id()
                    conn.execute(
                        """INSERT INTO medication_doses (
                            id, medication_id, scheduled_time, actual_time, status,
                            notes_enc, side_effects_experienced_enc, skipped_reason_enc
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                            scheduled_time = excluded.scheduled_time,
                            actual_time = excluded.actual_time,
                            status = excluded.status,
                            notes_enc = excluded.notes_enc,
                            side_effects_experienced_enc = excluded.side_effects_experienced_enc,
                            skipped_reason_enc = excluded.skipped_reason_enc""",
                        (
                            dose.id,
                            dose.medication_id,
                            _ts(dose.scheduled_time),
                            _ts(dose.actual_time),
                            dose.status,
                            self._enc.encrypt(dose.notes),
                            self._enc.encrypt(dose.side_effects_experienced),
                            self._enc.encrypt(dose.skipped_reason),
                        ),
                    )
        except DatabaseError as exc:
            raise RepositoryError(f"Failed to save doses: {exc}") from exc
        return len(doses)

    def get_dose(self, dose_id: str) -> MedicationDose | None:
        row = self._db.connection.execute(
            "SELECT * FROM medication_doses WHERE id = ?", (dose_id,)
        ).fetchone()
        return self._row_to_dose(row) if row is not None else None

    def get_doses(
        self,
        *,
        medication_id: str | None = None,
        user_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[MedicationDose]:
        """Query doses with optional filters, oldest first.

        Args:
            medication_id: Only doses of this medication.
            user_id: Only doses of this user's medications.
            since: Scheduled time lower bound (inclusive).
            until: Scheduled time upper bound (inclusive).
            status: 'Pending', 'Taken' or 'Skipped'.
            limit: Maximum results to return.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if medication_id:
            conditions.append("d.medication_id = ?")
            params.append(medication_id)
        if user_id:
            conditions.append("m.user_id = ?")
            params.append(user_id)
        if since is not None:
            conditions.append("d.scheduled_time >= ?")
            params.append(_ts(since))
        if until is not None:
            conditions.append("d.scheduled_time <= ?")
            params.append(_ts(until))
        if status:
            conditions.append("d.status = ?")
            params.append(status)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = (
            "SELECT d.* FROM medication_doses d "
            "JOIN medications m ON m.id = d.medication_id"
            f"{where} ORDER BY d.scheduled_time ASC"
        )
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_dose(r) for r in rows]

    def delete_pending_doses(self, medication_id: str, *, after: datetime) -> int:
        """Remove not-yet-taken doses scheduled after ``after``.

        Used when a medication's schedule changes so that regenerated doses
        do not pile up on top of stale ones.
        """
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM medication_doses WHERE medication_id = ? AND status = 'Pending' "
            "AND scheduled_time > ?",
            (medication_id, _ts(after)),
        )
        conn.commit()
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Meals
    # ------------------------------------------------------------------

    def save_meal(self, meal: Meal) -> str:
        meal.id = meal.id or self._new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT OR REPLACE INTO meals (
                id, user_id, name, meal_type, timestamp, ingredients_enc,
                carbs, protein, fat, fiber, calories, sugar, sodium,
                glucose_impact, notes_enc, photo_analysis_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                meal.id,
                meal.user_id,
                meal.name,
                meal.meal_type,
                _ts(meal.timestamp),
                self._enc.encrypt([i.to_dict() for i in meal.ingredients]),
                meal.carbs,
                meal.protein,
                meal.fat,
                meal.fiber,
                meal.calories,
                meal.sugar,
                meal.sodium,
                meal.glucose_impact,
                self._enc.encrypt(meal.notes),
                meal.photo_analysis_id,
            ),
        )
        conn.commit()
        logger.info("Saved meal %s (%s, %.0fg carbs)", meal.id, meal.meal_type, meal.carbs)
        return meal.id

    def get_meal(self, meal_id: str) -> Meal | None:
        row = self._db.connection.execute(
            "SELECT * FROM meals WHERE id = ?", (meal_id,)
        ).fetchone()
        return self._row_to_meal(row) if row is not None else None

    def get_meals(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 100,
    ) -> list[Meal]:
        """Query a user's meals, newest first."""
        rows = self._query_user_records("meals", user_id, since, until, limit)
        return [self._row_to_meal(r) for r in rows]

    # ------------------------------------------------------------------
    # Glucose readings
    # ------------------------------------------------------------------

    def save_glucose_reading(self, reading: GlucoseReading) -> str:
        reading.id = reading.id or self._new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT OR REPLACE INTO glucose_readings
               (id, user_id, level, timestamp, notes_enc, source)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                reading.id,
                reading.user_id,
                reading.level,
                _ts(reading.timestamp),
                self._enc.encrypt(reading.notes),
                reading.source,
            ),
        )
        conn.commit()
        return reading.id

    def get_glucose_readings(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 500,
    ) -> list[GlucoseReading]:
        """Query a user's glucose readings, newest first."""
        rows = self._query_user_records("glucose_readings", user_id, since, until, limit)
        return [self._row_to_glucose(r) for r in rows]

    def glucose_reading_exists(self, user_id: str, timestamp: datetime) -> bool:
        return self._exists("glucose_readings", user_id, timestamp)

    # ------------------------------------------------------------------
    # Exercises
    # ------------------------------------------------------------------

    def save_exercise(self, exercise: Exercise) -> str:
        exercise.id = exercise.id or self._new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT OR REPLACE INTO exercises
               (id, user_id, exercise_type, duration_minutes, intensity,
                calories_burned, timestamp, notes_enc, source)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                exercise.id,
                exercise.user_id,
                exercise.exercise_type,
                exercise.duration_minutes,
                exercise.intensity,
                exercise.calories_burned,
                _ts(exercise.timestamp),
                self._enc.encrypt(exercise.notes),
                exercise.source,
            ),
        )
        conn.commit()
        return exercise.id

    def get_exercises(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 200,
    ) -> list[Exercise]:
        """Query a user's workouts, newest first."""
        rows = self._query_user_records("exercises", user_id, since, until, limit)
        return [self._row_to_exercise(r) for r in rows]

    def exercise_exists(self, user_id: str, timestamp: datetime) -> bool:
        return self._exists("exercises", user_id, timestamp)

    # ------------------------------------------------------------------
    # Health metrics
    # ------------------------------------------------------------------

    def save_health_metric(self, metric: HealthMetric) -> str:
        metric.id = metric.id or self._new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT OR REPLACE INTO health_metrics
               (id, user_id, metric_type, value, unit, timestamp, notes_enc, source)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                metric.id,
                metric.user_id,
                metric.metric_type,
                metric.value,
                metric.unit,
                _ts(metric.timestamp),
                self._enc.encrypt(metric.notes),
                metric.source,
            ),
        )
        conn.commit()
        return metric.id

    def get_health_metrics(
        self,
        user_id: str,
        *,
        metric_type: str | None = None,
        since: datetime | None = None,
        limit: int = 200,
    ) -> list[HealthMetric]:
        """Query a user's health metrics, newest first."""
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if metric_type:
            conditions.append("metric_type = ?")
            params.append(metric_type)
        if since is not None:
            conditions.append("timestamp >= ?")
            params.append(_ts(since))
        params.append(limit)

        rows = self._db.connection.execute(
            f"SELECT * FROM health_metrics WHERE {' AND '.join(conditions)} "
            "ORDER BY timestamp DESC LIMIT ?",
            params,
        ).fetchall()
        return [self._row_to_metric(r) for r in rows]

    def health_metric_exists(self, user_id: str, metric_type: str, timestamp: datetime) -> bool:
        row = self._db.connection.execute(
            "SELECT 1 FROM health_metrics WHERE user_id = ? AND metric_type = ? AND timestamp = ?",
            (user_id, metric_type, _ts(timestamp)),
        ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Meal analyses (vision cache)
    # ------------------------------------------------------------------

    def save_meal_analysis(self, analysis: StoredMealAnalysis) -> str:
        analysis.id = analysis.id or self._new_id()
        conn = self._db.connection
        conn.execute(
            """INSERT OR REPLACE INTO meal_analyses
               (id, user_id, image_hash, timestamp, model, confidence, total_tokens, payload_enc)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                analysis.id,
                analysis.user_id,
                analysis.image_hash,
                _ts(analysis.timestamp),
                analysis.model,
                analysis.confidence,
                analysis.total_tokens,
                self._enc.encrypt(analysis.payload),
            ),
        )
        conn.commit()
        logger.info("Cached meal analysis %s (model=%s)", analysis.id, analysis.model)
        return analysis.id

    def get_meal_analysis_by_hash(
        self, user_id: str, image_hash: str, *, since: datetime | None = None
    ) -> StoredMealAnalysis | None:
        """Return the newest cached analysis for an image hash."""
        query = "SELECT * FROM meal_analyses WHERE user_id = ? AND image_hash = ?"
        params: list[Any] = [user_id, image_hash]
        if since is not None:
            query += " AND timestamp >= ?"
            params.append(_ts(since))
        query += " ORDER BY timestamp DESC LIMIT 1"
        row = self._db.connection.execute(query, params).fetchone()
        return self._row_to_analysis(row) if row is not None else None

    def get_meal_analyses(self, user_id: str, *, limit: int = 50) -> list[StoredMealAnalysis]:
        """List cached analyses, newest first."""
        rows = self._db.connection.execute(
            "SELECT * FROM meal_analyses WHERE user_id = ? ORDER BY timestamp DESC LIMIT ?",
            (user_id, limit),
        ).fetchall()
        return [self._row_to_analysis(r) for r in rows]

    def record_analysis_usage(
        self, user_id: str, *, total_tokens: int, confidence: float, at: datetime
    ) -> None:
        """Count one fresh (non-cached) analysis in the lifetime usage totals.

        The average confidence is a running mean, so evicting cached
        analyses never changes the totals.
        """
        conn = self._db.connection
        conn.execute(
            """INSERT INTO analysis_usage
                   (user_id, total_analyses, total_tokens, average_confidence, last_analysis)
               VALUES (?, 1, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   average_confidence = (average_confidence * total_analyses
                                         + excluded.average_confidence) / (total_analyses + 1),
                   total_analyses = total_analyses + 1,
                   total_tokens = total_tokens + excluded.total_tokens,
                   last_analysis = excluded.last_analysis""",
            (user_id, total_tokens, confidence, _ts(at)),
        )
        conn.commit()

    def analysis_usage(self, user_id: str) -> dict[str, Any]:
        """Lifetime photo analysis totals for a user."""
        row = self._db.connection.execute(
            "SELECT * FROM analysis_usage WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return {
                "total_analyses": 0,
                "total_tokens": 0,
                "average_confidence": 0.0,
                "last_analysis": None,
            }
        return {
            "total_analyses": row["total_analyses"],
            "total_tokens": row["total_tokens"],
            "average_confidence": row["average_confidence"],
            "last_analysis": row["last_analysis"],
        }

    def trim_meal_analyses(self, *, older_than: datetime, max_entries: int) -> int:
        """Evict expired analyses, then the oldest ones beyond ``max_entries``.

        When the table is over ``max_entries`` it is trimmed down to 75% of
        the limit so that eviction does not run on every insert.

        Returns:
            Number of analyses removed.
        """
        conn = self._db.connection
        removed = conn.execute(
            "DELETE FROM meal_analyses WHERE timestamp < ?", (_ts(older_than),)
        ).rowcount

        total = conn.execute("SELECT COUNT(*) FROM meal_analyses").fetchone()[0]
        if total > max_entries:
            keep = int(max_entries * 0.75)
            removed += conn.execute(
                """DELETE FROM meal_analyses WHERE id NOT IN (
                       SELECT id FROM meal_analyses ORDER BY timestamp DESC LIMIT ?
                   )""",
                (keep,),
            ).rowcount
        conn.commit()
        if removed:
            logger.info("Trimmed %d cached meal analyses", removed)
        return removed

    # ------------------------------------------------------------------
    # Deletion / retention
    # ------------------------------------------------------------------

    def delete_record(self, table: str, record_id: str) -> bool:
        """Delete a single record from one of the user tables.

        Raises:
            RepositoryError: If ``table`` is not a user record table.
        """
        if table not in _USER_TABLES and table != "medications":
            raise RepositoryError(f"Unknown record table: {table!r}")
        conn = self._db.connection
        cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
        conn.commit()
        return cursor.rowcount > 0

    def purge_before(self, user_id: str, cutoff: datetime) -> dict[str, int]:
        """Delete timestamped records (and taken/skipped doses) older than ``cutoff``.

        Medications themselves are kept; only their historical doses go.

        Returns:
            Rows deleted per table.
        """
        counts: dict[str, int] = {}
        with self._db.transaction() as conn:
            for table in _USER_TABLES:
                counts[table] = conn.execute(
                    f"DELETE FROM {table} WHERE user_id = ? AND timestamp < ?",
                    (user_id, _ts(cutoff)),
                ).rowcount
            counts["medication_doses"] = conn.execute(
                """DELETE FROM medication_doses WHERE scheduled_time < ?
                   AND medication_id IN (SELECT id FROM medications WHERE user_id = ?)""",
                (_ts(cutoff), user_id),
            ).rowcount
        logger.info("Purged records before %s: %s", cutoff.isoformat(), counts)
        return counts

    def purge_before_days(self, user_id: str, days: int, *, now: datetime | None = None) -> dict[str, int]:
        """Delete records older than ``days`` days."""
        if days < 0:
            raise RepositoryError("days must be non-negative")
        cutoff = (now or datetime.now()) - timedelta(days=days)
        return self.purge_before(user_id, cutoff)

    def delete_all_data(self, user_id: str) -> dict[str, int]:
        """Delete every record belonging to a user (the user row is kept)."""
        counts: dict[str, int] = {}
        with self._db.transaction() as conn:
            counts["medication_doses"] = conn.execute(
                "DELETE FROM medication_doses WHERE medication_id IN "
                "(SELECT id FROM medications WHERE user_id = ?)",
                (user_id,),
            ).rowcount
            counts["medications"] = conn.execute(
                "DELETE FROM medications WHERE user_id = ?", (user_id,)
            ).rowcount
            for table in _USER_TABLES:
                counts[table] = conn.execute(
                    f"DELETE FROM {table} WHERE user_id = ?", (user_id,)
                ).rowcount
            conn.execute("DELETE FROM analysis_usage WHERE user_id = ?", (user_id,))
        logger.warning("Deleted all health data for user %s: %s", user_id, counts)
        return counts

    def count_records(self, user_id: str) -> dict[str, int]:
        """Row counts per record type for a user."""
        conn = self._db.connection
        counts = {
            table: conn.execute(
                f"SELECT COUNT(*) FROM {table} WHERE user_id = ?", (user_id,)
            ).fetchone()[0]
            for table in ("medications", *_USER_TABLES)
        }
        counts["medication_doses"] = conn.execute(
            "SELECT COUNT(*) FROM medication_doses WHERE medication_id IN "
            "(SELECT id FROM medications WHERE user_id = ?)",
            (user_id,),
        ).fetchone()[0]
        return counts

    def export_user_data(self, user_id: str) -> dict[str, Any]:
        """Decrypted, JSON-serializable dump of everything stored for a user.

        Raises:
            RepositoryError: If the user does not exist.
        """
        user = self.get_user(user_id)
        if user is None:
            raise RepositoryError(f"Unknown user: {user_id}")

        medications = self.get_medications(user_id)
        return {
            "user": {"id": user.id, "email": user.email, "name": user.name},
            "exported_at": self._now_iso(),
            "medications": [medication_to_dict(m) for m in medications],
            "doses": [dose_to_dict(d) for d in self.get_doses(user_id=user_id)],
            "meals": [meal_to_dict(m) for m in self.get_meals(user_id, limit=100_000)],
            "glucose_readings": [
                {"level": r.level, "timestamp": _ts(r.timestamp), "notes": r.notes, "source": r.source}
                for r in self.get_glucose_readings(user_id, limit=100_000)
            ],
            "exercises": [
                {
                    "exercise_type": e.exercise_type,
                    "duration_minutes": e.duration_minutes,
                    "intensity": e.intensity,
                    "calories_burned": e.calories_burned,
                    "timestamp": _ts(e.timestamp),
                    "source": e.source,
                }
                for e in self.get_exercises(user_id, limit=100_000)
            ],
            "health_metrics": [
                {
                    "metric_type": m.metric_type,
                    "value": m.value,
                    "unit": m.unit,
                    "timestamp": _ts(m.timestamp),
                    "source": m.source,
                }
                for m in self.get_health_metrics(user_id, limit=100_000)
            ],
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _query_user_records(
        self,
        table: str,
        user_id: str,
        since: datetime | None,
        until: datetime | None,
        limit: int,
    ) -> list[sqlite3.Row]:
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if since is not None:
            conditions.append("timestamp >= ?")
            params.append(_ts(since))
        if until is not None:
            conditions.append("timestamp <= ?")
            params.append(_ts(until))
        params.append(limit)
        return self._db.connection.execute(
            f"SELECT * FROM {table} WHERE {' AND '.join(conditions)} "
            "ORDER BY timestamp DESC LIMIT ?",
            params,
        ).fetchall()

    def _exists(self, table: str, user_id: str, timestamp: datetime) -> bool:
        row = self._db.connection.execute(
            f"SELECT 1 FROM {table} WHERE user_id = ? AND timestamp = ?",
            (user_id, _ts(timestamp)),
        ).fetchone()
        return row is not None

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        dob = row["date_of_birth"]
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            date_of_birth=date.fromisoformat(dob) if dob else None,
            created_at=row["created_at"],
        )

    def _row_to_medication(self, row: sqlite3.Row) -> Medication:
        return Medication(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            dosage=row["dosage"],
            frequency=row["frequency"],
            medication_type=row["medication_type"],
            prescribed_by=row["prescribed_by"],
            start_date=_parse_ts(row["start_date"]),
            end_date=_parse_ts(row["end_date"]),
            instructions=self._enc.decrypt(row["instructions_enc"]),
            side_effects=self._enc.decrypt(row["side_effects_enc"], default=[]),
            is_active=bool(row["is_active"]),
            reminder_enabled=bool(row["reminder_enabled"]),
            reminder_times=[_str_to_time(t) for t in json.loads(row["reminder_times"] or "[]")],
            color=row["color"],
            shape=row["shape"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_dose(self, row: sqlite3.Row) -> MedicationDose:
        return MedicationDose(
            id=row["id"],
            medication_id=row["medication_id"],
            scheduled_time=_parse_ts(row["scheduled_time"]),
            actual_time=_parse_ts(row["actual_time"]),
            status=row["status"],
            notes=self._enc.decrypt(row["notes_enc"]),
            side_effects_experienced=self._enc.decrypt(
                row["side_effects_experienced_enc"], default=[]
            ),
            skipped_reason=self._enc.decrypt(row["skipped_reason_enc"]),
        )

    def _row_to_meal(self, row: sqlite3.Row) -> Meal:
        ingredients = self._enc.decrypt(row["ingredients_enc"], default=[])
        return Meal(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            meal_type=row["meal_type"],
            timestamp=_parse_ts(row["timestamp"]),
            ingredients=[Ingredient.from_dict(i) for i in ingredients],
            carbs=row["carbs"],
            protein=row["protein"],
            fat=row["fat"],
            fiber=row["fiber"],
            calories=row["calories"],
            sugar=row["sugar"],
            sodium=row["sodium"],
            glucose_impact=row["glucose_impact"],
            notes=self._enc.decrypt(row["notes_enc"]),
            photo_analysis_id=row["photo_analysis_id"],
        )

    def _row_to_glucose(self, row: sqlite3.Row) -> GlucoseReading:
        return GlucoseReading(
            id=row["id"],
            user_id=row["user_id"],
            level=row["level"],
            timestamp=_parse_ts(row["timestamp"]),
            notes=self._enc.decrypt(row["notes_enc"]),
            source=row["source"],
        )

    def _row_to_exercise(self, row: sqlite3.Row) -> Exercise:
        return Exercise(
            id=row["id"],
            user_id=row["user_id"],
            exercise_type=row["exercise_type"],
            duration_minutes=row["duration_minutes"],
            intensity=row["intensity"],
            timestamp=_parse_ts(row["timestamp"]),
            calories_burned=row["calories_burned"],
            notes=self._enc.decrypt(row["notes_enc"]),
            source=row["source"],
        )

    def _row_to_metric(self, row: sqlite3.Row) -> HealthMetric:
        return HealthMetric(
            id=row["id"],
            user_id=row["user_id"],
            metric_type=row["metric_type"],
            value=row["value"],
            timestamp=_parse_ts(row["timestamp"]),
            unit=row["unit"],
            notes=self._enc.decrypt(row["notes_enc"]),
            source=row["source"],
        )

    def _row_to_analysis(self, row: sqlite3.Row) -> StoredMealAnalysis:
        return StoredMealAnalysis(
            id=row["id"],
            user_id=row["user_id"],
            image_hash=row["image_hash"],
            timestamp=_parse_ts(row["timestamp"]),
            payload=self._enc.decrypt(row["payload_enc"], default={}),
            model=row["model"],
            confidence=row["confidence"],
            total_tokens=row["total_tokens"],
        )


# ---------------------------------------------------------------------------
# Export helpers
# ---------------------------------------------------------------------------

def medication_to_dict(m: Medication) -> dict[str, Any]:
    return {
        "id": m.id,
        "name": m.name,
        "dosage": m.dosage,
        "frequency": m.frequency,
        "medication_type": m.medication_type,
        "prescribed_by": m.prescribed_by,
        "start_date": _ts(m.start_date),
        "end_date": _ts(m.end_date),
        "instructions": m.instructions,
        "side_effects": m.side_effects,
        "is_active": m.is_active,
        "reminder_enabled": m.reminder_enabled,
        "reminder_times": [_time_to_str(t) for t in m.reminder_times],
        "color": m.color,
        "shape": m.shape,
    }


def dose_to_dict(d: MedicationDose) -> dict[str, Any]:
    return {
        "id": d.id,
        "medication_id": d.medication_id,
        "scheduled_time": _ts(d.scheduled_time),
        "actual_time": _ts(d.actual_time),
        "status": d.status,
        "notes": d.notes,
        "side_effects_experienced": d.side_effects_experienced,
        "skipped_reason": d.skipped_reason,
    }


def meal_to_dict(m: Meal) -> dict[str, Any]:
    return {
        "id": m.id,
        "name": m.name,
        "meal_type": m.meal_type,
        "timestamp": _ts(m.timestamp),
        "ingredients": [i.to_dict() for i in m.ingredients],
        "carbs": m.carbs,
        "protein": m.protein,
        "fat": m.fat,
        "fiber": m.fiber,
        "calories": m.calories,
        "sugar": m.sugar,
        "sodium": m.sodium,
        "glucose_impact": m.glucose_impact,
        "notes": m.notes,
    }
