"""Tests for HealthDatabase: connection lifecycle, schema migrations, transactions."""

from __future__ import annotations

import pytest

from diabfit.core.storage.database import SCHEMA_VERSION, DatabaseError, HealthDatabase

ADD_USER = "INSERT INTO users (id, email, name) VALUES (?, ?, ?)"


def _names(db: HealthDatabase, kind: str) -> set[str]:
    rows = db.connection.execute("SELECT name FROM sqlite_master WHERE type = ?", (kind,))
    return {row[0] for row in rows}


def _user_count(db: HealthDatabase) -> int:
    return db.connection.execute("SELECT COUNT(*) FROM users").fetchone()[0]


class TestLifecycle:
    def test_connection_requires_initialize(self):
        with pytest.raises(DatabaseError, match="not initialized"):
            HealthDatabase().connection

    def test_initialize_twice_keeps_connection(self):
        db = HealthDatabase()
        db.initialize()
        first = db.connection
        db.initialize()
        assert db.connection is first
        db.close()

    def test_context_manager_closes(self):
        with HealthDatabase() as db:
            assert _user_count(db) == 0
        with pytest.raises(DatabaseError):
            db.connection

    def test_close_is_repeatable(self):
        db = HealthDatabase()
        db.initialize()
        db.close()
        db.close()


class TestSchema:
    def test_current_version(self):
        with HealthDatabase() as db:
            assert db.get_schema_version() == SCHEMA_VERSION

    def test_tables(self):
        with HealthDatabase() as db:
            assert {
                "users",
                "medications",
                "medication_doses",
                "meals",
                "glucose_readings",
                "exercises",
                "health_metrics",
                "meal_analyses",
                "analysis_usage",
                "audit_log",
                "schema_version",
            } <= _names(db, "table")

    def test_indexes(self):
        with HealthDatabase() as db:
            assert {
                "idx_doses_medication",
                "idx_doses_scheduled",
                "idx_meals_user_ts",
                "idx_glucose_user_ts",
                "idx_exercises_user_ts",
                "idx_metrics_type_ts",
                "idx_analyses_hash",
                "idx_audit_timestamp",
                "idx_audit_action",
                "idx_audit_tool",
            } <= _names(db, "index")

    def test_deleting_user_cascades_to_doses(self):
        with HealthDatabase() as db:
            conn = db.connection
            conn.execute(ADD_USER, ("u1", "me@localhost", "Me"))
            conn.execute(
                """INSERT INTO medications (id, user_id, name, dosage, frequency,
                       medication_type, start_date, created_at, updated_at)
                   VALUES ('m1', 'u1', 'Metformin', '500 mg', 'Once Daily',
                       'Metformin', '2026-01-01', '2026-01-01', '2026-01-01')"""
            )
            conn.execute(
                "INSERT INTO medication_doses (id, medication_id, scheduled_time) "
                "VALUES ('d1', 'm1', '2026-01-01T08:00:00')"
            )
            conn.execute("DELETE FROM users WHERE id = 'u1'")
            assert conn.execute("SELECT COUNT(*) FROM medication_doses").fetchone()[0] == 0


class TestMigrations:
    def test_reopening_does_not_add_version_rows(self, tmp_path):
        path = str(tmp_path / "health.db")
        with HealthDatabase(path):
            pass
        with HealthDatabase(path) as db:
            assert db.connection.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0] == 1

    def test_upgrades_v1_database(self, tmp_path):
        path = str(tmp_path / "health.db")
        with HealthDatabase(path) as db:
            db.connection.executescript(
                "DROP TABLE audit_log; DROP TABLE meal_analyses; DROP TABLE analysis_usage; "
                "DELETE FROM schema_version; INSERT INTO schema_version (version) VALUES (1);"
            )
        with HealthDatabase(path) as db:
            assert db.get_schema_version() == SCHEMA_VERSION
            assert {"audit_log", "meal_analyses", "analysis_usage"} <= _names(db, "table")

    def test_parent_directories_created(self, tmp_path):
        path = tmp_path / "a" / "b" / "health.db"
        with HealthDatabase(str(path)) as db:
            assert db.get_schema_version() == SCHEMA_VERSION
        assert path.exists()


class TestTransaction:
    def test_commit(self):
        with HealthDatabase() as db:
            with db.transaction() as conn:
                conn.execute(ADD_USER, ("u1", "me@localhost", "Me"))
            assert _user_count(db) == 1

    def test_sqlite_error_wrapped_and_rolled_back(self):
        with HealthDatabase() as db:
            with pytest.raises(DatabaseError, match="Transaction failed"):
                with db.transaction() as conn:
                    conn.execute(ADD_USER, ("u1", "me@localhost", "Me"))
                    conn.execute(ADD_USER, ("u2", "me@localhost", "Duplicate email"))
            assert _user_count(db) == 0

    def test_other_errors_propagate_after_rollback(self):
        with HealthDatabase() as db:
            with pytest.raises(ValueError):
                with db.transaction() as conn:
                    conn.execute(ADD_USER, ("u1", "me@localhost", "Me"))
                    raise ValueError("bad dose")
            assert _user_count(db) == 0
