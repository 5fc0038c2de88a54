"""
Tests for the Alembic migration chain.

Runs the migrations against an in-memory SQLite database and checks that
the resulting schema matches the models, including the partial unique
index guarding double bookings.
"""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from core.database import build_engine


BACKEND_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture
def migrated_engine():
    engine = build_engine("sqlite://")
    # No config file: keeps alembic from reconfiguring test logging
    config = Config()
    config.set_main_option("script_location", str(BACKEND_ROOT / "alembic"))

    with engine.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, "head")

    yield engine, config

    engine.dispose()


class TestMigrations:
    """Test the baseline schema migration."""

    def test_upgrade_creates_tables(self, migrated_engine):
        engine, _ = migrated_engine
        tables = set(inspect(engine).get_table_names())

        assert {"appointments", "notification_tasks", "feedback", "alembic_version"} <= tables

    def test_partial_unique_index(self, migrated_engine):
        engine, _ = migrated_engine
        start = "2024-01-15 10:00:00.000000"
        end = "2024-01-15 11:00:00.000000"
        now = "2024-01-10 09:00:00.000000"
        insert = text(
            "INSERT INTO appointments (patient_id, practitioner_id, therapy, start_time, end_time, "
            "duration_minutes, status, follow_up_required, created_at, updated_at) "
            "VALUES (:patient, 'practitioner-1', 'Abhyanga', :start, :end, 60, :status, 0, :now, :now)"
        )
        params = {"start": start, "end": end, "now": now}

        with engine.begin() as connection:
            connection.execute(insert, {**params, "patient": "patient-1", "status": "cancelled"})
            connection.execute(insert, {**params, "patient": "patient-2", "status": "scheduled"})

        with pytest.raises(IntegrityError):
            with engine.begin() as connection:
                connection.execute(insert, {**params, "patient": "patient-3", "status": "confirmed"})

    def test_downgrade_removes_tables(self, migrated_engine):
        engine, config = migrated_engine

        with engine.begin() as connection:
            config.attributes["connection"] = connection
            command.downgrade(config, "base")

        tables = set(inspect(engine).get_table_names())
        assert "appointments" not in tables
        assert "notification_tasks" not in tables
        assert "feedback" not in tables
