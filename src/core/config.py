"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the application, and builds the explicit
SchedulingSettings object that is handed to the stores and services.
"""

import os
import pathlib
from datetime import time
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # .env at repository root
        pathlib.Path.cwd() / ".env",  # .env in current directory
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


# Configuration constants with defaults
# These match the environment variables defined in .env.example
def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/therapy_scheduler_dev"
    )

DATABASE_URL = get_database_url()
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Which AppointmentStore strategy to build: "sql" (live database) or "memory" (demo data)
APPOINTMENT_STORE_BACKEND = os.getenv("APPOINTMENT_STORE_BACKEND", "sql")

# IANA timezone the clinic operates in; slot times are local to it
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

# Comma-separated HH:MM list; empty means the default half-hour grid
SCHEDULING_SLOT_CATALOG = os.getenv("SCHEDULING_SLOT_CATALOG", "")
SCHEDULING_SLOT_MINUTES = int(os.getenv("SCHEDULING_SLOT_MINUTES", "30"))

# Notification offsets (hours)
REMINDER_HOURS_BEFORE = int(os.getenv("REMINDER_HOURS_BEFORE", "2"))
PRE_PROCEDURE_HOURS_AFTER_BOOKING = int(os.getenv("PRE_PROCEDURE_HOURS_AFTER_BOOKING", "24"))
POST_PROCEDURE_HOURS_AFTER_COMPLETION = int(os.getenv("POST_PROCEDURE_HOURS_AFTER_COMPLETION", "1"))
FEEDBACK_REQUEST_HOURS_AFTER_COMPLETION = int(os.getenv("FEEDBACK_REQUEST_HOURS_AFTER_COMPLETION", "2"))

# Authentication (tokens are issued by the external identity provider)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def _default_slot_catalog() -> List[time]:
    # 09:00-11:30 and 14:00-17:00 on a half-hour grid
    morning = [time(hour, minute) for hour in range(9, 12) for minute in (0, 30)]
    afternoon = [time(hour, minute) for hour in range(14, 17) for minute in (0, 30)]
    return morning + afternoon + [time(17, 0)]


def parse_slot_catalog(raw: str) -> List[time]:
    """
    Parse a comma-separated list of HH:MM strings into slot start times.

    Returns the default catalog when the string is empty.

    Raises:
        ValueError: If an entry is not a valid HH:MM time
    """
    if not raw or not raw.strip():
        return _default_slot_catalog()

    slots: List[time] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        hour, minute = map(int, entry.split(":"))
        slots.append(time(hour, minute))
    return sorted(set(slots))


class SchedulingSettings(BaseModel):
    """
    Explicit configuration for the scheduling core.

    Built once at startup (or directly in tests) and passed to the
    appointment store factory and the services that need it.
    """
    store_backend: Literal["sql", "memory"] = "sql"
    database_url: str = DATABASE_URL
    clinic_timezone: str = "UTC"
    slot_catalog: List[time] = Field(default_factory=_default_slot_catalog)
    slot_minutes: int = 30
    reminder_hours_before: int = 2
    pre_procedure_hours_after_booking: int = 24
    post_procedure_hours_after_completion: int = 1
    feedback_request_hours_after_completion: int = 2

    @field_validator("slot_minutes")
    @classmethod
    def _positive_slot_minutes(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("slot_minutes must be positive")
        return value

    @field_validator("clinic_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        from utils.datetime_utils import get_timezone
        get_timezone(value)
        return value

    @field_validator(
        "reminder_hours_before",
        "pre_procedure_hours_after_booking",
        "post_procedure_hours_after_completion",
        "feedback_request_hours_after_completion",
    )
    @classmethod
    def _non_negative_offset(cls, value: int) -> int:
        if value < 0:
            raise ValueError("notification offsets cannot be negative")
        return value

    @classmethod
    def from_env(cls) -> "SchedulingSettings":
        """Build settings from the environment variables above."""
        return cls(
            store_backend=APPOINTMENT_STORE_BACKEND,  # type: ignore[arg-type]
            database_url=DATABASE_URL,
            clinic_timezone=CLINIC_TIMEZONE,
            slot_catalog=parse_slot_catalog(SCHEDULING_SLOT_CATALOG),
            slot_minutes=SCHEDULING_SLOT_MINUTES,
            reminder_hours_before=REMINDER_HOURS_BEFORE,
            pre_procedure_hours_after_booking=PRE_PROCEDURE_HOURS_AFTER_BOOKING,
            post_procedure_hours_after_completion=POST_PROCEDURE_HOURS_AFTER_COMPLETION,
            feedback_request_hours_after_completion=FEEDBACK_REQUEST_HOURS_AFTER_COMPLETION,
        )
