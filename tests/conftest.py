"""
Test configuration and shared fixtures for the therapy scheduling test suite.

Every store-level test runs against both AppointmentStore strategies: an
in-memory SQLite database (shared single connection) and the process-local
fake. Time is pinned with a fixed clock so notification offsets are exact.
"""

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from core.config import SchedulingSettings
from core.database import build_engine, build_session_factory, create_tables, drop_tables
from main import create_app
from services.appointment_store import (
    AppointmentStore, InMemoryAppointmentStore, SqlAppointmentStore
)
from services.backend_factory import SchedulingBackend, build_backend
from services.jwt_service import JWTService, TokenPayload
from shared_types.scheduling import Actor, BookingRequest, UserRole


# Fixed "now" for every test: Wednesday 10 Jan 2024, 09:00 UTC
NOW = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)

# Monday 15 Jan 2024, 10:00 UTC
APPOINTMENT_START = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

PATIENT_ID = "patient-1"
PRACTITIONER_ID = "practitioner-1"
ADMIN_ID = "admin-1"


class FixedClock:
    """Callable clock returning a settable instant."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_booking(
    start: datetime = APPOINTMENT_START,
    duration_minutes: int = 60,
    patient_id: str = PATIENT_ID,
    practitioner_id: str = PRACTITIONER_ID,
    therapy: str = "Abhyanga",
    notes: str | None = None,
) -> BookingRequest:
    """Build a valid booking request, overriding only what a test cares about."""
    return BookingRequest(
        patient_id=patient_id,
        practitioner_id=practitioner_id,
        therapy=therapy,
        start_time=start,
        duration_minutes=duration_minutes,
        notes=notes,
    )


def create_jwt_token(user_id: str, role: UserRole | str, expires_in: timedelta | None = None) -> str:
    """Create a signed access token the way the identity provider would."""
    role_value = role.value if isinstance(role, UserRole) else role
    return JWTService.create_access_token(TokenPayload(sub=user_id, role=role_value), expires_in=expires_in)


def auth_headers(user_id: str, role: UserRole | str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt_token(user_id, role)}"}


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings() -> SchedulingSettings:
    """Default settings on the in-memory store, clinic in UTC."""
    return SchedulingSettings(store_backend="memory", database_url="sqlite://")


@pytest.fixture
def db_engine() -> Generator[Engine, None, None]:
    """Fresh in-memory SQLite database with all tables."""
    engine = build_engine("sqlite://")
    create_tables(engine)

    yield engine

    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(db_engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(params=["sql", "memory"])
def appointment_store(request, session_factory: sessionmaker[Session]) -> AppointmentStore:
    """Each test using this fixture runs once per store strategy."""
    if request.param == "sql":
        return SqlAppointmentStore(session_factory)
    return InMemoryAppointmentStore()


@pytest.fixture(params=["sql", "memory"])
def backend(request, clock: FixedClock) -> Generator[SchedulingBackend, None, None]:
    """Fully wired backend (stores, scheduler, services) per strategy."""
    settings = SchedulingSettings(store_backend=request.param, database_url="sqlite://")
    built = build_backend(settings, clock=clock)

    yield built

    built.close()


@pytest.fixture
def memory_backend(clock: FixedClock) -> Generator[SchedulingBackend, None, None]:
    settings = SchedulingSettings(store_backend="memory", database_url="sqlite://")
    built = build_backend(settings, clock=clock)

    yield built

    built.close()


@pytest.fixture
def client(memory_backend: SchedulingBackend) -> Generator[TestClient, None, None]:
    """API client bound to a memory backend with a fixed clock."""
    app = create_app(backend=memory_backend)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def patient() -> Actor:
    return Actor(user_id=PATIENT_ID, role=UserRole.PATIENT)


@pytest.fixture
def practitioner() -> Actor:
    return Actor(user_id=PRACTITIONER_ID, role=UserRole.PRACTITIONER)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=ADMIN_ID, role=UserRole.ADMIN)


@pytest.fixture
def patient_headers() -> dict[str, str]:
    return auth_headers(PATIENT_ID, UserRole.PATIENT)


@pytest.fixture
def practitioner_headers() -> dict[str, str]:
    return auth_headers(PRACTITIONER_ID, UserRole.PRACTITIONER)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth_headers(ADMIN_ID, UserRole.ADMIN)
