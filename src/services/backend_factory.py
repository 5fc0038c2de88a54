"""
Backend factory wiring stores and services from SchedulingSettings.

The store strategy is chosen once here, from the explicit settings object,
and the appointment service is given the notification scheduler it hands
lifecycle events to.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from core.config import SchedulingSettings
from core.database import build_engine, build_session_factory, create_tables
from services.appointment_service import AppointmentService
from services.appointment_store import (
    AppointmentStore, InMemoryAppointmentStore, SqlAppointmentStore
)
from services.availability_service import AvailabilityService
from services.feedback_service import (
    FeedbackService, FeedbackStore, InMemoryFeedbackStore, SqlFeedbackStore
)
from services.notification_scheduler import NotificationScheduler
from services.notification_store import (
    InMemoryNotificationStore, NotificationStore, SqlNotificationStore
)
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class SchedulingBackend:
    """Everything the API needs, built for one settings object."""
    settings: SchedulingSettings
    appointment_store: AppointmentStore
    notification_store: NotificationStore
    feedback_store: FeedbackStore
    notifications: NotificationScheduler
    appointments: AppointmentService
    availability: AvailabilityService
    feedback: FeedbackService
    engine: Optional[Engine] = None

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()


def build_backend(
    settings: SchedulingSettings,
    clock: Callable[[], datetime] = utc_now,
    engine: Optional[Engine] = None,
) -> SchedulingBackend:
    """
    Build the stores and services for the configured backend.

    Args:
        settings: Explicit scheduling configuration
        clock: Source of "now" for all services
        engine: Existing engine to reuse for the SQL backend

    SQLite databases get their tables created on the spot; other databases
    are expected to be migrated with Alembic.
    """
    if settings.store_backend == "memory":
        appointment_store: AppointmentStore = InMemoryAppointmentStore()
        notification_store: NotificationStore = InMemoryNotificationStore()
        feedback_store: FeedbackStore = InMemoryFeedbackStore()
    else:
        if engine is None:
            engine = build_engine(settings.database_url)
        if engine.dialect.name == "sqlite":
            create_tables(engine)
        session_factory = build_session_factory(engine)
        appointment_store = SqlAppointmentStore(session_factory)
        notification_store = SqlNotificationStore(session_factory)
        feedback_store = SqlFeedbackStore(session_factory)

    notifications = NotificationScheduler(notification_store, settings, clock=clock)
    logger.info(f"Scheduling backend ready (store: {settings.store_backend})")
    return SchedulingBackend(
        settings=settings,
        appointment_store=appointment_store,
        notification_store=notification_store,
        feedback_store=feedback_store,
        notifications=notifications,
        appointments=AppointmentService(appointment_store, notifications, clock=clock),
        availability=AvailabilityService(appointment_store, settings),
        feedback=FeedbackService(feedback_store, appointment_store),
        engine=engine,
    )
