"""
Request-scoped dependencies shared by the API routers.

The scheduling backend is built once in the application lifespan and kept on
`app.state`; routers reach its services through these helpers.
"""

from fastapi import Depends, Request

from services.appointment_service import AppointmentService
from services.availability_service import AvailabilityService
from services.backend_factory import SchedulingBackend
from services.feedback_service import FeedbackService
from services.notification_scheduler import NotificationScheduler


def get_backend(request: Request) -> SchedulingBackend:
    """Return the backend the application was started with."""
    return request.app.state.backend


def get_appointment_service(backend: SchedulingBackend = Depends(get_backend)) -> AppointmentService:
    return backend.appointments


def get_availability_service(backend: SchedulingBackend = Depends(get_backend)) -> AvailabilityService:
    return backend.availability


def get_notification_scheduler(backend: SchedulingBackend = Depends(get_backend)) -> NotificationScheduler:
    return backend.notifications


def get_feedback_service(backend: SchedulingBackend = Depends(get_backend)) -> FeedbackService:
    return backend.feedback
