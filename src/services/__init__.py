"""
Services package for shared business logic.

This package contains the stores and service classes behind the API
endpoints.
"""

from .appointment_service import AppointmentService
from .availability_service import AvailabilityService
from .feedback_service import FeedbackService
from .notification_scheduler import NotificationScheduler

__all__ = [
    "AppointmentService",
    "AvailabilityService",
    "FeedbackService",
    "NotificationScheduler",
]
