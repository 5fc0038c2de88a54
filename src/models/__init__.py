# Package initialization
# Import all models to ensure they are registered on Base.metadata
from .appointment import Appointment
from .notification_task import NotificationTask
from .feedback import Feedback

__all__ = [
    "Appointment",
    "NotificationTask",
    "Feedback",
]
