"""
Shared type definitions for the therapy scheduling backend.

This module contains dataclasses, enums and types that are used across
multiple services.
"""

from shared_types.availability import SlotData
from shared_types.scheduling import (
    ALLOWED_TRANSITIONS,
    Actor,
    UPCOMING_STATUSES,
    AppointmentChange,
    AppointmentFilters,
    AppointmentRecord,
    AppointmentStatus,
    BookingRequest,
    FeedbackRecord,
    FeedbackSubmission,
    FeedbackUpdate,
    LifecycleEvent,
    LifecycleEventType,
    NotificationCategory,
    NotificationChannel,
    NotificationDraft,
    NotificationKind,
    NotificationRecord,
    NotificationStatus,
    UserRole,
    is_legal_transition,
)

__all__ = [
    "SlotData",
    "ALLOWED_TRANSITIONS",
    "Actor",
    "UPCOMING_STATUSES",
    "AppointmentChange",
    "AppointmentFilters",
    "AppointmentRecord",
    "AppointmentStatus",
    "BookingRequest",
    "FeedbackRecord",
    "FeedbackSubmission",
    "FeedbackUpdate",
    "LifecycleEvent",
    "LifecycleEventType",
    "NotificationCategory",
    "NotificationChannel",
    "NotificationDraft",
    "NotificationKind",
    "NotificationRecord",
    "NotificationStatus",
    "UserRole",
    "is_legal_transition",
]
