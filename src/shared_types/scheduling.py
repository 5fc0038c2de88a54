"""
Shared types for appointment scheduling and notifications.

This module holds the closed status/kind enums, the legal status transition
table, and the plain data records passed between the stores, the lifecycle
service and the notification scheduler.
"""

from dataclasses import dataclass, field, fields
from datetime import date as date_type, datetime, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class AppointmentStatus(str, Enum):
    """Lifecycle status of an appointment."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# The only legal status edges. Terminal states have no outgoing edges.
ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({
        AppointmentStatus.COMPLETED,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

# Statuses counted as "upcoming" in listings and stats
UPCOMING_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
})


def is_legal_transition(current: AppointmentStatus, requested: AppointmentStatus) -> bool:
    """Check whether `current -> requested` is an edge of the lifecycle graph."""
    return requested in ALLOWED_TRANSITIONS[current]


class UserRole(str, Enum):
    """Role asserted by the identity provider."""
    PATIENT = "patient"
    PRACTITIONER = "practitioner"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf a service call is made."""
    user_id: str
    role: UserRole

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class NotificationKind(str, Enum):
    """Kind of derived notification."""
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_REMINDER = "appointment_reminder"
    PRE_PROCEDURE = "pre_procedure"
    POST_PROCEDURE = "post_procedure"
    APPOINTMENT_CANCELLATION = "appointment_cancellation"
    FEEDBACK_REQUEST = "feedback_request"
    THERAPY_PROGRESS = "therapy_progress"


class NotificationCategory(str, Enum):
    """Display category tag of a notification."""
    APPOINTMENT = "appointment"
    PRE_PROCEDURE = "pre_procedure"
    POST_PROCEDURE = "post_procedure"
    GENERAL = "general"
    THERAPY_UPDATE = "therapy_update"


class NotificationChannel(str, Enum):
    """Delivery channel consumed by external delivery workers."""
    EMAIL = "email"
    SMS = "sms"
    IN_APP = "in_app"


class NotificationStatus(str, Enum):
    """Whether a task is still eligible for delivery."""
    PENDING = "pending"
    SKIPPED = "skipped"


class LifecycleEventType(str, Enum):
    """Appointment lifecycle events that may trigger notifications."""
    CREATED = "created"
    CONFIRMED = "confirmed"
    STARTED = "started"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Event emitted when an appointment enters a status
EVENT_FOR_STATUS: Dict[AppointmentStatus, LifecycleEventType] = {
    AppointmentStatus.CONFIRMED: LifecycleEventType.CONFIRMED,
    AppointmentStatus.IN_PROGRESS: LifecycleEventType.STARTED,
    AppointmentStatus.CANCELLED: LifecycleEventType.CANCELLED,
    AppointmentStatus.COMPLETED: LifecycleEventType.COMPLETED,
    AppointmentStatus.NO_SHOW: LifecycleEventType.NO_SHOW,
}


@dataclass
class BookingRequest:
    """Input of a booking; validated by the appointment store before any write."""
    patient_id: str
    practitioner_id: str
    therapy: str
    start_time: datetime
    duration_minutes: int
    notes: Optional[str] = None


@dataclass
class AppointmentRecord:
    """A stored appointment as returned by every AppointmentStore."""
    id: int
    patient_id: str
    practitioner_id: str
    therapy: str
    start_time: datetime
    duration_minutes: int
    status: AppointmentStatus
    notes: Optional[str] = None
    patient_notes: Optional[str] = None
    practitioner_notes: Optional[str] = None
    follow_up_required: bool = False
    follow_up_date: Optional[date_type] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """True if [start_time, end_time) intersects [start, end)."""
        return self.start_time < end and start < self.end_time

    def involves(self, user_id: str) -> bool:
        return user_id in (self.patient_id, self.practitioner_id)


@dataclass
class AppointmentFilters:
    """Optional filters for listing appointments."""
    statuses: Optional[List[AppointmentStatus]] = None
    start_from: Optional[datetime] = None
    start_to: Optional[datetime] = None
    limit: Optional[int] = None


@dataclass
class LifecycleEvent:
    """
    Description of a state change, produced by the store and consumed by
    the notification scheduler.

    `appointment` is the snapshot after the change; `occurred_at` is the
    event time used as N in the notification offsets.
    """
    event_type: LifecycleEventType
    appointment: AppointmentRecord
    occurred_at: datetime
    previous_status: Optional[AppointmentStatus] = None
    reason: Optional[str] = None


@dataclass
class AppointmentChange:
    """Result of a store write: the resulting appointment and the event it implies."""
    appointment: AppointmentRecord
    event: Optional[LifecycleEvent] = None


@dataclass
class NotificationDraft:
    """A notification derived from an event, before it is persisted."""
    user_id: str
    kind: NotificationKind
    category: NotificationCategory
    title: str
    message: str
    scheduled_for: datetime
    appointment_id: Optional[int] = None
    therapy: Optional[str] = None
    channels: FrozenSet[NotificationChannel] = frozenset({NotificationChannel.IN_APP})


@dataclass
class NotificationRecord:
    """A persisted notification task."""
    id: int
    user_id: str
    kind: NotificationKind
    category: NotificationCategory
    title: str
    message: str
    scheduled_for: datetime
    appointment_id: Optional[int] = None
    therapy: Optional[str] = None
    send_email: bool = False
    send_sms: bool = False
    send_in_app: bool = True
    sent_email: bool = False
    sent_sms: bool = False
    sent_in_app: bool = False
    read: bool = False
    status: NotificationStatus = NotificationStatus.PENDING
    created_at: Optional[datetime] = None


@dataclass
class FeedbackSubmission:
    """Patient input for feedback on a completed session."""
    rating: Optional[int] = None
    symptoms: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    side_effects: List[str] = field(default_factory=list)
    overall_feeling: Optional[str] = None
    notes: Optional[str] = None
    follow_up_needed: bool = False


@dataclass
class FeedbackUpdate:
    """Changes to submitted feedback; None leaves a field as it is."""
    rating: Optional[int] = None
    symptoms: Optional[List[str]] = None
    improvements: Optional[List[str]] = None
    side_effects: Optional[List[str]] = None
    overall_feeling: Optional[str] = None
    notes: Optional[str] = None
    follow_up_needed: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        return {name: value for name, value in values.items() if value is not None}


@dataclass
class FeedbackRecord:
    """Patient feedback on one completed appointment."""
    id: int
    appointment_id: int
    patient_id: str
    practitioner_id: str
    rating: Optional[int] = None
    symptoms: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    side_effects: List[str] = field(default_factory=list)
    overall_feeling: Optional[str] = None
    notes: Optional[str] = None
    follow_up_needed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
