"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from shared_types.availability import SlotData
from shared_types.scheduling import AppointmentRecord, FeedbackRecord, NotificationRecord
from utils.datetime_utils import format_time


class AppointmentResponse(BaseModel):
    """Response model for appointment information."""
    id: int
    patient_id: str
    practitioner_id: str
    therapy: str
    start_time: datetime  # Serialized as ISO 8601 with UTC offset
    end_time: datetime
    duration_minutes: int
    status: str
    notes: Optional[str] = None
    patient_notes: Optional[str] = None
    practitioner_notes: Optional[str] = None
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: AppointmentRecord) -> "AppointmentResponse":
        return cls(
            id=record.id,
            patient_id=record.patient_id,
            practitioner_id=record.practitioner_id,
            therapy=record.therapy,
            start_time=record.start_time,
            end_time=record.end_time,
            duration_minutes=record.duration_minutes,
            status=record.status.value,
            notes=record.notes,
            patient_notes=record.patient_notes,
            practitioner_notes=record.practitioner_notes,
            follow_up_required=record.follow_up_required,
            follow_up_date=record.follow_up_date,
            cancellation_reason=record.cancellation_reason,
            cancelled_at=record.cancelled_at,
            completed_at=record.completed_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class AppointmentListResponse(BaseModel):
    """Response model for listing appointments."""
    appointments: List[AppointmentResponse]


class AppointmentStatsResponse(BaseModel):
    """Response model for dashboard appointment counts."""
    total: int
    completed: int
    upcoming: int
    completion_rate: int  # Percentage 0-100


class SlotResponse(BaseModel):
    """Response model for one catalog slot."""
    start_time: str  # Format: "HH:MM"
    end_time: str    # Format: "HH:MM"
    is_available: bool

    @classmethod
    def from_slot(cls, slot: SlotData) -> "SlotResponse":
        return cls(**slot.to_dict())


class AvailabilityResponse(BaseModel):
    """Response model for a practitioner's slots on a date."""
    practitioner_id: str
    date: str  # Format: "YYYY-MM-DD"
    duration_minutes: int
    available_slots: List[str]  # Free slot starts, "HH:MM", ascending
    slots: List[SlotResponse]

    @classmethod
    def build(
        cls,
        practitioner_id: str,
        day: date,
        duration_minutes: int,
        slots: List[SlotData],
    ) -> "AvailabilityResponse":
        return cls(
            practitioner_id=practitioner_id,
            date=day.isoformat(),
            duration_minutes=duration_minutes,
            available_slots=[format_time(slot.start_time) for slot in slots if slot.is_available],
            slots=[SlotResponse.from_slot(slot) for slot in slots],
        )


class NotificationResponse(BaseModel):
    """Response model for a notification task."""
    id: int
    user_id: str
    kind: str
    category: str
    title: str
    message: str
    scheduled_for: datetime
    appointment_id: Optional[int] = None
    therapy: Optional[str] = None
    send_email: bool
    send_sms: bool
    send_in_app: bool
    sent_email: bool
    sent_sms: bool
    sent_in_app: bool
    read: bool
    status: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "NotificationResponse":
        return cls(
            id=record.id,
            user_id=record.user_id,
            kind=record.kind.value,
            category=record.category.value,
            title=record.title,
            message=record.message,
            scheduled_for=record.scheduled_for,
            appointment_id=record.appointment_id,
            therapy=record.therapy,
            send_email=record.send_email,
            send_sms=record.send_sms,
            send_in_app=record.send_in_app,
            sent_email=record.sent_email,
            sent_sms=record.sent_sms,
            sent_in_app=record.sent_in_app,
            read=record.read,
            status=record.status.value,
            created_at=record.created_at,
        )


class NotificationListResponse(BaseModel):
    """Response model for listing notifications."""
    notifications: List[NotificationResponse]
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int


class FeedbackResponse(BaseModel):
    """Response model for session feedback."""
    id: int
    appointment_id: int
    patient_id: str
    practitioner_id: str
    rating: Optional[int] = None
    symptoms: List[str]
    improvements: List[str]
    side_effects: List[str]
    overall_feeling: Optional[str] = None
    notes: Optional[str] = None
    follow_up_needed: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: FeedbackRecord) -> "FeedbackResponse":
        return cls(
            id=record.id,
            appointment_id=record.appointment_id,
            patient_id=record.patient_id,
            practitioner_id=record.practitioner_id,
            rating=record.rating,
            symptoms=record.symptoms,
            improvements=record.improvements,
            side_effects=record.side_effects,
            overall_feeling=record.overall_feeling,
            notes=record.notes,
            follow_up_needed=record.follow_up_needed,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class FeedbackListResponse(BaseModel):
    """Response model for listing feedback."""
    feedback: List[FeedbackResponse]


class FeedbackStatsResponse(BaseModel):
    """Response model for a practitioner's feedback summary."""
    total: int
    rated: int
    average_rating: float
    rating_distribution: Dict[int, int]
