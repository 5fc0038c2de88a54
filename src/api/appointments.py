"""
Appointment API endpoints.

Provides appointment booking and lifecycle management:
- Listing a user's appointments (all or upcoming) and dashboard counts
- Booking with double-booking protection
- Lifecycle transitions (confirm, start, complete, cancel, no-show)

Domain errors raised by the services are translated into HTTP responses by
the exception handlers registered in main.py.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from api.dependencies import get_appointment_service, get_backend
from api.responses import AppointmentListResponse, AppointmentResponse, AppointmentStatsResponse
from auth.dependencies import UserContext, get_current_user
from core.constants import MAX_NOTES_LENGTH
from core.exceptions import ValidationError
from services.appointment_service import AppointmentService
from services.backend_factory import SchedulingBackend
from shared_types.scheduling import AppointmentStatus, BookingRequest, UserRole
from utils.datetime_utils import get_timezone, to_utc

logger = logging.getLogger(__name__)

router = APIRouter()


# Request Models

class AppointmentCreateRequest(BaseModel):
    """Request model for booking an appointment."""
    patient_id: Optional[str] = None  # Defaults to the caller when the caller is a patient
    practitioner_id: str
    therapy: str
    appointment_date: datetime  # Naive values are read in the clinic's timezone
    duration: int  # Minutes
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)


class CancelRequest(BaseModel):
    """Request model for cancelling an appointment."""
    reason: Optional[str] = Field(None, max_length=500)


class CompleteRequest(BaseModel):
    """Request model for completing an appointment."""
    practitioner_notes: Optional[str] = None
    follow_up_required: Optional[bool] = None
    follow_up_date: Optional[date] = None


class NotesRequest(BaseModel):
    """Request model for updating free-text notes."""
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    patient_notes: Optional[str] = None


def _resolve_patient_id(current_user: UserContext, patient_id: Optional[str]) -> str:
    if patient_id:
        return patient_id
    if current_user.role == UserRole.PATIENT:
        return current_user.user_id
    raise ValidationError("patient_id is required")


def _resolve_listing_role(current_user: UserContext, role: Optional[UserRole]) -> UserRole:
    resolved = role or current_user.role
    if resolved == UserRole.ADMIN:
        raise ValidationError("role must be 'patient' or 'practitioner'")
    return resolved


@router.get("", summary="List appointments", response_model=AppointmentListResponse)
async def list_appointments(
    user_id: Optional[str] = Query(None, description="User whose appointments to list (defaults to caller)"),
    role: Optional[UserRole] = Query(None, description="patient or practitioner (defaults to caller's role)"),
    status_filter: Optional[List[AppointmentStatus]] = Query(None, alias="status"),
    upcoming: bool = Query(False, description="Only scheduled/confirmed appointments from now on"),
    limit: Optional[int] = Query(None, ge=1),
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentListResponse:
    """
    List a user's appointments ordered by start time.

    Patients and practitioners see their own appointments; admins may pass
    any user_id.
    """
    appointments = service.list_for(
        current_user,
        user_id or current_user.user_id,
        _resolve_listing_role(current_user, role),
        statuses=status_filter,
        upcoming=upcoming,
        limit=limit,
    )
    return AppointmentListResponse(
        appointments=[AppointmentResponse.from_record(a) for a in appointments]
    )


@router.get("/stats", summary="Appointment counts", response_model=AppointmentStatsResponse)
async def get_appointment_stats(
    user_id: Optional[str] = Query(None),
    role: Optional[UserRole] = Query(None),
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentStatsResponse:
    """Total, completed and upcoming counts plus the completion rate."""
    stats = service.stats(
        current_user,
        user_id or current_user.user_id,
        _resolve_listing_role(current_user, role),
    )
    return AppointmentStatsResponse(**stats)


@router.post(
    "",
    summary="Book an appointment",
    status_code=status.HTTP_201_CREATED,
    response_model=AppointmentResponse,
    responses={409: {"description": "Practitioner already booked for that time"}},
)
async def create_appointment(
    request: AppointmentCreateRequest,
    current_user: UserContext = Depends(get_current_user),
    backend: SchedulingBackend = Depends(get_backend),
) -> AppointmentResponse:
    """
    Book an appointment in the scheduled state.

    Creates the confirmation, reminder and pre-procedure notifications for
    the patient.
    """
    tz = get_timezone(backend.settings.clinic_timezone)
    booking = BookingRequest(
        patient_id=_resolve_patient_id(current_user, request.patient_id),
        practitioner_id=request.practitioner_id,
        therapy=request.therapy,
        start_time=to_utc(request.appointment_date, tz),
        duration_minutes=request.duration,
        notes=request.notes,
    )
    appointment = backend.appointments.book(current_user, booking)
    return AppointmentResponse.from_record(appointment)


@router.get("/{appointment_id}", summary="Get an appointment", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    return AppointmentResponse.from_record(service.get(current_user, appointment_id))


@router.patch("/{appointment_id}/confirm", summary="Confirm an appointment", response_model=AppointmentResponse)
async def confirm_appointment(
    appointment_id: int,
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    return AppointmentResponse.from_record(service.confirm(current_user, appointment_id))


@router.patch("/{appointment_id}/start", summary="Start a session", response_model=AppointmentResponse)
async def start_appointment(
    appointment_id: int,
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    return AppointmentResponse.from_record(service.start(current_user, appointment_id))


@router.patch("/{appointment_id}/cancel", summary="Cancel an appointment", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    request: Optional[CancelRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Cancel an appointment.

    Cancelling an already-cancelled appointment succeeds without changes.
    """
    reason = request.reason if request else None
    return AppointmentResponse.from_record(service.cancel(current_user, appointment_id, reason))


@router.patch("/{appointment_id}/complete", summary="Complete a session", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: int,
    request: Optional[CompleteRequest] = None,
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Complete a session and record the practitioner's notes.

    Schedules post-procedure care instructions and a feedback request.
    """
    request = request or CompleteRequest()
    appointment = service.complete(
        current_user,
        appointment_id,
        practitioner_notes=request.practitioner_notes,
        follow_up_required=request.follow_up_required,
        follow_up_date=request.follow_up_date,
    )
    return AppointmentResponse.from_record(appointment)


@router.patch("/{appointment_id}/no-show", summary="Mark as no-show", response_model=AppointmentResponse)
async def mark_no_show(
    appointment_id: int,
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    return AppointmentResponse.from_record(service.mark_no_show(current_user, appointment_id))


@router.patch("/{appointment_id}/notes", summary="Update appointment notes", response_model=AppointmentResponse)
async def update_appointment_notes(
    appointment_id: int,
    request: NotesRequest,
    current_user: UserContext = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """Update the booking or patient notes; the status is left unchanged."""
    appointment = service.update_notes(
        current_user, appointment_id, notes=request.notes, patient_notes=request.patient_notes
    )
    return AppointmentResponse.from_record(appointment)
