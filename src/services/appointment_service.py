"""
Appointment service for the appointment lifecycle.

This module drives appointments through their states
(scheduled -> confirmed -> in_progress -> completed / cancelled / no_show)
on behalf of an acting user. Transition legality is enforced by the
appointment store, which returns the lifecycle event of every write; this
service hands each event to the notification scheduler.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from core.constants import DEFAULT_UPCOMING_APPOINTMENTS_LIMIT, MAX_APPOINTMENTS_PAGE_SIZE
from core.exceptions import InvalidTransitionError, PermissionDeniedError, ValidationError
from services.appointment_store import AppointmentStore
from services.notification_scheduler import NotificationScheduler
from shared_types.scheduling import (
    UPCOMING_STATUSES,
    Actor,
    AppointmentFilters,
    AppointmentRecord,
    AppointmentChange,
    AppointmentStatus,
    BookingRequest,
    UserRole,
)
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class AppointmentService:
    """
    Service class for appointment operations.

    Holds no appointment state of its own: every call reads and writes
    through the store. Only the appointment's patient, its practitioner or an
    admin may act on an appointment.
    """

    def __init__(
        self,
        store: AppointmentStore,
        notifications: Optional[NotificationScheduler] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifications = notifications
        self.clock = clock

    def _notify(self, change: AppointmentChange) -> AppointmentRecord:
        """Hand the change's lifecycle event to the scheduler; the write stands regardless."""
        if change.event is not None and self.notifications is not None:
            try:
                self.notifications.on_lifecycle_event(change.event)
            except Exception:
                logger.exception(
                    f"Notification scheduling failed for appointment {change.appointment.id} "
                    f"({change.event.event_type.value})"
                )
        return change.appointment

    @staticmethod
    def _authorize(actor: Actor, appointment: AppointmentRecord) -> None:
        if actor.is_admin() or appointment.involves(actor.user_id):
            return
        logger.warning(f"User {actor.user_id} denied access to appointment {appointment.id}")
        raise PermissionDeniedError(f"Not allowed to access appointment {appointment.id}")

    @staticmethod
    def _authorize_user_scope(actor: Actor, user_id: str) -> None:
        if actor.is_admin() or actor.user_id == user_id:
            return
        raise PermissionDeniedError("Not allowed to view another user's appointments")

    def book(self, actor: Actor, request: BookingRequest) -> AppointmentRecord:
        """
        Book a new appointment in the scheduled state.

        Patients may only book for themselves and practitioners only on their
        own calendar.

        Raises:
            PermissionDeniedError: If the actor is not a party to the booking
            ValidationError: If the request is malformed
            ConflictError: If the practitioner is already booked for that time
        """
        if not actor.is_admin() and actor.user_id not in (request.patient_id, request.practitioner_id):
            raise PermissionDeniedError("Cannot book an appointment for another user")

        return self._notify(self.store.create(request, now=self.clock()))

    def get(self, actor: Actor, appointment_id: int) -> AppointmentRecord:
        appointment = self.store.get(appointment_id)
        self._authorize(actor, appointment)
        return appointment

    def list_for(
        self,
        actor: Actor,
        user_id: str,
        role: UserRole,
        statuses: Optional[List[AppointmentStatus]] = None,
        upcoming: bool = False,
        limit: Optional[int] = None,
    ) -> List[AppointmentRecord]:
        """
        List a user's appointments ordered by start time.

        With upcoming=True only scheduled/confirmed appointments starting from
        now are returned, at most DEFAULT_UPCOMING_APPOINTMENTS_LIMIT unless a
        limit is given.
        """
        self._authorize_user_scope(actor, user_id)

        if limit is not None and (limit <= 0 or limit > MAX_APPOINTMENTS_PAGE_SIZE):
            raise ValidationError(f"limit must be between 1 and {MAX_APPOINTMENTS_PAGE_SIZE}")

        if upcoming:
            filters = AppointmentFilters(
                statuses=statuses or sorted(UPCOMING_STATUSES, key=lambda s: s.value),
                start_from=self.clock(),
                limit=limit or DEFAULT_UPCOMING_APPOINTMENTS_LIMIT,
            )
        else:
            filters = AppointmentFilters(statuses=statuses, limit=limit)

        return self.store.list_for(user_id, role, filters)

    def confirm(self, actor: Actor, appointment_id: int) -> AppointmentRecord:
        return self._transition(actor, appointment_id, AppointmentStatus.CONFIRMED)

    def start(self, actor: Actor, appointment_id: int) -> AppointmentRecord:
        return self._transition(actor, appointment_id, AppointmentStatus.IN_PROGRESS)

    def mark_no_show(self, actor: Actor, appointment_id: int) -> AppointmentRecord:
        return self._transition(actor, appointment_id, AppointmentStatus.NO_SHOW)

    def cancel(self, actor: Actor, appointment_id: int, reason: Optional[str] = None) -> AppointmentRecord:
        """
        Cancel an appointment.

        Note:
            This method is idempotent - if the appointment is already cancelled,
            it is returned unchanged and no cancellation notice is created.

        Raises:
            InvalidTransitionError: If the appointment is in another terminal state
        """
        appointment = self.store.get(appointment_id)
        self._authorize(actor, appointment)

        if appointment.status == AppointmentStatus.CANCELLED:
            logger.info(f"Appointment {appointment_id} already cancelled")
            return appointment

        changes: Dict[str, Any] = {"status": AppointmentStatus.CANCELLED}
        if reason and reason.strip():
            changes["cancellation_reason"] = reason.strip()

        try:
            change = self.store.update(
                appointment_id, changes, now=self.clock(), expected_status=appointment.status
            )
        except InvalidTransitionError:
            # A concurrent cancel won the race
            latest = self.store.get(appointment_id)
            if latest.status == AppointmentStatus.CANCELLED:
                return latest
            raise
        return self._notify(change)

    def complete(
        self,
        actor: Actor,
        appointment_id: int,
        practitioner_notes: Optional[str] = None,
        follow_up_required: Optional[bool] = None,
        follow_up_date: Optional[date] = None,
    ) -> AppointmentRecord:
        """
        Complete an appointment and record the practitioner's notes.

        A scheduled or confirmed appointment is first started, so the
        recorded history always passes through in_progress.

        Raises:
            InvalidTransitionError: If the appointment is already terminal
        """
        appointment = self.store.get(appointment_id)
        self._authorize(actor, appointment)

        if appointment.status in (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED):
            appointment = self._notify(self.store.update(
                appointment_id,
                {"status": AppointmentStatus.IN_PROGRESS},
                now=self.clock(),
                expected_status=appointment.status,
            ))

        changes: Dict[str, Any] = {"status": AppointmentStatus.COMPLETED}
        if practitioner_notes is not None:
            changes["practitioner_notes"] = practitioner_notes
        if follow_up_required is not None:
            changes["follow_up_required"] = follow_up_required
        if follow_up_date is not None:
            changes["follow_up_date"] = follow_up_date

        change = self.store.update(
            appointment_id, changes, now=self.clock(), expected_status=appointment.status
        )
        return self._notify(change)

    def update_notes(
        self,
        actor: Actor,
        appointment_id: int,
        notes: Optional[str] = None,
        patient_notes: Optional[str] = None,
    ) -> AppointmentRecord:
        """Update free-text notes without changing the status."""
        appointment = self.store.get(appointment_id)
        self._authorize(actor, appointment)

        changes: Dict[str, Any] = {}
        if notes is not None:
            changes["notes"] = notes
        if patient_notes is not None:
            changes["patient_notes"] = patient_notes
        if not changes:
            return appointment

        return self.store.update(appointment_id, changes, now=self.clock()).appointment

    def stats(self, actor: Actor, user_id: str, role: UserRole) -> Dict[str, int]:
        """
        Appointment counts for a user's dashboard.

        Returns:
            Dict with total, completed, upcoming and completion_rate
            (completed / total as a rounded percentage, 0 when there are none)
        """
        self._authorize_user_scope(actor, user_id)

        total = self.store.count_for(user_id, role)
        completed = self.store.count_for(user_id, role, statuses=[AppointmentStatus.COMPLETED])
        upcoming = self.store.count_for(
            user_id, role, statuses=UPCOMING_STATUSES, start_from=self.clock()
        )
        return {
            "total": total,
            "completed": completed,
            "upcoming": upcoming,
            "completion_rate": round(completed / total * 100) if total else 0,
        }

    def _transition(self, actor: Actor, appointment_id: int, status: AppointmentStatus) -> AppointmentRecord:
        appointment = self.store.get(appointment_id)
        self._authorize(actor, appointment)
        change = self.store.update(
            appointment_id, {"status": status}, now=self.clock(), expected_status=appointment.status
        )
        return self._notify(change)
