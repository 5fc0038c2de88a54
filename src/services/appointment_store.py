"""
Appointment store gateway.

Typed CRUD surface over appointment records with two interchangeable
strategies behind the same interface:

- SqlAppointmentStore: the live database through SQLAlchemy
- InMemoryAppointmentStore: process-local fake used for demos and tests

Which one is used is decided once, from SchedulingSettings, by
services.backend_factory. Every write returns an AppointmentChange carrying
the lifecycle event it implies; acting on that event is left to the caller
(services.appointment_service hands it to the notification scheduler).
"""

import dataclasses
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from core.database import get_db_context
from core.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from models import Appointment
from shared_types.scheduling import (
    EVENT_FOR_STATUS,
    AppointmentChange,
    AppointmentFilters,
    AppointmentRecord,
    AppointmentStatus,
    BookingRequest,
    LifecycleEvent,
    LifecycleEventType,
    UserRole,
    is_legal_transition,
)
from utils.datetime_utils import to_utc, utc_now

logger = logging.getLogger(__name__)


# Fields callers may change through update()
UPDATABLE_FIELDS = frozenset({
    "status",
    "notes",
    "patient_notes",
    "practitioner_notes",
    "follow_up_required",
    "follow_up_date",
    "cancellation_reason",
})


def validate_booking_request(request: BookingRequest, now: datetime) -> None:
    """
    Validate a booking request before anything is written.

    Raises:
        ValidationError: If a reference is missing, the duration is not
            positive, or the start time is naive or in the past
    """
    if not request.patient_id or not str(request.patient_id).strip():
        raise ValidationError("patient_id is required")
    if not request.practitioner_id or not str(request.practitioner_id).strip():
        raise ValidationError("practitioner_id is required")
    if not request.therapy or not request.therapy.strip():
        raise ValidationError("therapy is required")
    if isinstance(request.duration_minutes, bool) or not isinstance(request.duration_minutes, int):
        raise ValidationError("duration must be a whole number of minutes")
    if request.duration_minutes <= 0:
        raise ValidationError("duration must be greater than zero")
    if request.start_time.tzinfo is None:
        raise ValidationError("appointment start time must include a timezone")
    if request.start_time < now:
        raise ValidationError("appointment start time is in the past")


def user_column_for_role(role: UserRole) -> str:
    """Map a listing role to the appointment field it matches."""
    if role == UserRole.PATIENT:
        return "patient_id"
    if role == UserRole.PRACTITIONER:
        return "practitioner_id"
    raise ValidationError(f"Cannot list appointments for role '{role.value}'")


class AppointmentStore(ABC):
    """
    Appointment persistence capability.

    Subclasses implement the storage primitives; validation, the transition
    check and event construction are shared here.
    """

    def create(self, request: BookingRequest, now: datetime) -> AppointmentChange:
        """
        Create a scheduled appointment.

        The overlap check and the insert are one atomic step.

        Raises:
            ValidationError: If the request is malformed
            ConflictError: If the practitioner already has an overlapping,
                non-cancelled appointment
        """
        validate_booking_request(request, now)
        record = self._insert(request)
        logger.info(
            f"Created appointment {record.id} for patient {record.patient_id} "
            f"with practitioner {record.practitioner_id} at {record.start_time}"
        )
        event = LifecycleEvent(
            event_type=LifecycleEventType.CREATED,
            appointment=record,
            occurred_at=now,
        )
        return AppointmentChange(appointment=record, event=event)

    def update(
        self,
        appointment_id: int,
        changes: Dict[str, Any],
        now: datetime,
        expected_status: Optional[AppointmentStatus] = None,
    ) -> AppointmentChange:
        """
        Apply a partial update.

        The write only succeeds if the stored status is still the one the
        change was validated against (single-row optimistic update).

        Raises:
            NotFoundError: If the appointment does not exist
            ValidationError: If an unknown field is given
            InvalidTransitionError: If a status change is not a legal edge,
                or the status changed concurrently
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        current = self.get(appointment_id)
        if expected_status is not None and current.status != expected_status:
            requested = changes.get("status")
            raise InvalidTransitionError(
                current.status.value,
                str(getattr(requested, "value", requested)),
            )

        values, new_status = self._prepare_changes(current, changes, now)
        updated = self._write_if_status(appointment_id, current.status, values)
        if updated is None:
            latest = self.get(appointment_id)
            raise InvalidTransitionError(
                latest.status.value,
                new_status.value if new_status else latest.status.value,
                message=f"Appointment {appointment_id} was modified concurrently (now '{latest.status.value}')",
            )

        event: Optional[LifecycleEvent] = None
        if new_status is not None:
            logger.info(f"Appointment {appointment_id}: {current.status.value} -> {new_status.value}")
            event = LifecycleEvent(
                event_type=EVENT_FOR_STATUS[new_status],
                appointment=updated,
                occurred_at=now,
                previous_status=current.status,
                reason=values.get("cancellation_reason"),
            )
        return AppointmentChange(appointment=updated, event=event)

    @staticmethod
    def _prepare_changes(
        current: AppointmentRecord,
        changes: Dict[str, Any],
        now: datetime,
    ) -> Tuple[Dict[str, Any], Optional[AppointmentStatus]]:
        values = dict(changes)
        new_status: Optional[AppointmentStatus] = None

        if "status" in values:
            try:
                new_status = AppointmentStatus(values["status"])
            except ValueError:
                raise ValidationError(f"Unknown appointment status: {values['status']}")

            if not is_legal_transition(current.status, new_status):
                raise InvalidTransitionError(current.status.value, new_status.value)

            values["status"] = new_status
            if new_status == AppointmentStatus.CANCELLED:
                values["cancelled_at"] = now
            elif new_status == AppointmentStatus.COMPLETED:
                values["completed_at"] = now

        return values, new_status

    @abstractmethod
    def _insert(self, request: BookingRequest) -> AppointmentRecord:
        """Atomically check for overlaps and insert; raise ConflictError on overlap."""

    @abstractmethod
    def _write_if_status(
        self,
        appointment_id: int,
        expected_status: AppointmentStatus,
        values: Dict[str, Any],
    ) -> Optional[AppointmentRecord]:
        """Write values only if the stored status still equals expected_status; None otherwise."""

    @abstractmethod
    def get(self, appointment_id: int) -> AppointmentRecord:
        """Return the appointment or raise NotFoundError."""

    @abstractmethod
    def list_for(
        self,
        user_id: str,
        role: UserRole,
        filters: Optional[AppointmentFilters] = None,
    ) -> List[AppointmentRecord]:
        """Appointments where the user is the patient or practitioner, ordered by start ascending."""

    @abstractmethod
    def list_for_practitioner_between(
        self,
        practitioner_id: str,
        start: datetime,
        end: datetime,
    ) -> List[AppointmentRecord]:
        """Non-cancelled appointments of a practitioner overlapping [start, end)."""

    @abstractmethod
    def count_for(
        self,
        user_id: str,
        role: UserRole,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
        start_from: Optional[datetime] = None,
    ) -> int:
        """Count appointments for a user, optionally filtered by status and start time."""


class SqlAppointmentStore(AppointmentStore):
    """AppointmentStore backed by the relational database."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _find_overlap(
        self,
        db: Session,
        practitioner_id: str,
        start: datetime,
        end: datetime,
    ) -> Optional[Appointment]:
        """Lock and return one non-cancelled appointment overlapping [start, end), if any."""
        return db.query(Appointment).filter(
            Appointment.practitioner_id == practitioner_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.start_time < end,
            Appointment.end_time > start,
        ).with_for_update().first()

    def _insert(self, request: BookingRequest) -> AppointmentRecord:
        start = to_utc(request.start_time)
        end = start + timedelta(minutes=request.duration_minutes)

        try:
            with get_db_context(self._session_factory) as db:
                # The partial unique index (all dialects) and the exclusion
                # constraint (PostgreSQL) reject a concurrent insert that slips
                # past this check; both surface as IntegrityError below.
                conflict = self._find_overlap(db, request.practitioner_id, start, end)

                if conflict is not None:
                    raise ConflictError(
                        f"Practitioner {request.practitioner_id} already has appointment "
                        f"{conflict.id} overlapping {start.isoformat()}"
                    )

                appointment = Appointment(
                    patient_id=request.patient_id,
                    practitioner_id=request.practitioner_id,
                    therapy=request.therapy.strip(),
                    start_time=start,
                    end_time=end,
                    duration_minutes=request.duration_minutes,
                    status=AppointmentStatus.SCHEDULED.value,
                    notes=request.notes,
                    follow_up_required=False,
                )
                db.add(appointment)
                db.flush()
                record = appointment.to_record()
        except IntegrityError as e:
            logger.warning(f"Appointment booking conflict: {e}")
            raise ConflictError(
                f"Practitioner {request.practitioner_id} is already booked at {start.isoformat()}"
            ) from e
        except ConflictError:
            logger.warning(
                f"Rejected overlapping booking for practitioner {request.practitioner_id} at {start.isoformat()}"
            )
            raise

        return record

    def _write_if_status(
        self,
        appointment_id: int,
        expected_status: AppointmentStatus,
        values: Dict[str, Any],
    ) -> Optional[AppointmentRecord]:
        column_values = {
            key: (value.value if isinstance(value, AppointmentStatus) else value)
            for key, value in values.items()
        }

        with get_db_context(self._session_factory) as db:
            appointment = db.get(Appointment, appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found")

            result = db.execute(
                update(Appointment)
                .where(
                    Appointment.id == appointment_id,
                    Appointment.status == expected_status.value,
                )
                .values(**column_values, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None

            db.refresh(appointment)
            return appointment.to_record()

    def get(self, appointment_id: int) -> AppointmentRecord:
        with get_db_context(self._session_factory) as db:
            appointment = db.get(Appointment, appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found")
            return appointment.to_record()

    def list_for(
        self,
        user_id: str,
        role: UserRole,
        filters: Optional[AppointmentFilters] = None,
    ) -> List[AppointmentRecord]:
        column = getattr(Appointment, user_column_for_role(role))
        filters = filters or AppointmentFilters()

        with get_db_context(self._session_factory) as db:
            query = db.query(Appointment).filter(column == user_id)
            if filters.statuses:
                query = query.filter(Appointment.status.in_([s.value for s in filters.statuses]))
            if filters.start_from is not None:
                query = query.filter(Appointment.start_time >= filters.start_from)
            if filters.start_to is not None:
                query = query.filter(Appointment.start_time < filters.start_to)
            query = query.order_by(Appointment.start_time.asc(), Appointment.id.asc())
            if filters.limit is not None:
                query = query.limit(filters.limit)
            return [appointment.to_record() for appointment in query.all()]

    def list_for_practitioner_between(
        self,
        practitioner_id: str,
        start: datetime,
        end: datetime,
    ) -> List[AppointmentRecord]:
        with get_db_context(self._session_factory) as db:
            appointments = db.query(Appointment).filter(
                Appointment.practitioner_id == practitioner_id,
                Appointment.status != AppointmentStatus.CANCELLED.value,
                Appointment.start_time < end,
                Appointment.end_time > start,
            ).order_by(Appointment.start_time.asc()).all()
            return [appointment.to_record() for appointment in appointments]

    def count_for(
        self,
        user_id: str,
        role: UserRole,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
        start_from: Optional[datetime] = None,
    ) -> int:
        column = getattr(Appointment, user_column_for_role(role))

        with get_db_context(self._session_factory) as db:
            query = db.query(func.count(Appointment.id)).filter(column == user_id)
            if statuses is not None:
                query = query.filter(Appointment.status.in_([s.value for s in statuses]))
            if start_from is not None:
                query = query.filter(Appointment.start_time >= start_from)
            return int(query.scalar() or 0)


class InMemoryAppointmentStore(AppointmentStore):
    """
    AppointmentStore kept in process memory.

    A single lock makes check-then-insert and compare-then-write atomic,
    which is all the invariants need within one process.
    """

    def __init__(self) -> None:
        self._appointments: Dict[int, AppointmentRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _insert(self, request: BookingRequest) -> AppointmentRecord:
        start = to_utc(request.start_time)
        end = start + timedelta(minutes=request.duration_minutes)

        with self._lock:
            for existing in self._appointments.values():
                if (
                    existing.practitioner_id == request.practitioner_id
                    and existing.status != AppointmentStatus.CANCELLED
                    and existing.overlaps(start, end)
                ):
                    logger.warning(
                        f"Rejected overlapping booking for practitioner {request.practitioner_id} "
                        f"at {start.isoformat()} (conflicts with {existing.id})"
                    )
                    raise ConflictError(
                        f"Practitioner {request.practitioner_id} already has appointment "
                        f"{existing.id} overlapping {start.isoformat()}"
                    )

            now = utc_now()
            record = AppointmentRecord(
                id=next(self._ids),
                patient_id=request.patient_id,
                practitioner_id=request.practitioner_id,
                therapy=request.therapy.strip(),
                start_time=start,
                duration_minutes=request.duration_minutes,
                status=AppointmentStatus.SCHEDULED,
                notes=request.notes,
                created_at=now,
                updated_at=now,
            )
            self._appointments[record.id] = record
            return dataclasses.replace(record)

    def _write_if_status(
        self,
        appointment_id: int,
        expected_status: AppointmentStatus,
        values: Dict[str, Any],
    ) -> Optional[AppointmentRecord]:
        with self._lock:
            existing = self._appointments.get(appointment_id)
            if existing is None:
                raise NotFoundError(f"Appointment {appointment_id} not found")
            if existing.status != expected_status:
                return None

            updated = dataclasses.replace(existing, **values, updated_at=utc_now())
            self._appointments[appointment_id] = updated
            return dataclasses.replace(updated)

    def get(self, appointment_id: int) -> AppointmentRecord:
        with self._lock:
            existing = self._appointments.get(appointment_id)
            if existing is None:
                raise NotFoundError(f"Appointment {appointment_id} not found")
            return dataclasses.replace(existing)

    def list_for(
        self,
        user_id: str,
        role: UserRole,
        filters: Optional[AppointmentFilters] = None,
    ) -> List[AppointmentRecord]:
        field_name = user_column_for_role(role)
        filters = filters or AppointmentFilters()

        with self._lock:
            matches = [
                a for a in self._appointments.values()
                if getattr(a, field_name) == user_id
                and (not filters.statuses or a.status in filters.statuses)
                and (filters.start_from is None or a.start_time >= filters.start_from)
                and (filters.start_to is None or a.start_time < filters.start_to)
            ]
        matches.sort(key=lambda a: (a.start_time, a.id))
        if filters.limit is not None:
            matches = matches[:filters.limit]
        return [dataclasses.replace(a) for a in matches]

    def list_for_practitioner_between(
        self,
        practitioner_id: str,
        start: datetime,
        end: datetime,
    ) -> List[AppointmentRecord]:
        with self._lock:
            matches = [
                a for a in self._appointments.values()
                if a.practitioner_id == practitioner_id
                and a.status != AppointmentStatus.CANCELLED
                and a.overlaps(start, end)
            ]
        matches.sort(key=lambda a: a.start_time)
        return [dataclasses.replace(a) for a in matches]

    def count_for(
        self,
        user_id: str,
        role: UserRole,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
        start_from: Optional[datetime] = None,
    ) -> int:
        field_name = user_column_for_role(role)
        status_set = set(statuses) if statuses is not None else None

        with self._lock:
            return sum(
                1 for a in self._appointments.values()
                if getattr(a, field_name) == user_id
                and (status_set is None or a.status in status_set)
                and (start_from is None or a.start_time >= start_from)
            )
