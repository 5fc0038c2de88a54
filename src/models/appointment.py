"""
Appointment model representing scheduled therapy sessions.

Each appointment links a patient and a practitioner (external identity
references) to a therapy session with a start time and duration. Appointments
are never deleted by normal flow; cancellation is a status change.
"""

from datetime import date as date_type, datetime
from typing import Optional

from sqlalchemy import (
    DDL, Boolean, CheckConstraint, Date, Index, Integer, String, Text, event, text
)
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import MAX_NOTES_LENGTH, MAX_STRING_LENGTH, MAX_THERAPY_NAME_LENGTH
from core.database import Base
from models.base import UTCDateTime
from shared_types.scheduling import AppointmentRecord, AppointmentStatus


_STATUS_VALUES = ", ".join(f"'{status.value}'" for status in AppointmentStatus)


class Appointment(Base):
    """
    Appointment entity representing one scheduled therapy session.

    `end_time` is stored alongside `duration_minutes` so the double-booking
    guard can be expressed as a range constraint in the database.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Unique identifier for the appointment."""

    patient_id: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), nullable=False)
    """Identity-provider user id of the patient who booked this appointment."""

    practitioner_id: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), nullable=False)
    """Identity-provider user id of the assigned practitioner."""

    therapy: Mapped[str] = mapped_column(String(MAX_THERAPY_NAME_LENGTH), nullable=False)
    """Therapy name (free text or catalog name)."""

    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    """Session start, stored in UTC."""

    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    """Session end (start_time + duration_minutes), stored in UTC."""

    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    """Current lifecycle status. See shared_types.scheduling.ALLOWED_TRANSITIONS."""

    notes: Mapped[Optional[str]] = mapped_column(String(MAX_NOTES_LENGTH), nullable=True)
    """Notes entered with the booking request."""

    patient_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    practitioner_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Notes recorded by the practitioner when completing the session."""

    follow_up_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    follow_up_date: Mapped[Optional[date_type]] = mapped_column(Date, nullable=True)

    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_appointment_duration_positive"),
        CheckConstraint("end_time > start_time", name="check_appointment_time_range"),
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="check_appointment_status"),
        Index("idx_appointments_patient_start", "patient_id", "start_time"),
        Index("idx_appointments_practitioner_start", "practitioner_id", "start_time"),
        # Two active bookings may never start at the same instant for one practitioner.
        # Interval overlap is additionally enforced on PostgreSQL by the exclusion
        # constraint below.
        Index(
            "uq_appointments_practitioner_start_active",
            "practitioner_id", "start_time",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    def to_record(self) -> AppointmentRecord:
        """Convert to the store-independent record type."""
        return AppointmentRecord(
            id=self.id,
            patient_id=self.patient_id,
            practitioner_id=self.practitioner_id,
            therapy=self.therapy,
            start_time=self.start_time,
            duration_minutes=self.duration_minutes,
            status=AppointmentStatus(self.status),
            notes=self.notes,
            patient_notes=self.patient_notes,
            practitioner_notes=self.practitioner_notes,
            follow_up_required=self.follow_up_required,
            follow_up_date=self.follow_up_date,
            cancellation_reason=self.cancellation_reason,
            cancelled_at=self.cancelled_at,
            completed_at=self.completed_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, practitioner_id={self.practitioner_id}, "
            f"start={self.start_time}, status={self.status})>"
        )


# PostgreSQL-only: no two active appointments of a practitioner may overlap.
# Mirrors the exclusion constraint created by the baseline Alembic migration.
event.listen(
    Appointment.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        "ALTER TABLE appointments ADD CONSTRAINT excl_appointments_practitioner_overlap "
        "EXCLUDE USING gist (practitioner_id WITH =, tstzrange(start_time, end_time, '[)') WITH &&) "
        "WHERE (status <> 'cancelled')"
    ).execute_if(dialect="postgresql"),
)
