"""
Feedback model for patient-submitted session feedback.

One feedback record may exist per completed appointment.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import MAX_STRING_LENGTH
from core.database import Base
from models.base import UTCDateTime
from shared_types.scheduling import FeedbackRecord


class Feedback(Base):
    """Patient feedback (rating, structured tags, notes) on a completed session."""

    __tablename__ = "feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    appointment_id: Mapped[int] = mapped_column(ForeignKey("appointments.id"), nullable=False, unique=True)
    """The completed appointment this feedback is about (1:1)."""

    patient_id: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), nullable=False)

    practitioner_id: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), nullable=False)
    """Copied from the appointment for practitioner-side listings."""

    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    symptoms: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    improvements: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    side_effects: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    overall_feeling: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    follow_up_needed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="check_feedback_rating_range"),
        Index("idx_feedback_patient", "patient_id"),
        Index("idx_feedback_practitioner", "practitioner_id"),
    )

    def to_record(self) -> FeedbackRecord:
        return FeedbackRecord(
            id=self.id,
            appointment_id=self.appointment_id,
            patient_id=self.patient_id,
            practitioner_id=self.practitioner_id,
            rating=self.rating,
            symptoms=list(self.symptoms or []),
            improvements=list(self.improvements or []),
            side_effects=list(self.side_effects or []),
            overall_feeling=self.overall_feeling,
            notes=self.notes,
            follow_up_needed=self.follow_up_needed,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
