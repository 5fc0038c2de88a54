"""
Feedback service for patient feedback on completed sessions.

Feedback is stored once per appointment, only by the appointment's patient
and only after the session is completed; the patient may revise it later.
Practitioners get a rating summary and their most recent feedback. Storage
follows the same SQL and in-memory strategies as the appointment store.
"""

import dataclasses
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from core.constants import MAX_FEEDBACK_RATING, MAX_NOTES_LENGTH, MIN_FEEDBACK_RATING
from core.database import get_db_context
from core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from models import Feedback
from services.appointment_store import AppointmentStore
from shared_types.scheduling import (
    Actor,
    AppointmentRecord,
    AppointmentStatus,
    FeedbackRecord,
    FeedbackSubmission,
    FeedbackUpdate,
)
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class FeedbackStore(ABC):
    """Feedback persistence capability."""

    @abstractmethod
    def add(self, appointment: AppointmentRecord, submission: FeedbackSubmission) -> FeedbackRecord:
        """Store feedback; raise ConflictError if the appointment already has some."""

    @abstractmethod
    def get_for_appointment(self, appointment_id: int) -> Optional[FeedbackRecord]:
        pass

    @abstractmethod
    def update(self, feedback_id: int, changes: Dict[str, Any]) -> FeedbackRecord:
        """Apply field changes to stored feedback; raise NotFoundError if it is gone."""

    @abstractmethod
    def list_for(
        self,
        patient_id: Optional[str] = None,
        practitioner_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[FeedbackRecord]:
        """Feedback matching the given party, newest first."""


class SqlFeedbackStore(FeedbackStore):

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def add(self, appointment: AppointmentRecord, submission: FeedbackSubmission) -> FeedbackRecord:
        try:
            with get_db_context(self._session_factory) as db:
                feedback = Feedback(
                    appointment_id=appointment.id,
                    patient_id=appointment.patient_id,
                    practitioner_id=appointment.practitioner_id,
                    rating=submission.rating,
                    symptoms=list(submission.symptoms),
                    improvements=list(submission.improvements),
                    side_effects=list(submission.side_effects),
                    overall_feeling=submission.overall_feeling,
                    notes=submission.notes,
                    follow_up_needed=submission.follow_up_needed,
                )
                db.add(feedback)
                db.flush()
                return feedback.to_record()
        except IntegrityError as e:
            logger.warning(f"Duplicate feedback for appointment {appointment.id}: {e}")
            raise ConflictError(f"Feedback already submitted for appointment {appointment.id}") from e

    def get_for_appointment(self, appointment_id: int) -> Optional[FeedbackRecord]:
        with get_db_context(self._session_factory) as db:
            feedback = db.query(Feedback).filter(Feedback.appointment_id == appointment_id).first()
            return feedback.to_record() if feedback else None

    def update(self, feedback_id: int, changes: Dict[str, Any]) -> FeedbackRecord:
        with get_db_context(self._session_factory) as db:
            feedback = db.get(Feedback, feedback_id)
            if feedback is None:
                raise NotFoundError(f"Feedback {feedback_id} not found")
            for key, value in changes.items():
                setattr(feedback, key, list(value) if isinstance(value, list) else value)
            db.flush()
            return feedback.to_record()

    def list_for(
        self,
        patient_id: Optional[str] = None,
        practitioner_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[FeedbackRecord]:
        with get_db_context(self._session_factory) as db:
            query = db.query(Feedback)
            if patient_id is not None:
                query = query.filter(Feedback.patient_id == patient_id)
            if practitioner_id is not None:
                query = query.filter(Feedback.practitioner_id == practitioner_id)
            query = query.order_by(Feedback.created_at.desc(), Feedback.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [feedback.to_record() for feedback in query.all()]


class InMemoryFeedbackStore(FeedbackStore):

    def __init__(self) -> None:
        self._feedback: Dict[int, FeedbackRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add(self, appointment: AppointmentRecord, submission: FeedbackSubmission) -> FeedbackRecord:
        with self._lock:
            if any(f.appointment_id == appointment.id for f in self._feedback.values()):
                logger.warning(f"Duplicate feedback for appointment {appointment.id}")
                raise ConflictError(f"Feedback already submitted for appointment {appointment.id}")

            now = utc_now()
            record = FeedbackRecord(
                id=next(self._ids),
                appointment_id=appointment.id,
                patient_id=appointment.patient_id,
                practitioner_id=appointment.practitioner_id,
                rating=submission.rating,
                symptoms=list(submission.symptoms),
                improvements=list(submission.improvements),
                side_effects=list(submission.side_effects),
                overall_feeling=submission.overall_feeling,
                notes=submission.notes,
                follow_up_needed=submission.follow_up_needed,
                created_at=now,
                updated_at=now,
            )
            self._feedback[record.id] = record
            return dataclasses.replace(record)

    def get_for_appointment(self, appointment_id: int) -> Optional[FeedbackRecord]:
        with self._lock:
            for feedback in self._feedback.values():
                if feedback.appointment_id == appointment_id:
                    return dataclasses.replace(feedback)
        return None

    def update(self, feedback_id: int, changes: Dict[str, Any]) -> FeedbackRecord:
        with self._lock:
            existing = self._feedback.get(feedback_id)
            if existing is None:
                raise NotFoundError(f"Feedback {feedback_id} not found")
            updated = dataclasses.replace(existing, **changes, updated_at=utc_now())
            self._feedback[feedback_id] = updated
            return dataclasses.replace(updated)

    def list_for(
        self,
        patient_id: Optional[str] = None,
        practitioner_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[FeedbackRecord]:
        with self._lock:
            matches = [
                f for f in self._feedback.values()
                if (patient_id is None or f.patient_id == patient_id)
                and (practitioner_id is None or f.practitioner_id == practitioner_id)
            ]
        matches.sort(key=lambda f: f.id, reverse=True)
        if limit is not None:
            matches = matches[:limit]
        return [dataclasses.replace(f) for f in matches]


def validate_feedback(feedback: Union[FeedbackSubmission, FeedbackUpdate]) -> None:
    """
    Validate patient feedback input.

    Raises:
        ValidationError: If the rating is out of range or the notes are too long
    """
    if feedback.rating is not None:
        if isinstance(feedback.rating, bool) or not isinstance(feedback.rating, int):
            raise ValidationError("rating must be a whole number")
        if not MIN_FEEDBACK_RATING <= feedback.rating <= MAX_FEEDBACK_RATING:
            raise ValidationError(
                f"rating must be between {MIN_FEEDBACK_RATING} and {MAX_FEEDBACK_RATING}"
            )
    if feedback.notes and len(feedback.notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"notes must be at most {MAX_NOTES_LENGTH} characters")


def summarize_ratings(feedback: List[FeedbackRecord]) -> Dict[str, Any]:
    """
    Rating summary for a practitioner dashboard.

    The average covers rated entries only and is rounded to one decimal;
    the distribution always lists every rating from 5 down to 1.
    """
    ratings = [f.rating for f in feedback if f.rating is not None]
    return {
        "total": len(feedback),
        "rated": len(ratings),
        "average_rating": round(sum(ratings) / len(ratings), 1) if ratings else 0.0,
        "rating_distribution": {
            score: ratings.count(score)
            for score in range(MAX_FEEDBACK_RATING, MIN_FEEDBACK_RATING - 1, -1)
        },
    }


class FeedbackService:
    """Service class for session feedback."""

    def __init__(self, store: FeedbackStore, appointments: AppointmentStore):
        self.store = store
        self.appointments = appointments

    def submit(self, actor: Actor, appointment_id: int, submission: FeedbackSubmission) -> FeedbackRecord:
        """
        Submit feedback for a completed appointment.

        Raises:
            NotFoundError: If the appointment does not exist
            PermissionDeniedError: If the actor is not the appointment's patient
            ValidationError: If the appointment is not completed or the input is invalid
            ConflictError: If feedback was already submitted
        """
        appointment = self.appointments.get(appointment_id)
        if appointment.patient_id != actor.user_id:
            raise PermissionDeniedError("Only the patient can give feedback on this appointment")
        if appointment.status != AppointmentStatus.COMPLETED:
            raise ValidationError(
                f"Feedback can only be given for completed appointments (status is '{appointment.status.value}')"
            )

        validate_feedback(submission)
        record = self.store.add(appointment, submission)
        logger.info(f"Feedback {record.id} submitted for appointment {appointment_id}")
        return record

    def update(self, actor: Actor, appointment_id: int, update: FeedbackUpdate) -> FeedbackRecord:
        """
        Revise the patient's own feedback on an appointment.

        Raises:
            NotFoundError: If the appointment or its feedback does not exist
            PermissionDeniedError: If the actor did not write the feedback
            ValidationError: If the input is invalid
        """
        appointment = self.appointments.get(appointment_id)
        if appointment.patient_id != actor.user_id:
            raise PermissionDeniedError("Only the patient can change feedback on this appointment")

        feedback = self.store.get_for_appointment(appointment_id)
        if feedback is None:
            raise NotFoundError(f"No feedback for appointment {appointment_id}")

        validate_feedback(update)
        changes = update.changes()
        if not changes:
            return feedback

        record = self.store.update(feedback.id, changes)
        logger.info(f"Feedback {record.id} updated ({', '.join(sorted(changes))})")
        return record

    def get_for_appointment(self, actor: Actor, appointment_id: int) -> FeedbackRecord:
        appointment = self.appointments.get(appointment_id)
        if not (actor.is_admin() or appointment.involves(actor.user_id)):
            raise PermissionDeniedError(f"Not allowed to access appointment {appointment_id}")

        feedback = self.store.get_for_appointment(appointment_id)
        if feedback is None:
            raise NotFoundError(f"No feedback for appointment {appointment_id}")
        return feedback

    def list_for_patient(self, actor: Actor, patient_id: str, limit: Optional[int] = None) -> List[FeedbackRecord]:
        self._authorize_user_scope(actor, patient_id)
        return self.store.list_for(patient_id=patient_id, limit=limit)

    def list_for_practitioner(
        self,
        actor: Actor,
        practitioner_id: str,
        limit: Optional[int] = None,
    ) -> List[FeedbackRecord]:
        """Feedback received by a practitioner, newest first (the most recent `limit` when given)."""
        self._authorize_user_scope(actor, practitioner_id)
        return self.store.list_for(practitioner_id=practitioner_id, limit=limit)

    def stats_for_practitioner(self, actor: Actor, practitioner_id: str) -> Dict[str, Any]:
        """
        Feedback totals, average rating and rating distribution for a practitioner.

        Returns:
            Dict with total, rated, average_rating and rating_distribution
            (rating -> count, 5 down to 1)
        """
        self._authorize_user_scope(actor, practitioner_id)
        return summarize_ratings(self.store.list_for(practitioner_id=practitioner_id))

    @staticmethod
    def _authorize_user_scope(actor: Actor, user_id: str) -> None:
        if actor.is_admin() or actor.user_id == user_id:
            return
        raise PermissionDeniedError("Not allowed to view another user's feedback")
