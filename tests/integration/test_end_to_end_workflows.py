"""
End-to-end scheduling workflows through the wired backend.

Each scenario runs on both store strategies: booking drives availability and
notifications, cancellation suppresses reminders, completion schedules
aftercare and the feedback request.
"""

from datetime import date, time, timedelta

import pytest

from core.exceptions import ConflictError
from shared_types.scheduling import (
    AppointmentStatus,
    FeedbackSubmission,
    NotificationChannel,
    NotificationKind,
    NotificationStatus,
    UserRole,
)
from tests.conftest import APPOINTMENT_START, NOW, PATIENT_ID, PRACTITIONER_ID, make_booking


DAY = date(2024, 1, 15)


def _tasks_by_kind(backend, appointment_id):
    return {n.kind: n for n in backend.notification_store.list_for_appointment(appointment_id)}


class TestBookingWorkflow:
    """Book, check availability, cancel and rebook."""

    def test_book_cancel_rebook(self, backend, patient, admin):
        appointment = backend.appointments.book(patient, make_booking(duration_minutes=30))

        assert time(10, 0) not in backend.availability.available_slots(PRACTITIONER_ID, DAY)
        tasks = _tasks_by_kind(backend, appointment.id)
        assert tasks[NotificationKind.APPOINTMENT_CONFIRMATION].scheduled_for == NOW
        assert tasks[NotificationKind.APPOINTMENT_REMINDER].scheduled_for == APPOINTMENT_START - timedelta(hours=2)
        assert tasks[NotificationKind.PRE_PROCEDURE].scheduled_for == NOW + timedelta(hours=24)

        with pytest.raises(ConflictError):
            backend.appointments.book(admin, make_booking(patient_id="patient-2"))

        backend.appointments.cancel(patient, appointment.id, reason="Schedule change")

        assert time(10, 0) in backend.availability.available_slots(PRACTITIONER_ID, DAY)
        tasks = _tasks_by_kind(backend, appointment.id)
        assert tasks[NotificationKind.APPOINTMENT_REMINDER].status == NotificationStatus.SKIPPED
        assert tasks[NotificationKind.PRE_PROCEDURE].status == NotificationStatus.SKIPPED
        assert tasks[NotificationKind.APPOINTMENT_CANCELLATION].scheduled_for == NOW

        rebooked = backend.appointments.book(admin, make_booking(patient_id="patient-2"))
        assert rebooked.status == AppointmentStatus.SCHEDULED
        assert len(backend.notifications.list_for_user("patient-2")) == 3

    def test_short_notice_booking(self, backend, patient, clock):
        """Booked 90 minutes ahead: reminder already due, pre-procedure capped at start."""
        start = NOW + timedelta(minutes=90)
        appointment = backend.appointments.book(patient, make_booking(start=start))

        tasks = _tasks_by_kind(backend, appointment.id)
        assert tasks[NotificationKind.APPOINTMENT_REMINDER].scheduled_for == start - timedelta(hours=2)
        assert tasks[NotificationKind.PRE_PROCEDURE].scheduled_for == start

        due_sms = backend.notifications.list_due(NotificationChannel.SMS)
        assert [n.kind for n in due_sms] == [NotificationKind.APPOINTMENT_REMINDER]

    def test_cancel_short_notice_booking_before_reminder_is_sent(self, backend, patient, clock):
        """The reminder is already due when the booking is cancelled; only the cancellation goes out."""
        appointment = backend.appointments.book(patient, make_booking(start=NOW + timedelta(hours=1)))

        clock.advance(minutes=5)
        backend.appointments.cancel(patient, appointment.id)

        due_sms = backend.notifications.list_due(NotificationChannel.SMS)
        assert [(n.kind, n.appointment_id) for n in due_sms] == [
            (NotificationKind.APPOINTMENT_CANCELLATION, appointment.id)
        ]


class TestSessionWorkflow:
    """Run a session from booking to feedback."""

    def test_complete_and_give_feedback(self, backend, patient, practitioner, clock):
        appointment = backend.appointments.book(patient, make_booking())
        backend.appointments.confirm(practitioner, appointment.id)

        clock.now = APPOINTMENT_START
        backend.appointments.start(practitioner, appointment.id)
        clock.now = APPOINTMENT_START + timedelta(hours=1)
        completed = backend.appointments.complete(
            practitioner, appointment.id, practitioner_notes="Tolerated well"
        )
        assert completed.completed_at == clock.now

        tasks = _tasks_by_kind(backend, appointment.id)
        assert tasks[NotificationKind.POST_PROCEDURE].scheduled_for == clock.now + timedelta(hours=1)
        assert tasks[NotificationKind.FEEDBACK_REQUEST].scheduled_for == clock.now + timedelta(hours=2)
        assert "Rest for 30 minutes after the session" in tasks[NotificationKind.POST_PROCEDURE].message

        clock.advance(hours=3)
        due_in_app = {n.kind for n in backend.notifications.list_due(NotificationChannel.IN_APP)}
        assert {NotificationKind.POST_PROCEDURE, NotificationKind.FEEDBACK_REQUEST} <= due_in_app

        feedback = backend.feedback.submit(patient, appointment.id, FeedbackSubmission(rating=5))
        assert feedback.practitioner_id == PRACTITIONER_ID

        stats = backend.appointments.stats(patient, PATIENT_ID, UserRole.PATIENT)
        assert stats["completed"] == 1
        assert stats["completion_rate"] == 100

    def test_notification_failure_does_not_block_booking(self, backend, patient, monkeypatch):
        """A broken notification store leaves the booking in place."""
        def broken_add(draft):
            raise RuntimeError("notification table locked")

        monkeypatch.setattr(backend.notification_store, "add", broken_add)

        appointment = backend.appointments.book(patient, make_booking())

        assert backend.appointment_store.get(appointment.id).status == AppointmentStatus.SCHEDULED
        assert time(10, 0) not in backend.availability.available_slots(PRACTITIONER_ID, DAY)
