"""
Unit tests for the appointment store gateway.

Every test runs against both the SQL (SQLite) and the in-memory strategy via
the parametrized appointment_store fixture.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from shared_types.scheduling import (
    AppointmentFilters,
    AppointmentStatus,
    LifecycleEventType,
    UserRole,
)
from services.appointment_store import InMemoryAppointmentStore, SqlAppointmentStore
from tests.conftest import APPOINTMENT_START, NOW, PATIENT_ID, PRACTITIONER_ID, make_booking


class TestCreate:
    """Test booking through the store."""

    def test_create_returns_scheduled_appointment(self, appointment_store):
        """A valid request is stored as scheduled with a created event."""
        change = appointment_store.create(make_booking(notes="First visit"), now=NOW)

        appointment = change.appointment
        assert appointment.id is not None
        assert appointment.status == AppointmentStatus.SCHEDULED
        assert appointment.patient_id == PATIENT_ID
        assert appointment.practitioner_id == PRACTITIONER_ID
        assert appointment.start_time == APPOINTMENT_START
        assert appointment.end_time == APPOINTMENT_START + timedelta(minutes=60)
        assert appointment.notes == "First visit"

        assert change.event is not None
        assert change.event.event_type == LifecycleEventType.CREATED
        assert change.event.occurred_at == NOW

    def test_start_time_is_normalized_to_utc(self, appointment_store):
        """Offsets other than UTC are stored as the same instant in UTC."""
        plus_two = timezone(timedelta(hours=2))
        change = appointment_store.create(
            make_booking(start=datetime(2024, 1, 15, 12, 0, tzinfo=plus_two)), now=NOW
        )

        stored = appointment_store.get(change.appointment.id)
        assert stored.start_time == APPOINTMENT_START
        assert stored.start_time.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("overrides", [
        {"duration_minutes": 0},
        {"duration_minutes": -30},
        {"patient_id": ""},
        {"practitioner_id": "  "},
        {"therapy": ""},
        {"start": NOW - timedelta(minutes=1)},
        {"start": datetime(2024, 1, 15, 10, 0)},
    ])
    def test_invalid_request_is_rejected_without_writing(self, appointment_store, overrides):
        """Malformed requests raise ValidationError and leave the store untouched."""
        with pytest.raises(ValidationError):
            appointment_store.create(make_booking(**overrides), now=NOW)

        assert appointment_store.count_for(PATIENT_ID, UserRole.PATIENT) == 0

    def test_same_start_is_a_conflict(self, appointment_store):
        """A second booking at the same start for the same practitioner is rejected."""
        appointment_store.create(make_booking(), now=NOW)

        with pytest.raises(ConflictError):
            appointment_store.create(make_booking(patient_id="patient-2"), now=NOW)

    def test_overlapping_window_is_a_conflict(self, appointment_store):
        """A booking starting inside an existing 60-minute session is rejected."""
        appointment_store.create(make_booking(duration_minutes=60), now=NOW)

        with pytest.raises(ConflictError):
            appointment_store.create(
                make_booking(start=APPOINTMENT_START + timedelta(minutes=30), patient_id="patient-2"),
                now=NOW,
            )

    def test_adjacent_window_is_not_a_conflict(self, appointment_store):
        """Half-open intervals: a session may start exactly when the previous ends."""
        appointment_store.create(make_booking(duration_minutes=60), now=NOW)

        change = appointment_store.create(
            make_booking(start=APPOINTMENT_START + timedelta(minutes=60), patient_id="patient-2"),
            now=NOW,
        )
        assert change.appointment.status == AppointmentStatus.SCHEDULED

    def test_other_practitioner_is_not_a_conflict(self, appointment_store):
        appointment_store.create(make_booking(), now=NOW)

        change = appointment_store.create(make_booking(practitioner_id="practitioner-2"), now=NOW)
        assert change.appointment.practitioner_id == "practitioner-2"

    def test_cancelled_slot_can_be_rebooked(self, appointment_store):
        """Cancelled appointments no longer occupy the practitioner's calendar."""
        first = appointment_store.create(make_booking(), now=NOW).appointment
        appointment_store.update(first.id, {"status": AppointmentStatus.CANCELLED}, now=NOW)

        second = appointment_store.create(make_booking(patient_id="patient-2"), now=NOW).appointment
        assert second.id != first.id
        assert second.status == AppointmentStatus.SCHEDULED


class TestConcurrentCreate:
    """Test the atomicity of check-then-insert in the in-memory store."""

    def test_only_one_of_many_racing_bookings_wins(self):
        """Threads booking the same slot: exactly one succeeds."""
        store = InMemoryAppointmentStore()
        barrier = threading.Barrier(8)
        results: list[str] = []
        results_lock = threading.Lock()

        def book(index: int) -> None:
            barrier.wait()
            try:
                store.create(make_booking(patient_id=f"patient-{index}"), now=NOW)
                outcome = "ok"
            except ConflictError:
                outcome = "conflict"
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=book, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("ok") == 1
        assert results.count("conflict") == 7
        assert len(store.list_for_practitioner_between(
            PRACTITIONER_ID, APPOINTMENT_START, APPOINTMENT_START + timedelta(hours=1)
        )) == 1


class _StoreWithoutOverlapCheck(SqlAppointmentStore):
    """SQL store whose in-transaction overlap query never finds anything."""

    def _find_overlap(self, db, practitioner_id, start, end):
        return None


class TestDatabaseConflictGuard:
    """Test the database constraint behind the SQL store's overlap check."""

    def test_unique_index_rejects_booking_that_passes_the_check(self, session_factory):
        """Two bookings at the same start both pass the query; the index stops the second."""
        store = _StoreWithoutOverlapCheck(session_factory)
        store.create(make_booking(), now=NOW)

        with pytest.raises(ConflictError):
            store.create(make_booking(patient_id="patient-2"), now=NOW)

        active = store.list_for_practitioner_between(
            PRACTITIONER_ID, APPOINTMENT_START, APPOINTMENT_START + timedelta(hours=1)
        )
        assert [a.patient_id for a in active] == [PATIENT_ID]


class TestRead:
    """Test get, list_for and count_for."""

    def test_get_unknown_id_raises_not_found(self, appointment_store):
        with pytest.raises(NotFoundError):
            appointment_store.get(9999)

    def test_list_for_orders_by_start_ascending(self, appointment_store):
        """Listing is ordered by start time regardless of insertion order."""
        later = appointment_store.create(
            make_booking(start=APPOINTMENT_START + timedelta(days=2)), now=NOW
        ).appointment
        earlier = appointment_store.create(make_booking(), now=NOW).appointment
        middle = appointment_store.create(
            make_booking(start=APPOINTMENT_START + timedelta(days=1)), now=NOW
        ).appointment

        listed = appointment_store.list_for(PATIENT_ID, UserRole.PATIENT)
        assert [a.id for a in listed] == [earlier.id, middle.id, later.id]

    def test_list_for_matches_role_column(self, appointment_store):
        """Patients see bookings they made; practitioners see bookings assigned to them."""
        appointment_store.create(make_booking(), now=NOW)
        appointment_store.create(
            make_booking(patient_id="patient-2", practitioner_id="practitioner-2"), now=NOW
        )

        assert len(appointment_store.list_for(PATIENT_ID, UserRole.PATIENT)) == 1
        assert len(appointment_store.list_for("practitioner-2", UserRole.PRACTITIONER)) == 1
        assert appointment_store.list_for(PATIENT_ID, UserRole.PRACTITIONER) == []

    def test_list_for_admin_role_is_rejected(self, appointment_store):
        with pytest.raises(ValidationError):
            appointment_store.list_for(PATIENT_ID, UserRole.ADMIN)

    def test_list_for_filters(self, appointment_store):
        """Status, start range and limit filters combine."""
        first = appointment_store.create(make_booking(), now=NOW).appointment
        second = appointment_store.create(
            make_booking(start=APPOINTMENT_START + timedelta(days=1)), now=NOW
        ).appointment
        appointment_store.create(make_booking(start=APPOINTMENT_START + timedelta(days=2)), now=NOW)
        appointment_store.update(first.id, {"status": AppointmentStatus.CONFIRMED}, now=NOW)

        confirmed = appointment_store.list_for(
            PATIENT_ID, UserRole.PATIENT, AppointmentFilters(statuses=[AppointmentStatus.CONFIRMED])
        )
        assert [a.id for a in confirmed] == [first.id]

        from_second = appointment_store.list_for(
            PATIENT_ID, UserRole.PATIENT,
            AppointmentFilters(start_from=second.start_time, limit=1),
        )
        assert [a.id for a in from_second] == [second.id]

    def test_list_for_practitioner_between_excludes_cancelled(self, appointment_store):
        active = appointment_store.create(make_booking(), now=NOW).appointment
        cancelled = appointment_store.create(
            make_booking(start=APPOINTMENT_START + timedelta(hours=2)), now=NOW
        ).appointment
        appointment_store.update(cancelled.id, {"status": AppointmentStatus.CANCELLED}, now=NOW)

        day_start = APPOINTMENT_START.replace(hour=0)
        found = appointment_store.list_for_practitioner_between(
            PRACTITIONER_ID, day_start, day_start + timedelta(days=1)
        )
        assert [a.id for a in found] == [active.id]

    def test_count_for(self, appointment_store):
        first = appointment_store.create(make_booking(), now=NOW).appointment
        appointment_store.create(make_booking(start=APPOINTMENT_START + timedelta(days=1)), now=NOW)
        appointment_store.update(first.id, {"status": AppointmentStatus.CANCELLED}, now=NOW)

        assert appointment_store.count_for(PATIENT_ID, UserRole.PATIENT) == 2
        assert appointment_store.count_for(
            PATIENT_ID, UserRole.PATIENT, statuses=[AppointmentStatus.SCHEDULED]
        ) == 1
        assert appointment_store.count_for(
            PATIENT_ID, UserRole.PATIENT, start_from=APPOINTMENT_START + timedelta(hours=1)
        ) == 1


class TestUpdate:
    """Test partial updates and the transition check."""

    def test_legal_transition_returns_event(self, appointment_store):
        created = appointment_store.create(make_booking(), now=NOW).appointment

        change = appointment_store.update(created.id, {"status": AppointmentStatus.CONFIRMED}, now=NOW)

        assert change.appointment.status == AppointmentStatus.CONFIRMED
        assert change.event is not None
        assert change.event.event_type == LifecycleEventType.CONFIRMED
        assert change.event.previous_status == AppointmentStatus.SCHEDULED

    def test_status_accepts_plain_string(self, appointment_store):
        created = appointment_store.create(make_booking(), now=NOW).appointment

        change = appointment_store.update(created.id, {"status": "confirmed"}, now=NOW)
        assert change.appointment.status == AppointmentStatus.CONFIRMED

    def test_illegal_transition_leaves_record_unchanged(self, appointment_store):
        """scheduled -> completed is not an edge; nothing is written."""
        created = appointment_store.create(make_booking(), now=NOW).appointment

        with pytest.raises(InvalidTransitionError) as exc_info:
            appointment_store.update(created.id, {"status": AppointmentStatus.COMPLETED}, now=NOW)

        assert exc_info.value.current_status == "scheduled"
        assert exc_info.value.requested_status == "completed"
        assert appointment_store.get(created.id).status == AppointmentStatus.SCHEDULED

    def test_unknown_status_is_a_validation_error(self, appointment_store):
        created = appointment_store.create(make_booking(), now=NOW).appointment

        with pytest.raises(ValidationError):
            appointment_store.update(created.id, {"status": "archived"}, now=NOW)

    def test_unknown_field_is_rejected(self, appointment_store):
        created = appointment_store.create(make_booking(), now=NOW).appointment

        with pytest.raises(ValidationError):
            appointment_store.update(created.id, {"practitioner_id": "someone-else"}, now=NOW)

    def test_update_unknown_id_raises_not_found(self, appointment_store):
        with pytest.raises(NotFoundError):
            appointment_store.update(9999, {"notes": "x"}, now=NOW)

    def test_notes_update_has_no_event(self, appointment_store):
        created = appointment_store.create(make_booking(), now=NOW).appointment

        change = appointment_store.update(created.id, {"notes": "Bring towel"}, now=NOW)

        assert change.event is None
        assert appointment_store.get(created.id).notes == "Bring towel"

    def test_cancel_and_complete_set_timestamps(self, appointment_store):
        cancelled = appointment_store.create(make_booking(), now=NOW).appointment
        later = NOW + timedelta(hours=1)
        change = appointment_store.update(
            cancelled.id,
            {"status": AppointmentStatus.CANCELLED, "cancellation_reason": "Travel"},
            now=later,
        )
        assert change.appointment.cancelled_at == later
        assert change.appointment.cancellation_reason == "Travel"
        assert change.event.reason == "Travel"

        done = appointment_store.create(
            make_booking(start=APPOINTMENT_START + timedelta(days=1)), now=NOW
        ).appointment
        appointment_store.update(done.id, {"status": AppointmentStatus.IN_PROGRESS}, now=NOW)
        change = appointment_store.update(done.id, {"status": AppointmentStatus.COMPLETED}, now=later)
        assert change.appointment.completed_at == later

    def test_stale_expected_status_is_rejected(self, appointment_store):
        """A writer that validated against an outdated status loses."""
        created = appointment_store.create(make_booking(), now=NOW).appointment
        appointment_store.update(created.id, {"status": AppointmentStatus.CANCELLED}, now=NOW)

        with pytest.raises(InvalidTransitionError):
            appointment_store.update(
                created.id,
                {"status": AppointmentStatus.CONFIRMED},
                now=NOW,
                expected_status=AppointmentStatus.SCHEDULED,
            )
        assert appointment_store.get(created.id).status == AppointmentStatus.CANCELLED

    @pytest.mark.parametrize("terminal", [
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    ])
    def test_terminal_status_is_final(self, appointment_store, terminal):
        created = appointment_store.create(make_booking(), now=NOW).appointment
        if terminal == AppointmentStatus.COMPLETED:
            appointment_store.update(created.id, {"status": AppointmentStatus.IN_PROGRESS}, now=NOW)
        appointment_store.update(created.id, {"status": terminal}, now=NOW)

        for status in AppointmentStatus:
            if status == terminal:
                continue
            with pytest.raises(InvalidTransitionError):
                appointment_store.update(created.id, {"status": status}, now=NOW)
        assert appointment_store.get(created.id).status == terminal


class TestReturnedEvents:
    """Test the lifecycle event carried by every write."""

    def test_create_and_status_changes_carry_events(self, appointment_store):
        created = appointment_store.create(make_booking(), now=NOW)
        notes_change = appointment_store.update(created.appointment.id, {"notes": "quiet room"}, now=NOW)
        confirmed = appointment_store.update(
            created.appointment.id, {"status": AppointmentStatus.CONFIRMED}, now=NOW
        )

        assert created.event.event_type == LifecycleEventType.CREATED
        assert created.event.appointment.id == created.appointment.id
        assert notes_change.event is None
        assert confirmed.event.event_type == LifecycleEventType.CONFIRMED
        assert confirmed.event.previous_status == AppointmentStatus.SCHEDULED

    def test_cancel_event_carries_reason(self, appointment_store):
        created = appointment_store.create(make_booking(), now=NOW).appointment

        change = appointment_store.update(
            created.id,
            {"status": AppointmentStatus.CANCELLED, "cancellation_reason": "Travelling"},
            now=NOW,
        )

        assert change.event.event_type == LifecycleEventType.CANCELLED
        assert change.event.reason == "Travelling"
        assert change.event.occurred_at == NOW
