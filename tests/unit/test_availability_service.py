"""
Unit tests for AvailabilityService slot calculation.
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from core.config import SchedulingSettings, _default_slot_catalog
from core.exceptions import ValidationError
from services.availability_service import AvailabilityService
from shared_types.scheduling import AppointmentStatus, UserRole
from tests.conftest import APPOINTMENT_START, NOW, PRACTITIONER_ID, make_booking


DAY = date(2024, 1, 15)


@pytest.fixture
def service(appointment_store, settings):
    return AvailabilityService(appointment_store, settings)


class TestAvailableSlots:
    """Test free slot calculation."""

    def test_empty_day_returns_full_catalog(self, service):
        assert service.available_slots(PRACTITIONER_ID, DAY) == _default_slot_catalog()

    def test_default_catalog(self):
        catalog = _default_slot_catalog()
        assert len(catalog) == 13
        assert catalog[0] == time(9, 0)
        assert catalog[-1] == time(17, 0)
        assert time(12, 0) not in catalog

    def test_booked_slot_is_excluded(self, service, appointment_store):
        """A 30-minute booking at 10:00 removes exactly that slot."""
        appointment_store.create(make_booking(duration_minutes=30), now=NOW)

        slots = service.available_slots(PRACTITIONER_ID, DAY)

        assert time(10, 0) not in slots
        assert len(slots) == 12
        assert slots == sorted(slots)

    def test_long_booking_blocks_every_overlapping_slot(self, service, appointment_store):
        """A 90-minute session at 10:00 blocks 10:00, 10:30 and 11:00."""
        appointment_store.create(make_booking(duration_minutes=90), now=NOW)

        slots = service.available_slots(PRACTITIONER_ID, DAY)

        for blocked in (time(10, 0), time(10, 30), time(11, 0)):
            assert blocked not in slots
        assert time(9, 30) in slots
        assert time(11, 30) in slots

    def test_requested_duration_widens_the_window(self, service, appointment_store):
        """A 60-minute visit at 09:30 would run into the 10:00 booking."""
        appointment_store.create(make_booking(duration_minutes=30), now=NOW)

        slots = service.available_slots(PRACTITIONER_ID, DAY, duration_minutes=60)

        assert time(9, 30) not in slots
        assert time(9, 0) in slots
        assert time(10, 30) in slots

    def test_booking_between_grid_points(self, service, appointment_store):
        appointment_store.create(
            make_booking(start=APPOINTMENT_START + timedelta(minutes=15), duration_minutes=30), now=NOW
        )

        slots = service.available_slots(PRACTITIONER_ID, DAY)

        assert time(10, 0) not in slots
        assert time(10, 30) not in slots
        assert time(11, 0) in slots

    def test_cancelled_booking_frees_the_slot(self, service, appointment_store):
        created = appointment_store.create(make_booking(), now=NOW).appointment
        appointment_store.update(created.id, {"status": AppointmentStatus.CANCELLED}, now=NOW)

        assert time(10, 0) in service.available_slots(PRACTITIONER_ID, DAY)

    def test_other_practitioner_and_other_day_are_ignored(self, service, appointment_store):
        appointment_store.create(make_booking(practitioner_id="practitioner-2"), now=NOW)
        appointment_store.create(make_booking(start=APPOINTMENT_START + timedelta(days=1)), now=NOW)

        assert service.available_slots(PRACTITIONER_ID, DAY) == _default_slot_catalog()

    def test_unknown_practitioner_has_every_slot(self, service):
        assert service.available_slots("nobody", DAY) == _default_slot_catalog()

    def test_custom_catalog_is_sorted_and_deduplicated(self, service):
        catalog = [time(15, 0), time(9, 0), time(15, 0)]
        assert service.available_slots(PRACTITIONER_ID, DAY, slot_catalog=catalog) == [time(9, 0), time(15, 0)]

    def test_empty_catalog(self, service):
        assert service.available_slots(PRACTITIONER_ID, DAY, slot_catalog=[]) == []

    @pytest.mark.parametrize("duration", [0, -30])
    def test_non_positive_duration(self, service, duration):
        with pytest.raises(ValidationError):
            service.available_slots(PRACTITIONER_ID, DAY, duration_minutes=duration)

    def test_read_only(self, service, appointment_store):
        """Computing availability never writes to the store."""
        appointment_store.create(make_booking(), now=NOW)
        before = appointment_store.list_for(PRACTITIONER_ID, UserRole.PRACTITIONER)

        service.get_day_slots(PRACTITIONER_ID, DAY)

        assert appointment_store.list_for(PRACTITIONER_ID, UserRole.PRACTITIONER) == before


class TestClinicTimezone:
    """Slot times are local to the clinic."""

    def test_slots_are_local_times(self, appointment_store):
        settings = SchedulingSettings(store_backend="memory", clinic_timezone="Asia/Kolkata")
        service = AvailabilityService(appointment_store, settings)

        # 10:00 local in Kolkata is 04:30 UTC
        start = datetime(2024, 1, 15, 4, 30, tzinfo=timezone.utc)
        appointment_store.create(make_booking(start=start, duration_minutes=30), now=NOW)

        slots = service.available_slots(PRACTITIONER_ID, DAY)
        assert time(10, 0) not in slots
        assert len(slots) == 12


class TestDaySlots:

    def test_day_slots_flag_each_catalog_entry(self, service, appointment_store):
        appointment_store.create(make_booking(duration_minutes=30), now=NOW)

        slots = service.get_day_slots(PRACTITIONER_ID, DAY, slot_catalog=[time(9, 30), time(10, 0)])

        assert [(s.start_time, s.end_time, s.is_available) for s in slots] == [
            (time(9, 30), time(10, 0), True),
            (time(10, 0), time(10, 30), False),
        ]
        assert slots[1].to_dict() == {"start_time": "10:00", "end_time": "10:30", "is_available": False}
