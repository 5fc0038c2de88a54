"""
Availability service for practitioner slot calculation.

A practitioner's day is a fixed catalog of time-of-day slot starts in the
clinic's timezone. A slot is free when the window [slot, slot + duration)
overlaps none of the practitioner's non-cancelled appointments.
"""

import logging
from datetime import date as date_type, datetime, time, timedelta
from typing import List, Optional, Sequence, Tuple

from core.config import SchedulingSettings
from core.exceptions import ValidationError
from services.appointment_store import AppointmentStore
from shared_types.availability import SlotData
from shared_types.scheduling import AppointmentRecord
from utils.datetime_utils import combine_local, get_timezone

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Service class for availability operations.

    Read-only: never writes to the appointment store.
    """

    def __init__(self, store: AppointmentStore, settings: SchedulingSettings):
        self.store = store
        self.settings = settings

    def available_slots(
        self,
        practitioner_id: str,
        day: date_type,
        slot_catalog: Optional[Sequence[time]] = None,
        duration_minutes: Optional[int] = None,
    ) -> List[time]:
        """
        Get the free slot starts for a practitioner on a date.

        Args:
            practitioner_id: Practitioner to check
            day: Calendar date in the clinic's timezone
            slot_catalog: Slot starts to consider; defaults to the configured catalog
            duration_minutes: Length of the requested visit; defaults to the slot length

        Returns:
            Free slot starts in ascending order. An unknown practitioner or an
            empty day yields the whole catalog.

        Raises:
            ValidationError: If duration_minutes is not positive
        """
        return [
            slot.start_time
            for slot in self.get_day_slots(practitioner_id, day, slot_catalog, duration_minutes)
            if slot.is_available
        ]

    def get_day_slots(
        self,
        practitioner_id: str,
        day: date_type,
        slot_catalog: Optional[Sequence[time]] = None,
        duration_minutes: Optional[int] = None,
    ) -> List[SlotData]:
        """Every catalog slot of the day with its availability flag."""
        duration = duration_minutes if duration_minutes is not None else self.settings.slot_minutes
        if duration <= 0:
            raise ValidationError("duration must be greater than zero")

        catalog = sorted(set(slot_catalog if slot_catalog is not None else self.settings.slot_catalog))
        if not catalog:
            return []

        tz = get_timezone(self.settings.clinic_timezone)
        windows = [self._slot_window(day, slot, duration, tz) for slot in catalog]

        # One query covering every candidate window
        bookings = self.store.list_for_practitioner_between(
            practitioner_id, windows[0][0], windows[-1][1]
        )

        slots: List[SlotData] = []
        for slot, (start, end) in zip(catalog, windows):
            slots.append(SlotData(
                start_time=slot,
                end_time=end.astimezone(tz).time(),
                is_available=not self._has_conflict(bookings, start, end),
            ))

        logger.debug(
            f"Practitioner {practitioner_id} on {day}: "
            f"{sum(1 for s in slots if s.is_available)}/{len(slots)} slots free"
        )
        return slots

    @staticmethod
    def _slot_window(day: date_type, slot: time, duration: int, tz) -> Tuple[datetime, datetime]:
        start = combine_local(day, slot, tz)
        return start, start + timedelta(minutes=duration)

    @staticmethod
    def _has_conflict(bookings: List[AppointmentRecord], start: datetime, end: datetime) -> bool:
        return any(booking.overlaps(start, end) for booking in bookings)
