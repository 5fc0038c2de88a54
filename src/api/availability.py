"""
Practitioner availability API endpoints.

Returns the free and booked slots of a practitioner's day, computed from the
clinic's slot catalog and the practitioner's non-cancelled appointments.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_availability_service
from api.responses import AvailabilityResponse
from auth.dependencies import UserContext, get_current_user
from services.availability_service import AvailabilityService
from utils.datetime_utils import parse_date_string

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/practitioners/{practitioner_id}/availability",
    summary="Get available time slots for booking",
    response_model=AvailabilityResponse,
)
async def get_availability(
    practitioner_id: str,
    date: str = Query(..., description="Date in YYYY-MM-DD format"),
    duration: Optional[int] = Query(None, description="Visit length in minutes (defaults to the slot length)"),
    current_user: UserContext = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """
    Get a practitioner's slots on a date.

    Any authenticated user may view availability. An unknown practitioner
    has every slot free.
    """
    # ValueError on a malformed date is reported as 400 by the global handler
    day = parse_date_string(date)
    duration_minutes = duration if duration is not None else service.settings.slot_minutes

    slots = service.get_day_slots(practitioner_id, day, duration_minutes=duration_minutes)
    return AvailabilityResponse.build(practitioner_id, day, duration_minutes, slots)
