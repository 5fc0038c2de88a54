"""
Session feedback API endpoints.

Patients submit one feedback entry per completed appointment and may revise
it; patients, practitioners and admins read it back, and practitioners get a
rating summary.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from api.dependencies import get_feedback_service
from api.responses import FeedbackListResponse, FeedbackResponse, FeedbackStatsResponse
from auth.dependencies import UserContext, get_current_user
from core.constants import MAX_FEEDBACK_RATING, MAX_NOTES_LENGTH, MIN_FEEDBACK_RATING
from core.exceptions import ValidationError
from services.feedback_service import FeedbackService
from shared_types.scheduling import FeedbackSubmission, FeedbackUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


class FeedbackRequest(BaseModel):
    """Request model for submitting session feedback."""
    rating: Optional[int] = Field(None, ge=MIN_FEEDBACK_RATING, le=MAX_FEEDBACK_RATING)
    symptoms: List[str] = []
    improvements: List[str] = []
    side_effects: List[str] = []
    overall_feeling: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    follow_up_needed: bool = False


class FeedbackUpdateRequest(BaseModel):
    """Request model for revising feedback; omitted fields stay as they are."""
    rating: Optional[int] = Field(None, ge=MIN_FEEDBACK_RATING, le=MAX_FEEDBACK_RATING)
    symptoms: Optional[List[str]] = None
    improvements: Optional[List[str]] = None
    side_effects: Optional[List[str]] = None
    overall_feeling: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    follow_up_needed: Optional[bool] = None


@router.post(
    "/appointments/{appointment_id}/feedback",
    summary="Submit session feedback",
    status_code=status.HTTP_201_CREATED,
    response_model=FeedbackResponse,
)
async def submit_feedback(
    appointment_id: int,
    request: FeedbackRequest,
    current_user: UserContext = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> FeedbackResponse:
    submission = FeedbackSubmission(**request.model_dump())
    return FeedbackResponse.from_record(service.submit(current_user, appointment_id, submission))


@router.patch(
    "/appointments/{appointment_id}/feedback",
    summary="Revise session feedback",
    response_model=FeedbackResponse,
)
async def update_feedback(
    appointment_id: int,
    request: FeedbackUpdateRequest,
    current_user: UserContext = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> FeedbackResponse:
    update = FeedbackUpdate(**request.model_dump())
    return FeedbackResponse.from_record(service.update(current_user, appointment_id, update))


@router.get(
    "/appointments/{appointment_id}/feedback",
    summary="Get feedback for an appointment",
    response_model=FeedbackResponse,
)
async def get_feedback(
    appointment_id: int,
    current_user: UserContext = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> FeedbackResponse:
    return FeedbackResponse.from_record(service.get_for_appointment(current_user, appointment_id))


@router.get("/feedback", summary="List feedback", response_model=FeedbackListResponse)
async def list_feedback(
    patient_id: Optional[str] = Query(None),
    practitioner_id: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Only the most recent entries"),
    current_user: UserContext = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> FeedbackListResponse:
    """List feedback given by a patient or received by a practitioner, newest first."""
    if (patient_id is None) == (practitioner_id is None):
        raise ValidationError("Provide exactly one of patient_id or practitioner_id")

    if patient_id is not None:
        records = service.list_for_patient(current_user, patient_id, limit=limit)
    else:
        records = service.list_for_practitioner(current_user, practitioner_id, limit=limit)  # type: ignore[arg-type]
    return FeedbackListResponse(feedback=[FeedbackResponse.from_record(r) for r in records])


@router.get(
    "/practitioners/{practitioner_id}/feedback/stats",
    summary="Feedback summary for a practitioner",
    response_model=FeedbackStatsResponse,
)
async def get_feedback_stats(
    practitioner_id: str,
    current_user: UserContext = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
) -> FeedbackStatsResponse:
    return FeedbackStatsResponse(**service.stats_for_practitioner(current_user, practitioner_id))
