"""
Notification API endpoints.

Recipients list their notifications and mark them read. Practitioners post
therapy progress updates. Delivery workers (admin credentials) fetch tasks
that are due on a channel and record delivery.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from api.dependencies import get_notification_scheduler
from api.responses import MarkAllReadResponse, NotificationListResponse, NotificationResponse
from auth.dependencies import UserContext, get_current_user, require_admin_role, require_practitioner_role
from core.constants import NOTIFICATION_DUE_BATCH_SIZE
from services.notification_scheduler import NotificationScheduler
from shared_types.scheduling import NotificationChannel

logger = logging.getLogger(__name__)

router = APIRouter()


class TherapyProgressRequest(BaseModel):
    """Request model for a therapy milestone update."""
    patient_id: str
    therapy: str = Field(..., max_length=100)
    progress: str = Field(..., max_length=1000)


@router.get("", summary="List my notifications", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1, le=500),
    current_user: UserContext = Depends(get_current_user),
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
) -> NotificationListResponse:
    """List the caller's notifications, newest first."""
    notifications = scheduler.list_for_user(current_user.user_id, unread_only=unread_only, limit=limit)
    unread = scheduler.list_for_user(current_user.user_id, unread_only=True)
    return NotificationListResponse(
        notifications=[NotificationResponse.from_record(n) for n in notifications],
        unread_count=len(unread),
    )


@router.patch("/read-all", summary="Mark all my notifications read", response_model=MarkAllReadResponse)
async def mark_all_notifications_read(
    current_user: UserContext = Depends(get_current_user),
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
) -> MarkAllReadResponse:
    return MarkAllReadResponse(updated=scheduler.mark_all_read(current_user.user_id))


@router.patch("/{notification_id}/read", summary="Mark a notification read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    current_user: UserContext = Depends(get_current_user),
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
) -> NotificationResponse:
    return NotificationResponse.from_record(scheduler.mark_read(current_user.user_id, notification_id))


@router.post(
    "/therapy-progress",
    summary="Send a therapy progress update",
    status_code=status.HTTP_201_CREATED,
    response_model=NotificationResponse,
)
async def send_therapy_progress(
    request: TherapyProgressRequest,
    current_user: UserContext = Depends(require_practitioner_role),
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
) -> NotificationResponse:
    """Notify a patient that a therapy milestone was reached."""
    record = scheduler.notify_therapy_progress(request.patient_id, request.therapy, request.progress)
    logger.info(f"User {current_user.user_id} sent therapy progress {record.id} to {request.patient_id}")
    return NotificationResponse.from_record(record)


@router.get("/due", summary="Notifications due for delivery", response_model=NotificationListResponse)
async def list_due_notifications(
    channel: NotificationChannel = Query(...),
    limit: int = Query(NOTIFICATION_DUE_BATCH_SIZE, ge=1, le=1000),
    current_user: UserContext = Depends(require_admin_role),
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
) -> NotificationListResponse:
    """Pending tasks whose time has come and that are not yet sent on the channel."""
    due = scheduler.list_due(channel, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.from_record(n) for n in due],
        unread_count=sum(1 for n in due if not n.read),
    )


@router.patch("/{notification_id}/sent", summary="Record delivery", response_model=NotificationResponse)
async def mark_notification_sent(
    notification_id: int,
    channel: NotificationChannel = Query(...),
    current_user: UserContext = Depends(require_admin_role),
    scheduler: NotificationScheduler = Depends(get_notification_scheduler),
) -> NotificationResponse:
    return NotificationResponse.from_record(scheduler.mark_sent(notification_id, channel))
