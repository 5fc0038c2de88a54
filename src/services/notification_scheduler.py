"""
Notification scheduler for appointment lifecycle events.

This service derives notification tasks from lifecycle events with fixed
offsets relative to the appointment start (T) and the event time (N), and
persists them in the notification task store. Delivery itself is done by
external workers reading due tasks.

Notification creation is best-effort: each task is persisted on its own and
a failure is logged, never raised to the caller whose appointment change
already succeeded.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional

from core.config import SchedulingSettings
from core.constants import NOTIFICATION_DUE_BATCH_SIZE
from core.exceptions import NotFoundError, NotificationDeliveryDeferred, ValidationError
from services.message_template_service import MessageTemplateService
from services.notification_store import NotificationStore
from shared_types.scheduling import (
    LifecycleEvent,
    LifecycleEventType,
    NotificationCategory,
    NotificationChannel,
    NotificationDraft,
    NotificationKind,
    NotificationRecord,
)
from utils.datetime_utils import get_timezone, utc_now

logger = logging.getLogger(__name__)


CATEGORY_FOR_KIND: Dict[NotificationKind, NotificationCategory] = {
    NotificationKind.APPOINTMENT_CONFIRMATION: NotificationCategory.APPOINTMENT,
    NotificationKind.APPOINTMENT_REMINDER: NotificationCategory.APPOINTMENT,
    NotificationKind.PRE_PROCEDURE: NotificationCategory.PRE_PROCEDURE,
    NotificationKind.POST_PROCEDURE: NotificationCategory.POST_PROCEDURE,
    NotificationKind.APPOINTMENT_CANCELLATION: NotificationCategory.APPOINTMENT,
    NotificationKind.FEEDBACK_REQUEST: NotificationCategory.GENERAL,
    NotificationKind.THERAPY_PROGRESS: NotificationCategory.THERAPY_UPDATE,
}

_IN_APP = NotificationChannel.IN_APP
_EMAIL = NotificationChannel.EMAIL
_SMS = NotificationChannel.SMS

CHANNELS_FOR_KIND: Dict[NotificationKind, FrozenSet[NotificationChannel]] = {
    NotificationKind.APPOINTMENT_CONFIRMATION: frozenset({_IN_APP, _EMAIL}),
    NotificationKind.APPOINTMENT_REMINDER: frozenset({_IN_APP, _EMAIL, _SMS}),
    NotificationKind.PRE_PROCEDURE: frozenset({_IN_APP, _EMAIL}),
    NotificationKind.POST_PROCEDURE: frozenset({_IN_APP}),
    NotificationKind.APPOINTMENT_CANCELLATION: frozenset({_IN_APP, _EMAIL, _SMS}),
    NotificationKind.FEEDBACK_REQUEST: frozenset({_IN_APP}),
    NotificationKind.THERAPY_PROGRESS: frozenset({_IN_APP}),
}


def _draft(
    event: LifecycleEvent,
    kind: NotificationKind,
    scheduled_for: datetime,
    context: Dict[str, object],
) -> NotificationDraft:
    appointment = event.appointment
    rendered = MessageTemplateService.render(kind, context)
    return NotificationDraft(
        user_id=appointment.patient_id,
        kind=kind,
        category=CATEGORY_FOR_KIND[kind],
        title=rendered["title"],
        message=rendered["message"],
        scheduled_for=scheduled_for,
        appointment_id=appointment.id,
        therapy=appointment.therapy,
        channels=CHANNELS_FOR_KIND[kind],
    )


def plan_notifications(event: LifecycleEvent, settings: SchedulingSettings) -> List[NotificationDraft]:
    """
    Derive the notifications implied by a lifecycle event.

    Pure function of the event and the settings: the same event always
    yields the same drafts.

    | Event     | Kind                     | scheduled_for        |
    |-----------|--------------------------|----------------------|
    | created   | appointment_confirmation | N                    |
    | created   | appointment_reminder     | T - reminder offset  |
    | created   | pre_procedure            | min(N + offset, T)   |
    | cancelled | appointment_cancellation | N                    |
    | completed | post_procedure           | N + offset           |
    | completed | feedback_request         | N + offset           |

    Other events (confirmed, started, no_show) produce nothing.
    """
    appointment = event.appointment
    tz = get_timezone(settings.clinic_timezone)
    now = event.occurred_at
    start = appointment.start_time

    if event.event_type == LifecycleEventType.CREATED:
        context = MessageTemplateService.build_appointment_context(
            appointment, tz, hours_before=settings.reminder_hours_before
        )
        pre_instructions = MessageTemplateService.format_instructions(
            MessageTemplateService.get_pre_procedure_instructions(appointment.therapy)
        )
        pre_procedure_at = min(now + timedelta(hours=settings.pre_procedure_hours_after_booking), start)
        return [
            _draft(event, NotificationKind.APPOINTMENT_CONFIRMATION, now, context),
            _draft(
                event,
                NotificationKind.APPOINTMENT_REMINDER,
                start - timedelta(hours=settings.reminder_hours_before),
                context,
            ),
            _draft(
                event,
                NotificationKind.PRE_PROCEDURE,
                pre_procedure_at,
                {**context, "instructions": pre_instructions},
            ),
        ]

    if event.event_type == LifecycleEventType.CANCELLED:
        context = MessageTemplateService.build_appointment_context(appointment, tz, reason=event.reason)
        return [_draft(event, NotificationKind.APPOINTMENT_CANCELLATION, now, context)]

    if event.event_type == LifecycleEventType.COMPLETED:
        context = MessageTemplateService.build_appointment_context(appointment, tz)
        post_instructions = MessageTemplateService.format_instructions(
            MessageTemplateService.get_post_procedure_instructions(appointment.therapy)
        )
        return [
            _draft(
                event,
                NotificationKind.POST_PROCEDURE,
                now + timedelta(hours=settings.post_procedure_hours_after_completion),
                {**context, "instructions": post_instructions},
            ),
            _draft(
                event,
                NotificationKind.FEEDBACK_REQUEST,
                now + timedelta(hours=settings.feedback_request_hours_after_completion),
                context,
            ),
        ]

    return []


class NotificationScheduler:
    """Turns lifecycle events into persisted notification tasks."""

    def __init__(
        self,
        store: NotificationStore,
        settings: SchedulingSettings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock

    def on_lifecycle_event(self, event: LifecycleEvent) -> List[NotificationRecord]:
        """
        Create the notification tasks for a lifecycle event.

        On cancellation, every task of the appointment not yet delivered on
        all its channels is marked skipped first, including ones already
        due, so a cancelled appointment is never reminded.

        Returns:
            The tasks that were persisted; failed ones are logged and omitted
        """
        appointment = event.appointment

        if event.event_type == LifecycleEventType.CANCELLED:
            self._skip_pending(appointment.id)

        created: List[NotificationRecord] = []
        for draft in plan_notifications(event, self.settings):
            try:
                created.append(self.store.add(draft))
            except Exception as e:
                deferred = NotificationDeliveryDeferred(draft.kind.value, appointment.id, e)
                logger.exception(str(deferred))

        if created:
            logger.info(
                f"Scheduled {len(created)} notification(s) for appointment {appointment.id} "
                f"({event.event_type.value})"
            )
        return created

    def _skip_pending(self, appointment_id: int) -> None:
        try:
            skipped = self.store.skip_pending_for_appointment(appointment_id)
        except Exception:
            logger.exception(f"Failed to skip pending notifications for appointment {appointment_id}")
            return

        if skipped:
            logger.info(f"Skipped {skipped} pending notification(s) for cancelled appointment {appointment_id}")

    def notify_therapy_progress(
        self,
        patient_id: str,
        therapy: str,
        progress: str,
        now: Optional[datetime] = None,
    ) -> NotificationRecord:
        """
        Record a therapy milestone notification, deliverable immediately.

        Raises:
            ValidationError: If patient, therapy or progress text is missing
        """
        if not patient_id or not patient_id.strip():
            raise ValidationError("patient_id is required")
        if not therapy or not therapy.strip():
            raise ValidationError("therapy is required")
        if not progress or not progress.strip():
            raise ValidationError("progress message is required")

        kind = NotificationKind.THERAPY_PROGRESS
        rendered = MessageTemplateService.render(
            kind, {"therapy": therapy.strip(), "progress": progress.strip()}
        )
        draft = NotificationDraft(
            user_id=patient_id,
            kind=kind,
            category=CATEGORY_FOR_KIND[kind],
            title=rendered["title"],
            message=rendered["message"],
            scheduled_for=now or self.clock(),
            therapy=therapy.strip(),
            channels=CHANNELS_FOR_KIND[kind],
        )
        record = self.store.add(draft)
        logger.info(f"Scheduled therapy progress notification {record.id} for patient {patient_id}")
        return record

    def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[NotificationRecord]:
        return self.store.list_for_user(user_id, unread_only=unread_only, limit=limit)

    def mark_read(self, user_id: str, notification_id: int) -> NotificationRecord:
        """
        Mark a notification read on behalf of its recipient.

        Raises:
            NotFoundError: If the notification does not exist or belongs to someone else
        """
        record = self.store.get(notification_id)
        if record.user_id != user_id:
            raise NotFoundError(f"Notification {notification_id} not found")
        return self.store.mark_read(notification_id)

    def mark_all_read(self, user_id: str) -> int:
        return self.store.mark_all_read(user_id)

    def list_due(self, channel: NotificationChannel, limit: int = NOTIFICATION_DUE_BATCH_SIZE) -> List[NotificationRecord]:
        """Pending tasks due by now that still need delivery on the channel."""
        return self.store.list_due(channel, self.clock(), limit=limit)

    def mark_sent(self, notification_id: int, channel: NotificationChannel) -> NotificationRecord:
        record = self.store.mark_sent(notification_id, channel)
        logger.debug(f"Notification {notification_id} delivered via {channel.value}")
        return record
