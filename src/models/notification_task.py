"""
Notification task model for derived, scheduled notifications.

This model stores every notification derived from appointment lifecycle
events (confirmations, reminders, pre/post-procedure instructions,
cancellations, feedback requests) and therapy progress updates. External
delivery workers consume rows whose scheduled_for has passed.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import MAX_NOTIFICATION_TITLE_LENGTH, MAX_STRING_LENGTH, MAX_THERAPY_NAME_LENGTH
from core.database import Base
from models.base import UTCDateTime
from shared_types.scheduling import (
    NotificationCategory, NotificationKind, NotificationRecord, NotificationStatus
)


class NotificationTask(Base):
    """
    Scheduled notification entity.

    `scheduled_for` is the deliver-no-earlier-than time. It is derived from
    the triggering event and never changes after creation.
    """

    __tablename__ = "notification_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Unique identifier for the notification task."""

    user_id: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), nullable=False)
    """Identity-provider user id of the recipient."""

    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    """Notification kind, see NotificationKind."""

    category: Mapped[str] = mapped_column(String(30), nullable=False)

    appointment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("appointments.id"), nullable=True
    )
    """Appointment that triggered this notification (absent for therapy progress)."""

    therapy: Mapped[Optional[str]] = mapped_column(String(MAX_THERAPY_NAME_LENGTH), nullable=True)

    title: Mapped[str] = mapped_column(String(MAX_NOTIFICATION_TITLE_LENGTH), nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    scheduled_for: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    """When the notification may be delivered."""

    send_email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    send_sms: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    send_in_app: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    sent_email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_sms: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_in_app: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    """Set when the recipient acknowledges the notification."""

    status: Mapped[str] = mapped_column(String(20), default=NotificationStatus.PENDING.value, nullable=False)
    """'pending' or 'skipped' (suppressed because its appointment was cancelled)."""

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'skipped')", name="check_notification_status"),
        Index("idx_notification_tasks_user_created", "user_id", "created_at"),
        Index("idx_notification_tasks_appointment", "appointment_id"),
        # Delivery worker query: pending tasks that are due
        Index("idx_notification_tasks_status_scheduled", "status", "scheduled_for"),
    )

    def to_record(self) -> NotificationRecord:
        """Convert to the store-independent record type."""
        return NotificationRecord(
            id=self.id,
            user_id=self.user_id,
            kind=NotificationKind(self.kind),
            category=NotificationCategory(self.category),
            title=self.title,
            message=self.message,
            scheduled_for=self.scheduled_for,
            appointment_id=self.appointment_id,
            therapy=self.therapy,
            send_email=self.send_email,
            send_sms=self.send_sms,
            send_in_app=self.send_in_app,
            sent_email=self.sent_email,
            sent_sms=self.sent_sms,
            sent_in_app=self.sent_in_app,
            read=self.read,
            status=NotificationStatus(self.status),
            created_at=self.created_at,
        )
