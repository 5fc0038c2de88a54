"""
Notification task persistence.

Stores the tasks derived by the notification scheduler and exposes the
queries the recipients (list, mark read) and the external delivery workers
(due tasks per channel, mark sent) need. SQL and in-memory strategies mirror
services.appointment_store.
"""

import dataclasses
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session, sessionmaker

from core.constants import NOTIFICATION_DUE_BATCH_SIZE
from core.database import get_db_context
from core.exceptions import NotFoundError
from models import NotificationTask
from shared_types.scheduling import (
    NotificationChannel, NotificationDraft, NotificationRecord, NotificationStatus
)
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def _channel_fields(channel: NotificationChannel) -> tuple[str, str]:
    """Return the (send flag, sent flag) field names for a channel."""
    return f"send_{channel.value}", f"sent_{channel.value}"


def _undelivered(task: NotificationRecord) -> bool:
    """True while some requested channel has not been sent yet."""
    return any(
        getattr(task, send_field) and not getattr(task, sent_field)
        for send_field, sent_field in map(_channel_fields, NotificationChannel)
    )


class NotificationStore(ABC):
    """Notification task persistence capability."""

    @abstractmethod
    def add(self, draft: NotificationDraft) -> NotificationRecord:
        """Persist a derived notification."""

    @abstractmethod
    def get(self, notification_id: int) -> NotificationRecord:
        """Return the task or raise NotFoundError."""

    @abstractmethod
    def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[NotificationRecord]:
        """Tasks addressed to a user, newest first."""

    @abstractmethod
    def list_for_appointment(self, appointment_id: int) -> List[NotificationRecord]:
        """Tasks tied to an appointment, in creation order."""

    @abstractmethod
    def mark_read(self, notification_id: int) -> NotificationRecord:
        """Mark one task read."""

    @abstractmethod
    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread task of a user read; returns how many changed."""

    @abstractmethod
    def skip_pending_for_appointment(self, appointment_id: int) -> int:
        """
        Suppress the undelivered tasks of an appointment.

        Every pending task still owed on at least one of its channels is
        marked skipped, whether or not it is already due. Returns how many
        changed.
        """

    @abstractmethod
    def list_due(
        self,
        channel: NotificationChannel,
        now: datetime,
        limit: int = NOTIFICATION_DUE_BATCH_SIZE,
    ) -> List[NotificationRecord]:
        """Pending tasks due by `now` that still need delivery on `channel`."""

    @abstractmethod
    def mark_sent(self, notification_id: int, channel: NotificationChannel) -> NotificationRecord:
        """Record delivery on one channel."""


class SqlNotificationStore(NotificationStore):
    """NotificationStore backed by the relational database."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def add(self, draft: NotificationDraft) -> NotificationRecord:
        with get_db_context(self._session_factory) as db:
            task = NotificationTask(
                user_id=draft.user_id,
                kind=draft.kind.value,
                category=draft.category.value,
                appointment_id=draft.appointment_id,
                therapy=draft.therapy,
                title=draft.title,
                message=draft.message,
                scheduled_for=draft.scheduled_for,
                send_email=NotificationChannel.EMAIL in draft.channels,
                send_sms=NotificationChannel.SMS in draft.channels,
                send_in_app=NotificationChannel.IN_APP in draft.channels,
                sent_email=False,
                sent_sms=False,
                sent_in_app=False,
                read=False,
                status=NotificationStatus.PENDING.value,
            )
            db.add(task)
            db.flush()
            return task.to_record()

    def get(self, notification_id: int) -> NotificationRecord:
        with get_db_context(self._session_factory) as db:
            task = db.get(NotificationTask, notification_id)
            if task is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            return task.to_record()

    def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[NotificationRecord]:
        with get_db_context(self._session_factory) as db:
            query = db.query(NotificationTask).filter(NotificationTask.user_id == user_id)
            if unread_only:
                query = query.filter(NotificationTask.read == False)  # noqa: E712
            query = query.order_by(NotificationTask.created_at.desc(), NotificationTask.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [task.to_record() for task in query.all()]

    def list_for_appointment(self, appointment_id: int) -> List[NotificationRecord]:
        with get_db_context(self._session_factory) as db:
            tasks = db.query(NotificationTask).filter(
                NotificationTask.appointment_id == appointment_id
            ).order_by(NotificationTask.id.asc()).all()
            return [task.to_record() for task in tasks]

    def mark_read(self, notification_id: int) -> NotificationRecord:
        with get_db_context(self._session_factory) as db:
            task = db.get(NotificationTask, notification_id)
            if task is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            task.read = True
            db.flush()
            return task.to_record()

    def mark_all_read(self, user_id: str) -> int:
        with get_db_context(self._session_factory) as db:
            result = db.execute(
                update(NotificationTask)
                .where(NotificationTask.user_id == user_id, NotificationTask.read == False)  # noqa: E712
                .values(read=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    def skip_pending_for_appointment(self, appointment_id: int) -> int:
        undelivered = or_(*(
            and_(
                getattr(NotificationTask, send_field) == True,  # noqa: E712
                getattr(NotificationTask, sent_field) == False,  # noqa: E712
            )
            for send_field, sent_field in map(_channel_fields, NotificationChannel)
        ))

        with get_db_context(self._session_factory) as db:
            result = db.execute(
                update(NotificationTask)
                .where(
                    NotificationTask.appointment_id == appointment_id,
                    NotificationTask.status == NotificationStatus.PENDING.value,
                    undelivered,
                )
                .values(status=NotificationStatus.SKIPPED.value)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    def list_due(
        self,
        channel: NotificationChannel,
        now: datetime,
        limit: int = NOTIFICATION_DUE_BATCH_SIZE,
    ) -> List[NotificationRecord]:
        send_field, sent_field = _channel_fields(channel)

        with get_db_context(self._session_factory) as db:
            tasks = db.query(NotificationTask).filter(
                NotificationTask.status == NotificationStatus.PENDING.value,
                NotificationTask.scheduled_for <= now,
                getattr(NotificationTask, send_field) == True,  # noqa: E712
                getattr(NotificationTask, sent_field) == False,  # noqa: E712
            ).order_by(NotificationTask.scheduled_for.asc()).limit(limit).all()
            return [task.to_record() for task in tasks]

    def mark_sent(self, notification_id: int, channel: NotificationChannel) -> NotificationRecord:
        _, sent_field = _channel_fields(channel)

        with get_db_context(self._session_factory) as db:
            task = db.get(NotificationTask, notification_id)
            if task is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            setattr(task, sent_field, True)
            db.flush()
            return task.to_record()


class InMemoryNotificationStore(NotificationStore):
    """NotificationStore kept in process memory."""

    def __init__(self) -> None:
        self._tasks: Dict[int, NotificationRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add(self, draft: NotificationDraft) -> NotificationRecord:
        with self._lock:
            record = NotificationRecord(
                id=next(self._ids),
                user_id=draft.user_id,
                kind=draft.kind,
                category=draft.category,
                title=draft.title,
                message=draft.message,
                scheduled_for=draft.scheduled_for,
                appointment_id=draft.appointment_id,
                therapy=draft.therapy,
                send_email=NotificationChannel.EMAIL in draft.channels,
                send_sms=NotificationChannel.SMS in draft.channels,
                send_in_app=NotificationChannel.IN_APP in draft.channels,
                created_at=utc_now(),
            )
            self._tasks[record.id] = record
            return dataclasses.replace(record)

    def _require(self, notification_id: int) -> NotificationRecord:
        task = self._tasks.get(notification_id)
        if task is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return task

    def get(self, notification_id: int) -> NotificationRecord:
        with self._lock:
            return dataclasses.replace(self._require(notification_id))

    def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[NotificationRecord]:
        with self._lock:
            matches = [
                t for t in self._tasks.values()
                if t.user_id == user_id and (not unread_only or not t.read)
            ]
        matches.sort(key=lambda t: t.id, reverse=True)
        if limit is not None:
            matches = matches[:limit]
        return [dataclasses.replace(t) for t in matches]

    def list_for_appointment(self, appointment_id: int) -> List[NotificationRecord]:
        with self._lock:
            matches = [t for t in self._tasks.values() if t.appointment_id == appointment_id]
        matches.sort(key=lambda t: t.id)
        return [dataclasses.replace(t) for t in matches]

    def mark_read(self, notification_id: int) -> NotificationRecord:
        with self._lock:
            task = self._require(notification_id)
            task.read = True
            return dataclasses.replace(task)

    def mark_all_read(self, user_id: str) -> int:
        with self._lock:
            changed = 0
            for task in self._tasks.values():
                if task.user_id == user_id and not task.read:
                    task.read = True
                    changed += 1
            return changed

    def skip_pending_for_appointment(self, appointment_id: int) -> int:
        with self._lock:
            changed = 0
            for task in self._tasks.values():
                if (
                    task.appointment_id == appointment_id
                    and task.status == NotificationStatus.PENDING
                    and _undelivered(task)
                ):
                    task.status = NotificationStatus.SKIPPED
                    changed += 1
            return changed

    def list_due(
        self,
        channel: NotificationChannel,
        now: datetime,
        limit: int = NOTIFICATION_DUE_BATCH_SIZE,
    ) -> List[NotificationRecord]:
        send_field, sent_field = _channel_fields(channel)

        with self._lock:
            matches = [
                t for t in self._tasks.values()
                if t.status == NotificationStatus.PENDING
                and t.scheduled_for <= now
                and getattr(t, send_field)
                and not getattr(t, sent_field)
            ]
        matches.sort(key=lambda t: t.scheduled_for)
        return [dataclasses.replace(t) for t in matches[:limit]]

    def mark_sent(self, notification_id: int, channel: NotificationChannel) -> NotificationRecord:
        _, sent_field = _channel_fields(channel)

        with self._lock:
            task = self._require(notification_id)
            setattr(task, sent_field, True)
            return dataclasses.replace(task)
