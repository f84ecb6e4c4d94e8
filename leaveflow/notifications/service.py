"""Notification service — CRUD, the email outbox, and leave event dispatchers.

The dispatchers are fire-and-forget: each insert runs in a SAVEPOINT and a
failure is logged and swallowed, so a broken sink never blocks a leave
status change.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import EmailPriority, LeaveStatus, NotificationType
from leaveflow.common.exceptions import ForbiddenException, NotFoundException
from leaveflow.common.pagination import paginate_rows
from leaveflow.common.timeutils import utcnow
from leaveflow.config import settings
from leaveflow.notifications.models import EmailQueue, Notification
from leaveflow.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """In-app notification rows and the email outbox.

    Both writers only flush; the caller owns the transaction.
    """

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: uuid.UUID,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            data=data,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def enqueue_email(
        db: AsyncSession,
        *,
        module_type: str,
        reference_id: uuid.UUID,
        email_type: str,
        subject: str,
        recipients: dict[str, list[str]],
        email_data: dict[str, Any],
        priority: EmailPriority = EmailPriority.normal,
        created_by: Optional[uuid.UUID] = None,
    ) -> EmailQueue:
        """Append a row to the email outbox and flush."""
        row = EmailQueue(
            module_type=module_type,
            reference_id=reference_id,
            email_type=email_type,
            subject=subject,
            recipients=recipients,
            email_data=email_data,
            priority=priority,
            created_by=created_by,
        )
        db.add(row)
        await db.flush()
        return row

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        page: int = 1,
        page_size: int = 50,
        is_read: Optional[bool] = None,
    ) -> NotificationListResponse:
        """A page of the employee's notifications plus their unread total."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == employee_id)
            .order_by(Notification.created_at.desc())
        )
        if is_read is not None:
            query = query.where(Notification.is_read == is_read)

        rows, meta = await paginate_rows(db, query, page, page_size)
        unread = await NotificationService.get_unread_count(db, employee_id)

        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in rows],
            meta=NotificationListMeta(**meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != employee_id:
            raise ForbiddenException("This notification belongs to another employee.")

        notification.is_read = True
        notification.read_at = utcnow()
        await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, employee_id: uuid.UUID) -> int:
        """Returns the number of notifications that flipped to read."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def get_unread_count(db: AsyncSession, employee_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()


# ── Fire-and-forget sinks ───────────────────────────────────────────


async def notify_safely(db: AsyncSession, **kwargs: Any) -> Optional[Notification]:
    """Create a notification; on failure log a warning and return None."""
    try:
        async with db.begin_nested():
            return await NotificationService.create_notification(db, **kwargs)
    except Exception:
        logger.warning(
            "Notification insert failed for recipient %s",
            kwargs.get("recipient_id"), exc_info=True,
        )
        return None


async def enqueue_email_safely(db: AsyncSession, **kwargs: Any) -> Optional[EmailQueue]:
    """Enqueue an outbox email; on failure log a warning and return None."""
    try:
        async with db.begin_nested():
            return await NotificationService.enqueue_email(db, **kwargs)
    except Exception:
        logger.warning(
            "Email enqueue failed for %s/%s",
            kwargs.get("module_type"), kwargs.get("reference_id"), exc_info=True,
        )
        return None


# ── Leave event dispatchers ─────────────────────────────────────────

_LEAVE_EVENTS: dict[LeaveStatus, tuple[NotificationType, str, str]] = {
    LeaveStatus.pending: (
        NotificationType.leave_submitted,
        "New Leave Application",
        "A leave application from {start} to {end} ({days} day(s)) needs your review.",
    ),
    LeaveStatus.approved: (
        NotificationType.leave_approved,
        "Leave Approved",
        "Your leave from {start} to {end} was approved. {charged} day(s) charged.",
    ),
    LeaveStatus.rejected: (
        NotificationType.leave_rejected,
        "Leave Rejected",
        "Your leave from {start} to {end} was rejected.",
    ),
    LeaveStatus.withdrawn: (
        NotificationType.leave_withdrawn,
        "Leave Withdrawn",
        "Your leave from {start} to {end} was withdrawn.",
    ),
    LeaveStatus.cancelled: (
        NotificationType.leave_cancelled,
        "Leave Cancelled",
        "Your leave from {start} to {end} was cancelled.",
    ),
}


async def dispatch_leave_event(
    db: AsyncSession,
    application,  # leaveflow.leave.models.LeaveApplication
    *,
    recipient_id: uuid.UUID,
    recipient_email: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Notify about *application* entering its current status, in-app and by email."""
    event = _LEAVE_EVENTS.get(application.status)
    if event is None:
        return
    ntype, title, template = event

    charged = application.sandwich_deducted_days
    message = template.format(
        start=application.start_date,
        end=application.end_date,
        days=application.days_count,
        charged=charged if charged is not None else application.days_count,
    )
    data: dict[str, Any] = {
        "leave_application_id": str(application.id),
        "employee_id": str(application.employee_id),
        "start_date": application.start_date.isoformat(),
        "end_date": application.end_date.isoformat(),
        "days_count": str(application.days_count),
        "status": application.status.value,
    }
    if charged is not None:
        data["deducted_days"] = str(charged)
    if extra:
        data.update(extra)

    await notify_safely(
        db,
        recipient_id=recipient_id,
        type=ntype,
        title=title,
        message=message,
        data=data,
        entity_type="leave_application",
        entity_id=application.id,
    )

    to = [recipient_email] if recipient_email else []
    await enqueue_email_safely(
        db,
        module_type="leave_management",
        reference_id=application.id,
        email_type=ntype.value,
        subject=title,
        recipients={"to": to, "cc": [settings.HR_NOTIFICATION_EMAIL]},
        email_data=data,
        priority=(
            EmailPriority.high
            if application.status == LeaveStatus.pending
            else EmailPriority.normal
        ),
        created_by=actor_id,
    )
