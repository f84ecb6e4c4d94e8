"""Notification and outbox ORM models.

``email_queue`` is an outbox: rows are written in the leave transaction and
delivered later by a separate worker.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from leaveflow.common.constants import (
    EmailPriority,
    EmailStatus,
    NotificationType,
    enum_values,
)
from leaveflow.common.timeutils import utcnow
from leaveflow.config import settings
from leaveflow.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[NotificationType] = mapped_column(
        sa.Enum(NotificationType, name="notification_type", values_callable=enum_values),
        nullable=False,
        default=NotificationType.info,
    )
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    message: Mapped[str] = mapped_column(sa.Text, nullable=False)
    data = sa.Column(JSONB, nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(sa.String(50))
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    is_read: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )

    __table_args__ = (
        sa.Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),
    )


class EmailQueue(Base):
    __tablename__ = "email_queue"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    module_type: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    reference_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    email_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    subject: Mapped[str] = mapped_column(sa.String(300), nullable=False)
    priority: Mapped[EmailPriority] = mapped_column(
        sa.Enum(EmailPriority, name="email_priority", values_callable=enum_values),
        nullable=False,
        default=EmailPriority.normal,
    )
    recipients = sa.Column(JSONB, nullable=False)
    email_data = sa.Column(JSONB, nullable=False)
    status: Mapped[EmailStatus] = mapped_column(
        sa.Enum(EmailStatus, name="email_status", values_callable=enum_values),
        nullable=False,
        default=EmailStatus.pending,
    )
    scheduled_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    retry_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=lambda: settings.EMAIL_MAX_RETRIES,
    )
    error_message: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )

    __table_args__ = (
        sa.Index("ix_email_queue_status_scheduled", "status", "scheduled_at"),
        sa.Index("ix_email_queue_reference", "module_type", "reference_id"),
    )
