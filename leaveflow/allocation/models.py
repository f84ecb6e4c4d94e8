"""Monthly allocation schedule settings."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leaveflow.common.timeutils import utcnow
from leaveflow.database import Base


class LeaveCronSettings(Base):
    """Schedule for the monthly credit. The newest active row wins."""

    __tablename__ = "leave_cron_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    cron_schedule: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    next_run_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<LeaveCronSettings '{self.cron_schedule}' next={self.next_run_at}>"
