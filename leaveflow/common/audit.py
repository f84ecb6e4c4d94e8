"""Audit trail for leave transitions, ledger adjustments and HR changes.

Every write path calls :func:`create_audit_entry` inside the same
transaction as the change it records, so a rolled-back transition leaves
no audit row behind.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, select
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from leaveflow.common.timeutils import utcnow
from leaveflow.database import Base


class AuditTrail(Base):
    """One row per recorded change; never updated."""

    __tablename__ = "audit_trail"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    # NULL for system actors (scheduled allocation, auto-approval).
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("employees.id"),
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    old_values = Column(JSONB, nullable=True)
    new_values = Column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    __table_args__ = (
        Index("ix_audit_trail_actor_id", "actor_id"),
        Index("ix_audit_trail_entity", "entity_type", "entity_id"),
        Index("ix_audit_trail_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditTrail {self.action} {self.entity_type}/{self.entity_id}>"


def _jsonable(value: Any) -> Any:
    """Coerce Decimals, dates, UUIDs and enums so JSONB accepts them."""
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


async def create_audit_entry(
    session: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
) -> AuditTrail:
    """
    Create and flush an audit-trail entry.

    Args:
        session: Async SQLAlchemy session.
        action: apply | approved | rejected | withdrawn | cancelled |
            adjust | allocate | update | create | credit_comp_off.
        entity_type: "leave_application", "leave_balance", "employee", ...
        entity_id: UUID of the affected entity.
        actor_id: Employee performing the action (None = system).
        old_values: Previous state; Decimal / date / enum values are coerced.
        new_values: New state; coerced the same way.
    """
    entry = AuditTrail(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=_jsonable(old_values) if old_values is not None else None,
        new_values=_jsonable(new_values) if new_values is not None else None,
    )
    session.add(entry)
    await session.flush()
    return entry


async def get_entity_history(
    session: AsyncSession,
    entity_type: str,
    entity_id: uuid.UUID,
) -> list[AuditTrail]:
    """All audit rows for one entity, oldest first."""
    result = await session.execute(
        select(AuditTrail)
        .where(
            AuditTrail.entity_type == entity_type,
            AuditTrail.entity_id == entity_id,
        )
        .order_by(AuditTrail.created_at, AuditTrail.id)
    )
    return list(result.scalars().all())
