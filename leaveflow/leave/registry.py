"""Leave type registry: categorisation, the default bucket, seed data."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import LeaveCategory
from leaveflow.common.exceptions import ConflictError
from leaveflow.leave.models import LeaveType
from leaveflow.leave.schemas import LeaveTypeCreate

logger = logging.getLogger(__name__)

_CATEGORY_SYNONYMS: dict[str, LeaveCategory] = {
    "total leave": LeaveCategory.annual,
    "annual leave": LeaveCategory.annual,
    "total": LeaveCategory.annual,
    "compensatory off": LeaveCategory.compensatory_off,
    "compensatory": LeaveCategory.compensatory_off,
    "comp off": LeaveCategory.compensatory_off,
    "comp-off": LeaveCategory.compensatory_off,
    "birthday leave": LeaveCategory.birthday,
    "birthday": LeaveCategory.birthday,
}

DEFAULT_LEAVE_TYPES: list[dict] = [
    {
        "code": "AL",
        "name": "Annual Leave",
        "category": LeaveCategory.annual,
        "description": "Default leave bucket credited monthly.",
        "max_days_per_year": Decimal("18"),
    },
    {
        "code": "CO",
        "name": "Compensatory Off",
        "category": LeaveCategory.compensatory_off,
        "description": "Time off earned for extra working days.",
    },
    {
        "code": "BL",
        "name": "Birthday Leave",
        "category": LeaveCategory.birthday,
        "description": "One free day on the employee's birthday.",
        "max_days_per_year": Decimal("1"),
        "deducts_balance": False,
    },
]


def classify_leave_type_name(name: str) -> LeaveCategory:
    """Map a leave type name to its category (case-insensitive)."""
    return _CATEGORY_SYNONYMS.get(" ".join(name.lower().split()), LeaveCategory.general)


class LeaveTypeRegistry:
    """Async lookups over the leave_types reference table."""

    @staticmethod
    async def list_leave_types(
        db: AsyncSession,
        *,
        is_active: Optional[bool] = True,
    ) -> list[LeaveType]:
        query = select(LeaveType).order_by(LeaveType.name)
        if is_active is not None:
            query = query.where(LeaveType.is_active == is_active)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_default_bucket(db: AsyncSession) -> Optional[LeaveType]:
        """The active ``annual`` type every ordinary leave is charged to."""
        result = await db.execute(
            select(LeaveType)
            .where(
                LeaveType.category == LeaveCategory.annual,
                LeaveType.is_active.is_(True),
            )
            .order_by(LeaveType.created_at)
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def create_leave_type(
        db: AsyncSession,
        data: LeaveTypeCreate,
    ) -> LeaveType:
        """Persist a new type. The category is fixed from here on."""
        category = data.category or classify_leave_type_name(data.name)

        existing = await db.execute(
            select(LeaveType).where(
                (func.lower(LeaveType.name) == data.name.lower())
                | (LeaveType.code == data.code)
            )
        )
        clash = existing.scalars().first()
        if clash is not None:
            if clash.code == data.code:
                raise ConflictError("code", data.code)
            raise ConflictError("name", data.name)

        if category == LeaveCategory.annual:
            current = await LeaveTypeRegistry.get_default_bucket(db)
            if current is not None:
                raise ConflictError("category", category.value)

        leave_type = LeaveType(
            code=data.code,
            name=data.name,
            category=category,
            description=data.description,
            max_days_per_year=data.max_days_per_year,
            carry_forward=data.carry_forward,
            requires_approval=data.requires_approval,
            deducts_balance=(
                data.deducts_balance
                if data.deducts_balance is not None
                else category != LeaveCategory.birthday
            ),
        )
        db.add(leave_type)
        await db.flush()
        logger.info("Created leave type %s (%s)", leave_type.name, category.value)
        return leave_type

    @staticmethod
    async def seed_defaults(db: AsyncSession) -> list[LeaveType]:
        """Insert Annual Leave, Compensatory Off and Birthday Leave if missing."""
        created: list[LeaveType] = []
        for spec in DEFAULT_LEAVE_TYPES:
            existing = await db.execute(
                select(LeaveType).where(LeaveType.code == spec["code"])
            )
            if existing.scalars().first() is not None:
                continue
            leave_type = LeaveType(**spec)
            db.add(leave_type)
            created.append(leave_type)
        await db.flush()
        if created:
            logger.info("Seeded %d default leave types", len(created))
        return created
