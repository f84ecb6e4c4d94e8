"""In-app notifications for the calling employee."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.pagination import PaginationParams
from leaveflow.core_hr.models import Employee
from leaveflow.database import get_db
from leaveflow.dependencies import get_current_employee
from leaveflow.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)
from leaveflow.notifications.service import NotificationService

router = APIRouter(prefix="", tags=["notifications"])


# ── GET / — list current user's notifications ───────────────────────

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    is_read: Optional[bool] = Query(default=None, description="Filter by read status"),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.get_notifications(
        db, employee.id,
        page=pagination.page, page_size=pagination.page_size, is_read=is_read,
    )


# ── GET /unread-count — badge count ─────────────────────────────────
# NOTE: registered before /{notification_id}/read.

@router.get("/unread-count")
async def unread_count(
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.get_unread_count(db, employee.id)
    return {"data": {"unread": count}}


@router.put("/read-all")
async def mark_all_read(
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.mark_all_read(db, employee.id)
    return {"data": {"marked_read": count}}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: uuid.UUID,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.mark_read(db, notification_id, employee.id)
