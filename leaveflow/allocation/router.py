"""Allocation router — schedule settings and the manual credit trigger (HR only)."""


from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.allocation.schemas import (
    AllocationRunOut,
    CronSettingsOut,
    CronSettingsUpdate,
)
from leaveflow.allocation.service import AllocationService
from leaveflow.common.exceptions import NotFoundException
from leaveflow.core_hr.models import Employee
from leaveflow.database import get_db
from leaveflow.dependencies import require_hr_admin

router = APIRouter(prefix="", tags=["allocation"])


@router.get("/settings", response_model=CronSettingsOut)
async def get_settings(
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await AllocationService.get_active_settings(db)
    if row is None:
        raise NotFoundException("LeaveCronSettings", "active")
    return row


@router.put("/settings", response_model=CronSettingsOut)
async def update_settings(
    body: CronSettingsUpdate,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await AllocationService.upsert_settings(db, body, actor_id=hr.id)


@router.post("/run", response_model=AllocationRunOut)
async def run_allocation(
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Manually trigger the monthly credit, ignoring the schedule guards."""
    run = await AllocationService.allocate_monthly_leave(db, manual=True)
    return AllocationRunOut.model_validate(run)
