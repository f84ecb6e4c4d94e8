"""Leave router — apply, decisions, LOP, balances, previews, leave types.

Routes:
    /types                          — List, create leave types
    /apply                          — Apply for leave
    /preview                        — Price a prospective leave
    /my-leaves                      — Caller's applications
    /balances                       — Caller's balances (or any, for HR)
    /balances/adjust                — HR allocation adjustment
    /applications/{id}              — Application detail
    /applications/{id}/approve      — Approve
    /applications/{id}/reject       — Reject
    /applications/{id}/withdraw     — Withdraw
    /applications/{id}/cancel       — Cancel
    /applications/{id}/lop          — Set LOP days (HR)
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import LeaveStatus
from leaveflow.common.exceptions import ForbiddenException
from leaveflow.common.pagination import PaginationParams
from leaveflow.common.rate_limit import limiter
from leaveflow.core_hr.models import Employee
from leaveflow.database import get_db
from leaveflow.dependencies import get_current_employee, require_hr_admin
from leaveflow.leave.registry import LeaveTypeRegistry
from leaveflow.leave.schemas import (
    AuditEntryOut,
    BalanceAdjustmentOut,
    BalanceAdjustRequest,
    DeductionPreviewOut,
    DeductionPreviewRequest,
    EmployeeBalancesOut,
    LeaveApplicationCreate,
    LeaveApplicationListOut,
    LeaveApplicationOut,
    LeaveApproveRequest,
    LeaveCancelRequest,
    LeaveRejectRequest,
    LeaveTypeCreate,
    LeaveTypeOut,
    LeaveWithdrawRequest,
    LopUpdateRequest,
    TransitionOut,
)
from leaveflow.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── Leave types ─────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    is_active: Optional[bool] = Query(True),
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeRegistry.list_leave_types(db, is_active=is_active)


@router.post("/types", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a leave type. Its category is fixed at creation."""
    return await LeaveTypeRegistry.create_leave_type(db, body)


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=TransitionOut, status_code=201)
@limiter.limit("20/minute")
async def apply_leave(
    request: Request,
    body: LeaveApplicationCreate,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Auto-approves types that do not require approval."""
    result = await LeaveService.apply_leave(db, employee.id, body)
    return TransitionOut.model_validate(result)


# ── POST /preview ───────────────────────────────────────────────────

@router.post("/preview", response_model=DeductionPreviewOut)
async def preview_deduction(
    body: DeductionPreviewRequest,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    """How many days a leave would cost, without applying."""
    return await LeaveService.preview_deduction(db, employee.id, body)


# ── GET /my-leaves ──────────────────────────────────────────────────

@router.get("/my-leaves", response_model=LeaveApplicationListOut)
async def my_leaves(
    status: Optional[LeaveStatus] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_applications(
        db, employee.id, status=status, year=year,
        page=pagination.page, page_size=pagination.page_size,
    )


# ── Balances ────────────────────────────────────────────────────────

@router.get("/balances", response_model=EmployeeBalancesOut)
async def get_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee_id: Optional[uuid.UUID] = Query(None),
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    """Balances for the caller; HR may pass ``employee_id``."""
    target = employee_id or employee.id
    if target != employee.id and not employee.is_hr_admin:
        raise ForbiddenException("You can only view your own balances.")
    return await LeaveService.get_balances(db, target, year or date.today().year)


@router.post("/balances/adjust", response_model=BalanceAdjustmentOut, status_code=201)
async def adjust_balance(
    body: BalanceAdjustRequest,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.adjust_balance(db, hr.id, body)


# ── Applications ────────────────────────────────────────────────────

@router.get("/applications/{application_id}", response_model=LeaveApplicationOut)
async def get_application(
    application_id: uuid.UUID,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_application(db, application_id, employee.id)


@router.get(
    "/applications/{application_id}/history", response_model=list[AuditEntryOut],
)
async def get_application_history(
    application_id: uuid.UUID,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_application_history(db, application_id, employee.id)


@router.post("/applications/{application_id}/approve", response_model=TransitionOut)
async def approve_leave(
    application_id: uuid.UUID,
    body: LeaveApproveRequest,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    """Approve a leave. The response carries ledger deltas and any warnings."""
    result = await LeaveService.approve_leave(
        db, application_id, employee.id, remarks=body.remarks,
    )
    return TransitionOut.model_validate(result)


@router.post("/applications/{application_id}/reject", response_model=TransitionOut)
async def reject_leave(
    application_id: uuid.UUID,
    body: LeaveRejectRequest,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    result = await LeaveService.reject_leave(db, application_id, employee.id, body.reason)
    return TransitionOut.model_validate(result)


@router.post("/applications/{application_id}/withdraw", response_model=TransitionOut)
async def withdraw_leave(
    application_id: uuid.UUID,
    body: LeaveWithdrawRequest,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    result = await LeaveService.withdraw_leave(
        db, application_id, employee.id, reason=body.reason,
    )
    return TransitionOut.model_validate(result)


@router.post("/applications/{application_id}/cancel", response_model=TransitionOut)
async def cancel_leave(
    application_id: uuid.UUID,
    body: LeaveCancelRequest,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    result = await LeaveService.cancel_leave(
        db, application_id, employee.id, reason=body.reason,
    )
    return TransitionOut.model_validate(result)


@router.put("/applications/{application_id}/lop", response_model=LeaveApplicationOut)
async def set_lop_days(
    application_id: uuid.UUID,
    body: LopUpdateRequest,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.set_lop_days(db, application_id, hr.id, body.lop_days)
