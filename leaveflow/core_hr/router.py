"""Core HR router — employees, employment terms, comp-off credits, leave rates.

Routes:
    /employees                        — List, create employees (HR)
    /employees/me                     — Caller's record
    /employees/leave-rates            — List rates per employment term
    /employees/leave-rates (PUT)      — Set a term's rate and resync balances (HR)
    /employees/{id}                   — Employee detail
    /employees/{id}/employment-term   — Change term and resync balances (HR)
    /employees/{id}/status            — Change employment status (HR)
    /employees/{id}/comp-off          — Credit comp-off days (HR)
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import EmployeeStatus
from leaveflow.common.exceptions import ForbiddenException
from leaveflow.core_hr.models import Employee
from leaveflow.core_hr.schemas import (
    CompOffCreditRequest,
    EmployeeCreate,
    EmployeeOut,
    EmployeeStatusUpdate,
    EmploymentTermUpdate,
    LeaveRateOut,
    LeaveRateUpdate,
    RateSyncOut,
)
from leaveflow.core_hr.service import EmployeeService, LeaveRateService
from leaveflow.database import get_db
from leaveflow.dependencies import get_current_employee, require_hr_admin

router = APIRouter(prefix="", tags=["employees"])


@router.get("", response_model=list[EmployeeOut])
async def list_employees(
    status: Optional[EmployeeStatus] = Query(None),
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.list_employees(db, status=status)


@router.post("", response_model=EmployeeOut, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.create_employee(db, body, actor_id=hr.id)


# NOTE: fixed paths are registered before /{employee_id}.

@router.get("/me", response_model=EmployeeOut)
async def get_me(employee: Employee = Depends(get_current_employee)):
    return employee


@router.get("/leave-rates", response_model=list[LeaveRateOut])
async def list_leave_rates(
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveRateService.list_leave_rates(db)


@router.put("/leave-rates", response_model=RateSyncOut)
async def update_leave_rate(
    body: LeaveRateUpdate,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Set a term's monthly rate and rewrite ``rate_of_leave`` on affected rows."""
    row, updated = await LeaveRateService.upsert_leave_rate(
        db,
        body.employment_term,
        body.leave_rate,
        description=body.description,
        actor_id=hr.id,
    )
    return RateSyncOut(
        employment_term=row.employment_term,
        leave_rate=row.leave_rate,
        balances_updated=updated,
    )


@router.get("/{employee_id}", response_model=EmployeeOut)
async def get_employee(
    employee_id: uuid.UUID,
    employee: Employee = Depends(get_current_employee),
    db: AsyncSession = Depends(get_db),
):
    if employee_id != employee.id and not employee.is_hr_admin:
        raise ForbiddenException("You can only view your own record.")
    return await EmployeeService.get_employee(db, employee_id)


@router.put("/{employee_id}/employment-term", response_model=EmployeeOut)
async def update_employment_term(
    employee_id: uuid.UUID,
    body: EmploymentTermUpdate,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    employee, _ = await EmployeeService.set_employment_term(
        db, employee_id, body.employment_term, actor_id=hr.id,
    )
    return employee


@router.put("/{employee_id}/status", response_model=EmployeeOut)
async def update_status(
    employee_id: uuid.UUID,
    body: EmployeeStatusUpdate,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.set_status(db, employee_id, body.status, actor_id=hr.id)


@router.post("/{employee_id}/comp-off", response_model=EmployeeOut)
async def credit_comp_off(
    employee_id: uuid.UUID,
    body: CompOffCreditRequest,
    hr: Employee = Depends(require_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.credit_comp_off(
        db, employee_id, body.days, body.reason, actor_id=hr.id,
    )
