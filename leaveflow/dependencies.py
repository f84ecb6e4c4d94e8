"""Shared FastAPI dependencies.

Authentication happens upstream; the gateway forwards the authenticated
employee's id in the ``X-Employee-Id`` header.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import EmployeeStatus
from leaveflow.common.exceptions import ForbiddenException, UnauthorizedException
from leaveflow.core_hr.models import Employee
from leaveflow.database import get_db


async def get_current_employee(
    x_employee_id: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """Resolve the calling employee from the forwarded identity header."""
    if not x_employee_id:
        raise UnauthorizedException()
    try:
        employee_id = uuid.UUID(x_employee_id)
    except ValueError:
        raise UnauthorizedException("Malformed X-Employee-Id header.")
    employee = await db.get(Employee, employee_id)
    if employee is None or employee.status == EmployeeStatus.relieved:
        raise UnauthorizedException("Unknown or inactive employee.")
    return employee


async def require_hr_admin(
    employee: Employee = Depends(get_current_employee),
) -> Employee:
    """Dependency: the caller must be an HR administrator."""
    if not employee.is_hr_admin:
        raise ForbiddenException("This action requires an HR administrator.")
    return employee
