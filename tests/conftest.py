"""Shared test fixtures — async DB, client, identity headers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leaveflow.common.constants import (
    EmployeeStatus,
    EmploymentTerm,
    HalfDayPeriod,
    LeaveStatus,
)
from leaveflow.database import Base, get_db
from leaveflow.main import create_app

# Import ALL model modules so every table is on Base.metadata
import leaveflow.allocation.models  # noqa: F401
import leaveflow.common.audit  # noqa: F401
import leaveflow.core_hr.models  # noqa: F401
import leaveflow.leave.models  # noqa: F401
import leaveflow.notifications.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and gen_random_uuid() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "gen_random_uuid", 0, lambda: str(uuid.uuid4()),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leaveflow.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    email: Optional[str] = None,
    full_name: str = "Test User",
    employment_term: Optional[EmploymentTerm] = EmploymentTerm.full_time,
    status: EmployeeStatus = EmployeeStatus.active,
    reporting_manager_id: Optional[uuid.UUID] = None,
    date_of_birth: Optional[date] = None,
    is_hr_admin: bool = False,
    comp_off_balance: Decimal = Decimal("0"),
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"LF-{code}",
        full_name=full_name,
        email=email or f"user.{code.lower()}@acme.io",
        status=status,
        employment_term=employment_term,
        date_of_birth=date_of_birth,
        date_of_joining=date(2024, 1, 15),
        reporting_manager_id=reporting_manager_id,
        is_hr_admin=is_hr_admin,
        comp_off_balance=comp_off_balance,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _seed_employee(db: AsyncSession, **kwargs):
    from leaveflow.core_hr.models import Employee

    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.flush()
    return emp


@pytest.fixture
async def hr_admin(db):
    """An HR administrator with no manager."""
    return await _seed_employee(
        db, full_name="Hana HR", email="hana.hr@acme.io", is_hr_admin=True,
    )


@pytest.fixture
async def manager(db):
    return await _seed_employee(db, full_name="Mira Manager", email="mira.m@acme.io")


@pytest.fixture
async def test_employee(db, manager):
    """An active full-time employee reporting to ``manager``."""
    return await _seed_employee(
        db,
        full_name="Eli Employee",
        email="eli.e@acme.io",
        reporting_manager_id=manager.id,
        date_of_birth=date(1990, 3, 10),
    )


@pytest.fixture
async def leave_types(db) -> dict:
    """Seed Annual Leave, Compensatory Off and Birthday Leave; keyed by code."""
    from leaveflow.leave.registry import LeaveTypeRegistry

    await LeaveTypeRegistry.seed_defaults(db)
    types = await LeaveTypeRegistry.list_leave_types(db, is_active=None)
    return {lt.code: lt for lt in types}


async def _seed_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    year: int = 2026,
    allocated: Decimal = Decimal("10"),
    used: Decimal = Decimal("0"),
    rate: Decimal = Decimal("1.5"),
):
    from leaveflow.leave.models import LeaveBalance

    bal = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        year=year,
        allocated_days=allocated,
        used_days=used,
        rate_of_leave=rate,
    )
    db.add(bal)
    await db.flush()
    return bal


async def _seed_application(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type,
    start: date,
    end: Optional[date] = None,
    *,
    status: LeaveStatus = LeaveStatus.pending,
    is_half_day: bool = False,
    lop_days: Decimal = Decimal("0"),
    sandwich_deducted_days: Optional[Decimal] = None,
    is_sandwich_leave: bool = False,
):
    """Insert an application directly, bypassing the service checks."""
    from leaveflow.leave.models import LeaveApplication

    end = end or start
    app = LeaveApplication(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=end,
        days_count=Decimal("0.5") if is_half_day else Decimal((end - start).days + 1),
        is_half_day=is_half_day,
        half_day_period=HalfDayPeriod.first_half if is_half_day else None,
        status=status,
        lop_days=lop_days,
        sandwich_deducted_days=sandwich_deducted_days,
        is_sandwich_leave=is_sandwich_leave,
        approved_at=datetime.now(timezone.utc) if status == LeaveStatus.approved else None,
    )
    db.add(app)
    await db.flush()
    return app


# ── Identity helpers ────────────────────────────────────────────────

def identity_headers(employee_id: uuid.UUID) -> dict[str, str]:
    """Headers the upstream gateway forwards for an authenticated caller."""
    return {"X-Employee-Id": str(employee_id)}
