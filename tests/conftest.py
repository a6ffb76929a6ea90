"""Shared test fixtures — async DB, client, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leaveflow.common.constants import ContractType, SystemRole
from leaveflow.database import Base, get_db
from leaveflow.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leaveflow.common.audit  # noqa: F401
import leaveflow.leave.models  # noqa: F401
import leaveflow.notifications.models  # noqa: F401
import leaveflow.org.models  # noqa: F401
from leaveflow.leave.models import (
    BlockedPeriod,
    LeaveCalendar,
    LeaveEntitlement,
    LeavePolicy,
    LeaveType,
)
from leaveflow.org.models import Employee, RoleAssignment

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


TEST_DATABASE_URL = "sqlite+aiosqlite://"


def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    # SAVEPOINT support: let SQLAlchemy emit BEGIN itself
    dbapi_connection.isolation_level = None


def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


# ── Test database (SQLite in-memory, one per test) ──────────────────

@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(test_engine.sync_engine, "connect", _disable_pysqlite_transactions)
    event.listen(test_engine.sync_engine, "begin", _emit_begin)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests; nothing is committed."""
    async with session_factory() as session:
        yield session


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(session_factory):
    """Create a fresh app instance with DB dependency overridden."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

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


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    code: str,
    first_name: str,
    last_name: str = "Test",
    reporting_manager_id: uuid.UUID | None = None,
    date_of_hire: date | None = None,
    contract_type: ContractType = ContractType.full_time,
    primary_position_id: uuid.UUID | None = None,
    supervisor_position_id: uuid.UUID | None = None,
) -> Employee:
    return Employee(
        id=uuid.uuid4(),
        employee_code=code,
        first_name=first_name,
        last_name=last_name,
        email=f"{code.lower()}@example.com",
        date_of_hire=date_of_hire or date.today() - timedelta(days=730),
        contract_type=contract_type,
        reporting_manager_id=reporting_manager_id,
        primary_position_id=primary_position_id,
        supervisor_position_id=supervisor_position_id,
        is_active=True,
    )


def _make_leave_type(
    *,
    code: str,
    name: str,
    is_paid: bool = True,
    requires_attachment: bool = False,
    max_duration_days: Decimal | None = Decimal("30"),
) -> LeaveType:
    return LeaveType(
        id=uuid.uuid4(),
        code=code,
        name=name,
        is_paid=is_paid,
        requires_attachment=requires_attachment,
        max_duration_days=max_duration_days,
        is_active=True,
    )


def _make_entitlement(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    remaining: Decimal = Decimal("10"),
) -> LeaveEntitlement:
    return LeaveEntitlement(
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        yearly_entitlement=remaining,
        accrued_actual=remaining,
        accrued_rounded=remaining,
        carry_forward=Decimal("0"),
        taken=Decimal("0"),
        pending=Decimal("0"),
        remaining=remaining,
    )


async def build_world(session: AsyncSession) -> SimpleNamespace:
    """HR user, department head, employee and three leave types.

    The employee reports to the head and holds 10 days of annual leave.
    """
    hr = _make_employee(code="HR001", first_name="Hana")
    head = _make_employee(code="MGR001", first_name="Mona")
    session.add_all([hr, head])
    await session.flush()

    employee = _make_employee(
        code="EMP001", first_name="Eli", reporting_manager_id=head.id,
    )
    payroll = _make_employee(code="PAY001", first_name="Pia")
    session.add_all([employee, payroll])
    await session.flush()

    session.add_all([
        RoleAssignment(employee_id=hr.id, role=SystemRole.hr_manager),
        RoleAssignment(employee_id=head.id, role=SystemRole.department_head),
        RoleAssignment(employee_id=employee.id, role=SystemRole.department_employee),
        RoleAssignment(employee_id=payroll.id, role=SystemRole.payroll_specialist),
    ])

    annual = _make_leave_type(code="AL", name="Annual Leave")
    sick = _make_leave_type(
        code="SL", name="Sick Leave", requires_attachment=True,
        max_duration_days=Decimal("5"),
    )
    unpaid = _make_leave_type(code="UL", name="Unpaid Leave", is_paid=False)
    session.add_all([annual, sick, unpaid])
    await session.flush()

    session.add_all([
        LeavePolicy(leave_type_id=annual.id, min_notice_days=0),
        LeavePolicy(leave_type_id=sick.id, min_notice_days=0),
        LeavePolicy(leave_type_id=unpaid.id, min_notice_days=0),
        _make_entitlement(employee.id, annual.id),
    ])
    await session.flush()

    return SimpleNamespace(
        hr=hr,
        head=head,
        employee=employee,
        payroll=payroll,
        annual=annual,
        sick=sick,
        unpaid=unpaid,
    )


async def add_blocked_period(
    session: AsyncSession,
    from_date: date,
    to_date: date,
    reason: str = "Year-end close",
) -> BlockedPeriod:
    calendar = LeaveCalendar(year=from_date.year)
    session.add(calendar)
    await session.flush()
    period = BlockedPeriod(
        calendar_id=calendar.id, from_date=from_date, to_date=to_date, reason=reason,
    )
    session.add(period)
    await session.flush()
    return period


def future(days: int) -> date:
    """A date *days* ahead of today (UTC)."""
    return datetime.now(timezone.utc).date() + timedelta(days=days)


@pytest.fixture
async def world(db) -> SimpleNamespace:
    return await build_world(db)


@pytest.fixture
async def committed_world(session_factory) -> SimpleNamespace:
    """Same data as ``world`` but committed, for API tests."""
    async with session_factory() as session:
        seeded = await build_world(session)
        await session.commit()
    return seeded
