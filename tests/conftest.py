"""Shared test fixtures — async DB, fake collaborators, workflow, client, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL. The
employee directory and holiday calendar are in-memory fakes; the clock is
pinned to Monday 2 March 2026 so notice and leave-year maths are stable.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_engine.auth import create_access_token
from leave_engine.common.constants import (
    EmploymentType,
    GenderType,
    LeaveType,
    UserRole,
)
from leave_engine.common.exceptions import DirectoryUnavailable
from leave_engine.database import Base
from leave_engine.leave.models import (
    BalanceHistoryEntry,
    LeaveBalance,
    LeaveRequest,
    TeamCalendarEntry,
)
from leave_engine.leave.repository import LeaveRepository
from leave_engine.leave.router import get_workflow
from leave_engine.leave.schemas import EmployeeProfile, Holiday
from leave_engine.leave.workflow import LeaveRequestWorkflow
from leave_engine.main import create_app

# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

FIXED_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
TODAY = FIXED_NOW.date()
LEAVE_YEAR = 2026

SUBSIDIARY_ID = uuid.UUID("5b1f6a8e-0000-4000-8000-000000000001")
DEPARTMENT_ID = uuid.UUID("5b1f6a8e-0000-4000-8000-0000000000d1")
OTHER_DEPARTMENT_ID = uuid.UUID("5b1f6a8e-0000-4000-8000-0000000000d2")


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
    from leave_engine.common.rate_limit import limiter
    limiter.reset()
    yield


# ── Fake collaborators ──────────────────────────────────────────────

class FakeDirectory:
    """In-memory employee directory; flip ``unavailable`` to simulate an outage."""

    def __init__(self, employees: Optional[list[EmployeeProfile]] = None) -> None:
        self.employees: dict[uuid.UUID, EmployeeProfile] = {e.id: e for e in employees or []}
        self.unavailable = False
        self.calls = 0

    def add(self, employee: EmployeeProfile) -> EmployeeProfile:
        self.employees[employee.id] = employee
        return employee

    async def get_employee(self, employee_id: uuid.UUID) -> Optional[EmployeeProfile]:
        self.calls += 1
        if self.unavailable:
            raise DirectoryUnavailable()
        return self.employees.get(employee_id)


class FakeHolidayProvider:
    def __init__(self, holidays: Optional[dict[date, str]] = None) -> None:
        self.holidays = dict(holidays or {})

    async def get_holidays(self, subsidiary_id: Optional[uuid.UUID], year: int) -> list[Holiday]:
        return [
            Holiday(date=day, name=name)
            for day, name in sorted(self.holidays.items())
            if day.year == year
        ]


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    full_name: str,
    employee_number: str,
    gender: Optional[GenderType] = GenderType.female,
    join_date: date = date(2020, 1, 15),
    employment_type: EmploymentType = EmploymentType.permanent,
    department_id: Optional[uuid.UUID] = DEPARTMENT_ID,
    roles: Optional[list[str]] = None,
    **approvers: Optional[uuid.UUID],
) -> EmployeeProfile:
    return EmployeeProfile(
        id=uuid.uuid4(),
        employee_number=employee_number,
        full_name=full_name,
        gender=gender,
        join_date=join_date,
        employment_type=employment_type,
        subsidiary_id=SUBSIDIARY_ID,
        department_id=department_id,
        roles=roles or [],
        **approvers,
    )


@dataclass
class Org:
    """A small department: one employee, a colleague, their approvers and an outsider."""

    employee: EmployeeProfile
    colleague: EmployeeProfile
    supervisor: EmployeeProfile
    department_head: EmployeeProfile
    hr_manager: EmployeeProfile
    general_manager: EmployeeProfile
    ceo: EmployeeProfile
    outsider: EmployeeProfile


def _build_org() -> Org:
    ceo = _make_employee(full_name="Grace Atim", employee_number="EMP-900")
    general_manager = _make_employee(full_name="Moses Okello", employee_number="EMP-800", gender=GenderType.male)
    hr_manager = _make_employee(
        full_name="Ruth Namutebi", employee_number="EMP-700", roles=[UserRole.hr_manager.value],
    )
    department_head = _make_employee(full_name="Peter Ssali", employee_number="EMP-600", gender=GenderType.male)
    supervisor = _make_employee(full_name="Joan Achieng", employee_number="EMP-500")
    chain = dict(
        supervisor_id=supervisor.id,
        department_head_id=department_head.id,
        hr_manager_id=hr_manager.id,
        general_manager_id=general_manager.id,
        ceo_id=ceo.id,
    )
    employee = _make_employee(full_name="Sarah Nakato", employee_number="EMP-001", **chain)
    colleague = _make_employee(
        full_name="David Mugisha", employee_number="EMP-002", gender=GenderType.male, **chain,
    )
    outsider = _make_employee(
        full_name="Brian Opio", employee_number="EMP-003", gender=GenderType.male,
        department_id=OTHER_DEPARTMENT_ID,
    )
    return Org(
        employee=employee,
        colleague=colleague,
        supervisor=supervisor,
        department_head=department_head,
        hr_manager=hr_manager,
        general_manager=general_manager,
        ceo=ceo,
        outsider=outsider,
    )


@pytest.fixture
def org() -> Org:
    return _build_org()


@pytest.fixture
def directory(org: Org) -> FakeDirectory:
    return FakeDirectory([
        org.employee, org.colleague, org.supervisor, org.department_head,
        org.hr_manager, org.general_manager, org.ceo, org.outsider,
    ])


@pytest.fixture
def holidays() -> FakeHolidayProvider:
    return FakeHolidayProvider()


def _make_workflow(
    directory: FakeDirectory,
    holidays: FakeHolidayProvider,
    now: datetime = FIXED_NOW,
) -> LeaveRequestWorkflow:
    return LeaveRequestWorkflow(TestSessionFactory, directory, holidays, clock=lambda: now)


@pytest.fixture
def workflow(directory: FakeDirectory, holidays: FakeHolidayProvider) -> LeaveRequestWorkflow:
    return _make_workflow(directory, holidays)


# ── Seeding / read-back helpers (each uses its own committed session) ──

async def _seed_balance(
    employee_id: uuid.UUID,
    leave_type: LeaveType = LeaveType.annual,
    *,
    leave_year: int = LEAVE_YEAR,
    accrued: Decimal | str = "21",
    carried_over: Decimal | str = "0",
    carry_over_expiry: Optional[date] = None,
    taken: Decimal | str = "0",
    pending: Decimal | str = "0",
    accrual_rate: Decimal | str = "0",
    prorated: Optional[Decimal | str] = None,
    last_accrual_month: Optional[int] = None,
) -> LeaveBalance:
    balance = LeaveBalance(
        employee_id=employee_id,
        subsidiary_id=SUBSIDIARY_ID,
        leave_year=leave_year,
        leave_type=leave_type,
        annual_entitlement=Decimal("21"),
        prorated_entitlement=Decimal(prorated if prorated is not None else "21"),
        accrued_to_date=Decimal(accrued),
        accrual_rate=Decimal(accrual_rate),
        last_accrual_month=last_accrual_month,
        carried_over=Decimal(carried_over),
        carried_over_used=Decimal("0"),
        carried_over_expired=Decimal("0"),
        carry_over_expiry=carry_over_expiry,
        taken=Decimal(taken),
        pending=Decimal(pending),
        advance_taken=Decimal("0"),
        max_advance=Decimal("0"),
        encashed=Decimal("0"),
        earned=Decimal("0"),
    )
    balance.recompute_available()
    async with TestSessionFactory() as session:
        session.add(balance)
        await session.commit()
    return balance


async def _read_balance(
    employee_id: uuid.UUID,
    leave_type: LeaveType = LeaveType.annual,
    leave_year: int = LEAVE_YEAR,
) -> Optional[LeaveBalance]:
    async with TestSessionFactory() as session:
        return await LeaveRepository(session).get_balance(employee_id, leave_year, leave_type)


async def _read_history(employee_id: uuid.UUID) -> list[BalanceHistoryEntry]:
    async with TestSessionFactory() as session:
        result = await session.execute(
            select(BalanceHistoryEntry)
            .where(BalanceHistoryEntry.employee_id == employee_id)
            .order_by(BalanceHistoryEntry.created_at)
        )
        return list(result.scalars().all())


async def _read_request(request_id: uuid.UUID) -> Optional[LeaveRequest]:
    async with TestSessionFactory() as session:
        return await session.get(LeaveRequest, request_id)


async def _read_calendar(request_id: uuid.UUID) -> list[TeamCalendarEntry]:
    async with TestSessionFactory() as session:
        result = await session.execute(
            select(TeamCalendarEntry)
            .where(TeamCalendarEntry.request_id == request_id)
            .order_by(TeamCalendarEntry.leave_date)
        )
        return list(result.scalars().all())


def _assert_invariant(balance: LeaveBalance) -> None:
    expected = (
        balance.accrued_to_date
        + (balance.carried_over - balance.carried_over_used - balance.carried_over_expired)
        - balance.taken
        - balance.pending
        - balance.advance_taken
    )
    assert balance.available == expected


def _auth_headers(actor: EmployeeProfile, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(actor.id, role)}"}


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(workflow: LeaveRequestWorkflow):
    """Create a fresh app instance with the workflow dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_workflow] = lambda: workflow
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
