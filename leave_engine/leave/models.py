"""Leave ORM models: LeaveBalance, BalanceHistoryEntry, LeaveRequest, TeamCalendarEntry,
PublicHoliday, ApprovalDelegation."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from leave_engine.common.constants import (
    BalanceAdjustmentType,
    DayType,
    LeavePriority,
    LeaveRequestStatus,
    LeaveType,
)
from leave_engine.database import Base

ZERO = Decimal("0")

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: type, name: str) -> sa.Enum:
    return sa.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


def _days(nullable: bool = False) -> Any:
    return mapped_column(
        sa.Numeric(7, 2),
        nullable=nullable,
        default=ZERO,
        server_default=sa.text("0"),
    )


class LeaveBalance(Base):
    """Balance of one leave type for one employee in one leave year.

    ``available`` is always derived from the other components through
    :meth:`recompute_available`; UPDATEs are guarded by ``version``.
    """

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_year", "leave_type", name="uq_leave_balance"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, index=True)
    subsidiary_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    leave_year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(_enum(LeaveType, "leave_type"), nullable=False)

    annual_entitlement: Mapped[Decimal] = _days()
    prorated_entitlement: Mapped[Decimal] = _days()
    accrued_to_date: Mapped[Decimal] = _days()
    accrual_rate: Mapped[Decimal] = _days()
    last_accrual_month: Mapped[Optional[int]] = mapped_column(sa.Integer)

    carried_over: Mapped[Decimal] = _days()
    carried_over_used: Mapped[Decimal] = _days()
    carried_over_expired: Mapped[Decimal] = _days()
    carry_over_expiry: Mapped[Optional[date]] = mapped_column(sa.Date)
    carried_over_from_year: Mapped[Optional[int]] = mapped_column(sa.Integer)

    taken: Mapped[Decimal] = _days()
    pending: Mapped[Decimal] = _days()
    available: Mapped[Decimal] = _days()
    advance_taken: Mapped[Decimal] = _days()
    max_advance: Mapped[Decimal] = _days()
    encashed: Mapped[Decimal] = _days()
    earned: Mapped[Decimal] = _days()

    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
        server_default=sa.func.now(),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def unused_carry_over(self) -> Decimal:
        return max(ZERO, self.carried_over - self.carried_over_used - self.carried_over_expired)

    @property
    def total_taken(self) -> Decimal:
        return self.taken + self.carried_over_used

    def recompute_available(self) -> Decimal:
        self.available = (
            self.accrued_to_date
            + (self.carried_over - self.carried_over_used - self.carried_over_expired)
            - self.taken
            - self.pending
            - self.advance_taken
        )
        return self.available


class BalanceHistoryEntry(Base):
    """Write-once ledger row; before/after are measured as ``available``."""

    __tablename__ = "leave_balance_history"
    __table_args__ = (
        sa.Index("ix_balance_history_key", "employee_id", "leave_year", "leave_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    leave_year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(_enum(LeaveType, "leave_type"), nullable=False)
    transaction_type: Mapped[BalanceAdjustmentType] = mapped_column(
        _enum(BalanceAdjustmentType, "balance_adjustment_type"), nullable=False
    )
    balance_before: Mapped[Decimal] = _days()
    adjustment: Mapped[Decimal] = _days()
    balance_after: Mapped[Decimal] = _days()
    reference_type: Mapped[Optional[str]] = mapped_column(sa.String(40))
    reference_id: Mapped[Optional[str]] = mapped_column(sa.String(64))
    description: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    accrual_period: Mapped[Optional[str]] = mapped_column(sa.String(7))
    created_by: Mapped[Optional[str]] = mapped_column(sa.String(64))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    request_number: Mapped[str] = mapped_column(sa.String(48), unique=True, nullable=False)
    subsidiary_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)

    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    employee_number: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    employee_name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)

    leave_type: Mapped[LeaveType] = mapped_column(_enum(LeaveType, "leave_type"), nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    leave_year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    day_configs: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)
    total_working_days: Mapped[Decimal] = _days()

    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    priority: Mapped[LeavePriority] = mapped_column(
        _enum(LeavePriority, "leave_priority"), nullable=False, default=LeavePriority.normal
    )
    status: Mapped[LeaveRequestStatus] = mapped_column(
        _enum(LeaveRequestStatus, "leave_request_status"), nullable=False
    )
    status_history: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)

    approval_chain: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    approvals: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)
    balance_impact: Mapped[Optional[dict]] = mapped_column(JSONType)
    delegation: Mapped[Optional[dict]] = mapped_column(JSONType)
    emergency_contact: Mapped[Optional[dict]] = mapped_column(JSONType)
    return_to_work: Mapped[Optional[dict]] = mapped_column(JSONType)

    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
        server_default=sa.func.now(),
    )

    __mapper_args__ = {"version_id_col": version}


class TeamCalendarEntry(Base):
    """Derived per-day row; regenerated from its LeaveRequest, never edited directly."""

    __tablename__ = "team_calendar_entries"
    __table_args__ = (
        sa.Index("ix_team_calendar_department_date", "department_id", "leave_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    employee_name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    subsidiary_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    leave_type: Mapped[LeaveType] = mapped_column(_enum(LeaveType, "leave_type"), nullable=False)
    leave_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    day_type: Mapped[DayType] = mapped_column(_enum(DayType, "day_type"), nullable=False)
    day_value: Mapped[Decimal] = _days()
    status: Mapped[LeaveRequestStatus] = mapped_column(
        _enum(LeaveRequestStatus, "leave_request_status"), nullable=False
    )


class PublicHoliday(Base):
    __tablename__ = "public_holidays"
    __table_args__ = (
        sa.Index("ix_public_holidays_subsidiary_year", "subsidiary_id", "year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    subsidiary_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    holiday_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(sa.Boolean, default=False, server_default=sa.false())


class ApprovalDelegation(Base):
    """Time-bounded grant letting ``delegate_id`` decide on behalf of ``delegator_id``."""

    __tablename__ = "approval_delegations"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    delegator_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, index=True)
    delegate_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True, server_default=sa.true())
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # Empty / null scope means "any"
    leave_types: Mapped[Optional[list[str]]] = mapped_column(JSONType)
    department_ids: Mapped[Optional[list[str]]] = mapped_column(JSONType)
    max_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(7, 2))
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
