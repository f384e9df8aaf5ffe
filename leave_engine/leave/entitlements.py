"""Entitlement catalog — static per-leave-type rules, approval matrix, leave-year maths.

Everything here is pure lookup / arithmetic with no I/O.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from leave_engine.common.constants import (
    AccrualMethod,
    ApprovalLevel,
    EmploymentType,
    GenderType,
    LeaveType,
)
from leave_engine.config import settings

_SUP = ApprovalLevel.supervisor
_DH = ApprovalLevel.department_head
_HR = ApprovalLevel.hr_manager
_GM = ApprovalLevel.general_manager
_CEO = ApprovalLevel.ceo


class LeaveEntitlement(BaseModel):
    """Policy for one leave type."""

    model_config = ConfigDict(frozen=True)

    leave_type: LeaveType
    days_per_year: int
    accrual_method: AccrualMethod
    min_service_months: int = 0
    gender_restriction: Optional[GenderType] = None
    required_employment_types: Optional[frozenset[EmploymentType]] = None
    carry_over_allowed: bool = False
    max_carry_over_days: int = 0
    carry_over_expiry_months: int = 0
    min_notice_days: int = 0
    max_consecutive_days: Optional[int] = None
    half_pay_days: int = 0
    payment_rate: Decimal = Decimal("1.0")
    document_required: bool = False

    @property
    def is_paid(self) -> bool:
        return self.payment_rate > 0


# ═════════════════════════════════════════════════════════════════════
# Entitlement table
# ═════════════════════════════════════════════════════════════════════

ENTITLEMENTS: dict[LeaveType, LeaveEntitlement] = {
    e.leave_type: e
    for e in (
        LeaveEntitlement(
            leave_type=LeaveType.annual,
            days_per_year=21,
            accrual_method=AccrualMethod.monthly,
            min_service_months=4,
            carry_over_allowed=True,
            max_carry_over_days=10,
            carry_over_expiry_months=6,
            min_notice_days=14,
            max_consecutive_days=21,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.sick,
            days_per_year=30,
            half_pay_days=22,
            accrual_method=AccrualMethod.entitlement,
            max_consecutive_days=30,
            document_required=True,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.maternity,
            days_per_year=60,
            accrual_method=AccrualMethod.entitlement,
            min_service_months=6,
            min_notice_days=30,
            max_consecutive_days=60,
            gender_restriction=GenderType.female,
            document_required=True,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.paternity,
            days_per_year=4,
            accrual_method=AccrualMethod.entitlement,
            min_service_months=1,
            max_consecutive_days=4,
            gender_restriction=GenderType.male,
            document_required=True,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.compassionate,
            days_per_year=5,
            accrual_method=AccrualMethod.entitlement,
            max_consecutive_days=5,
            document_required=True,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.study,
            days_per_year=10,
            accrual_method=AccrualMethod.entitlement,
            min_service_months=12,
            min_notice_days=30,
            max_consecutive_days=10,
            document_required=True,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.unpaid,
            days_per_year=30,
            accrual_method=AccrualMethod.none,
            min_notice_days=14,
            max_consecutive_days=30,
            payment_rate=Decimal("0"),
        ),
        LeaveEntitlement(
            leave_type=LeaveType.compensatory,
            days_per_year=10,
            accrual_method=AccrualMethod.earned,
            min_notice_days=3,
            max_consecutive_days=5,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.public_duty,
            days_per_year=10,
            accrual_method=AccrualMethod.entitlement,
            max_consecutive_days=10,
            document_required=True,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.marriage,
            days_per_year=3,
            accrual_method=AccrualMethod.none,
            min_notice_days=30,
            max_consecutive_days=3,
            document_required=True,
        ),
        LeaveEntitlement(
            leave_type=LeaveType.sabbatical,
            days_per_year=20,
            accrual_method=AccrualMethod.service_based,
            min_service_months=84,
            min_notice_days=180,
            max_consecutive_days=20,
            required_employment_types=frozenset({EmploymentType.permanent}),
        ),
    )
}


def get_entitlement(leave_type: LeaveType) -> LeaveEntitlement:
    return ENTITLEMENTS[LeaveType(leave_type)]


# ═════════════════════════════════════════════════════════════════════
# Approval matrix
# ═════════════════════════════════════════════════════════════════════

# Either a flat list of levels, or ascending (max_days, levels) tiers
ApprovalRule = Union[list[ApprovalLevel], list[tuple[int, list[ApprovalLevel]]]]

APPROVAL_MATRIX: dict[LeaveType, ApprovalRule] = {
    LeaveType.annual: [
        (5, [_SUP]),
        (10, [_SUP, _DH]),
        (21, [_SUP, _DH, _HR]),
    ],
    LeaveType.sick: [
        (5, [_SUP]),
        (10, [_SUP, _HR]),
        (30, [_SUP, _HR, _GM]),
    ],
    LeaveType.maternity: [_SUP, _HR],
    LeaveType.paternity: [_SUP],
    LeaveType.compassionate: [_SUP],
    LeaveType.study: [_SUP, _DH, _HR],
    LeaveType.unpaid: [_SUP, _DH, _HR, _GM],
    LeaveType.compensatory: [_SUP],
    LeaveType.public_duty: [_SUP, _HR],
    LeaveType.marriage: [_SUP, _HR],
    LeaveType.sabbatical: [_SUP, _DH, _HR, _CEO],
}


# ═════════════════════════════════════════════════════════════════════
# Public holidays (recurring, month/day)
# ═════════════════════════════════════════════════════════════════════

RECURRING_HOLIDAYS: list[tuple[int, int, str]] = [
    (1, 1, "New Year's Day"),
    (1, 26, "NRM Liberation Day"),
    (2, 16, "Archbishop Janani Luwum Day"),
    (3, 8, "International Women's Day"),
    (5, 1, "Labour Day"),
    (6, 3, "Martyrs' Day"),
    (6, 9, "National Heroes' Day"),
    (10, 9, "Independence Day"),
    (12, 25, "Christmas Day"),
    (12, 26, "Boxing Day"),
]


# ═════════════════════════════════════════════════════════════════════
# Leave-year maths
# ═════════════════════════════════════════════════════════════════════

def round_to_half(value: Decimal) -> Decimal:
    """Round to the nearest half day (0.5 granularity)."""
    return ((value * 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP) / 2).quantize(
        Decimal("0.01")
    )


def get_leave_year(on: date, start_month: Optional[int] = None) -> int:
    """Leave year a date falls in; a year is named after the calendar year it starts in."""
    start = start_month or settings.LEAVE_YEAR_START_MONTH
    return on.year if on.month >= start else on.year - 1


def leave_year_bounds(leave_year: int, start_month: Optional[int] = None) -> tuple[date, date]:
    start = start_month or settings.LEAVE_YEAR_START_MONTH
    first = date(leave_year, start, 1)
    if start == 1:
        return first, date(leave_year, 12, 31)
    last_month = start - 1
    return first, date(
        leave_year + 1, last_month, calendar.monthrange(leave_year + 1, last_month)[1]
    )


def month_of_leave_year(on: date, start_month: Optional[int] = None) -> int:
    """1-based month index within the leave year."""
    start = start_month or settings.LEAVE_YEAR_START_MONTH
    return (on.month - start) % 12 + 1


def monthly_accrual_rate(entitlement: LeaveEntitlement) -> Decimal:
    if entitlement.accrual_method != AccrualMethod.monthly:
        return Decimal("0")
    return (Decimal(entitlement.days_per_year) / 12).quantize(Decimal("0.01"))


def prorated_entitlement(
    entitlement: LeaveEntitlement,
    join_date: date,
    leave_year: int,
) -> Decimal:
    """Scale the annual entitlement by the months remaining after joining.

    The joining month counts in full. Employees who joined before the leave
    year started get the whole entitlement.
    """
    full = Decimal(entitlement.days_per_year)
    year_start, year_end = leave_year_bounds(leave_year)
    if join_date <= year_start:
        return full.quantize(Decimal("0.01"))
    if join_date > year_end:
        return Decimal("0.00")
    months_remaining = 13 - month_of_leave_year(join_date)
    return round_to_half(full * months_remaining / 12)


def carry_over_expiry_date(entitlement: LeaveEntitlement, to_year: int) -> Optional[date]:
    """Last day of the configured month of the new leave year (annual: 30 June)."""
    if not entitlement.carry_over_allowed or entitlement.carry_over_expiry_months <= 0:
        return None
    year_start, _ = leave_year_bounds(to_year)
    month_index = year_start.month - 1 + entitlement.carry_over_expiry_months - 1
    year = year_start.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, calendar.monthrange(year, month)[1])
