"""Eligibility rules: service tenure, gender restriction, employment category."""

from __future__ import annotations

from datetime import date
from typing import Optional

from leave_engine.common.constants import LeaveType
from leave_engine.common.exceptions import IneligibleLeaveType
from leave_engine.leave.entitlements import get_entitlement
from leave_engine.leave.schemas import EligibilityResult, EmployeeProfile


def calculate_service_months(join_date: date, today: Optional[date] = None) -> int:
    """Whole months between joining and *today*; a partial month does not count."""
    today = today or date.today()
    months = (today.year - join_date.year) * 12 + (today.month - join_date.month)
    if today.day < join_date.day:
        months -= 1
    return max(0, months)


def check_eligibility(
    employee: EmployeeProfile,
    leave_type: LeaveType,
    today: Optional[date] = None,
) -> EligibilityResult:
    entitlement = get_entitlement(leave_type)
    service_months = calculate_service_months(employee.join_date, today)

    if service_months < entitlement.min_service_months:
        return EligibilityResult(
            eligible=False,
            service_months=service_months,
            reason=(
                f"Requires at least {entitlement.min_service_months} months of service "
                f"({service_months} completed)."
            ),
        )

    if (
        entitlement.gender_restriction is not None
        and employee.gender != entitlement.gender_restriction
    ):
        return EligibilityResult(
            eligible=False,
            service_months=service_months,
            reason=f"Only available to {entitlement.gender_restriction.value} employees.",
        )

    if (
        entitlement.required_employment_types
        and employee.employment_type not in entitlement.required_employment_types
    ):
        allowed = ", ".join(sorted(t.value for t in entitlement.required_employment_types))
        return EligibilityResult(
            eligible=False,
            service_months=service_months,
            reason=f"Only available to {allowed} staff.",
        )

    return EligibilityResult(eligible=True, service_months=service_months)


def ensure_eligible(
    employee: EmployeeProfile,
    leave_type: LeaveType,
    today: Optional[date] = None,
) -> EligibilityResult:
    """Raise :class:`IneligibleLeaveType` unless the employee may take *leave_type*."""
    result = check_eligibility(employee, leave_type, today)
    if not result.eligible:
        raise IneligibleLeaveType(leave_type, result.reason or "Not eligible.")
    return result
