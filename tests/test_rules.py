"""Pure rule tests — entitlements, leave-year maths, eligibility, date helpers,
the status machine and approval-chain lookup. No database involved.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from leave_engine.common.constants import (
    ApprovalLevel,
    DayType,
    EmploymentType,
    GenderType,
    LeaveRequestStatus,
    LeaveType,
    can_transition,
)
from leave_engine.common.exceptions import IneligibleLeaveType
from leave_engine.leave.approval import get_approval_chain
from leave_engine.leave.eligibility import (
    calculate_service_months,
    check_eligibility,
    ensure_eligible,
)
from leave_engine.leave.entitlements import (
    carry_over_expiry_date,
    get_entitlement,
    get_leave_year,
    leave_year_bounds,
    month_of_leave_year,
    monthly_accrual_rate,
    prorated_entitlement,
    round_to_half,
)
from leave_engine.leave.utils import (
    calculate_return_date,
    calculate_total_days,
    dates_overlap,
    generate_day_configs,
    generate_request_number,
    notice_days_given,
)
from tests.conftest import _make_employee

TODAY = date(2026, 3, 2)


# ═════════════════════════════════════════════════════════════════════
# Entitlement catalog
# ═════════════════════════════════════════════════════════════════════


class TestEntitlements:
    def test_annual_policy(self):
        annual = get_entitlement(LeaveType.annual)
        assert annual.days_per_year == 21
        assert annual.carry_over_allowed is True
        assert annual.max_carry_over_days == 10
        assert annual.min_notice_days == 14

    def test_lookup_accepts_raw_value(self):
        assert get_entitlement("sick").leave_type == LeaveType.sick

    def test_unpaid_is_not_paid(self):
        assert get_entitlement(LeaveType.unpaid).is_paid is False
        assert get_entitlement(LeaveType.annual).is_paid is True

    def test_monthly_accrual_rate(self):
        assert monthly_accrual_rate(get_entitlement(LeaveType.annual)) == Decimal("1.75")
        assert monthly_accrual_rate(get_entitlement(LeaveType.sick)) == Decimal("0")

    def test_round_to_half(self):
        assert round_to_half(Decimal("8.74")) == Decimal("8.50")
        assert round_to_half(Decimal("8.75")) == Decimal("9.00")

    def test_prorated_for_mid_year_joiner(self):
        """Joining in July of a January leave year leaves 6 of 12 months."""
        annual = get_entitlement(LeaveType.annual)
        assert prorated_entitlement(annual, date(2026, 7, 10), 2026) == Decimal("10.50")

    def test_prorated_full_for_earlier_joiner(self):
        annual = get_entitlement(LeaveType.annual)
        assert prorated_entitlement(annual, date(2019, 5, 1), 2026) == Decimal("21.00")

    def test_prorated_zero_after_year_end(self):
        annual = get_entitlement(LeaveType.annual)
        assert prorated_entitlement(annual, date(2027, 2, 1), 2026) == Decimal("0.00")

    def test_carry_over_expiry_is_end_of_june(self):
        assert carry_over_expiry_date(get_entitlement(LeaveType.annual), 2025) == date(2025, 6, 30)

    def test_no_expiry_for_types_without_carry_over(self):
        assert carry_over_expiry_date(get_entitlement(LeaveType.sick), 2025) is None


class TestLeaveYear:
    def test_calendar_leave_year(self):
        assert get_leave_year(date(2026, 3, 2)) == 2026
        assert leave_year_bounds(2026) == (date(2026, 1, 1), date(2026, 12, 31))

    def test_july_leave_year(self):
        assert get_leave_year(date(2026, 3, 2), start_month=7) == 2025
        assert get_leave_year(date(2026, 7, 1), start_month=7) == 2026
        assert leave_year_bounds(2025, start_month=7) == (date(2025, 7, 1), date(2026, 6, 30))

    def test_month_of_leave_year(self):
        assert month_of_leave_year(date(2026, 3, 15)) == 3
        assert month_of_leave_year(date(2026, 7, 15), start_month=7) == 1
        assert month_of_leave_year(date(2027, 6, 15), start_month=7) == 12


# ═════════════════════════════════════════════════════════════════════
# Eligibility
# ═════════════════════════════════════════════════════════════════════


class TestServiceMonths:
    def test_partial_month_does_not_count(self):
        assert calculate_service_months(date(2025, 11, 15), date(2026, 3, 14)) == 3
        assert calculate_service_months(date(2025, 11, 15), date(2026, 3, 15)) == 4

    def test_never_negative(self):
        assert calculate_service_months(date(2026, 5, 1), date(2026, 3, 2)) == 0


class TestEligibility:
    def test_minimum_service(self):
        """Annual leave needs four whole months of service."""
        employee = _make_employee(full_name="New Joiner", employee_number="EMP-100", join_date=date(2025, 12, 1))
        result = check_eligibility(employee, LeaveType.annual, TODAY)
        assert result.eligible is False
        assert result.service_months == 3
        assert "4 months" in result.reason

    def test_gender_restriction(self):
        employee = _make_employee(full_name="Tom", employee_number="EMP-101", gender=GenderType.male)
        assert check_eligibility(employee, LeaveType.maternity, TODAY).eligible is False
        assert check_eligibility(employee, LeaveType.paternity, TODAY).eligible is True

    def test_missing_gender_fails_restriction(self):
        employee = _make_employee(full_name="Unknown", employee_number="EMP-102", gender=None)
        result = check_eligibility(employee, LeaveType.maternity, TODAY)
        assert result.eligible is False
        assert "female" in result.reason

    def test_sabbatical_requires_permanent_staff(self):
        employee = _make_employee(
            full_name="Contractor",
            employee_number="EMP-103",
            join_date=date(2015, 1, 1),
            employment_type=EmploymentType.contract,
        )
        result = check_eligibility(employee, LeaveType.sabbatical, TODAY)
        assert result.eligible is False
        assert "permanent" in result.reason

    def test_sabbatical_after_seven_years(self):
        employee = _make_employee(full_name="Veteran", employee_number="EMP-104", join_date=date(2015, 1, 1))
        assert check_eligibility(employee, LeaveType.sabbatical, TODAY).eligible is True

    def test_ensure_eligible_raises(self):
        employee = _make_employee(full_name="Tom", employee_number="EMP-105", gender=GenderType.male)
        with pytest.raises(IneligibleLeaveType) as exc_info:
            ensure_eligible(employee, LeaveType.maternity, TODAY)
        assert exc_info.value.status_code == 422
        assert "leave_type" in exc_info.value.errors


# ═════════════════════════════════════════════════════════════════════
# Date helpers
# ═════════════════════════════════════════════════════════════════════


class TestDayConfigs:
    def test_weekends_are_not_charged(self):
        """Friday to Monday counts two working days."""
        configs = generate_day_configs(date(2026, 3, 6), date(2026, 3, 9), {})
        assert len(configs) == 4
        assert [c.is_working_day for c in configs] == [True, False, False, True]
        assert calculate_total_days(configs) == Decimal("2")

    def test_holidays_are_not_charged(self):
        holidays = {date(2026, 5, 1): "Labour Day"}
        configs = generate_day_configs(date(2026, 4, 27), date(2026, 5, 1), holidays)
        labour_day = configs[-1]
        assert labour_day.is_holiday is True
        assert labour_day.holiday_name == "Labour Day"
        assert labour_day.day_value == Decimal("0")
        assert calculate_total_days(configs) == Decimal("4")

    def test_half_day_override(self):
        overrides = {date(2026, 3, 13): DayType.half_day_pm}
        configs = generate_day_configs(date(2026, 3, 9), date(2026, 3, 13), {}, overrides)
        assert configs[-1].day_type == DayType.half_day_pm
        assert calculate_total_days(configs) == Decimal("4.5")

    def test_half_day_on_weekend_is_ignored(self):
        overrides = {date(2026, 3, 7): DayType.half_day_am}
        configs = generate_day_configs(date(2026, 3, 6), date(2026, 3, 7), {}, overrides)
        assert configs[1].day_value == Decimal("0")
        assert calculate_total_days(configs) == Decimal("1")

    def test_custom_working_week(self):
        configs = generate_day_configs(
            date(2026, 3, 6), date(2026, 3, 7), {}, working_weekdays={0, 1, 2, 3, 4, 5},
        )
        assert calculate_total_days(configs) == Decimal("2")


class TestDateHelpers:
    def test_overlap_is_inclusive(self):
        assert dates_overlap(date(2026, 3, 2), date(2026, 3, 6), date(2026, 3, 6), date(2026, 3, 10))
        assert not dates_overlap(date(2026, 3, 2), date(2026, 3, 6), date(2026, 3, 7), date(2026, 3, 10))

    def test_notice_days(self):
        assert notice_days_given(date(2026, 3, 16), date(2026, 3, 2)) == 14

    def test_request_number_format(self):
        assert generate_request_number("EMP-001", date(2026, 3, 2), 7) == "LR-EMP-001-20260302-007"

    def test_return_date_skips_weekend_and_holiday(self):
        """Leave ending Friday before a Monday holiday returns on Tuesday."""
        holidays = {date(2026, 6, 8): "Holiday"}
        assert calculate_return_date(date(2026, 6, 5), holidays) == date(2026, 6, 9)


# ═════════════════════════════════════════════════════════════════════
# Status machine / approval matrix
# ═════════════════════════════════════════════════════════════════════

S = LeaveRequestStatus

FORWARD_EDGES = {
    (S.draft, S.pending_approval),
    (S.draft, S.withdrawn),
    (S.pending_approval, S.pending_hr_review),
    (S.pending_approval, S.approved),
    (S.pending_approval, S.rejected),
    (S.pending_approval, S.cancelled),
    (S.pending_hr_review, S.approved),
    (S.pending_hr_review, S.rejected),
    (S.pending_hr_review, S.cancelled),
    (S.approved, S.cancelled),
}

RETURN_EDGES = {
    (S.pending_approval, S.pending_approval),
    (S.pending_approval, S.draft),
    (S.pending_hr_review, S.pending_approval),
    (S.pending_hr_review, S.draft),
}


class TestStatusMachine:
    def test_forward_edges(self):
        assert can_transition(LeaveRequestStatus.draft, LeaveRequestStatus.pending_approval)
        assert can_transition(LeaveRequestStatus.pending_approval, LeaveRequestStatus.pending_hr_review)
        assert can_transition(LeaveRequestStatus.approved, LeaveRequestStatus.cancelled)

    def test_terminal_states(self):
        for status in (LeaveRequestStatus.rejected, LeaveRequestStatus.cancelled, LeaveRequestStatus.withdrawn):
            assert not can_transition(status, LeaveRequestStatus.pending_approval)

    def test_return_edges_only_for_returns(self):
        assert not can_transition(LeaveRequestStatus.pending_approval, LeaveRequestStatus.draft)
        assert can_transition(LeaveRequestStatus.pending_approval, LeaveRequestStatus.draft, is_return=True)
        assert can_transition(
            LeaveRequestStatus.pending_hr_review, LeaveRequestStatus.pending_approval, is_return=True,
        )
        assert not can_transition(LeaveRequestStatus.approved, LeaveRequestStatus.draft, is_return=True)

    @pytest.mark.parametrize("current", list(LeaveRequestStatus))
    @pytest.mark.parametrize("target", list(LeaveRequestStatus))
    def test_closure_over_every_pair(self, current, target):
        assert can_transition(current, target) is ((current, target) in FORWARD_EDGES)
        assert can_transition(current, target, is_return=True) is (
            (current, target) in FORWARD_EDGES or (current, target) in RETURN_EDGES
        )


class TestApprovalMatrix:
    @pytest.mark.parametrize(
        "days, expected",
        [
            (Decimal("5"), [ApprovalLevel.supervisor]),
            (Decimal("5.5"), [ApprovalLevel.supervisor, ApprovalLevel.department_head]),
            (Decimal("10"), [ApprovalLevel.supervisor, ApprovalLevel.department_head]),
            (
                Decimal("15"),
                [ApprovalLevel.supervisor, ApprovalLevel.department_head, ApprovalLevel.hr_manager],
            ),
        ],
    )
    def test_annual_staircase(self, days, expected):
        assert get_approval_chain(LeaveType.annual, days) == expected

    def test_beyond_last_tier_uses_last_tier(self):
        assert get_approval_chain(LeaveType.sick, Decimal("45")) == [
            ApprovalLevel.supervisor, ApprovalLevel.hr_manager, ApprovalLevel.general_manager,
        ]

    def test_flat_chain(self):
        assert get_approval_chain(LeaveType.sabbatical, Decimal("20")) == [
            ApprovalLevel.supervisor,
            ApprovalLevel.department_head,
            ApprovalLevel.hr_manager,
            ApprovalLevel.ceo,
        ]
