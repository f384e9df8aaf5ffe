"""Balance ledger tests — reservation lifecycle, manual adjustments, initialization,
monthly accrual, year-end carry-over and carry-over expiry.

Every test checks the balance invariant on the records it touches.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.constants import BalanceAdjustmentType, GenderType, LeaveType
from leave_engine.common.exceptions import (
    BalanceNotFound,
    InsufficientBalance,
    ValidationException,
)
from leave_engine.leave.balance import BalanceLedger
from leave_engine.leave.models import BalanceHistoryEntry
from leave_engine.leave.repository import LeaveRepository
from tests.conftest import _assert_invariant, _make_employee, _seed_balance


def _ledger(db: AsyncSession) -> BalanceLedger:
    return BalanceLedger(LeaveRepository(db))


async def _history(db: AsyncSession, employee_id: uuid.UUID) -> list[BalanceHistoryEntry]:
    result = await db.execute(
        select(BalanceHistoryEntry).where(BalanceHistoryEntry.employee_id == employee_id)
    )
    return list(result.scalars().all())


# ═════════════════════════════════════════════════════════════════════
# Reserve / release / confirm
# ═════════════════════════════════════════════════════════════════════


class TestReservationLifecycle:
    async def test_reserve_moves_days_to_pending(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id)

        balance = await _ledger(db).reserve(employee_id, LeaveType.annual, Decimal("5"), 2026)

        assert balance.pending == Decimal("5")
        assert balance.available == Decimal("16")
        _assert_invariant(balance)

    async def test_reserve_without_balance_raises(self, db: AsyncSession):
        with pytest.raises(BalanceNotFound) as exc_info:
            await _ledger(db).reserve(uuid.uuid4(), LeaveType.annual, Decimal("1"), 2026)
        assert exc_info.value.status_code == 404

    async def test_checked_reserve_refuses_overdraft(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, pending="18")

        with pytest.raises(InsufficientBalance) as exc_info:
            await _ledger(db).reserve(
                employee_id, LeaveType.annual, Decimal("5"), 2026, require_sufficient=True,
            )
        assert exc_info.value.available == Decimal("3")

    async def test_checked_reserve_without_balance_is_insufficient(self, db: AsyncSession):
        with pytest.raises(InsufficientBalance) as exc_info:
            await _ledger(db).reserve(
                uuid.uuid4(), LeaveType.annual, Decimal("1"), 2026, require_sufficient=True,
            )
        assert exc_info.value.available == Decimal("0")

    async def test_checked_reserve_exact_balance(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, pending="16")

        balance = await _ledger(db).reserve(
            employee_id, LeaveType.annual, Decimal("5"), 2026, require_sufficient=True,
        )
        assert balance.available == Decimal("0")
        _assert_invariant(balance)

    async def test_release_never_goes_below_zero(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, pending="2")

        balance = await _ledger(db).release(employee_id, LeaveType.annual, Decimal("5"), 2026)

        assert balance.pending == Decimal("0")
        assert balance.available == Decimal("21")
        _assert_invariant(balance)

    async def test_repeated_release_is_harmless(self, db: AsyncSession):
        """A redelivered release leaves the balance where the first one put it."""
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id)
        ledger = _ledger(db)

        await ledger.reserve(employee_id, LeaveType.annual, Decimal("5"), 2026)
        await ledger.release(employee_id, LeaveType.annual, Decimal("5"), 2026)
        balance = await ledger.release(employee_id, LeaveType.annual, Decimal("5"), 2026)

        assert balance.pending == Decimal("0")
        assert balance.available == Decimal("21")

    async def test_confirm_draws_carry_over_first(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, carried_over="3", pending="5")
        ledger = _ledger(db)

        from_carry_over = await ledger.confirm_taken(
            employee_id, LeaveType.annual, Decimal("5"), 2026, reference_id="LR-1",
        )
        balance = await ledger.get_balance(employee_id, 2026, LeaveType.annual)

        assert from_carry_over == Decimal("3")
        assert balance.carried_over_used == Decimal("3")
        assert balance.taken == Decimal("2")
        assert balance.total_taken == Decimal("5")
        assert balance.pending == Decimal("0")
        assert balance.available == Decimal("19")
        _assert_invariant(balance)

        history = await _history(db, employee_id)
        assert len(history) == 1
        assert history[0].transaction_type == BalanceAdjustmentType.leave_taken
        assert history[0].adjustment == Decimal("-5")
        assert history[0].balance_before == Decimal("19")
        assert history[0].balance_after == Decimal("19")
        assert history[0].reference_id == "LR-1"


class TestCheckSufficient:
    async def test_missing_balance_is_insufficient(self, db: AsyncSession):
        check = await _ledger(db).check_sufficient(uuid.uuid4(), LeaveType.annual, Decimal("1"), 2026)
        assert check.sufficient is False
        assert check.available == Decimal("0")

    async def test_short_balance(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, accrued="3")

        check = await _ledger(db).check_sufficient(employee_id, LeaveType.annual, Decimal("5"), 2026)

        assert check.sufficient is False
        assert check.available == Decimal("3")
        assert "Insufficient" in check.message

    async def test_exact_balance_is_sufficient(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, accrued="5")

        check = await _ledger(db).check_sufficient(employee_id, LeaveType.annual, Decimal("5"), 2026)
        assert check.sufficient is True


# ═════════════════════════════════════════════════════════════════════
# Manual adjustments
# ═════════════════════════════════════════════════════════════════════


class TestAdjustments:
    async def test_manual_credit(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id)

        balance = await _ledger(db).adjust(
            employee_id, LeaveType.annual, 2026,
            BalanceAdjustmentType.manual_credit, Decimal("2"), "Long-service bonus",
        )

        assert balance.accrued_to_date == Decimal("23")
        assert balance.available == Decimal("23")
        _assert_invariant(balance)

    async def test_encashment_subtracts_absolute_amount(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id)

        balance = await _ledger(db).adjust(
            employee_id, LeaveType.annual, 2026,
            BalanceAdjustmentType.encashment, Decimal("-3"), "Year-end encashment",
            created_by="hr",
        )

        assert balance.accrued_to_date == Decimal("18")
        assert balance.encashed == Decimal("3")
        assert balance.available == Decimal("18")
        history = await _history(db, employee_id)
        assert history[0].adjustment == Decimal("-3")
        assert history[0].created_by == "hr"

    async def test_compensatory_earned_tracks_earned(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, LeaveType.compensatory, accrued="0")

        balance = await _ledger(db).adjust(
            employee_id, LeaveType.compensatory, 2026,
            BalanceAdjustmentType.compensatory_earned, Decimal("1"), "Worked Saturday",
        )

        assert balance.earned == Decimal("1")
        assert balance.available == Decimal("1")

    async def test_debit_beyond_available_raises(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, accrued="2")

        with pytest.raises(InsufficientBalance):
            await _ledger(db).adjust(
                employee_id, LeaveType.annual, 2026,
                BalanceAdjustmentType.manual_debit, Decimal("3"), "Correction",
            )

    async def test_system_types_are_rejected(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id)

        with pytest.raises(ValidationException) as exc_info:
            await _ledger(db).adjust(
                employee_id, LeaveType.annual, 2026,
                BalanceAdjustmentType.accrual, Decimal("1"), "Sneaky accrual",
            )
        assert "adjustment_type" in exc_info.value.errors


# ═════════════════════════════════════════════════════════════════════
# Initialization
# ═════════════════════════════════════════════════════════════════════


class TestInitializeBalances:
    async def test_opens_one_balance_per_permitted_type(self, db: AsyncSession):
        employee = _make_employee(full_name="Sarah", employee_number="EMP-010", gender=GenderType.female)
        opened = await _ledger(db).initialize_balances(employee, 2026, created_by="hr")

        types = {b.leave_type for b in opened}
        assert LeaveType.maternity in types
        assert LeaveType.paternity not in types
        assert len(opened) == len(LeaveType) - 1

        by_type = {b.leave_type: b for b in opened}
        # Monthly accrual starts empty, lump-sum types are granted up front
        assert by_type[LeaveType.annual].accrued_to_date == Decimal("0")
        assert by_type[LeaveType.annual].accrual_rate == Decimal("1.75")
        assert by_type[LeaveType.sick].accrued_to_date == Decimal("30")
        assert by_type[LeaveType.sick].available == Decimal("30")
        assert by_type[LeaveType.compensatory].accrued_to_date == Decimal("0")
        for balance in opened:
            _assert_invariant(balance)

        history = await _history(db, employee.id)
        assert {h.transaction_type for h in history} == {BalanceAdjustmentType.accrual}
        assert LeaveType.annual not in {h.leave_type for h in history}

    async def test_existing_balances_are_kept(self, db: AsyncSession):
        employee = _make_employee(full_name="Tom", employee_number="EMP-011", gender=GenderType.male)
        await _seed_balance(employee.id, LeaveType.annual, accrued="7")
        ledger = _ledger(db)

        opened = await ledger.initialize_balances(employee, 2026)
        assert LeaveType.annual not in {b.leave_type for b in opened}
        assert LeaveType.paternity in {b.leave_type for b in opened}

        again = await ledger.initialize_balances(employee, 2026)
        assert again == []
        annual = await ledger.get_balance(employee.id, 2026, LeaveType.annual)
        assert annual.accrued_to_date == Decimal("7")

    async def test_mid_year_joiner_is_prorated(self, db: AsyncSession):
        employee = _make_employee(full_name="Late", employee_number="EMP-012", join_date=date(2026, 7, 1))
        opened = await _ledger(db).initialize_balances(employee, 2026)

        by_type = {b.leave_type: b for b in opened}
        assert by_type[LeaveType.annual].prorated_entitlement == Decimal("10.50")
        assert by_type[LeaveType.sick].accrued_to_date == Decimal("15.00")


# ═════════════════════════════════════════════════════════════════════
# Accrual
# ═════════════════════════════════════════════════════════════════════


class TestMonthlyAccrual:
    async def test_accrues_once_per_month(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, accrued="0", accrual_rate="1.75")
        ledger = _ledger(db)

        assert await ledger.accrue_monthly(employee_id, 2026, 1) == Decimal("1.75")
        assert await ledger.accrue_monthly(employee_id, 2026, 1) == Decimal("0")
        assert await ledger.accrue_monthly(employee_id, 2026, 2) == Decimal("1.75")

        balance = await ledger.get_balance(employee_id, 2026, LeaveType.annual)
        assert balance.accrued_to_date == Decimal("3.50")
        assert balance.last_accrual_month == 2
        _assert_invariant(balance)

        history = await _history(db, employee_id)
        assert sorted(h.accrual_period for h in history) == ["2026-01", "2026-02"]

    async def test_accrual_is_capped_at_prorated_entitlement(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(
            employee_id, accrued="2.5", prorated="3", accrual_rate="1.75", last_accrual_month=1,
        )

        assert await _ledger(db).accrue_monthly(employee_id, 2026, 2) == Decimal("0.5")

    async def test_lump_sum_types_do_not_accrue(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, LeaveType.sick, accrued="30")

        assert await _ledger(db).accrue_monthly(employee_id, 2026, 1) == Decimal("0")

    async def test_invalid_month(self, db: AsyncSession):
        with pytest.raises(ValidationException):
            await _ledger(db).accrue_monthly(uuid.uuid4(), 2026, 13)


# ═════════════════════════════════════════════════════════════════════
# Carry-over and expiry
# ═════════════════════════════════════════════════════════════════════


class TestCarryOver:
    async def test_unused_days_roll_into_next_year(self, db: AsyncSession):
        """21 accrued, 18 taken in 2024 → 3 carried into 2025, expiring 30 June."""
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, leave_year=2024, accrued="21", taken="18")
        ledger = _ledger(db)

        carried = await ledger.carry_over(employee_id, 2024, 2025)

        assert carried == {LeaveType.annual: Decimal("3")}
        target = await ledger.get_balance(employee_id, 2025, LeaveType.annual)
        assert target.carried_over == Decimal("3")
        assert target.carried_over_from_year == 2024
        assert target.carry_over_expiry == date(2025, 6, 30)
        assert target.available == Decimal("3")
        _assert_invariant(target)

    async def test_rerun_does_not_double_count(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, leave_year=2024, accrued="21", taken="18")
        ledger = _ledger(db)

        await ledger.carry_over(employee_id, 2024, 2025)
        assert await ledger.carry_over(employee_id, 2024, 2025) == {}

        target = await ledger.get_balance(employee_id, 2025, LeaveType.annual)
        assert target.carried_over == Decimal("3")

    async def test_capped_at_policy_maximum(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, leave_year=2024, accrued="21", taken="6")

        carried = await _ledger(db).carry_over(employee_id, 2024, 2025)
        assert carried[LeaveType.annual] == Decimal("10")

    async def test_pending_days_are_not_carried(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, leave_year=2024, accrued="21", taken="16", pending="3")

        carried = await _ledger(db).carry_over(employee_id, 2024, 2025)
        assert carried[LeaveType.annual] == Decimal("2")

    async def test_types_without_carry_over_are_skipped(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(employee_id, LeaveType.sick, leave_year=2024, accrued="30")

        assert await _ledger(db).carry_over(employee_id, 2024, 2025) == {}


class TestCarryOverExpiry:
    async def test_expires_after_expiry_date(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(
            employee_id, leave_year=2025, accrued="0", carried_over="3",
            carry_over_expiry=date(2025, 6, 30),
        )
        ledger = _ledger(db)

        assert await ledger.expire_carry_over(employee_id, 2025, LeaveType.annual, date(2025, 6, 30)) == Decimal("0")
        expired = await ledger.expire_carry_over(employee_id, 2025, LeaveType.annual, date(2025, 7, 1))

        assert expired == Decimal("3")
        balance = await ledger.get_balance(employee_id, 2025, LeaveType.annual)
        assert balance.carried_over_expired == Decimal("3")
        assert balance.available == Decimal("0")
        _assert_invariant(balance)

        history = await _history(db, employee_id)
        assert history[0].transaction_type == BalanceAdjustmentType.expiry
        assert history[0].adjustment == Decimal("-3")

        # One-way: nothing left to expire
        assert await ledger.expire_carry_over(employee_id, 2025, LeaveType.annual, date(2025, 7, 2)) == Decimal("0")

    async def test_only_unused_carry_over_expires(self, db: AsyncSession):
        employee_id = uuid.uuid4()
        await _seed_balance(
            employee_id, leave_year=2025, accrued="10", carried_over="3", pending="2",
            carry_over_expiry=date(2025, 6, 30),
        )
        ledger = _ledger(db)
        await ledger.confirm_taken(employee_id, LeaveType.annual, Decimal("2"), 2025)

        expired = await ledger.expire_carry_over(employee_id, 2025, LeaveType.annual, date(2025, 7, 1))

        assert expired == Decimal("1")
        balance = await ledger.get_balance(employee_id, 2025, LeaveType.annual)
        assert balance.available == Decimal("10")
        _assert_invariant(balance)
