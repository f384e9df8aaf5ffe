"""Balance ledger — reserve / release / confirm / adjust, accrual, carry-over, expiry.

Every mutation is one read-modify-write of a single ``LeaveBalance`` inside
the caller's unit of work, followed by a version-guarded flush. ``available``
is never incremented directly; it is recomputed from its components so the
balance invariant holds after every call:

    available = accrued_to_date
                + (carried_over - carried_over_used - carried_over_expired)
                - taken - pending - advance_taken
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from leave_engine.common.constants import (
    AccrualMethod,
    BalanceAdjustmentType,
    LeaveType,
)
from leave_engine.common.exceptions import (
    BalanceNotFound,
    InsufficientBalance,
    ValidationException,
)
from leave_engine.leave.entitlements import (
    ENTITLEMENTS,
    carry_over_expiry_date,
    get_entitlement,
    monthly_accrual_rate,
    prorated_entitlement,
)
from leave_engine.leave.models import ZERO, BalanceHistoryEntry, LeaveBalance
from leave_engine.leave.repository import LeaveRepository
from leave_engine.leave.schemas import BalanceCheck, EmployeeProfile

logger = logging.getLogger(__name__)

CREDIT_ADJUSTMENTS = frozenset({
    BalanceAdjustmentType.manual_credit,
    BalanceAdjustmentType.correction,
    BalanceAdjustmentType.compensatory_earned,
})
DEBIT_ADJUSTMENTS = frozenset({
    BalanceAdjustmentType.manual_debit,
    BalanceAdjustmentType.encashment,
})

# Accrual methods whose entitlement is granted in full when the balance opens
LUMP_SUM_METHODS = frozenset({
    AccrualMethod.entitlement,
    AccrualMethod.annual,
    AccrualMethod.service_based,
    AccrualMethod.none,
})


def _d(value: Decimal | int | float | str) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class BalanceLedger:
    """Ledger operations keyed by (employee_id, leave_year, leave_type)."""

    def __init__(self, repo: LeaveRepository) -> None:
        self.repo = repo

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    async def _require(
        self,
        employee_id: uuid.UUID,
        leave_year: int,
        leave_type: LeaveType,
    ) -> LeaveBalance:
        balance = await self.repo.get_balance(employee_id, leave_year, leave_type)
        if balance is None:
            raise BalanceNotFound(employee_id, leave_year, leave_type)
        return balance

    async def _record(
        self,
        balance: LeaveBalance,
        transaction_type: BalanceAdjustmentType,
        balance_before: Decimal,
        adjustment: Decimal,
        description: str,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        accrual_period: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> BalanceHistoryEntry:
        return await self.repo.add_history(BalanceHistoryEntry(
            employee_id=balance.employee_id,
            leave_year=balance.leave_year,
            leave_type=balance.leave_type,
            transaction_type=transaction_type,
            balance_before=balance_before,
            adjustment=adjustment,
            balance_after=balance.available,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            accrual_period=accrual_period,
            created_by=created_by,
        ))

    @staticmethod
    def _new_balance(
        employee_id: uuid.UUID,
        leave_year: int,
        leave_type: LeaveType,
        *,
        subsidiary_id: Optional[uuid.UUID] = None,
        join_date: Optional[date] = None,
    ) -> LeaveBalance:
        entitlement = get_entitlement(leave_type)
        prorated = (
            prorated_entitlement(entitlement, join_date, leave_year)
            if join_date is not None
            else _d(entitlement.days_per_year)
        )
        accrued = prorated if entitlement.accrual_method in LUMP_SUM_METHODS else ZERO
        balance = LeaveBalance(
            employee_id=employee_id,
            subsidiary_id=subsidiary_id,
            leave_year=leave_year,
            leave_type=leave_type,
            annual_entitlement=_d(entitlement.days_per_year),
            prorated_entitlement=prorated,
            accrued_to_date=accrued,
            accrual_rate=monthly_accrual_rate(entitlement),
            carried_over=ZERO,
            carried_over_used=ZERO,
            carried_over_expired=ZERO,
            taken=ZERO,
            pending=ZERO,
            advance_taken=ZERO,
            max_advance=ZERO,
            encashed=ZERO,
            earned=ZERO,
        )
        balance.recompute_available()
        return balance

    async def _open_balance(self, balance: LeaveBalance, created_by: Optional[str]) -> LeaveBalance:
        await self.repo.add_balance(balance)
        if balance.accrued_to_date > 0:
            await self._record(
                balance,
                BalanceAdjustmentType.accrual,
                ZERO,
                balance.accrued_to_date,
                f"Initial entitlement for {balance.leave_year}",
                reference_type="initialization",
                created_by=created_by,
            )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    async def get_balance(
        self,
        employee_id: uuid.UUID,
        leave_year: int,
        leave_type: LeaveType,
    ) -> LeaveBalance:
        return await self._require(employee_id, leave_year, leave_type)

    async def list_balances(
        self,
        employee_id: uuid.UUID,
        leave_year: Optional[int] = None,
    ) -> Sequence[LeaveBalance]:
        return await self.repo.list_balances(employee_id, leave_year)

    async def get_history(
        self,
        employee_id: uuid.UUID,
        leave_year: Optional[int] = None,
        leave_type: Optional[LeaveType] = None,
        limit: int = 100,
    ) -> Sequence[BalanceHistoryEntry]:
        return await self.repo.list_history(employee_id, leave_year, leave_type, limit)

    async def check_sufficient(
        self,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        days: Decimal,
        leave_year: int,
    ) -> BalanceCheck:
        balance = await self.repo.get_balance(employee_id, leave_year, leave_type)
        if balance is None:
            return BalanceCheck(
                sufficient=False,
                available=ZERO,
                message=f"No {leave_type.value} leave balance for {leave_year}.",
            )
        if balance.available < days:
            return BalanceCheck(
                sufficient=False,
                available=balance.available,
                message=(
                    f"Insufficient {leave_type.value} leave balance: "
                    f"{balance.available} available, {days} requested."
                ),
            )
        return BalanceCheck(sufficient=True, available=balance.available)

    # ─────────────────────────────────────────────────────────────────
    # Reservation lifecycle
    # ─────────────────────────────────────────────────────────────────

    async def reserve(
        self,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        days: Decimal,
        leave_year: int,
        *,
        require_sufficient: bool = False,
    ) -> LeaveBalance:
        """Hold *days* as pending.

        With ``require_sufficient`` the check runs against the same record the
        reservation writes, so its version guards the decision too.
        """
        days = _d(days)
        balance = await self.repo.get_balance(employee_id, leave_year, leave_type)
        if balance is None:
            if require_sufficient:
                raise InsufficientBalance(days, ZERO)
            raise BalanceNotFound(employee_id, leave_year, leave_type)
        if require_sufficient and balance.available < days:
            raise InsufficientBalance(days, balance.available)
        balance.pending = balance.pending + days
        balance.recompute_available()
        await self.repo.save_balance(balance)
        logger.debug("Reserved %s %s days for %s/%d", days, leave_type.value, employee_id, leave_year)
        return balance

    async def release(
        self,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        days: Decimal,
        leave_year: int,
    ) -> LeaveBalance:
        """Undo a reservation; ``pending`` never drops below zero."""
        balance = await self._require(employee_id, leave_year, leave_type)
        balance.pending = max(ZERO, balance.pending - _d(days))
        balance.recompute_available()
        await self.repo.save_balance(balance)
        logger.debug("Released %s %s days for %s/%d", days, leave_type.value, employee_id, leave_year)
        return balance

    async def confirm_taken(
        self,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        days: Decimal,
        leave_year: int,
        *,
        reference_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Decimal:
        """Move *days* from pending to consumed, drawing on carry-over first.

        Returns the portion taken from carry-over.
        """
        days = _d(days)
        balance = await self._require(employee_id, leave_year, leave_type)
        before = balance.available

        from_carry_over = min(balance.unused_carry_over, days) if days > 0 else ZERO
        balance.carried_over_used = balance.carried_over_used + from_carry_over
        balance.taken = balance.taken + (days - from_carry_over)
        balance.pending = max(ZERO, balance.pending - days)
        balance.recompute_available()
        await self.repo.save_balance(balance)

        await self._record(
            balance,
            BalanceAdjustmentType.leave_taken,
            before,
            -days,
            f"Leave taken: {days} days ({from_carry_over} from carry-over)",
            reference_type="leave_request",
            reference_id=reference_id,
            created_by=created_by,
        )
        return from_carry_over

    # ─────────────────────────────────────────────────────────────────
    # Manual adjustments
    # ─────────────────────────────────────────────────────────────────

    async def adjust(
        self,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        leave_year: int,
        adjustment_type: BalanceAdjustmentType,
        amount: Decimal,
        reason: str,
        *,
        reference_type: str = "manual",
        reference_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> LeaveBalance:
        amount = _d(amount)
        if adjustment_type in CREDIT_ADJUSTMENTS:
            delta = amount
        elif adjustment_type in DEBIT_ADJUSTMENTS:
            delta = -abs(amount)
        else:
            raise ValidationException({
                "adjustment_type": [f"'{adjustment_type.value}' cannot be applied as a manual adjustment."],
            })

        balance = await self._require(employee_id, leave_year, leave_type)
        if delta < 0 and abs(delta) > balance.available:
            raise InsufficientBalance(abs(delta), balance.available)

        before = balance.available
        balance.accrued_to_date = balance.accrued_to_date + delta
        if adjustment_type == BalanceAdjustmentType.encashment:
            balance.encashed = balance.encashed + abs(delta)
        elif adjustment_type == BalanceAdjustmentType.compensatory_earned:
            balance.earned = balance.earned + delta
        balance.recompute_available()
        await self.repo.save_balance(balance)

        await self._record(
            balance,
            adjustment_type,
            before,
            delta,
            reason,
            reference_type=reference_type,
            reference_id=reference_id,
            created_by=created_by,
        )
        logger.info(
            "Adjusted %s/%d %s by %s (%s)",
            employee_id, leave_year, leave_type.value, delta, adjustment_type.value,
        )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Batch operations
    # ─────────────────────────────────────────────────────────────────

    async def initialize_balances(
        self,
        employee: EmployeeProfile,
        leave_year: int,
        *,
        created_by: Optional[str] = None,
    ) -> list[LeaveBalance]:
        """Open one balance per leave type the employee may take; existing ones are kept."""
        opened: list[LeaveBalance] = []
        for leave_type, entitlement in ENTITLEMENTS.items():
            if (
                entitlement.gender_restriction is not None
                and employee.gender != entitlement.gender_restriction
            ):
                continue
            if await self.repo.get_balance(employee.id, leave_year, leave_type) is not None:
                continue
            balance = self._new_balance(
                employee.id,
                leave_year,
                leave_type,
                subsidiary_id=employee.subsidiary_id,
                join_date=employee.join_date,
            )
            opened.append(await self._open_balance(balance, created_by))
        if opened:
            logger.info("Opened %d leave balances for %s in %d", len(opened), employee.id, leave_year)
        return opened

    async def accrue_monthly(
        self,
        employee_id: uuid.UUID,
        leave_year: int,
        month: int,
        *,
        created_by: Optional[str] = None,
    ) -> Decimal:
        """Accrue month *month* (1-12 within the leave year); re-running a month is a no-op."""
        if not 1 <= month <= 12:
            raise ValidationException({"month": ["Month must be between 1 and 12."]})

        total = ZERO
        for balance in await self.repo.list_balances(employee_id, leave_year):
            entitlement = get_entitlement(balance.leave_type)
            if entitlement.accrual_method != AccrualMethod.monthly:
                continue
            if balance.last_accrual_month is not None and month <= balance.last_accrual_month:
                continue

            increment = max(
                ZERO,
                min(balance.accrual_rate, balance.prorated_entitlement - balance.accrued_to_date),
            )
            before = balance.available
            balance.last_accrual_month = month
            balance.accrued_to_date = balance.accrued_to_date + increment
            balance.recompute_available()
            await self.repo.save_balance(balance)

            if increment > 0:
                await self._record(
                    balance,
                    BalanceAdjustmentType.accrual,
                    before,
                    increment,
                    f"Monthly accrual for {month}/{leave_year}",
                    reference_type="accrual",
                    accrual_period=f"{leave_year}-{month:02d}",
                    created_by=created_by,
                )
                total += increment
        return total

    async def carry_over(
        self,
        employee_id: uuid.UUID,
        from_year: int,
        to_year: int,
        *,
        created_by: Optional[str] = None,
    ) -> dict[LeaveType, Decimal]:
        """Roll unused days of carry-over-eligible types into *to_year*."""
        carried: dict[LeaveType, Decimal] = {}
        for source in await self.repo.list_balances(employee_id, from_year):
            entitlement = get_entitlement(source.leave_type)
            if not entitlement.carry_over_allowed:
                continue

            target = await self.repo.get_balance(employee_id, to_year, source.leave_type)
            if target is None:
                target = await self._open_balance(
                    self._new_balance(
                        employee_id,
                        to_year,
                        source.leave_type,
                        subsidiary_id=source.subsidiary_id,
                    ),
                    created_by,
                )
            if target.carried_over_from_year == from_year:
                continue

            unused = max(
                ZERO,
                source.accrued_to_date - source.taken - source.pending - source.advance_taken,
            )
            amount = min(unused, _d(entitlement.max_carry_over_days))
            before = target.available
            target.carried_over = amount
            target.carried_over_from_year = from_year
            target.carry_over_expiry = carry_over_expiry_date(entitlement, to_year) if amount > 0 else None
            target.recompute_available()
            await self.repo.save_balance(target)

            if amount > 0:
                await self._record(
                    target,
                    BalanceAdjustmentType.carry_over,
                    before,
                    amount,
                    f"Carried over {amount} days from {from_year}",
                    reference_type="carry_over",
                    reference_id=str(from_year),
                    created_by=created_by,
                )
            carried[source.leave_type] = amount
        return carried

    async def expire_carry_over(
        self,
        employee_id: uuid.UUID,
        leave_year: int,
        leave_type: LeaveType,
        today: Optional[date] = None,
        *,
        created_by: Optional[str] = None,
    ) -> Decimal:
        """Expire unused carry-over whose expiry date is before *today*. One-way."""
        today = today or date.today()
        balance = await self._require(employee_id, leave_year, leave_type)
        if balance.carry_over_expiry is None or balance.carry_over_expiry >= today:
            return ZERO

        unused = balance.unused_carry_over
        if unused <= 0:
            return ZERO

        before = balance.available
        balance.carried_over_expired = balance.carried_over_expired + unused
        balance.recompute_available()
        await self.repo.save_balance(balance)

        await self._record(
            balance,
            BalanceAdjustmentType.expiry,
            before,
            -unused,
            f"Carry-over expired: {unused} days",
            reference_type="carry_over",
            created_by=created_by,
        )
        logger.info("Expired %s carried-over %s days for %s/%d", unused, leave_type.value, employee_id, leave_year)
        return unused
