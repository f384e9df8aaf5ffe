"""Leave request workflow — create / submit / decide / cancel / withdraw.

Each public operation runs as one unit of work via :func:`run_in_transaction`.
Collaborator lookups (employee directory, holidays) happen before the
transaction opens so no store transaction is held across a network call.
Inside the transaction an existing request is flushed before any balance is
touched: a concurrent decision on the same request then fails fast with
:class:`ConcurrencyConflict` instead of being retried.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leave_engine.common.constants import (
    ACTIVE_STATUSES,
    CANCELLABLE_STATUSES,
    ApprovalAction,
    ApproverStatus,
    BalanceAdjustmentType,
    LeavePriority,
    LeaveRequestStatus,
    LeaveType,
)
from leave_engine.common.exceptions import (
    DirectoryUnavailable,
    InsufficientNotice,
    InvalidStatusTransition,
    LeaveAlreadyStarted,
    MaxConsecutiveDaysExceeded,
    NoWorkingDaysInRange,
    NotFoundException,
    NotRequestOwner,
    OverlappingLeave,
)
from leave_engine.config import settings
from leave_engine.leave import eligibility
from leave_engine.leave.approval import ApprovalRouter, delegation_covers, get_approval_chain
from leave_engine.leave.balance import BalanceLedger
from leave_engine.leave.calendar import TeamCalendarProjector
from leave_engine.leave.directory import EmployeeDirectory, HolidayProvider, with_directory_timeout
from leave_engine.leave.entitlements import get_entitlement, get_leave_year
from leave_engine.leave.models import LeaveRequest
from leave_engine.leave.repository import LeaveRepository
from leave_engine.leave.schemas import (
    ApprovalChain,
    BalanceAdjustmentCreate,
    BalanceHistoryOut,
    BalanceImpact,
    DayAvailability,
    DelegationCreate,
    DelegationInfo,
    DelegationOut,
    EligibilityResult,
    EmployeeProfile,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestListOut,
    LeaveRequestOut,
    ReturnToWork,
    StatusChange,
    TeamCalendarEntryOut,
    TeamConflict,
)
from leave_engine.leave.unit_of_work import run_in_transaction
from leave_engine.leave.utils import (
    calculate_return_date,
    calculate_total_days,
    generate_day_configs,
    generate_request_number,
    notice_days_given,
)

logger = logging.getLogger(__name__)

PENDING_STATUSES = (
    LeaveRequestStatus.pending_approval,
    LeaveRequestStatus.pending_hr_review,
)

# Holidays are loaded this far past the end date to place the return-to-work day
RETURN_LOOKAHEAD_DAYS = 14

# Sick leave longer than this needs a fitness certificate on return
SICK_CERTIFICATE_DAYS = 5


def _uses_ledger(leave_type: LeaveType) -> bool:
    return leave_type != LeaveType.unpaid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveRequestWorkflow:
    """Leave request lifecycle over an injected store and collaborators."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: EmployeeDirectory,
        holidays: HolidayProvider,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.directory = directory
        self.holidays = holidays
        self.clock = clock or _utcnow

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    async def _run(self, name: str, operation):
        return await run_in_transaction(self.session_factory, operation, name=name)

    async def _require_employee(self, employee_id: uuid.UUID) -> EmployeeProfile:
        employee = await with_directory_timeout(self.directory.get_employee(employee_id))
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    async def _display_name(self, employee_id: uuid.UUID) -> str:
        """Directory name for display; missing or unreachable gives 'Unknown'."""
        try:
            employee = await with_directory_timeout(self.directory.get_employee(employee_id))
        except DirectoryUnavailable:
            logger.warning("Directory unavailable resolving name for %s", employee_id)
            return "Unknown"
        return employee.full_name if employee is not None else "Unknown"

    async def _has_hr_role(self, actor_id: uuid.UUID) -> bool:
        actor = await with_directory_timeout(self.directory.get_employee(actor_id))
        return actor is not None and settings.HR_ROLE in actor.roles

    async def _holiday_map(
        self,
        subsidiary_id: Optional[uuid.UUID],
        start_date: date,
        end_date: date,
    ) -> dict[date, str]:
        holidays: dict[date, str] = {}
        for year in range(start_date.year, end_date.year + 1):
            rows = await with_directory_timeout(self.holidays.get_holidays(subsidiary_id, year))
            holidays.update({h.date: h.name for h in rows})
        return holidays

    @staticmethod
    async def _load(repo: LeaveRepository, request_id: uuid.UUID) -> LeaveRequest:
        request = await repo.get_request(request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return request

    @staticmethod
    def _append_status(
        request: LeaveRequest,
        status: LeaveRequestStatus,
        at: datetime,
        actor_id: Optional[uuid.UUID],
        actor_name: Optional[str] = None,
        comments: Optional[str] = None,
    ) -> None:
        entry = StatusChange(
            status=status,
            changed_at=at,
            changed_by=actor_id,
            changed_by_name=actor_name,
            comments=comments,
        )
        request.status_history = [*request.status_history, entry.model_dump(mode="json")]

    @staticmethod
    def _check_notice(
        priority: LeavePriority,
        leave_type: LeaveType,
        start_date: date,
        today: date,
    ) -> None:
        if priority == LeavePriority.emergency:
            return
        required = get_entitlement(leave_type).min_notice_days
        given = notice_days_given(start_date, today)
        if required and given < required:
            raise InsufficientNotice(required, given)

    @staticmethod
    async def _check_overlap(
        repo: LeaveRepository,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        overlapping = await repo.find_overlapping_requests(
            employee_id, start_date, end_date, ACTIVE_STATUSES, exclude_id=exclude_id,
        )
        if overlapping:
            raise OverlappingLeave(overlapping[0].request_number)

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    async def create(self, data: LeaveRequestCreate, actor_id: uuid.UUID) -> LeaveRequestOut:
        """Create a leave request, or save it as a draft.

        Non-drafts are validated in full, reserve their days against the
        balance and enter the approval chain at the first level.
        """
        now = self.clock()
        today = now.date()
        employee_id = data.employee_id or actor_id

        employee = await self._require_employee(employee_id)
        if actor_id != employee.id and not await self._has_hr_role(actor_id):
            raise NotRequestOwner("create")

        eligibility.ensure_eligible(employee, data.leave_type, today)
        entitlement = get_entitlement(data.leave_type)

        holidays = await self._holiday_map(
            employee.subsidiary_id,
            data.start_date,
            data.end_date + timedelta(days=RETURN_LOOKAHEAD_DAYS),
        )
        overrides = {cfg.date: cfg.day_type for cfg in data.day_configs or []}
        day_configs = generate_day_configs(data.start_date, data.end_date, holidays, overrides)
        total = calculate_total_days(day_configs)
        if total <= 0:
            raise NoWorkingDaysInRange()
        if entitlement.max_consecutive_days is not None and total > entitlement.max_consecutive_days:
            raise MaxConsecutiveDaysExceeded(entitlement.max_consecutive_days, total)

        is_draft = data.save_as_draft
        if not is_draft:
            self._check_notice(data.priority, data.leave_type, data.start_date, today)

        levels = get_approval_chain(data.leave_type, total)
        approver_names: dict[uuid.UUID, str] = {}
        for level in levels:
            approver_id = employee.approver_for(level)
            if approver_id is not None and approver_id not in approver_names:
                approver_names[approver_id] = await self._display_name(approver_id)
        chain = ApprovalRouter.build_chain(levels, employee, approver_names)

        delegation = None
        if data.delegation is not None:
            delegation = DelegationInfo(
                delegate_to_id=data.delegation.delegate_to_id,
                delegate_to_name=await self._display_name(data.delegation.delegate_to_id),
                handover_notes=data.delegation.handover_notes,
            )
        return_to_work = ReturnToWork(
            expected_date=calculate_return_date(data.end_date, holidays),
            fitness_certificate_required=data.leave_type == LeaveType.sick and total > SICK_CERTIFICATE_DAYS,
        )
        leave_year = get_leave_year(data.start_date)
        status = LeaveRequestStatus.draft if is_draft else LeaveRequestStatus.pending_approval
        actor_name = employee.full_name if actor_id == employee.id else await self._display_name(actor_id)

        async def operation(repo: LeaveRepository) -> LeaveRequestOut:
            await self._check_overlap(repo, employee.id, data.start_date, data.end_date)

            impact: Optional[BalanceImpact] = None
            if _uses_ledger(data.leave_type):
                ledger = BalanceLedger(repo)
                if is_draft:
                    check = await ledger.check_sufficient(employee.id, data.leave_type, total, leave_year)
                    available = check.available
                else:
                    balance = await ledger.reserve(
                        employee.id, data.leave_type, total, leave_year, require_sufficient=True,
                    )
                    available = balance.available + total
                impact = BalanceImpact(
                    days_taken=total,
                    balance_before=available,
                    balance_after=available - total,
                )

            prefix = generate_request_number(employee.employee_number, today, 0)[:-3]
            sequence = await repo.count_request_numbers(prefix) + 1
            request = LeaveRequest(
                request_number=generate_request_number(employee.employee_number, today, sequence),
                subsidiary_id=employee.subsidiary_id,
                employee_id=employee.id,
                employee_number=employee.employee_number,
                employee_name=employee.full_name,
                department_id=employee.department_id,
                leave_type=data.leave_type,
                start_date=data.start_date,
                end_date=data.end_date,
                leave_year=leave_year,
                day_configs=[cfg.model_dump(mode="json") for cfg in day_configs],
                total_working_days=total,
                reason=data.reason,
                priority=data.priority,
                status=status,
                status_history=[],
                approval_chain=chain.model_dump(mode="json"),
                approvals=[],
                balance_impact=impact.model_dump(mode="json") if impact else None,
                delegation=delegation.model_dump(mode="json") if delegation else None,
                emergency_contact=(
                    data.emergency_contact.model_dump(mode="json") if data.emergency_contact else None
                ),
                return_to_work=return_to_work.model_dump(mode="json"),
                submitted_at=None if is_draft else now,
                created_by=actor_id,
                updated_by=actor_id,
            )
            self._append_status(request, status, now, actor_id, actor_name)
            await repo.add_request(request)
            await TeamCalendarProjector(repo).sync_request(request)
            return LeaveRequestOut.model_validate(request)

        result = await self._run("create_leave_request", operation)
        logger.info(
            "Leave request %s created for %s: %s %s days (%s)",
            result.request_number, employee.id, data.leave_type.value, total, status.value,
        )
        return result

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    async def submit(self, request_id: uuid.UUID, actor_id: uuid.UUID) -> LeaveRequestOut:
        """Submit a draft: re-check notice, overlap and balance, then reserve."""
        now = self.clock()

        async def operation(repo: LeaveRepository) -> LeaveRequestOut:
            request = await self._load(repo, request_id)
            if request.employee_id != actor_id:
                raise NotRequestOwner("submit")
            if request.status != LeaveRequestStatus.draft:
                raise InvalidStatusTransition(request.status, LeaveRequestStatus.pending_approval)

            self._check_notice(request.priority, request.leave_type, request.start_date, now.date())
            await self._check_overlap(
                repo, request.employee_id, request.start_date, request.end_date, exclude_id=request.id,
            )

            # A returned request starts the chain again from the first level
            chain = ApprovalChain.model_validate(request.approval_chain)
            chain.current_level = 0
            for approver in chain.approvers:
                approver.status = ApproverStatus.pending
                approver.decided_at = None
                approver.comments = None
            request.approval_chain = chain.model_dump(mode="json")

            request.status = LeaveRequestStatus.pending_approval
            request.submitted_at = now
            request.updated_by = actor_id
            self._append_status(request, request.status, now, actor_id, request.employee_name)
            await repo.save_request(request)

            if _uses_ledger(request.leave_type):
                days = request.total_working_days
                balance = await BalanceLedger(repo).reserve(
                    request.employee_id, request.leave_type, days, request.leave_year,
                    require_sufficient=True,
                )
                request.balance_impact = BalanceImpact(
                    days_taken=days,
                    balance_before=balance.available + days,
                    balance_after=balance.available,
                ).model_dump(mode="json")
                await repo.save_request(request)
            await TeamCalendarProjector(repo).sync_request(request)
            return LeaveRequestOut.model_validate(request)

        result = await self._run("submit_leave_request", operation)
        logger.info("Leave request %s submitted", result.request_number)
        return result

    # ─────────────────────────────────────────────────────────────────
    # Approval decisions
    # ─────────────────────────────────────────────────────────────────

    async def process_approval(
        self,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        action: ApprovalAction,
        comments: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Approve, reject or return a request at its current level."""
        now = self.clock()
        actor_name = await self._display_name(actor_id)

        async def operation(repo: LeaveRepository) -> LeaveRequestOut:
            request = await self._load(repo, request_id)
            decision = await ApprovalRouter(repo).process_decision(
                request, actor_id, actor_name, action, comments, now,
            )

            request.approval_chain = decision.chain.model_dump(mode="json")
            request.approvals = [*request.approvals, decision.record.model_dump(mode="json")]
            request.status = decision.new_status
            request.updated_by = actor_id
            if decision.new_status == LeaveRequestStatus.approved:
                request.approved_at = now
            elif decision.new_status == LeaveRequestStatus.rejected:
                request.rejected_at = now
            elif decision.new_status == LeaveRequestStatus.draft:
                request.submitted_at = None
            if decision.new_status != decision.previous_status or action == ApprovalAction.return_:
                self._append_status(request, decision.new_status, now, actor_id, actor_name, comments)
            await repo.save_request(request)

            if _uses_ledger(request.leave_type):
                ledger = BalanceLedger(repo)
                days = request.total_working_days
                if decision.new_status == LeaveRequestStatus.approved:
                    from_carry_over = await ledger.confirm_taken(
                        request.employee_id,
                        request.leave_type,
                        days,
                        request.leave_year,
                        reference_id=request.request_number,
                        created_by=str(actor_id),
                    )
                    if request.balance_impact is not None and from_carry_over > 0:
                        impact = BalanceImpact.model_validate(request.balance_impact)
                        impact.carry_over_used = from_carry_over
                        request.balance_impact = impact.model_dump(mode="json")
                        await repo.save_request(request)
                elif decision.new_status in (LeaveRequestStatus.rejected, LeaveRequestStatus.draft):
                    await ledger.release(request.employee_id, request.leave_type, days, request.leave_year)

            await TeamCalendarProjector(repo).sync_request(request)
            return LeaveRequestOut.model_validate(request)

        return await self._run(f"{action.value}_leave_request", operation)

    # ─────────────────────────────────────────────────────────────────
    # Cancel / withdraw
    # ─────────────────────────────────────────────────────────────────

    async def cancel(self, request_id: uuid.UUID, actor_id: uuid.UUID, reason: str) -> LeaveRequestOut:
        """Cancel a pending or approved request (requester or HR).

        Pending days are released; approved days are credited back with a
        ``correction`` adjustment. Leave that has started cannot be cancelled.
        """
        now = self.clock()
        current = await self.get_request(request_id)
        is_hr = current.employee_id != actor_id and await self._has_hr_role(actor_id)
        actor_name = current.employee_name if current.employee_id == actor_id else await self._display_name(actor_id)

        async def operation(repo: LeaveRepository) -> LeaveRequestOut:
            request = await self._load(repo, request_id)
            previous = request.status
            if previous not in CANCELLABLE_STATUSES:
                raise InvalidStatusTransition(previous, LeaveRequestStatus.cancelled)
            if request.employee_id != actor_id and not is_hr:
                raise NotRequestOwner("cancel")
            if previous == LeaveRequestStatus.approved and request.start_date <= now.date():
                raise LeaveAlreadyStarted(request.start_date)

            request.status = LeaveRequestStatus.cancelled
            request.cancelled_at = now
            request.cancellation_reason = reason
            request.updated_by = actor_id
            self._append_status(request, request.status, now, actor_id, actor_name, reason)
            await repo.save_request(request)

            if _uses_ledger(request.leave_type):
                ledger = BalanceLedger(repo)
                days = request.total_working_days
                if previous == LeaveRequestStatus.approved:
                    await ledger.adjust(
                        request.employee_id,
                        request.leave_type,
                        request.leave_year,
                        BalanceAdjustmentType.correction,
                        days,
                        f"Cancelled approved leave {request.request_number}: {reason}",
                        reference_type="leave_request",
                        reference_id=request.request_number,
                        created_by=str(actor_id),
                    )
                else:
                    await ledger.release(request.employee_id, request.leave_type, days, request.leave_year)

            await TeamCalendarProjector(repo).sync_request(request)
            return LeaveRequestOut.model_validate(request)

        result = await self._run("cancel_leave_request", operation)
        logger.info("Leave request %s cancelled by %s", result.request_number, actor_id)
        return result

    async def withdraw(self, request_id: uuid.UUID, actor_id: uuid.UUID) -> LeaveRequestOut:
        now = self.clock()

        async def operation(repo: LeaveRepository) -> LeaveRequestOut:
            request = await self._load(repo, request_id)
            if request.status != LeaveRequestStatus.draft:
                raise InvalidStatusTransition(request.status, LeaveRequestStatus.withdrawn)
            if request.employee_id != actor_id:
                raise NotRequestOwner("withdraw")

            request.status = LeaveRequestStatus.withdrawn
            request.updated_by = actor_id
            self._append_status(request, request.status, now, actor_id, request.employee_name)
            await repo.save_request(request)
            await TeamCalendarProjector(repo).sync_request(request)
            return LeaveRequestOut.model_validate(request)

        result = await self._run("withdraw_leave_request", operation)
        logger.info("Leave request %s withdrawn", result.request_number)
        return result

    # ─────────────────────────────────────────────────────────────────
    # Request queries
    # ─────────────────────────────────────────────────────────────────

    async def get_request(self, request_id: uuid.UUID) -> LeaveRequestOut:
        async def operation(repo: LeaveRepository) -> LeaveRequestOut:
            return LeaveRequestOut.model_validate(await self._load(repo, request_id))

        return await self._run("get_leave_request", operation)

    async def list_employee_requests(
        self,
        employee_id: uuid.UUID,
        *,
        statuses: Optional[list[LeaveRequestStatus]] = None,
        leave_type: Optional[LeaveType] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> LeaveRequestListOut:
        async def operation(repo: LeaveRepository) -> LeaveRequestListOut:
            rows, meta = await repo.list_requests(
                employee_id=employee_id,
                statuses=statuses,
                leave_type=leave_type,
                from_date=from_date,
                to_date=to_date,
                page=page,
                page_size=page_size,
            )
            return LeaveRequestListOut(
                data=[LeaveRequestOut.model_validate(r) for r in rows],
                meta=meta,
            )

        return await self._run("list_leave_requests", operation)

    async def get_pending_approvals(self, approver_id: uuid.UUID) -> list[LeaveRequestOut]:
        """Requests awaiting *approver_id*, directly or through an active delegation."""
        today = self.clock().date()

        async def operation(repo: LeaveRepository) -> list[LeaveRequestOut]:
            delegations = await repo.list_delegations_to(approver_id)
            pending: list[LeaveRequestOut] = []
            for request in await repo.list_requests_in_statuses(PENDING_STATUSES):
                current = ApprovalChain.model_validate(request.approval_chain).current_approver()
                if current is None or current.status != ApproverStatus.pending:
                    continue
                if current.approver_id == approver_id or any(
                    d.delegator_id == current.approver_id and delegation_covers(d, request, today)
                    for d in delegations
                ):
                    pending.append(LeaveRequestOut.model_validate(request))
            return pending

        return await self._run("get_pending_approvals", operation)

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    async def check_eligibility(self, employee_id: uuid.UUID, leave_type: LeaveType) -> EligibilityResult:
        employee = await self._require_employee(employee_id)
        return eligibility.check_eligibility(employee, leave_type, self.clock().date())

    async def get_balances(
        self,
        employee_id: uuid.UUID,
        leave_year: Optional[int] = None,
    ) -> list[LeaveBalanceOut]:
        async def operation(repo: LeaveRepository) -> list[LeaveBalanceOut]:
            balances = await BalanceLedger(repo).list_balances(employee_id, leave_year)
            return [LeaveBalanceOut.model_validate(b) for b in balances]

        return await self._run("get_leave_balances", operation)

    async def get_balance_history(
        self,
        employee_id: uuid.UUID,
        leave_year: Optional[int] = None,
        leave_type: Optional[LeaveType] = None,
        limit: int = 100,
    ) -> list[BalanceHistoryOut]:
        async def operation(repo: LeaveRepository) -> list[BalanceHistoryOut]:
            entries = await BalanceLedger(repo).get_history(employee_id, leave_year, leave_type, limit)
            return [BalanceHistoryOut.model_validate(e) for e in entries]

        return await self._run("get_balance_history", operation)

    async def adjust_balance(self, data: BalanceAdjustmentCreate, actor_id: uuid.UUID) -> LeaveBalanceOut:
        async def operation(repo: LeaveRepository) -> LeaveBalanceOut:
            balance = await BalanceLedger(repo).adjust(
                data.employee_id,
                data.leave_type,
                data.leave_year,
                data.adjustment_type,
                data.amount,
                data.reason,
                created_by=str(actor_id),
            )
            return LeaveBalanceOut.model_validate(balance)

        return await self._run("adjust_leave_balance", operation)

    async def initialize_balances(
        self,
        employee_id: uuid.UUID,
        leave_year: int,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalanceOut]:
        employee = await self._require_employee(employee_id)

        async def operation(repo: LeaveRepository) -> list[LeaveBalanceOut]:
            opened = await BalanceLedger(repo).initialize_balances(
                employee, leave_year, created_by=str(actor_id) if actor_id else None,
            )
            return [LeaveBalanceOut.model_validate(b) for b in opened]

        return await self._run("initialize_leave_balances", operation)

    # ─────────────────────────────────────────────────────────────────
    # Team calendar
    # ─────────────────────────────────────────────────────────────────

    async def get_team_calendar(
        self,
        start_date: date,
        end_date: date,
        *,
        department_id: Optional[uuid.UUID] = None,
        subsidiary_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> list[TeamCalendarEntryOut]:
        async def operation(repo: LeaveRepository) -> list[TeamCalendarEntryOut]:
            entries = await TeamCalendarProjector(repo).get_entries(
                start_date,
                end_date,
                department_id=department_id,
                subsidiary_id=subsidiary_id,
                employee_id=employee_id,
            )
            return [TeamCalendarEntryOut.model_validate(e) for e in entries]

        return await self._run("get_team_calendar", operation)

    async def check_team_conflicts(
        self,
        department_id: uuid.UUID,
        start_date: date,
        end_date: date,
        max_allowed: int,
        exclude_employee_id: Optional[uuid.UUID] = None,
    ) -> list[TeamConflict]:
        async def operation(repo: LeaveRepository) -> list[TeamConflict]:
            return await TeamCalendarProjector(repo).check_team_conflicts(
                department_id, start_date, end_date, max_allowed, exclude_employee_id,
            )

        return await self._run("check_team_conflicts", operation)

    async def get_availability(
        self,
        department_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> list[DayAvailability]:
        async def operation(repo: LeaveRepository) -> list[DayAvailability]:
            return await TeamCalendarProjector(repo).get_availability(department_id, start_date, end_date)

        return await self._run("get_team_availability", operation)

    # ─────────────────────────────────────────────────────────────────
    # Delegation
    # ─────────────────────────────────────────────────────────────────

    async def create_delegation(self, delegator_id: uuid.UUID, data: DelegationCreate) -> DelegationOut:
        async def operation(repo: LeaveRepository) -> DelegationOut:
            delegation = await ApprovalRouter(repo).create_delegation(
                delegator_id,
                data.delegate_id,
                data.start_date,
                data.end_date,
                leave_types=[t.value for t in data.leave_types] if data.leave_types else None,
                department_ids=[str(d) for d in data.department_ids] if data.department_ids else None,
                max_days=data.max_days,
                reason=data.reason,
            )
            return DelegationOut.model_validate(delegation)

        result = await self._run("create_approval_delegation", operation)
        logger.info("Approvals of %s delegated to %s until %s", delegator_id, data.delegate_id, data.end_date)
        return result
