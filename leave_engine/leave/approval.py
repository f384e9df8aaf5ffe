"""Approval routing — chain lookup, approver resolution, delegation, decisions."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from leave_engine.common.constants import (
    HR_REVIEW_LEVELS,
    ApprovalAction,
    ApprovalLevel,
    ApproverStatus,
    LeaveRequestStatus,
    can_transition,
)
from leave_engine.common.exceptions import (
    InvalidStatusTransition,
    NotAuthorizedApprover,
    ValidationException,
)
from leave_engine.leave.entitlements import APPROVAL_MATRIX
from leave_engine.leave.models import ApprovalDelegation, LeaveRequest
from leave_engine.leave.repository import LeaveRepository
from leave_engine.leave.schemas import (
    ApprovalChain,
    ApprovalRecord,
    Approver,
    EmployeeProfile,
)

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    """Outcome of applying one decision to a request's chain."""

    previous_status: LeaveRequestStatus
    new_status: LeaveRequestStatus
    chain: ApprovalChain
    record: ApprovalRecord


def get_approval_chain(leave_type, total_days: Decimal) -> list[ApprovalLevel]:
    """Staircase lookup: first tier with ``total_days <= threshold``, else the last tier."""
    rule = APPROVAL_MATRIX[leave_type]
    if not rule or isinstance(rule[0], ApprovalLevel):
        return list(rule)
    for threshold, levels in rule:
        if total_days <= threshold:
            return list(levels)
    return list(rule[-1][1])


def delegation_covers(
    delegation: ApprovalDelegation,
    request: LeaveRequest,
    on: date,
) -> bool:
    """Active flag, validity window, then leave-type / department / max-days scope."""
    if not delegation.is_active:
        return False
    if not (delegation.start_date <= on <= delegation.end_date):
        return False
    if delegation.leave_types and request.leave_type.value not in delegation.leave_types:
        return False
    if delegation.department_ids and (
        request.department_id is None
        or str(request.department_id) not in delegation.department_ids
    ):
        return False
    if delegation.max_days is not None and request.total_working_days > delegation.max_days:
        return False
    return True


class ApprovalRouter:
    """Approval-chain logic over one unit of work."""

    def __init__(self, repo: LeaveRepository) -> None:
        self.repo = repo

    # ─────────────────────────────────────────────────────────────────
    # Chain construction
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def build_chain(
        levels: list[ApprovalLevel],
        employee: EmployeeProfile,
        approver_names: dict[uuid.UUID, str],
    ) -> ApprovalChain:
        approvers: list[Approver] = []
        missing: list[str] = []
        for index, level in enumerate(levels):
            approver_id = employee.approver_for(level)
            if approver_id is None:
                missing.append(level.value)
                continue
            approvers.append(Approver(
                level=level,
                approver_id=approver_id,
                approver_name=approver_names.get(approver_id, "Unknown"),
                sequence=index + 1,
            ))
        if missing:
            raise ValidationException({
                "approval_chain": [f"No approver configured for level '{m}'." for m in missing],
            })
        return ApprovalChain(levels=levels, current_level=0, approvers=approvers)

    # ─────────────────────────────────────────────────────────────────
    # Authorization
    # ─────────────────────────────────────────────────────────────────

    async def authorize(
        self,
        request: LeaveRequest,
        chain: ApprovalChain,
        actor_id: uuid.UUID,
        on: Optional[date] = None,
    ) -> Approver:
        """Return the current approver, or raise unless *actor_id* may act for them."""
        current = chain.current_approver()
        if current is None or current.status != ApproverStatus.pending:
            raise NotAuthorizedApprover(actor_id, request.id)
        if current.approver_id == actor_id:
            return current

        if await self.is_delegate_for(request, current.approver_id, actor_id, on):
            return current
        raise NotAuthorizedApprover(actor_id, request.id)

    async def is_delegate_for(
        self,
        request: LeaveRequest,
        approver_id: uuid.UUID,
        actor_id: uuid.UUID,
        on: Optional[date] = None,
    ) -> bool:
        on = on or date.today()
        for delegation in await self.repo.list_delegations_from(approver_id, actor_id):
            if delegation_covers(delegation, request, on):
                return True
        return False

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    async def process_decision(
        self,
        request: LeaveRequest,
        actor_id: uuid.UUID,
        actor_name: str,
        action: ApprovalAction,
        comments: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Decision:
        """Apply *action* to the chain and compute the new status.

        The request itself is not modified; the workflow writes the result.
        """
        previous = request.status
        if previous not in (
            LeaveRequestStatus.pending_approval,
            LeaveRequestStatus.pending_hr_review,
        ):
            target = {
                ApprovalAction.approve: LeaveRequestStatus.approved,
                ApprovalAction.reject: LeaveRequestStatus.rejected,
                ApprovalAction.return_: LeaveRequestStatus.draft,
            }[action]
            raise InvalidStatusTransition(previous, target)

        now = now or datetime.now(timezone.utc)
        chain = ApprovalChain.model_validate(request.approval_chain)
        current = await self.authorize(request, chain, actor_id, now.date())
        delegated_from = current.approver_id if current.approver_id != actor_id else None

        if action == ApprovalAction.approve:
            current.status = ApproverStatus.approved
            current.decided_at = now
            current.comments = comments
            if chain.is_last_level:
                new_status = LeaveRequestStatus.approved
            else:
                chain.current_level += 1
                nxt = chain.current_approver()
                if (
                    previous == LeaveRequestStatus.pending_hr_review
                    or (nxt is not None and nxt.level in HR_REVIEW_LEVELS)
                ):
                    new_status = LeaveRequestStatus.pending_hr_review
                else:
                    new_status = LeaveRequestStatus.pending_approval

        elif action == ApprovalAction.reject:
            current.status = ApproverStatus.rejected
            current.decided_at = now
            current.comments = comments
            new_status = LeaveRequestStatus.rejected

        else:
            if current.sequence > 1:
                # Reopen the previous approver, one step back
                chain.current_level -= 1
                previous_approver = chain.current_approver()
                previous_approver.status = ApproverStatus.pending
                previous_approver.decided_at = None
                new_status = LeaveRequestStatus.pending_approval
            else:
                chain.current_level = 0
                new_status = LeaveRequestStatus.draft

        is_return = action == ApprovalAction.return_
        if new_status != previous and not can_transition(previous, new_status, is_return=is_return):
            raise InvalidStatusTransition(previous, new_status)

        record = ApprovalRecord(
            level=current.level,
            sequence=current.sequence,
            approver_id=actor_id,
            approver_name=actor_name,
            action=action,
            comments=comments,
            decided_at=now,
            delegated_from=delegated_from,
        )
        logger.info(
            "Request %s: %s by %s at level %d → %s",
            request.request_number, action.value, actor_id, current.sequence, new_status.value,
        )
        return Decision(previous_status=previous, new_status=new_status, chain=chain, record=record)

    async def create_delegation(
        self,
        delegator_id: uuid.UUID,
        delegate_id: uuid.UUID,
        start_date: date,
        end_date: date,
        *,
        leave_types: Optional[list[str]] = None,
        department_ids: Optional[list[str]] = None,
        max_days: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> ApprovalDelegation:
        if delegator_id == delegate_id:
            raise ValidationException({"delegate_id": ["Cannot delegate approvals to yourself."]})
        return await self.repo.add_delegation(ApprovalDelegation(
            delegator_id=delegator_id,
            delegate_id=delegate_id,
            is_active=True,
            start_date=start_date,
            end_date=end_date,
            leave_types=leave_types or None,
            department_ids=department_ids or None,
            max_days=max_days,
            reason=reason,
        ))
