"""Enums and constants for the leave engine — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Employee ────────────────────────────────────────────────────────

class GenderType(str, enum.Enum):
    male = "male"
    female = "female"


class EmploymentType(str, enum.Enum):
    permanent = "permanent"
    contract = "contract"
    temporary = "temporary"
    intern = "intern"
    consultant = "consultant"


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_manager = "hr_manager"
    system_admin = "system_admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    annual = "annual"
    sick = "sick"
    maternity = "maternity"
    paternity = "paternity"
    compassionate = "compassionate"
    study = "study"
    unpaid = "unpaid"
    compensatory = "compensatory"
    public_duty = "public_duty"
    marriage = "marriage"
    sabbatical = "sabbatical"


class LeaveRequestStatus(str, enum.Enum):
    draft = "draft"
    pending_approval = "pending_approval"
    pending_hr_review = "pending_hr_review"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    withdrawn = "withdrawn"


class LeavePriority(str, enum.Enum):
    normal = "normal"
    urgent = "urgent"
    emergency = "emergency"


class DayType(str, enum.Enum):
    full_day = "full_day"
    half_day_am = "half_day_am"
    half_day_pm = "half_day_pm"


class AccrualMethod(str, enum.Enum):
    monthly = "monthly"
    annual = "annual"
    entitlement = "entitlement"
    service_based = "service_based"
    earned = "earned"
    none = "none"


class BalanceAdjustmentType(str, enum.Enum):
    accrual = "accrual"
    manual_credit = "manual_credit"
    manual_debit = "manual_debit"
    carry_over = "carry_over"
    expiry = "expiry"
    encashment = "encashment"
    compensatory_earned = "compensatory_earned"
    correction = "correction"
    leave_taken = "leave_taken"
    leave_cancelled = "leave_cancelled"


# ── Approvals ───────────────────────────────────────────────────────

class ApprovalLevel(str, enum.Enum):
    supervisor = "supervisor"
    department_head = "department_head"
    hr_manager = "hr_manager"
    general_manager = "general_manager"
    ceo = "ceo"


class ApproverStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    skipped = "skipped"


class ApprovalAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    return_ = "return"


# Level whose turn in the chain moves a request into HR review
HR_REVIEW_LEVELS: frozenset[ApprovalLevel] = frozenset({ApprovalLevel.hr_manager})

# Statuses that hold a reservation / block overlapping requests
ACTIVE_STATUSES: tuple[LeaveRequestStatus, ...] = (
    LeaveRequestStatus.pending_approval,
    LeaveRequestStatus.pending_hr_review,
    LeaveRequestStatus.approved,
)

CANCELLABLE_STATUSES: tuple[LeaveRequestStatus, ...] = ACTIVE_STATUSES


# ── Status machine ──────────────────────────────────────────────────

VALID_STATUS_TRANSITIONS: dict[LeaveRequestStatus, frozenset[LeaveRequestStatus]] = {
    LeaveRequestStatus.draft: frozenset({
        LeaveRequestStatus.pending_approval,
        LeaveRequestStatus.withdrawn,
    }),
    LeaveRequestStatus.pending_approval: frozenset({
        LeaveRequestStatus.pending_hr_review,
        LeaveRequestStatus.approved,
        LeaveRequestStatus.rejected,
        LeaveRequestStatus.cancelled,
    }),
    LeaveRequestStatus.pending_hr_review: frozenset({
        LeaveRequestStatus.approved,
        LeaveRequestStatus.rejected,
        LeaveRequestStatus.cancelled,
    }),
    LeaveRequestStatus.approved: frozenset({LeaveRequestStatus.cancelled}),
    LeaveRequestStatus.rejected: frozenset(),
    LeaveRequestStatus.cancelled: frozenset(),
    LeaveRequestStatus.withdrawn: frozenset(),
}

# Rollback edges, only reachable through a "return" decision
RETURN_TRANSITIONS: dict[LeaveRequestStatus, frozenset[LeaveRequestStatus]] = {
    LeaveRequestStatus.pending_approval: frozenset({
        LeaveRequestStatus.pending_approval,
        LeaveRequestStatus.draft,
    }),
    LeaveRequestStatus.pending_hr_review: frozenset({
        LeaveRequestStatus.pending_approval,
        LeaveRequestStatus.draft,
    }),
}


def can_transition(
    current: LeaveRequestStatus,
    target: LeaveRequestStatus,
    *,
    is_return: bool = False,
) -> bool:
    """Check an edge against the status machine (plus rollback edges for returns)."""
    if target in VALID_STATUS_TRANSITIONS.get(current, frozenset()):
        return True
    if is_return:
        return target in RETURN_TRANSITIONS.get(current, frozenset())
    return False


DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
