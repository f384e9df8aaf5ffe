"""Leave Pydantic v2 schemas — embedded documents, request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - plain nouns         → documents embedded in JSON columns of a LeaveRequest
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from leave_engine.common.constants import (
    ApprovalAction,
    ApprovalLevel,
    ApproverStatus,
    BalanceAdjustmentType,
    DayType,
    EmploymentType,
    GenderType,
    LeavePriority,
    LeaveRequestStatus,
    LeaveType,
)
from leave_engine.common.pagination import PaginatedResponse


# ═════════════════════════════════════════════════════════════════════
# Collaborator snapshots
# ═════════════════════════════════════════════════════════════════════


class EmployeeProfile(BaseModel):
    """Directory snapshot of an employee; accepts camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: uuid.UUID
    employee_number: str
    full_name: str
    gender: Optional[GenderType] = None
    join_date: date
    employment_type: EmploymentType = EmploymentType.permanent
    subsidiary_id: Optional[uuid.UUID] = None
    department_id: Optional[uuid.UUID] = None
    supervisor_id: Optional[uuid.UUID] = None
    department_head_id: Optional[uuid.UUID] = None
    hr_manager_id: Optional[uuid.UUID] = None
    general_manager_id: Optional[uuid.UUID] = None
    ceo_id: Optional[uuid.UUID] = None
    roles: list[str] = Field(default_factory=list)

    def approver_for(self, level: ApprovalLevel) -> Optional[uuid.UUID]:
        return {
            ApprovalLevel.supervisor: self.supervisor_id,
            ApprovalLevel.department_head: self.department_head_id,
            ApprovalLevel.hr_manager: self.hr_manager_id,
            ApprovalLevel.general_manager: self.general_manager_id,
            ApprovalLevel.ceo: self.ceo_id,
        }[level]


class Holiday(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date
    name: str


# ═════════════════════════════════════════════════════════════════════
# Embedded request documents
# ═════════════════════════════════════════════════════════════════════


class DayConfig(BaseModel):
    """One calendar day of a request and how much of it is charged."""

    date: date
    day_type: DayType = DayType.full_day
    is_working_day: bool = True
    is_holiday: bool = False
    holiday_name: Optional[str] = None
    day_value: Decimal = Decimal("1")


class StatusChange(BaseModel):
    status: LeaveRequestStatus
    changed_at: datetime
    changed_by: Optional[uuid.UUID] = None
    changed_by_name: Optional[str] = None
    comments: Optional[str] = None


class Approver(BaseModel):
    level: ApprovalLevel
    approver_id: uuid.UUID
    approver_name: str = "Unknown"
    sequence: int
    status: ApproverStatus = ApproverStatus.pending
    decided_at: Optional[datetime] = None
    comments: Optional[str] = None


class ApprovalChain(BaseModel):
    """Ordered approvers; ``current_level`` is 0-based, the active approver has
    ``sequence == current_level + 1``."""

    levels: list[ApprovalLevel]
    current_level: int = 0
    approvers: list[Approver]

    def current_approver(self) -> Optional[Approver]:
        for approver in self.approvers:
            if approver.sequence == self.current_level + 1:
                return approver
        return None

    def approver_at(self, sequence: int) -> Optional[Approver]:
        for approver in self.approvers:
            if approver.sequence == sequence:
                return approver
        return None

    @property
    def is_last_level(self) -> bool:
        return self.current_level + 1 >= len(self.approvers)


class ApprovalRecord(BaseModel):
    level: ApprovalLevel
    sequence: int
    approver_id: uuid.UUID
    approver_name: str
    action: ApprovalAction
    comments: Optional[str] = None
    decided_at: datetime
    delegated_from: Optional[uuid.UUID] = None


class BalanceImpact(BaseModel):
    days_taken: Decimal
    balance_before: Decimal
    balance_after: Decimal
    carry_over_used: Decimal = Decimal("0")
    advance_used: Decimal = Decimal("0")


class ReturnToWork(BaseModel):
    expected_date: date
    fitness_certificate_required: bool = False


class DelegationInfo(BaseModel):
    delegate_to_id: uuid.UUID
    delegate_to_name: str = ""
    handover_notes: Optional[str] = None


class EmergencyContact(BaseModel):
    name: str
    phone: str
    relationship: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request — write
# ═════════════════════════════════════════════════════════════════════


class DayConfigInput(BaseModel):
    """Per-day override on create; only half-day choices are meaningful."""

    date: date
    day_type: DayType = DayType.full_day


class DelegationInput(BaseModel):
    delegate_to_id: uuid.UUID
    handover_notes: Optional[str] = None


class LeaveRequestCreate(BaseModel):
    """Body for creating a leave request (or saving it as a draft)."""

    employee_id: Optional[uuid.UUID] = Field(
        None, description="Defaults to the authenticated employee",
    )
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=2000)
    priority: LeavePriority = LeavePriority.normal
    day_configs: Optional[list[DayConfigInput]] = None
    save_as_draft: bool = False
    delegation: Optional[DelegationInput] = None
    emergency_contact: Optional[EmergencyContact] = None

    @model_validator(mode="after")
    def validate_dates(self) -> LeaveRequestCreate:
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.day_configs:
            for cfg in self.day_configs:
                if not (self.start_date <= cfg.date <= self.end_date):
                    raise ValueError(f"day_configs date {cfg.date} is outside the leave range")
        return self


class ApprovalDecisionRequest(BaseModel):
    action: ApprovalAction
    comments: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def require_comments_for_non_approval(self) -> ApprovalDecisionRequest:
        if self.action != ApprovalAction.approve and not (self.comments or "").strip():
            raise ValueError(f"comments are required to {self.action.value} a request")
        return self


class LeaveCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class BalanceAdjustmentCreate(BaseModel):
    employee_id: uuid.UUID
    leave_year: int = Field(..., ge=2000, le=2100)
    leave_type: LeaveType
    adjustment_type: BalanceAdjustmentType
    amount: Decimal
    reason: str = Field(..., min_length=1, max_length=500)

    @model_validator(mode="after")
    def validate_amount(self) -> BalanceAdjustmentCreate:
        if self.amount == 0:
            raise ValueError("amount must be non-zero")
        return self


class DelegationCreate(BaseModel):
    delegate_id: uuid.UUID
    start_date: date
    end_date: date
    leave_types: Optional[list[LeaveType]] = None
    department_ids: Optional[list[uuid.UUID]] = None
    max_days: Optional[Decimal] = Field(None, gt=0)
    reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_window(self) -> DelegationCreate:
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request — read
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_number: str
    subsidiary_id: Optional[uuid.UUID] = None
    employee_id: uuid.UUID
    employee_number: str
    employee_name: str
    department_id: Optional[uuid.UUID] = None
    leave_type: LeaveType
    start_date: date
    end_date: date
    leave_year: int
    day_configs: list[DayConfig]
    total_working_days: Decimal
    reason: str
    priority: LeavePriority
    status: LeaveRequestStatus
    status_history: list[StatusChange]
    approval_chain: ApprovalChain
    approvals: list[ApprovalRecord]
    balance_impact: Optional[BalanceImpact] = None
    delegation: Optional[DelegationInfo] = None
    emergency_contact: Optional[EmergencyContact] = None
    return_to_work: Optional[ReturnToWork] = None
    cancellation_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int
    created_at: Optional[datetime] = None


class LeaveRequestListOut(PaginatedResponse[LeaveRequestOut]):
    pass


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class BalanceCheck(BaseModel):
    sufficient: bool
    available: Decimal
    message: Optional[str] = None


class LeaveBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    leave_year: int
    leave_type: LeaveType
    annual_entitlement: Decimal
    prorated_entitlement: Decimal
    accrued_to_date: Decimal
    accrual_rate: Decimal
    carried_over: Decimal
    carried_over_used: Decimal
    carried_over_expired: Decimal
    carry_over_expiry: Optional[date] = None
    taken: Decimal
    total_taken: Decimal
    pending: Decimal
    available: Decimal
    advance_taken: Decimal
    encashed: Decimal
    earned: Decimal
    version: int


class BalanceHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    leave_type: LeaveType
    transaction_type: BalanceAdjustmentType
    balance_before: Decimal
    adjustment: Decimal
    balance_after: Decimal
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    description: str
    accrual_period: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Calendar / delegation
# ═════════════════════════════════════════════════════════════════════


class TeamCalendarEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: str
    department_id: Optional[uuid.UUID] = None
    leave_type: LeaveType
    leave_date: date
    day_type: DayType
    day_value: Decimal
    status: LeaveRequestStatus


class TeamConflict(BaseModel):
    date: date
    on_leave_count: int
    employee_ids: list[uuid.UUID]
    exceeds_limit: bool


class DayAvailability(BaseModel):
    date: date
    on_leave: list[TeamCalendarEntryOut]


class DelegationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    delegator_id: uuid.UUID
    delegate_id: uuid.UUID
    is_active: bool
    start_date: date
    end_date: date
    leave_types: Optional[list[str]] = None
    department_ids: Optional[list[str]] = None
    max_days: Optional[Decimal] = None
    reason: Optional[str] = None


class EligibilityResult(BaseModel):
    eligible: bool
    service_months: int
    reason: Optional[str] = None
