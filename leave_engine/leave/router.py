"""Leave router — requests, approval decisions, balances, team calendar, delegation.

All endpoints require authentication. HR-specific endpoints enforce role checks;
request-level ownership and approver checks live in the workflow.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from leave_engine.auth import Actor, get_current_actor, require_role
from leave_engine.common.constants import LeaveRequestStatus, LeaveType, UserRole
from leave_engine.common.exceptions import ForbiddenException
from leave_engine.common.pagination import PaginationParams
from leave_engine.common.rate_limit import WRITE_LIMIT, limiter
from leave_engine.database import get_session_factory
from leave_engine.leave.directory import HttpEmployeeDirectory, StoreHolidayProvider
from leave_engine.leave.schemas import (
    ApprovalDecisionRequest,
    BalanceAdjustmentCreate,
    BalanceHistoryOut,
    DayAvailability,
    DelegationCreate,
    DelegationOut,
    EligibilityResult,
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeaveRequestCreate,
    LeaveRequestListOut,
    LeaveRequestOut,
    TeamCalendarEntryOut,
    TeamConflict,
)
from leave_engine.leave.workflow import LeaveRequestWorkflow

router = APIRouter(prefix="", tags=["leave"])

_HR_ROLES = (UserRole.hr_manager, UserRole.system_admin)
_MANAGER_ROLES = (UserRole.manager, UserRole.hr_manager, UserRole.system_admin)


def get_workflow() -> LeaveRequestWorkflow:
    """FastAPI dependency: workflow wired to the store and the HTTP directory."""
    session_factory = get_session_factory()
    return LeaveRequestWorkflow(
        session_factory,
        HttpEmployeeDirectory(),
        StoreHolidayProvider(session_factory),
    )


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(WRITE_LIMIT)
async def create_leave_request(
    request: Request,
    body: LeaveRequestCreate,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    """Apply for leave, or save a draft. Validates eligibility, overlap, notice and balance."""
    return await workflow.create(body, actor.id)


# ── POST /requests/{id}/submit ──────────────────────────────────────

@router.post("/requests/{request_id}/submit", response_model=LeaveRequestOut)
@limiter.limit(WRITE_LIMIT)
async def submit_leave_request(
    request: Request,
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.submit(request_id, actor.id)


# ── POST /requests/{id}/decision ────────────────────────────────────

@router.post("/requests/{request_id}/decision", response_model=LeaveRequestOut)
@limiter.limit(WRITE_LIMIT)
async def decide_leave_request(
    request: Request,
    request_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    """Approve, reject or return a request. Only the current approver or their delegate may decide."""
    return await workflow.process_approval(request_id, actor.id, body.action, body.comments)


# ── POST /requests/{id}/cancel ──────────────────────────────────────

@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
@limiter.limit(WRITE_LIMIT)
async def cancel_leave_request(
    request: Request,
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.cancel(request_id, actor.id, body.reason)


# ── POST /requests/{id}/withdraw ────────────────────────────────────

@router.post("/requests/{request_id}/withdraw", response_model=LeaveRequestOut)
@limiter.limit(WRITE_LIMIT)
async def withdraw_leave_request(
    request: Request,
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.withdraw(request_id, actor.id)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    result = await workflow.get_request(request_id)
    if result.employee_id != actor.id and not actor.has_role(*_MANAGER_ROLES):
        raise ForbiddenException("You can only view your own leave requests.")
    return result


# ── GET /my-requests ────────────────────────────────────────────────

@router.get("/my-requests", response_model=LeaveRequestListOut)
async def my_leave_requests(
    status: Optional[list[LeaveRequestStatus]] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    """The authenticated employee's leave requests with pagination."""
    return await workflow.list_employee_requests(
        actor.id,
        statuses=status,
        leave_type=leave_type,
        from_date=from_date,
        to_date=to_date,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /employees/{id}/requests ────────────────────────────────────

@router.get("/employees/{employee_id}/requests", response_model=LeaveRequestListOut)
async def employee_leave_requests(
    employee_id: uuid.UUID,
    status: Optional[list[LeaveRequestStatus]] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(require_role(*_MANAGER_ROLES)),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.list_employee_requests(
        employee_id,
        statuses=status,
        leave_type=leave_type,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /pending-approvals ──────────────────────────────────────────

@router.get("/pending-approvals", response_model=list[LeaveRequestOut])
async def pending_approvals(
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    """Requests waiting on the caller, as designated approver or active delegate."""
    return await workflow.get_pending_approvals(actor.id)


# ── Balances ────────────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def my_balances(
    leave_year: Optional[int] = Query(None, ge=2000, le=2100),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.get_balances(actor.id, leave_year)


@router.get("/balances/history", response_model=list[BalanceHistoryOut])
async def my_balance_history(
    leave_year: Optional[int] = Query(None, ge=2000, le=2100),
    leave_type: Optional[LeaveType] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.get_balance_history(actor.id, leave_year, leave_type, limit)


@router.get("/employees/{employee_id}/balances", response_model=list[LeaveBalanceOut])
async def employee_balances(
    employee_id: uuid.UUID,
    leave_year: Optional[int] = Query(None, ge=2000, le=2100),
    actor: Actor = Depends(require_role(*_HR_ROLES)),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.get_balances(employee_id, leave_year)


@router.post("/employees/{employee_id}/balances/initialize", response_model=list[LeaveBalanceOut])
@limiter.limit(WRITE_LIMIT)
async def initialize_employee_balances(
    request: Request,
    employee_id: uuid.UUID,
    leave_year: int = Query(..., ge=2000, le=2100),
    actor: Actor = Depends(require_role(*_HR_ROLES)),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    """Open the employee's balances for a leave year. Existing balances are kept."""
    return await workflow.initialize_balances(employee_id, leave_year, actor.id)


@router.post("/balances/adjust", response_model=LeaveBalanceOut)
@limiter.limit(WRITE_LIMIT)
async def adjust_balance(
    request: Request,
    body: BalanceAdjustmentCreate,
    actor: Actor = Depends(require_role(*_HR_ROLES)),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    """Manual credit / debit / encashment / correction (HR only)."""
    return await workflow.adjust_balance(body, actor.id)


@router.get("/eligibility", response_model=EligibilityResult)
async def check_eligibility(
    leave_type: LeaveType = Query(...),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.check_eligibility(actor.id, leave_type)


# ── Team calendar ───────────────────────────────────────────────────

@router.get("/calendar", response_model=list[TeamCalendarEntryOut])
async def team_calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    department_id: Optional[uuid.UUID] = Query(None),
    subsidiary_id: Optional[uuid.UUID] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.get_team_calendar(
        start_date,
        end_date,
        department_id=department_id,
        subsidiary_id=subsidiary_id,
        employee_id=employee_id,
    )


@router.get("/calendar/conflicts", response_model=list[TeamConflict])
async def team_conflicts(
    department_id: uuid.UUID = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    max_allowed: int = Query(2, ge=1),
    exclude_employee_id: Optional[uuid.UUID] = Query(None),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    """Dates where the number of colleagues on leave reaches *max_allowed*."""
    return await workflow.check_team_conflicts(
        department_id, start_date, end_date, max_allowed, exclude_employee_id,
    )


@router.get("/calendar/availability", response_model=list[DayAvailability])
async def team_availability(
    department_id: uuid.UUID = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    return await workflow.get_availability(department_id, start_date, end_date)


# ── POST /delegations ───────────────────────────────────────────────

@router.post("/delegations", response_model=DelegationOut, status_code=201)
@limiter.limit(WRITE_LIMIT)
async def create_delegation(
    request: Request,
    body: DelegationCreate,
    actor: Actor = Depends(require_role(*_MANAGER_ROLES)),
    workflow: LeaveRequestWorkflow = Depends(get_workflow),
):
    """Delegate the caller's approvals to a colleague for a date window."""
    return await workflow.create_delegation(actor.id, body)
