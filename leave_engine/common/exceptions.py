"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://leave-engine.local/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class BalanceNotFound(NotFoundException):
    """404 — no balance record for (employee, year, leave type)."""

    def __init__(self, employee_id: Any, leave_year: int, leave_type: Any) -> None:
        super().__init__("Leave Balance", f"{employee_id}/{leave_year}/{_value(leave_type)}")
        self.employee_id = employee_id
        self.leave_year = leave_year
        self.leave_type = leave_type


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class NotAuthorizedApprover(ForbiddenException):
    """403 — actor is neither the current approver nor an active delegate."""

    def __init__(self, actor_id: Any, request_id: Any) -> None:
        super().__init__(
            detail=f"'{actor_id}' is not authorized to decide on leave request '{request_id}'.",
        )


class NotRequestOwner(ForbiddenException):
    """403 — only the requester may perform this action."""

    def __init__(self, action: str) -> None:
        super().__init__(detail=f"Only the requesting employee can {action} this leave request.")


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class EligibilityException(AppException):
    """422 — employee is not eligible for a leave type."""

    def __init__(self, detail: str, errors: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            status_code=422,
            error_type="eligibility-error",
            title="Not Eligible",
            detail=detail,
            errors=errors,
        )


class IneligibleLeaveType(EligibilityException):
    def __init__(self, leave_type: Any, reason: str) -> None:
        super().__init__(
            detail=reason,
            errors={"leave_type": [f"Not eligible for {_value(leave_type)} leave: {reason}"]},
        )
        self.leave_type = leave_type
        self.reason = reason


class PolicyException(AppException):
    """422 — leave policy rule violated."""

    def __init__(
        self,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            status_code=422,
            error_type=error_type,
            title=title,
            detail=detail,
            errors=errors,
        )


class NoWorkingDaysInRange(PolicyException):
    def __init__(self) -> None:
        super().__init__(
            error_type="no-working-days",
            title="No Working Days",
            detail="The selected date range contains no working days.",
            errors={"start_date": ["No working days in the selected range."]},
        )


class InsufficientNotice(PolicyException):
    def __init__(self, required_days: int, given_days: int) -> None:
        super().__init__(
            error_type="insufficient-notice",
            title="Insufficient Notice",
            detail=f"This leave type requires {required_days} days' notice; {given_days} given.",
            errors={"start_date": [f"Minimum {required_days} days notice required."]},
        )
        self.required_days = required_days
        self.given_days = given_days


class OverlappingLeave(PolicyException):
    def __init__(self, conflicting_request_number: str) -> None:
        super().__init__(
            error_type="overlapping-leave",
            title="Overlapping Leave",
            detail=f"Leave dates overlap with existing request {conflicting_request_number}.",
            errors={"start_date": [f"Overlaps with {conflicting_request_number}."]},
        )
        self.conflicting_request_number = conflicting_request_number


class InsufficientBalance(PolicyException):
    def __init__(self, requested: Decimal, available: Decimal) -> None:
        super().__init__(
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=f"Insufficient balance: {available} days available, {requested} requested.",
            errors={"total_working_days": [f"Only {available} days available."]},
        )
        self.requested = requested
        self.available = available


class MaxConsecutiveDaysExceeded(PolicyException):
    def __init__(self, max_days: int, requested: Decimal) -> None:
        super().__init__(
            error_type="max-consecutive-days",
            title="Too Many Consecutive Days",
            detail=f"Maximum {max_days} consecutive days allowed; {requested} requested.",
            errors={"end_date": [f"Maximum {max_days} consecutive days allowed."]},
        )
        self.max_days = max_days
        self.requested = requested


class LeaveAlreadyStarted(PolicyException):
    def __init__(self, start_date: Any) -> None:
        super().__init__(
            error_type="leave-already-started",
            title="Leave Already Started",
            detail=f"Approved leave starting {start_date} has already started and cannot be cancelled.",
            errors={"start_date": ["Cannot cancel leave that has already started."]},
        )
        self.start_date = start_date


class ConcurrencyConflict(AppException):
    """409 — a versioned record changed between read and write."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="concurrency-conflict",
            title="Concurrent Modification",
            detail=f"{entity_type} '{entity_id}' was modified concurrently. Reload and retry.",
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidStatusTransition(AppException):
    """409 — requested status change is not allowed from the current status."""

    def __init__(self, current: Any, target: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid Status Transition",
            detail=f"Cannot transition leave request from '{_value(current)}' to '{_value(target)}'.",
        )
        self.current = current
        self.target = target


class TransientFailure(AppException):
    """503 — store / directory timed out or retries were exhausted."""

    def __init__(self, detail: str, error_type: str = "transient-failure") -> None:
        super().__init__(
            status_code=503,
            error_type=error_type,
            title="Service Temporarily Unavailable",
            detail=detail,
        )


class StoreUnavailable(TransientFailure):
    def __init__(self, detail: str = "The document store did not respond in time.") -> None:
        super().__init__(detail, error_type="store-unavailable")


class DirectoryUnavailable(TransientFailure):
    def __init__(self, detail: str = "The employee directory did not respond in time.") -> None:
        super().__init__(detail, error_type="directory-unavailable")


def _value(item: Any) -> Any:
    return getattr(item, "value", item)


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
