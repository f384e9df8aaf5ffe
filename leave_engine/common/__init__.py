"""Common module — enums, error taxonomy and pagination shared by the leave engine."""

from leave_engine.common.constants import (
    ACTIVE_STATUSES,
    VALID_STATUS_TRANSITIONS,
    AccrualMethod,
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
    UserRole,
    can_transition,
)
from leave_engine.common.exceptions import (
    AppException,
    BalanceNotFound,
    ConcurrencyConflict,
    DirectoryUnavailable,
    EligibilityException,
    ForbiddenException,
    IneligibleLeaveType,
    InsufficientBalance,
    InsufficientNotice,
    InvalidStatusTransition,
    LeaveAlreadyStarted,
    MaxConsecutiveDaysExceeded,
    NoWorkingDaysInRange,
    NotAuthorizedApprover,
    NotFoundException,
    NotRequestOwner,
    OverlappingLeave,
    PolicyException,
    StoreUnavailable,
    TransientFailure,
    ValidationException,
    register_exception_handlers,
)
from leave_engine.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate_query,
)

__all__ = [
    # Constants / Enums
    "ACTIVE_STATUSES",
    "VALID_STATUS_TRANSITIONS",
    "AccrualMethod",
    "ApprovalAction",
    "ApprovalLevel",
    "ApproverStatus",
    "BalanceAdjustmentType",
    "DayType",
    "EmploymentType",
    "GenderType",
    "LeavePriority",
    "LeaveRequestStatus",
    "LeaveType",
    "UserRole",
    "can_transition",
    # Exceptions
    "AppException",
    "BalanceNotFound",
    "ConcurrencyConflict",
    "DirectoryUnavailable",
    "EligibilityException",
    "ForbiddenException",
    "IneligibleLeaveType",
    "InsufficientBalance",
    "InsufficientNotice",
    "InvalidStatusTransition",
    "LeaveAlreadyStarted",
    "MaxConsecutiveDaysExceeded",
    "NoWorkingDaysInRange",
    "NotAuthorizedApprover",
    "NotFoundException",
    "NotRequestOwner",
    "OverlappingLeave",
    "PolicyException",
    "StoreUnavailable",
    "TransientFailure",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate_query",
]
