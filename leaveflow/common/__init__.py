"""Common module — shared utilities for the leave engine."""

from leaveflow.common.audit import AuditTrail, create_audit_entry
from leaveflow.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    AdjustmentType,
    ApprovalAction,
    AuditAction,
    LeavePriority,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from leaveflow.common.exceptions import (
    AppException,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidRangeException,
    InvalidStateException,
    NotFoundException,
    OverlappingRequestException,
    StorageException,
    ValidationException,
    register_exception_handlers,
)
from leaveflow.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "AdjustmentType",
    "ApprovalAction",
    "AuditAction",
    "LeavePriority",
    "LeaveStatus",
    "LeaveType",
    "UserRole",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "InsufficientBalanceException",
    "InvalidRangeException",
    "InvalidStateException",
    "NotFoundException",
    "OverlappingRequestException",
    "StorageException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
