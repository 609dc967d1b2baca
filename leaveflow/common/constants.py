"""Enums and constants for the leave engine — stored as their uppercase values."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "EMPLOYEE"
    branch_manager = "BRANCH_MANAGER"
    branch_admin = "BRANCH_ADMIN"
    super_admin = "SUPER_ADMIN"


# Roles allowed to act on the primary (branch-level) approval stage
BRANCH_APPROVER_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.branch_manager, UserRole.branch_admin}
)

# Roles allowed to act on the final (organization-wide) approval stage
ORG_APPROVER_ROLES: frozenset[UserRole] = frozenset({UserRole.super_admin})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    casual = "CASUAL"
    sick = "SICK"
    annual = "ANNUAL"
    maternity = "MATERNITY"
    paternity = "PATERNITY"
    emergency = "EMERGENCY"
    unpaid = "UNPAID"


class LeavePriority(str, enum.Enum):
    low = "LOW"
    medium = "MEDIUM"
    high = "HIGH"
    urgent = "URGENT"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[LeavePriority, int] = {
    LeavePriority.low: 0,
    LeavePriority.medium: 1,
    LeavePriority.high: 2,
    LeavePriority.urgent: 3,
}


class LeaveStatus(str, enum.Enum):
    pending = "PENDING"
    primary_approved = "PRIMARY_APPROVED"
    primary_rejected = "PRIMARY_REJECTED"
    final_approved = "FINAL_APPROVED"
    final_rejected = "FINAL_REJECTED"


# Requests in these states hold their date range (overlap guard)
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.primary_approved,
    LeaveStatus.final_approved,
)

# Requests in these states reserve days as "pending" on the balance
PENDING_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.primary_approved,
)

TERMINAL_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.primary_rejected,
    LeaveStatus.final_approved,
    LeaveStatus.final_rejected,
)


class ApprovalLevel(int, enum.Enum):
    primary = 1
    final = 2


class ApprovalAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


# ── Balance ledger ──────────────────────────────────────────────────

class AdjustmentType(str, enum.Enum):
    add = "ADD"
    deduct = "DEDUCT"
    set = "SET"
    carry_forward = "CARRY_FORWARD"


# Adjustment types that may lazily create a missing balance row
ROW_CREATING_ADJUSTMENTS: frozenset[AdjustmentType] = frozenset(
    {AdjustmentType.set, AdjustmentType.carry_forward}
)


class BalancePolicy(str, enum.Enum):
    allow = "allow"
    reject = "reject"


# ── Audit actions ───────────────────────────────────────────────────

class AuditAction(str, enum.Enum):
    request_submitted = "LEAVE_REQUEST_SUBMITTED"
    primary_approved = "LEAVE_PRIMARY_APPROVED"
    primary_rejected = "LEAVE_PRIMARY_REJECTED"
    final_approved = "LEAVE_FINAL_APPROVED"
    final_rejected = "LEAVE_FINAL_REJECTED"
    balance_adjusted = "LEAVE_BALANCE_ADJUSTED"
    balance_initialized = "LEAVE_BALANCE_INITIALIZED"
    balance_recomputed = "LEAVE_BALANCE_RECOMPUTED"


# ── Misc constants ──────────────────────────────────────────────────

def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """``values_callable`` for sa.Enum so the uppercase values are persisted."""
    return [member.value for member in enum_cls]


MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
