"""Two-stage approval protocol.

Business logic:
  - Primary (branch) decision: PENDING → PRIMARY_APPROVED | PRIMARY_REJECTED
  - Final (organization) decision: PRIMARY_APPROVED → FINAL_APPROVED | FINAL_REJECTED
  - Every transition is a compare-and-swap on ``status``
  - Final approval debits the balance ledger in the same transaction
  - Priority-ordered approval queues
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.context import AuthorizationContext
from leaveflow.balances.service import BalanceLedger
from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import (
    ApprovalAction,
    ApprovalLevel,
    AuditAction,
    LeavePriority,
    LeaveStatus,
)
from leaveflow.common.exceptions import ForbiddenException, InvalidStateException
from leaveflow.common.pagination import PaginatedResponse, PaginationParams, paginate
from leaveflow.approvals.schemas import ApprovalQueueItem
from leaveflow.database import utcnow
from leaveflow.directory.models import Employee
from leaveflow.directory.service import get_employee
from leaveflow.leave.models import LeaveRequest
from leaveflow.leave.service import LeaveService

logger = logging.getLogger(__name__)

# URGENT first; unknown values sort last
_PRIORITY_ORDER = case(
    {p.value: p.rank for p in LeavePriority},
    value=LeaveRequest.priority,
    else_=-1,
)


def _queue_item(row: Any) -> ApprovalQueueItem:
    leave_req, employee = row
    item = ApprovalQueueItem.model_validate(leave_req)
    item.employee_code = employee.employee_code
    item.employee_name = employee.full_name
    item.branch_id = employee.branch_id
    return item


class ApprovalService:
    """Async approval operations. Callers own the transaction."""

    # ─────────────────────────────────────────────────────────────────
    # Compare-and-swap
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _transition(
        db: AsyncSession,
        leave_req: LeaveRequest,
        expected: LeaveStatus,
        values: dict[str, Any],
    ) -> LeaveRequest:
        """``UPDATE ... WHERE id = :id AND status = :expected``.

        Zero affected rows means another caller moved the request first.
        """
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave_req.id,
                LeaveRequest.status == expected,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(leave_req)
        if result.rowcount != 1:
            logger.warning(
                "Lost transition race on leave request %s: expected %s, found %s",
                leave_req.id, expected.value, leave_req.status.value,
            )
            raise InvalidStateException(leave_req.status, expected)
        return leave_req

    @staticmethod
    async def _audit_transition(
        db: AsyncSession,
        ctx: AuthorizationContext,
        leave_req: LeaveRequest,
        action: AuditAction,
        previous: LeaveStatus,
        employee: Employee,
    ) -> None:
        await create_audit_entry(
            db,
            action=action.value,
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=ctx.caller_id,
            old_values={"status": previous.value},
            new_values={
                "status": leave_req.status.value,
                "employee_id": str(employee.id),
                "employee_name": employee.full_name,
                "leave_type": leave_req.leave_type.value,
                "total_days": leave_req.total_days,
            },
        )

    # ─────────────────────────────────────────────────────────────────
    # Primary decision
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def primary_decision(
        db: AsyncSession,
        ctx: AuthorizationContext,
        request_id: uuid.UUID,
        action: ApprovalAction,
        comments: Optional[str] = None,
    ) -> LeaveRequest:
        """Branch-level decision on a PENDING request."""
        if not ctx.is_branch_approver:
            raise ForbiddenException("Primary approval requires branch authority.")

        leave_req, branch_id = await LeaveService.load_request(db, request_id)
        if not ctx.manages_branch(branch_id):
            raise ForbiddenException(
                "Access denied. You can only approve requests from your branch."
            )
        if leave_req.status != LeaveStatus.pending:
            raise InvalidStateException(leave_req.status, LeaveStatus.pending)

        now = utcnow()
        values: dict[str, Any] = {
            "primary_approver_id": ctx.caller_id,
            "primary_comments": comments,
            "updated_at": now,
        }
        if action is ApprovalAction.approve:
            values.update(
                status=LeaveStatus.primary_approved,
                primary_approved_at=now,
                current_approval_level=ApprovalLevel.final.value,
            )
        else:
            values.update(
                status=LeaveStatus.primary_rejected,
                rejection_reason=comments,
                rejected_by=ctx.caller_id,
                rejected_at=now,
            )

        await ApprovalService._transition(db, leave_req, LeaveStatus.pending, values)

        if action is ApprovalAction.reject:
            await BalanceLedger.release_pending(
                db,
                leave_req.employee_id,
                leave_req.start_date.year,
                leave_req.leave_type,
                leave_req.total_days,
            )

        employee = await get_employee(db, leave_req.employee_id, active_only=False)
        logger.info(
            "Leave request %s %s by %s (primary)",
            leave_req.id, leave_req.status.value, ctx.caller_id,
        )
        await ApprovalService._audit_transition(
            db, ctx, leave_req,
            AuditAction.primary_approved
            if action is ApprovalAction.approve
            else AuditAction.primary_rejected,
            LeaveStatus.pending,
            employee,
        )
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Final decision
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def final_decision(
        db: AsyncSession,
        ctx: AuthorizationContext,
        request_id: uuid.UUID,
        action: ApprovalAction,
        comments: Optional[str] = None,
    ) -> LeaveRequest:
        """Organization-level decision on a PRIMARY_APPROVED request.

        Approval moves the request's days from pending to used on the
        (employee, start year, leave type) balance row and appends a DEDUCT
        adjustment referencing the request.
        """
        if not ctx.is_org_admin:
            raise ForbiddenException("Final approval requires organization authority.")

        leave_req, _ = await LeaveService.load_request(db, request_id)
        if leave_req.status != LeaveStatus.primary_approved:
            raise InvalidStateException(leave_req.status, LeaveStatus.primary_approved)

        now = utcnow()
        values: dict[str, Any] = {
            "final_approver_id": ctx.caller_id,
            "final_comments": comments,
            "updated_at": now,
        }
        if action is ApprovalAction.approve:
            # Policy check before the status flips
            balance = await BalanceLedger.get_or_create_row(
                db, leave_req.employee_id, leave_req.start_date.year, leave_req.leave_type,
            )
            BalanceLedger.ensure_sufficient(
                balance, leave_req.total_days, already_reserved=True,
            )
            values.update(status=LeaveStatus.final_approved, final_approved_at=now)
        else:
            values.update(
                status=LeaveStatus.final_rejected,
                rejection_reason=comments,
                rejected_by=ctx.caller_id,
                rejected_at=now,
            )

        await ApprovalService._transition(
            db, leave_req, LeaveStatus.primary_approved, values,
        )

        if action is ApprovalAction.approve:
            await BalanceLedger.commit_pending(db, leave_req, ctx.caller_id)
        else:
            await BalanceLedger.release_pending(
                db,
                leave_req.employee_id,
                leave_req.start_date.year,
                leave_req.leave_type,
                leave_req.total_days,
            )

        employee = await get_employee(db, leave_req.employee_id, active_only=False)
        logger.info(
            "Leave request %s %s by %s (final)",
            leave_req.id, leave_req.status.value, ctx.caller_id,
        )
        await ApprovalService._audit_transition(
            db, ctx, leave_req,
            AuditAction.final_approved
            if action is ApprovalAction.approve
            else AuditAction.final_rejected,
            LeaveStatus.primary_approved,
            employee,
        )
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Queues
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _queue_query(
        status: LeaveStatus,
        branch_id: Optional[uuid.UUID],
        priority: Optional[LeavePriority],
    ):
        query = (
            select(LeaveRequest, Employee)
            .join(Employee, Employee.id == LeaveRequest.employee_id)
            .where(LeaveRequest.status == status)
            .order_by(_PRIORITY_ORDER.desc(), LeaveRequest.created_at.asc(), LeaveRequest.id)
        )
        if branch_id is not None:
            query = query.where(Employee.branch_id == branch_id)
        if priority is not None:
            query = query.where(LeaveRequest.priority == priority)
        return query

    @staticmethod
    async def primary_queue(
        db: AsyncSession,
        ctx: AuthorizationContext,
        pagination: PaginationParams,
        *,
        status: LeaveStatus = LeaveStatus.pending,
        branch_id: Optional[uuid.UUID] = None,
        priority: Optional[LeavePriority] = None,
    ) -> PaginatedResponse:
        """Requests of the caller's branch awaiting (or past) primary review."""
        if not ctx.is_branch_approver:
            raise ForbiddenException("Primary approval requires branch authority.")
        if branch_id is not None and branch_id != ctx.branch_id:
            raise ForbiddenException("You can only view your own branch's queue.")

        query = ApprovalService._queue_query(status, ctx.branch_id, priority)
        return await paginate(
            db, query, pagination, transform=_queue_item, scalars=False,
        )

    @staticmethod
    async def final_queue(
        db: AsyncSession,
        ctx: AuthorizationContext,
        pagination: PaginationParams,
        *,
        status: LeaveStatus = LeaveStatus.primary_approved,
        branch_id: Optional[uuid.UUID] = None,
        priority: Optional[LeavePriority] = None,
    ) -> PaginatedResponse:
        """Organization-wide final-review queue."""
        if not ctx.is_org_admin:
            raise ForbiddenException("Final approval requires organization authority.")

        query = ApprovalService._queue_query(status, branch_id, priority)
        return await paginate(
            db, query, pagination, transform=_queue_item, scalars=False,
        )

