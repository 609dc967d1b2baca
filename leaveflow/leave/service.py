"""Leave request intake and reads.

Business logic:
  - Submission: range validation, inclusive day count, caller scoping,
    per-employee serialized overlap check, balance-policy check, pending
    reservation
  - Scoped listing / lookup of requests
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.context import AuthorizationContext
from leaveflow.balances.service import BalanceLedger
from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import (
    ApprovalLevel,
    AuditAction,
    LeavePriority,
    LeaveStatus,
    LeaveType,
)
from leaveflow.common.exceptions import (
    ForbiddenException,
    InvalidRangeException,
    NotFoundException,
    OverlappingRequestException,
    StorageException,
    ValidationException,
)
from leaveflow.common.pagination import PaginatedResponse, PaginationParams, paginate
from leaveflow.directory.models import Employee
from leaveflow.directory.service import get_employee
from leaveflow.leave.models import OVERLAP_CONSTRAINT_NAME, LeaveRequest
from leaveflow.leave.overlap import find_overlapping
from leaveflow.leave.schemas import LeaveRequestOut

logger = logging.getLogger(__name__)


def count_leave_days(start_date: date, end_date: date) -> int:
    """Inclusive calendar-day count of a leave range."""
    if end_date < start_date:
        raise InvalidRangeException(start_date, end_date)
    return (end_date - start_date).days + 1


def translate_integrity_error(exc: IntegrityError) -> Exception:
    """Map an insert failure on ``leave_requests`` to a domain error."""
    if OVERLAP_CONSTRAINT_NAME in str(exc.orig):
        return OverlappingRequestException()
    logger.exception("Integrity failure while storing leave request", exc_info=exc)
    return StorageException()


class LeaveService:
    """Async leave request operations. Callers own the transaction."""

    # ─────────────────────────────────────────────────────────────────
    # Lookup helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def load_request(
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> tuple[LeaveRequest, Optional[uuid.UUID]]:
        """Return the request and its employee's branch id, or raise NotFound."""
        result = await db.execute(
            select(LeaveRequest, Employee.branch_id)
            .join(Employee, Employee.id == LeaveRequest.employee_id)
            .where(LeaveRequest.id == request_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return row[0], row[1]

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        ctx: AuthorizationContext,
        *,
        employee_id: Optional[uuid.UUID],
        leave_type: LeaveType,
        priority: LeavePriority,
        start_date: date,
        end_date: date,
        reason: str,
        attachment_url: Optional[str] = None,
    ) -> LeaveRequest:
        """Create a PENDING request and reserve its days as pending.

        Validation order: reason, date range, employee, caller scope,
        overlap, balance policy. The employee row stays locked until the
        transaction ends, so concurrent submissions for one employee run
        their overlap check one after another.
        """
        if not reason or not reason.strip():
            raise ValidationException({"reason": ["reason is required."]})
        total_days = count_leave_days(start_date, end_date)

        target_id = employee_id or ctx.caller_id
        employee = await get_employee(db, target_id, lock=True)

        if not ctx.can_view_employee(employee.id, employee.branch_id):
            raise ForbiddenException(
                "You may only submit leave for yourself or your branch."
            )

        # ── Overlap ─────────────────────────────────────────────────
        clashes = await find_overlapping(db, employee.id, start_date, end_date)
        if clashes:
            logger.info(
                "Rejected overlapping request for employee %s (%s..%s) clashing with %s",
                employee.id, start_date, end_date, [str(c.id) for c in clashes],
            )
            raise OverlappingRequestException()

        # ── Balance reservation (policy-checked) ────────────────────
        year = start_date.year
        balance = await BalanceLedger.reserve_pending(
            db, employee.id, year, leave_type, total_days,
        )

        # ── Create request ──────────────────────────────────────────
        leave_req = LeaveRequest(
            employee_id=employee.id,
            leave_type=leave_type,
            priority=priority,
            start_date=start_date,
            end_date=end_date,
            total_days=total_days,
            reason=reason.strip(),
            attachment_url=attachment_url,
            status=LeaveStatus.pending,
            current_approval_level=ApprovalLevel.primary.value,
        )
        db.add(leave_req)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise translate_integrity_error(exc) from exc

        logger.info(
            "Leave request %s submitted: employee %s, %s %s..%s (%d days), available now %s",
            leave_req.id, employee.id, leave_type.value, start_date, end_date,
            total_days, balance.available,
        )

        # ── Audit ───────────────────────────────────────────────────
        await create_audit_entry(
            db,
            action=AuditAction.request_submitted.value,
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=ctx.caller_id,
            new_values={
                "employee_id": str(employee.id),
                "leave_type": leave_type.value,
                "priority": priority.value,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "total_days": total_days,
                "status": LeaveStatus.pending.value,
            },
        )
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        ctx: AuthorizationContext,
        request_id: uuid.UUID,
    ) -> LeaveRequest:
        leave_req, branch_id = await LeaveService.load_request(db, request_id)
        if not ctx.can_view_employee(leave_req.employee_id, branch_id):
            raise ForbiddenException("You cannot view this leave request.")
        return leave_req

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        ctx: AuthorizationContext,
        pagination: PaginationParams,
        *,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        year: Optional[int] = None,
    ) -> PaginatedResponse:
        """Newest-first page of requests visible to the caller.

        Scopes:
          - employee: own requests only
          - branch approver: requests of employees in the caller's branch
          - org admin: all requests
        """
        query = (
            select(LeaveRequest)
            .join(Employee, Employee.id == LeaveRequest.employee_id)
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
        )

        if employee_id is not None:
            employee = await get_employee(db, employee_id, active_only=False)
            if not ctx.can_view_employee(employee.id, employee.branch_id):
                raise ForbiddenException("You cannot view this employee's requests.")
            query = query.where(LeaveRequest.employee_id == employee_id)
        elif ctx.is_org_admin:
            pass
        elif ctx.is_branch_approver:
            query = query.where(
                or_(
                    Employee.branch_id == ctx.branch_id,
                    LeaveRequest.employee_id == ctx.caller_id,
                )
            )
        else:
            query = query.where(LeaveRequest.employee_id == ctx.caller_id)

        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if leave_type is not None:
            query = query.where(LeaveRequest.leave_type == leave_type)
        if year is not None:
            query = query.where(
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.start_date < date(year + 1, 1, 1),
            )

        return await paginate(
            db, query, pagination, transform=LeaveRequestOut.model_validate,
        )
