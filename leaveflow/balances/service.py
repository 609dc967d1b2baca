"""Balance ledger — per employee/year/leave-type entitlement bookkeeping.

Business logic:
  - Lazy, at-most-once default initialization per (employee, year)
  - Incremental pending maintenance driven by request transitions
  - Final-approval debit (pending → used) with a linked DEDUCT record
  - Manual ADD / DEDUCT / SET / CARRY_FORWARD adjustments
  - Pending reconciliation from the request table
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.context import AuthorizationContext
from leaveflow.balances.models import LeaveBalance, LeaveBalanceAdjustment
from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import (
    PENDING_LEAVE_STATUSES,
    ROW_CREATING_ADJUSTMENTS,
    AdjustmentType,
    AuditAction,
    BalancePolicy,
    LeaveType,
)
from leaveflow.common.exceptions import (
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from leaveflow.config import settings
from leaveflow.directory.service import get_employee
from leaveflow.leave.models import LeaveRequest

logger = logging.getLogger(__name__)


def _snapshot(balance: LeaveBalance) -> dict[str, int]:
    return {
        "total_allowed": balance.total_allowed,
        "used": balance.used,
        "pending": balance.pending,
        "carried_forward": balance.carried_forward,
        "available": balance.available,
    }


# ═════════════════════════════════════════════════════════════════════
# BalanceLedger
# ═════════════════════════════════════════════════════════════════════


class BalanceLedger:
    """Async balance operations. Callers own the transaction."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def balance_policy() -> BalancePolicy:
        try:
            return BalancePolicy(settings.LEAVE_BALANCE_POLICY.lower())
        except ValueError:
            logger.warning(
                "Unknown LEAVE_BALANCE_POLICY %r, falling back to 'allow'",
                settings.LEAVE_BALANCE_POLICY,
            )
            return BalancePolicy.allow

    @staticmethod
    def default_allowances() -> dict[LeaveType, int]:
        """Configured yearly allowance per leave type (unknown keys skipped)."""
        allowances: dict[LeaveType, int] = {}
        for code, days in settings.default_allowances.items():
            try:
                allowances[LeaveType(code)] = max(0, days)
            except ValueError:
                logger.warning("Ignoring default allowance for unknown leave type %r", code)
        return allowances

    @staticmethod
    def ensure_sufficient(
        balance: LeaveBalance,
        requested: int,
        *,
        already_reserved: bool = False,
    ) -> None:
        """Enforce the balance policy for *requested* days against *balance*.

        With ``already_reserved`` the requested days are part of ``pending``
        and therefore already subtracted from ``available``. A row created
        after submission holds no reservation, so only what it actually has
        pending is credited back.
        """
        if BalanceLedger.balance_policy() is BalancePolicy.allow:
            return
        reserved = min(requested, balance.pending) if already_reserved else 0
        headroom = balance.available + reserved
        if requested > headroom:
            logger.warning(
                "Balance policy rejected %s days of %s for employee %s (available %s)",
                requested, balance.leave_type.value, balance.employee_id, headroom,
            )
            raise InsufficientBalanceException(
                balance.leave_type.value, headroom, requested,
            )

    @staticmethod
    async def _load_rows(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == year,
            )
            .order_by(LeaveBalance.leave_type)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_row(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
        *,
        lock: bool = False,
    ) -> Optional[LeaveBalance]:
        query = select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.year == year,
            LeaveBalance.leave_type == leave_type,
        )
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    # ─────────────────────────────────────────────────────────────────
    # Initialization
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_or_initialize(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalance]:
        """Return all balances for the employee/year, creating defaults once.

        Initialization takes the employee row lock and re-checks, so two
        concurrent first reads cannot both insert the default rows.
        """
        rows = await BalanceLedger._load_rows(db, employee_id, year)
        if rows:
            return rows

        await get_employee(db, employee_id, active_only=False, lock=True)
        rows = await BalanceLedger._load_rows(db, employee_id, year)
        if rows:
            return rows

        allowances = BalanceLedger.default_allowances()
        for leave_type, allowed in allowances.items():
            rows.append(
                LeaveBalance.new(employee_id, year, leave_type, total_allowed=allowed)
            )
        db.add_all(rows)
        await db.flush()

        logger.info(
            "Initialized %d default balances for employee %s, year %s",
            len(rows), employee_id, year,
        )
        await create_audit_entry(
            db,
            action=AuditAction.balance_initialized.value,
            entity_type="employee",
            entity_id=employee_id,
            actor_id=actor_id,
            new_values={
                "year": year,
                "allowances": {lt.value: days for lt, days in allowances.items()},
            },
        )
        return sorted(rows, key=lambda b: b.leave_type.value)

    @staticmethod
    async def get_or_create_row(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
    ) -> LeaveBalance:
        """Locked balance row; a zero-allowance row is created when missing."""
        await BalanceLedger.get_or_initialize(db, employee_id, year)
        balance = await BalanceLedger.get_row(
            db, employee_id, year, leave_type, lock=True,
        )
        if balance is None:
            balance = LeaveBalance.new(employee_id, year, leave_type)
            db.add(balance)
            await db.flush()
            logger.info(
                "Created zero-allowance %s balance for employee %s, year %s",
                leave_type.value, employee_id, year,
            )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        ctx: AuthorizationContext,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalance]:
        """Scoped balance read for the API (lazily initialized)."""
        employee = await get_employee(db, employee_id, active_only=False)
        if not ctx.can_view_employee(employee.id, employee.branch_id):
            raise ForbiddenException("You cannot view this employee's balances.")
        return await BalanceLedger.get_or_initialize(
            db, employee_id, year, actor_id=ctx.caller_id,
        )

    @staticmethod
    async def list_adjustments(
        db: AsyncSession,
        ctx: AuthorizationContext,
        employee_id: uuid.UUID,
        *,
        year: Optional[int] = None,
        leave_type: Optional[LeaveType] = None,
    ) -> list[LeaveBalanceAdjustment]:
        """Adjustment history, newest first."""
        employee = await get_employee(db, employee_id, active_only=False)
        if not ctx.can_view_employee(employee.id, employee.branch_id):
            raise ForbiddenException("You cannot view this employee's adjustments.")

        query = (
            select(LeaveBalanceAdjustment)
            .where(LeaveBalanceAdjustment.employee_id == employee_id)
            .order_by(LeaveBalanceAdjustment.created_at.desc())
        )
        if year is not None:
            query = query.where(LeaveBalanceAdjustment.year == year)
        if leave_type is not None:
            query = query.where(LeaveBalanceAdjustment.leave_type == leave_type)

        result = await db.execute(query)
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Pending maintenance (driven by request transitions)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reserve_pending(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
        days: int,
    ) -> LeaveBalance:
        """Submission: add *days* to pending (policy-checked)."""
        balance = await BalanceLedger.get_or_create_row(db, employee_id, year, leave_type)
        BalanceLedger.ensure_sufficient(balance, days)
        balance.apply(pending_delta=days)
        await db.flush()
        return balance

    @staticmethod
    async def release_pending(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
        days: int,
    ) -> LeaveBalance:
        """Rejection at either stage: give the reserved days back."""
        balance = await BalanceLedger.get_or_create_row(db, employee_id, year, leave_type)
        balance.apply(pending_delta=-days)
        await db.flush()
        return balance

    @staticmethod
    async def commit_pending(
        db: AsyncSession,
        leave_req: LeaveRequest,
        actor_id: uuid.UUID,
    ) -> LeaveBalance:
        """Final approval: move the request's days from pending to used.

        The row is locked for the read-modify-write and a DEDUCT adjustment
        linked to the request is appended. A missing row is created with a
        zero allowance, which can leave ``available`` negative.
        """
        year = leave_req.start_date.year
        days = leave_req.total_days
        balance = await BalanceLedger.get_or_create_row(
            db, leave_req.employee_id, year, leave_req.leave_type,
        )
        BalanceLedger.ensure_sufficient(balance, days, already_reserved=True)

        balance.apply(used_delta=days, pending_delta=-days)
        db.add(
            LeaveBalanceAdjustment(
                employee_id=leave_req.employee_id,
                leave_type=leave_req.leave_type,
                year=year,
                adjustment_type=AdjustmentType.deduct,
                days=days,
                reason=f"Leave approved: {leave_req.reason}",
                adjusted_by=actor_id,
                leave_request_id=leave_req.id,
            )
        )
        await db.flush()
        if balance.available < 0:
            logger.warning(
                "%s balance for employee %s went negative (%s) after approving %s",
                balance.leave_type.value, balance.employee_id,
                balance.available, leave_req.id,
            )
        return balance

    @staticmethod
    async def recompute_pending(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalance]:
        """Rebuild ``pending`` for every leave type from the request table.

        Sums total_days of the employee's PENDING / PRIMARY_APPROVED requests
        starting in *year*, grouped by leave type.
        """
        rows = await BalanceLedger.get_or_initialize(
            db, employee_id, year, actor_id=actor_id,
        )

        result = await db.execute(
            select(
                LeaveRequest.leave_type,
                func.coalesce(func.sum(LeaveRequest.total_days), 0),
            )
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(PENDING_LEAVE_STATUSES),
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.start_date < date(year + 1, 1, 1),
            )
            .group_by(LeaveRequest.leave_type)
        )
        pending_by_type: dict[LeaveType, int] = {
            LeaveType(lt): int(total) for lt, total in result.all()
        }

        by_type = {b.leave_type: b for b in rows}
        for leave_type in pending_by_type:
            if leave_type not in by_type:
                by_type[leave_type] = await BalanceLedger.get_or_create_row(
                    db, employee_id, year, leave_type,
                )

        changes: dict[str, dict[str, int]] = {}
        for leave_type, balance in by_type.items():
            target = pending_by_type.get(leave_type, 0)
            if balance.pending != target:
                changes[leave_type.value] = {"from": balance.pending, "to": target}
                balance.apply(pending_delta=target - balance.pending)
        await db.flush()

        if changes:
            logger.warning(
                "Pending drift corrected for employee %s, year %s: %s",
                employee_id, year, changes,
            )
        await create_audit_entry(
            db,
            action=AuditAction.balance_recomputed.value,
            entity_type="employee",
            entity_id=employee_id,
            actor_id=actor_id,
            new_values={"year": year, "changes": changes},
        )
        return sorted(by_type.values(), key=lambda b: b.leave_type.value)

    # ─────────────────────────────────────────────────────────────────
    # Manual adjustment
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def adjust(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
        adjustment_type: AdjustmentType,
        days: int,
        reason: str,
        actor_id: uuid.UUID,
    ) -> LeaveBalance:
        """Apply a manual adjustment and append its audit record.

        ADD raises the allowance, DEDUCT consumes days, SET replaces the
        allowance, CARRY_FORWARD replaces the carried-forward figure.
        Missing rows are created only for SET and CARRY_FORWARD.
        """
        if days < 0:
            raise ValidationException({"days": ["days must be zero or positive."]})
        if not reason or not reason.strip():
            raise ValidationException({"reason": ["reason is required."]})

        await BalanceLedger.get_or_initialize(db, employee_id, year, actor_id=actor_id)
        balance = await BalanceLedger.get_row(
            db, employee_id, year, leave_type, lock=True,
        )
        if balance is None:
            if adjustment_type not in ROW_CREATING_ADJUSTMENTS:
                raise NotFoundException(
                    "LeaveBalance", f"{employee_id}/{year}/{leave_type.value}",
                )
            balance = LeaveBalance.new(employee_id, year, leave_type)
            db.add(balance)

        before = _snapshot(balance)
        if adjustment_type is AdjustmentType.add:
            balance.apply(total_allowed=balance.total_allowed + days)
        elif adjustment_type is AdjustmentType.deduct:
            balance.apply(used_delta=days)
        elif adjustment_type is AdjustmentType.set:
            balance.apply(total_allowed=days)
        elif adjustment_type is AdjustmentType.carry_forward:
            balance.apply(carried_forward=days)

        db.add(
            LeaveBalanceAdjustment(
                employee_id=employee_id,
                leave_type=leave_type,
                year=year,
                adjustment_type=adjustment_type,
                days=days,
                reason=reason.strip(),
                adjusted_by=actor_id,
            )
        )
        await db.flush()

        logger.info(
            "%s %s days of %s for employee %s (%s): available %s → %s",
            adjustment_type.value, days, leave_type.value, employee_id, year,
            before["available"], balance.available,
        )
        await create_audit_entry(
            db,
            action=AuditAction.balance_adjusted.value,
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor_id,
            old_values=before,
            new_values={
                **_snapshot(balance),
                "adjustment_type": adjustment_type.value,
                "days": days,
                "reason": reason.strip(),
            },
        )
        return balance
