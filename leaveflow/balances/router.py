"""Balance router — balances, adjustments, pending reconciliation."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.context import AuthorizationContext
from leaveflow.auth.dependencies import get_auth_context, require_role
from leaveflow.balances.schemas import (
    BalanceAdjustRequest,
    BalanceRecomputeRequest,
    LeaveBalanceAdjustmentOut,
    LeaveBalanceOut,
)
from leaveflow.balances.service import BalanceLedger
from leaveflow.common.constants import LeaveType, UserRole
from leaveflow.database import get_db
from leaveflow.directory.service import get_employee

router = APIRouter(prefix="/balances", tags=["balances"])


# ── GET /balances ───────────────────────────────────────────────────

@router.get("", response_model=list[LeaveBalanceOut])
async def get_balances(
    employee_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    year: Optional[int] = Query(None, ge=1970, le=9999, description="Defaults to current year"),
    ctx: AuthorizationContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Per-leave-type balances for one employee/year (created on first read)."""
    target_year = year or datetime.now(timezone.utc).year
    return await BalanceLedger.get_balances(
        db, ctx, employee_id or ctx.caller_id, target_year,
    )


# ── POST /balances/adjust ───────────────────────────────────────────

@router.post("/adjust", response_model=LeaveBalanceOut)
async def adjust_balance(
    body: BalanceAdjustRequest,
    ctx: AuthorizationContext = Depends(require_role(UserRole.super_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Manual ADD / DEDUCT / SET / CARRY_FORWARD adjustment."""
    await get_employee(db, body.employee_id, active_only=False)
    return await BalanceLedger.adjust(
        db,
        body.employee_id,
        body.year,
        body.leave_type,
        body.adjustment_type,
        body.days,
        body.reason,
        ctx.caller_id,
    )


# ── POST /balances/recompute ────────────────────────────────────────

@router.post("/recompute", response_model=list[LeaveBalanceOut])
async def recompute_balances(
    body: BalanceRecomputeRequest,
    ctx: AuthorizationContext = Depends(require_role(UserRole.super_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Rebuild pending days from the request table."""
    return await BalanceLedger.recompute_pending(
        db, body.employee_id, body.year, actor_id=ctx.caller_id,
    )


# ── GET /balances/adjustments ───────────────────────────────────────

@router.get("/adjustments", response_model=list[LeaveBalanceAdjustmentOut])
async def list_adjustments(
    employee_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    leave_type: Optional[LeaveType] = Query(None),
    ctx: AuthorizationContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await BalanceLedger.list_adjustments(
        db, ctx, employee_id or ctx.caller_id, year=year, leave_type=leave_type,
    )
