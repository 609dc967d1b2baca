"""Approval router — primary (branch) and final (organization) stages."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.approvals.schemas import ApprovalDecisionRequest, ApprovalDecisionResponse
from leaveflow.approvals.service import ApprovalService
from leaveflow.auth.context import AuthorizationContext
from leaveflow.auth.dependencies import require_role
from leaveflow.common.constants import (
    ApprovalAction,
    LeavePriority,
    LeaveStatus,
    UserRole,
)
from leaveflow.common.pagination import PaginationParams
from leaveflow.database import get_db
from leaveflow.leave.schemas import LeaveRequestOut

router = APIRouter(prefix="/approvals", tags=["approvals"])

_branch_approver = require_role(UserRole.branch_admin, UserRole.branch_manager)
_org_approver = require_role(UserRole.super_admin)


# ── GET /approvals/primary ──────────────────────────────────────────

@router.get("/primary")
async def primary_queue(
    status: LeaveStatus = Query(LeaveStatus.pending),
    branch_id: Optional[uuid.UUID] = Query(None),
    priority: Optional[LeavePriority] = Query(None),
    pagination: PaginationParams = Depends(),
    ctx: AuthorizationContext = Depends(_branch_approver),
    db: AsyncSession = Depends(get_db),
):
    """Requests from the caller's branch, most urgent and oldest first."""
    return await ApprovalService.primary_queue(
        db, ctx, pagination, status=status, branch_id=branch_id, priority=priority,
    )


# ── POST /approvals/primary ─────────────────────────────────────────

@router.post("/primary", response_model=ApprovalDecisionResponse)
async def primary_decision(
    body: ApprovalDecisionRequest,
    ctx: AuthorizationContext = Depends(_branch_approver),
    db: AsyncSession = Depends(get_db),
):
    leave_req = await ApprovalService.primary_decision(
        db, ctx, body.leave_request_id, body.action, body.comments,
    )
    verb = "approved" if body.action is ApprovalAction.approve else "rejected"
    return ApprovalDecisionResponse(
        message=f"Leave request {verb} successfully",
        data=LeaveRequestOut.model_validate(leave_req),
    )


# ── GET /approvals/final ────────────────────────────────────────────

@router.get("/final")
async def final_queue(
    status: LeaveStatus = Query(LeaveStatus.primary_approved),
    branch_id: Optional[uuid.UUID] = Query(None),
    priority: Optional[LeavePriority] = Query(None),
    pagination: PaginationParams = Depends(),
    ctx: AuthorizationContext = Depends(_org_approver),
    db: AsyncSession = Depends(get_db),
):
    """Organization-wide final-review queue, optionally filtered by branch."""
    return await ApprovalService.final_queue(
        db, ctx, pagination, status=status, branch_id=branch_id, priority=priority,
    )


# ── POST /approvals/final ───────────────────────────────────────────

@router.post("/final", response_model=ApprovalDecisionResponse)
async def final_decision(
    body: ApprovalDecisionRequest,
    ctx: AuthorizationContext = Depends(_org_approver),
    db: AsyncSession = Depends(get_db),
):
    leave_req = await ApprovalService.final_decision(
        db, ctx, body.leave_request_id, body.action, body.comments,
    )
    verb = "finally approved" if body.action is ApprovalAction.approve else "finally rejected"
    return ApprovalDecisionResponse(
        message=f"Leave request {verb} successfully",
        data=LeaveRequestOut.model_validate(leave_req),
    )
