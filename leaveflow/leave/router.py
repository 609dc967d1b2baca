"""Leave request router — submit, list, get.

All endpoints require authentication; scoping is enforced by the service.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.context import AuthorizationContext
from leaveflow.auth.dependencies import get_auth_context
from leaveflow.common.constants import LeaveStatus, LeaveType
from leaveflow.common.pagination import PaginationParams
from leaveflow.common.rate_limit import limiter
from leaveflow.database import get_db
from leaveflow.leave.schemas import (
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveSubmitResponse,
)
from leaveflow.leave.service import LeaveService

router = APIRouter(prefix="/requests", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("", response_model=LeaveSubmitResponse, status_code=201)
@limiter.limit("20/minute")
async def submit_leave(
    request: Request,
    body: LeaveRequestCreate,
    ctx: AuthorizationContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Validates range, overlap and balance policy."""
    leave_req = await LeaveService.submit(
        db,
        ctx,
        employee_id=body.employee_id,
        leave_type=body.leave_type,
        priority=body.priority,
        start_date=body.start_date,
        end_date=body.end_date,
        reason=body.reason,
        attachment_url=body.attachment_url,
    )
    return LeaveSubmitResponse.from_request(leave_req)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("")
async def list_leave_requests(
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    pagination: PaginationParams = Depends(),
    ctx: AuthorizationContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Leave requests visible to the caller, newest first."""
    return await LeaveService.list_requests(
        db,
        ctx,
        pagination,
        employee_id=employee_id,
        status=status,
        leave_type=leave_type,
        year=year,
    )


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    ctx: AuthorizationContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_request(db, ctx, request_id)
