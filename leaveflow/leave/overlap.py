"""Overlap guard: active requests of one employee may not share a day."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import ACTIVE_LEAVE_STATUSES
from leaveflow.leave.models import LeaveRequest


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive date ranges intersect (touching on one day counts)."""
    return a_start <= b_end and a_end >= b_start


def _overlap_filter(
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
    exclude_id: Optional[uuid.UUID],
):
    clauses = [
        LeaveRequest.employee_id == employee_id,
        LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
        LeaveRequest.start_date <= end_date,
        LeaveRequest.end_date >= start_date,
    ]
    if exclude_id is not None:
        clauses.append(LeaveRequest.id != exclude_id)
    return clauses


async def find_overlapping(
    db: AsyncSession,
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    exclude_id: Optional[uuid.UUID] = None,
) -> list[LeaveRequest]:
    """Active requests of *employee_id* intersecting [start_date, end_date]."""
    result = await db.execute(
        select(LeaveRequest)
        .where(*_overlap_filter(employee_id, start_date, end_date, exclude_id))
        .order_by(LeaveRequest.start_date)
    )
    return list(result.scalars().all())


async def has_overlap(
    db: AsyncSession,
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    exclude_id: Optional[uuid.UUID] = None,
) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(LeaveRequest)
        .where(*_overlap_filter(employee_id, start_date, end_date, exclude_id))
    )
    return result.scalar_one() > 0
