"""Read-only directory lookups used by the leave engine."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.exceptions import NotFoundException
from leaveflow.directory.models import Employee


async def get_employee(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    active_only: bool = True,
    lock: bool = False,
) -> Employee:
    """Load an employee or raise ``NotFoundException``.

    With ``lock=True`` the row is selected ``FOR UPDATE``; callers use this
    to serialize check-then-insert sequences per employee for the rest of
    the transaction.
    """
    query = select(Employee).where(Employee.id == employee_id)
    if active_only:
        query = query.where(Employee.is_active.is_(True))
    if lock:
        query = query.with_for_update()

    result = await db.execute(query)
    employee = result.scalars().first()
    if employee is None:
        raise NotFoundException("Employee", str(employee_id))
    return employee

