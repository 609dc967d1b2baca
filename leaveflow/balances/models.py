"""Balance ledger ORM models: LeaveBalance, LeaveBalanceAdjustment."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.constants import AdjustmentType, LeaveType, enum_values
from leaveflow.database import Base, utcnow

if TYPE_CHECKING:
    from leaveflow.directory.models import Employee


class LeaveBalance(Base):
    """Entitlement for one (employee, year, leave type).

    ``available`` is derived: total_allowed + carried_forward - used - pending.
    Only ``recalculate()`` writes it.
    """

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "year", "leave_type", name="uq_leave_balance"
        ),
        sa.CheckConstraint("total_allowed >= 0", name="ck_leave_balance_allowed"),
        sa.CheckConstraint("carried_forward >= 0", name="ck_leave_balance_cf"),
        sa.CheckConstraint("used >= 0", name="ck_leave_balance_used"),
        sa.CheckConstraint("pending >= 0", name="ck_leave_balance_pending"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(
            LeaveType, name="leave_type", native_enum=False, length=20,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    total_allowed: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0"), nullable=False
    )
    used: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0"), nullable=False
    )
    pending: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0"), nullable=False
    )
    carried_forward: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0"), nullable=False
    )
    available: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0"), nullable=False
    )
    version: Mapped[int] = mapped_column(
        sa.Integer, server_default=sa.text("1"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

    # Optimistic concurrency: UPDATE ... WHERE version = :seen
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="leave_balances")

    @classmethod
    def new(
        cls,
        employee_id: uuid.UUID,
        year: int,
        leave_type: LeaveType,
        *,
        total_allowed: int = 0,
        carried_forward: int = 0,
    ) -> "LeaveBalance":
        """Fresh row with nothing used or pending."""
        balance = cls(
            employee_id=employee_id,
            year=year,
            leave_type=leave_type,
            total_allowed=total_allowed,
            used=0,
            pending=0,
            carried_forward=carried_forward,
        )
        balance.recalculate()
        return balance

    def recalculate(self) -> int:
        """Derive ``available`` from the ledger inputs and return it."""
        self.available = (
            self.total_allowed + self.carried_forward - self.used - self.pending
        )
        return self.available

    def apply(
        self,
        *,
        total_allowed: Optional[int] = None,
        carried_forward: Optional[int] = None,
        used_delta: int = 0,
        pending_delta: int = 0,
    ) -> None:
        """The single mutation path for a balance row.

        Absolute values replace the field; deltas are added. Pending never
        drops below zero. ``available`` is recomputed; the mapper bumps
        ``version`` when the change is flushed.
        """
        if total_allowed is not None:
            self.total_allowed = total_allowed
        if carried_forward is not None:
            self.carried_forward = carried_forward
        self.used += used_delta
        self.pending = max(0, self.pending + pending_delta)
        self.recalculate()
        self.updated_at = utcnow()

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance {self.employee_id} {self.year} "
            f"{getattr(self.leave_type, 'value', self.leave_type)} avail={self.available}>"
        )


class LeaveBalanceAdjustment(Base):
    """Append-only record of every balance mutation."""

    __tablename__ = "leave_balance_adjustments"
    __table_args__ = (
        sa.Index(
            "ix_leave_adjustment_emp_year", "employee_id", "year", "leave_type"
        ),
        sa.CheckConstraint("days >= 0", name="ck_leave_adjustment_days"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(
            LeaveType, name="leave_type", native_enum=False, length=20,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    adjustment_type: Mapped[AdjustmentType] = mapped_column(
        sa.Enum(
            AdjustmentType, name="adjustment_type", native_enum=False, length=20,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    adjusted_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    leave_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_requests.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        server_default=sa.func.now(),
    )
