"""Leave ORM models: LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.constants import (
    ApprovalLevel,
    LeavePriority,
    LeaveStatus,
    LeaveType,
    enum_values,
)
from leaveflow.database import Base, utcnow

if TYPE_CHECKING:
    from leaveflow.directory.models import Employee

# Name of the PostgreSQL exclusion constraint created by the initial migration.
OVERLAP_CONSTRAINT_NAME = "ex_leave_requests_no_overlap"


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("total_days >= 1", name="ck_leave_requests_total_days"),
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_requests_range"),
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
        sa.Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_requests_status_priority", "status", "priority", "created_at"),
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
    priority: Mapped[LeavePriority] = mapped_column(
        sa.Enum(
            LeavePriority, name="leave_priority", native_enum=False, length=10,
            values_callable=enum_values,
        ),
        default=LeavePriority.medium,
        server_default=LeavePriority.medium.value,
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    attachment_url: Mapped[Optional[str]] = mapped_column(sa.String(500))
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(
            LeaveStatus, name="leave_status", native_enum=False, length=20,
            values_callable=enum_values,
        ),
        default=LeaveStatus.pending,
        server_default=LeaveStatus.pending.value,
        nullable=False,
    )
    current_approval_level: Mapped[int] = mapped_column(
        sa.Integer,
        default=ApprovalLevel.primary.value,
        server_default=sa.text("1"),
        nullable=False,
    )

    # Primary (branch) stage
    primary_approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    primary_approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    primary_comments: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Final (organization) stage
    final_approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    final_approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    final_comments: Mapped[Optional[str]] = mapped_column(sa.Text)

    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.start_date}..{self.end_date} "
            f"{getattr(self.status, 'value', self.status)}>"
        )
