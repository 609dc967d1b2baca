"""Directory ORM models: Branch, Team, Employee.

Reference data owned by the surrounding HR application. The leave engine
reads these tables (employee → branch, employee → team) and never writes
them through its API.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.database import Base, utcnow

if TYPE_CHECKING:
    from leaveflow.balances.models import LeaveBalance
    from leaveflow.leave.models import LeaveRequest


# ═════════════════════════════════════════════════════════════════════
# Branch
# ═════════════════════════════════════════════════════════════════════


class Branch(Base):
    """Office branch — the scope of primary (first-stage) approval."""

    __tablename__ = "branches"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), unique=True, nullable=False)
    code: Mapped[Optional[str]] = mapped_column(sa.String(20), unique=True)
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.true(),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    teams: Mapped[list[Team]] = relationship(back_populates="branch")
    employees: Mapped[list[Employee]] = relationship(back_populates="branch")

    def __repr__(self) -> str:
        return f"<Branch {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════
# Team
# ═════════════════════════════════════════════════════════════════════


class Team(Base):
    __tablename__ = "teams"
    __table_args__ = (
        sa.UniqueConstraint("name", "branch_id", name="uq_team_name_branch"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("branches.id"), nullable=False,
    )

    branch: Mapped[Branch] = relationship(back_populates="teams")
    employees: Mapped[list[Employee]] = relationship(back_populates="team")

    def __repr__(self) -> str:
        return f"<Team {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Employee record as seen by the leave engine."""

    __tablename__ = "employees"
    __table_args__ = (
        sa.Index("ix_employees_branch", "branch_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("branches.id"),
    )
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("teams.id"),
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.true(),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    branch: Mapped[Optional[Branch]] = relationship(back_populates="employees")
    team: Mapped[Optional[Team]] = relationship(back_populates="employees")
    leave_requests: Mapped[list[LeaveRequest]] = relationship(
        back_populates="employee",
        foreign_keys="LeaveRequest.employee_id",
    )
    leave_balances: Mapped[list[LeaveBalance]] = relationship(
        back_populates="employee",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} {self.full_name!r}>"
