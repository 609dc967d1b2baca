"""Balance ledger Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leaveflow.common.constants import AdjustmentType, LeaveType


class LeaveBalanceOut(BaseModel):
    """One (employee, year, leave type) balance row."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    year: int
    leave_type: LeaveType
    total_allowed: int
    used: int
    pending: int
    carried_forward: int
    available: int
    version: int
    updated_at: Optional[datetime] = None


class BalanceAdjustRequest(BaseModel):
    """Organization-admin balance adjustment payload."""

    employee_id: uuid.UUID
    year: int = Field(..., ge=1970, le=9999)
    leave_type: LeaveType
    adjustment_type: AdjustmentType
    days: int = Field(..., ge=0, description="Days to add, deduct, set or carry forward")
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reason must not be blank.")
        return v.strip()


class BalanceRecomputeRequest(BaseModel):
    employee_id: uuid.UUID
    year: int = Field(..., ge=1970, le=9999)


class LeaveBalanceAdjustmentOut(BaseModel):
    """Entry of the append-only adjustment audit trail."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    year: int
    adjustment_type: AdjustmentType
    days: int
    reason: str
    adjusted_by: Optional[uuid.UUID] = None
    leave_request_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
