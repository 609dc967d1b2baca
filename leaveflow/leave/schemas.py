"""Leave request Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create        → request bodies (write)
  - *Out / *Response → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leaveflow.common.constants import LeavePriority, LeaveStatus, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request.

    ``employee_id`` defaults to the caller. The date range is checked by the
    service so that an inverted range reports as an invalid range.
    """

    employee_id: Optional[uuid.UUID] = Field(
        None, description="Employee the request is for; defaults to the caller"
    )
    leave_type: LeaveType
    priority: LeavePriority = LeavePriority.medium
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., min_length=1, max_length=1000)
    attachment_url: Optional[str] = Field(None, max_length=500)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reason must not be blank.")
        return v.strip()

    @field_validator("attachment_url")
    @classmethod
    def empty_attachment_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Responses
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    priority: LeavePriority
    start_date: date
    end_date: date
    total_days: int
    reason: str
    attachment_url: Optional[str] = None
    status: LeaveStatus
    current_approval_level: int

    primary_approver_id: Optional[uuid.UUID] = None
    primary_approved_at: Optional[datetime] = None
    primary_comments: Optional[str] = None
    final_approver_id: Optional[uuid.UUID] = None
    final_approved_at: Optional[datetime] = None
    final_comments: Optional[str] = None

    rejection_reason: Optional[str] = None
    rejected_by: Optional[uuid.UUID] = None
    rejected_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LeaveSubmitResponse(BaseModel):
    """Returned by POST /leave/requests (201)."""

    message: str = "Leave request submitted successfully"
    request_id: uuid.UUID
    status: LeaveStatus
    total_days: int
    data: LeaveRequestOut

    @classmethod
    def from_request(cls, leave_req) -> "LeaveSubmitResponse":
        return cls(
            request_id=leave_req.id,
            status=leave_req.status,
            total_days=leave_req.total_days,
            data=LeaveRequestOut.model_validate(leave_req),
        )
