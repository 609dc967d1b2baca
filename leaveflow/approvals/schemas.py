"""Approval Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leaveflow.common.constants import ApprovalAction
from leaveflow.leave.schemas import LeaveRequestOut


class ApprovalDecisionRequest(BaseModel):
    """Body of POST /approvals/primary and /approvals/final."""

    leave_request_id: uuid.UUID
    action: ApprovalAction
    comments: Optional[str] = Field(None, max_length=1000)

    @field_validator("comments")
    @classmethod
    def blank_comments_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v


class ApprovalDecisionResponse(BaseModel):
    message: str
    data: LeaveRequestOut


class ApprovalQueueItem(LeaveRequestOut):
    """Queue row: the request plus who it belongs to."""

    model_config = ConfigDict(from_attributes=True)

    employee_code: Optional[str] = None
    employee_name: Optional[str] = None
    branch_id: Optional[uuid.UUID] = None
