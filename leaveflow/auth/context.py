"""AuthorizationContext — the caller identity passed into every core operation."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict

from leaveflow.common.constants import (
    BRANCH_APPROVER_ROLES,
    ORG_APPROVER_ROLES,
    UserRole,
)


class AuthorizationContext(BaseModel):
    """Who is calling, in which role, scoped to which branch.

    Resolved once by the auth dependency from a trusted token and then
    handed explicitly to the services; nothing downstream looks roles up
    on its own.
    """

    model_config = ConfigDict(frozen=True)

    caller_id: uuid.UUID
    role: UserRole
    branch_id: Optional[uuid.UUID] = None

    @property
    def is_org_admin(self) -> bool:
        return self.role in ORG_APPROVER_ROLES

    @property
    def is_branch_approver(self) -> bool:
        return self.role in BRANCH_APPROVER_ROLES and self.branch_id is not None

    def manages_branch(self, branch_id: Optional[uuid.UUID]) -> bool:
        """True when the caller holds branch authority over *branch_id*."""
        return (
            self.is_branch_approver
            and branch_id is not None
            and self.branch_id == branch_id
        )

    def can_view_employee(
        self,
        employee_id: uuid.UUID,
        employee_branch_id: Optional[uuid.UUID],
    ) -> bool:
        """Self, a branch approver of the employee's branch, or an org admin."""
        return (
            self.caller_id == employee_id
            or self.is_org_admin
            or self.manages_branch(employee_branch_id)
        )
