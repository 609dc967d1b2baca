"""Auth dependencies — bearer token → AuthorizationContext, role enforcement."""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError

from leaveflow.auth.context import AuthorizationContext
from leaveflow.auth.tokens import decode_access_token
from leaveflow.common.constants import UserRole
from leaveflow.common.exceptions import ForbiddenException


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_auth_context(request: Request) -> AuthorizationContext:
    """Validate the bearer token and build the caller's AuthorizationContext."""
    token = _extract_bearer(request)

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        caller_id = uuid.UUID(payload["sub"])
        role = UserRole(payload.get("role", UserRole.employee.value))
        raw_branch = payload.get("branch_id")
        branch_id = uuid.UUID(raw_branch) if raw_branch else None
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Malformed identity claims.")

    ctx = AuthorizationContext(caller_id=caller_id, role=role, branch_id=branch_id)
    request.state.auth = ctx
    return ctx


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    No hierarchy: the final-approval tier is not implied by the branch tier
    and vice versa.
    """

    async def _check(
        ctx: AuthorizationContext = Depends(get_auth_context),
    ) -> AuthorizationContext:
        if ctx.role not in allowed_roles:
            raise ForbiddenException(
                detail=f"Role '{ctx.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return ctx

    return _check
