"""Access-token encoding/decoding for the caller identity claims."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import jwt

from leaveflow.common.constants import UserRole
from leaveflow.config import settings


def create_access_token(
    caller_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    *,
    branch_id: Optional[uuid.UUID] = None,
    expires_in: Optional[timedelta] = None,
) -> str:
    """Issue a signed access token carrying ``sub``, ``role`` and ``branch_id``.

    Tokens are normally minted by the external identity provider; this helper
    exists for local development and tests.
    """
    exp = datetime.now(timezone.utc) + (
        expires_in if expires_in is not None else timedelta(hours=settings.JWT_EXPIRY_HOURS)
    )
    payload: dict[str, Any] = {
        "sub": str(caller_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    if branch_id is not None:
        payload["branch_id"] = str(branch_id)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a token; raises ``jose.JWTError`` subclasses on failure."""
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
    )
