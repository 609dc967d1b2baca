"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

BASE_ERROR_URI = "https://leaveflow.dev/errors"

logger = logging.getLogger(__name__)


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ForbiddenException(AppException):
    """403 — caller role or branch scope does not allow the action."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """400 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=400,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class InvalidRangeException(ValidationException):
    """400 — end date before start date."""

    def __init__(self, start_date: Any, end_date: Any) -> None:
        super().__init__(
            {"end_date": [
                f"end_date ({end_date}) must be on or after start_date ({start_date})."
            ]}
        )
        self.error_type = "invalid-range"


class InsufficientBalanceException(ValidationException):
    """400 — balance policy refuses a request that exceeds available days."""

    def __init__(self, leave_type: str, available: int, requested: int) -> None:
        super().__init__(
            {"balance": [
                f"Insufficient {leave_type} balance. "
                f"Available: {available}, Requested: {requested}."
            ]}
        )
        self.error_type = "insufficient-balance"


class OverlappingRequestException(AppException):
    """400 — the date range collides with another active request."""

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(
            status_code=400,
            error_type="overlapping-request",
            title="Overlapping Request",
            detail=detail or (
                "You already have a pending or approved leave request "
                "overlapping with these dates."
            ),
            errors={"dates": ["Overlaps an existing leave request."]},
        )


class InvalidStateException(AppException):
    """400 — transition attempted from the wrong state."""

    def __init__(self, current: Any, expected: Any) -> None:
        current_value = getattr(current, "value", current)
        expected_value = getattr(expected, "value", expected)
        super().__init__(
            status_code=400,
            error_type="invalid-state",
            title="Invalid State",
            detail=(
                f"Leave request is {current_value}; "
                f"this action requires {expected_value}."
            ),
            errors={"status": [str(current_value)]},
        )
        self.current = current
        self.expected = expected


class StorageException(AppException):
    """503 — the store failed for a reason unrelated to a domain invariant."""

    def __init__(self, detail: str = "Database error. Please try again later.") -> None:
        super().__init__(
            status_code=503,
            error_type="storage-error",
            title="Storage Error",
            detail=detail,
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=400,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 400,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


async def _handle_storage_error(
    request: Request,
    exc: SQLAlchemyError,
) -> JSONResponse:
    logger.exception("Unhandled storage error on %s", request.url.path, exc_info=exc)
    return await _handle_app_exception(request, StorageException())


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _handle_storage_error)       # type: ignore[arg-type]
