"""Application exceptions and their RFC 7807 Problem Detail rendering.

Every error leaving the API is ``application/problem+json``::

    {"type": ".../errors/<error_type>", "title": ..., "status": ...,
     "detail": ..., "instance": "/api/v1/...", "errors": {field: [msg]}}

Business rules raise the subclasses below from the service layer; routers
never build error responses themselves.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)

BASE_ERROR_URI = "https://leaveflow.dev/errors"
PROBLEM_JSON = "application/problem+json"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON.

    Subclasses set the class-level defaults; ``extensions`` are extra
    top-level members merged into the problem body.
    """

    status_code: int = 500
    error_type: str = "internal-error"
    title: str = "Internal Server Error"

    def __init__(
        self,
        detail: str,
        *,
        errors: Optional[dict[str, Any]] = None,
        title: Optional[str] = None,
        extensions: Optional[dict[str, Any]] = None,
    ) -> None:
        self.detail = detail
        self.errors = errors
        if title is not None:
            self.title = title
        self.extensions = extensions or {}
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    status_code = 404
    error_type = "not-found"

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity_type} with id '{entity_id}' does not exist.",
            title=f"{entity_type} Not Found",
        )


class ConflictError(AppException):
    """409 — duplicate code, name, email or a second default bucket."""

    status_code = 409
    error_type = "conflict"
    title = "Conflict"

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class UnauthorizedException(AppException):
    """401 — missing or unknown caller identity."""

    status_code = 401
    error_type = "unauthorized"
    title = "Unauthorized"

    def __init__(self, detail: str = "Authentication required.") -> None:
        super().__init__(detail)


class ForbiddenException(AppException):
    """403 — caller is not the owner, the approver or HR."""

    status_code = 403
    error_type = "forbidden"
    title = "Forbidden"

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(detail)


class ValidationException(AppException):
    """422 — business-rule failures raised before any ledger effect."""

    status_code = 422
    error_type = "validation-error"
    title = "Validation Error"

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__("One or more fields failed validation.", errors=errors)


class InvalidTransitionException(AppException):
    """409 — leave status change not allowed by the state machine."""

    status_code = 409
    error_type = "invalid-transition"
    title = "Invalid Status Transition"

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(
            f"A leave application cannot move from '{from_status}' to '{to_status}'.",
            errors={"status": [f"'{from_status}' → '{to_status}' is not allowed."]},
            extensions={"from_status": from_status, "to_status": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


# ── RFC 7807 builder ────────────────────────────────────────────────

def _problem(
    request: Request,
    *,
    status: int,
    error_type: str,
    title: str,
    detail: str,
    errors: Optional[dict[str, Any]] = None,
    extensions: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{error_type}",
        "title": title,
        "status": status,
        "detail": detail,
        "instance": str(request.url.path),
    }
    if errors:
        body["errors"] = errors
    if extensions:
        body.update(extensions)
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_JSON)


def _field_name(loc: tuple) -> str:
    # Drop the leading "body" / "query" / "header" segment.
    if len(loc) > 1:
        return ".".join(str(p) for p in loc[1:])
    return str(loc[0]) if loc else "unknown"


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    return _problem(
        request,
        status=exc.status_code,
        error_type=exc.error_type,
        title=exc.title,
        detail=exc.detail,
        errors=exc.errors,
        extensions=exc.extensions,
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        field_errors.setdefault(_field_name(tuple(err.get("loc", ()))), []).append(
            err.get("msg", "Invalid value")
        )
    return _problem(
        request,
        status=422,
        error_type="validation-error",
        title="Validation Error",
        detail="Request validation failed.",
        errors=field_errors,
    )


async def _handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    """A unique or check constraint fired that the service layer did not pre-empt."""
    logger.warning("Integrity error on %s: %s", request.url.path, exc.orig)
    return _problem(
        request,
        status=409,
        error_type="conflict",
        title="Conflict",
        detail="The change conflicts with existing data.",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _handle_integrity_error)      # type: ignore[arg-type]
