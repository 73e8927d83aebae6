# app/core/exceptions.py
from __future__ import annotations

"""
Unified exceptions & handlers for Print3D.

- Domain exceptions carrying a machine-readable `code` (not_found, invalid_status, no_price, ...)
- Global FastAPI handlers with structured logging via app.core.logging
- RFC 7807-style JSON body (problem+json-compatible fields)
- IntegrityError parsing (duplicate/foreign key/not null) for PG/SQLite
"""

import re
from typing import Any, Dict, Optional, Tuple, Mapping

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException

from app.core.logging import bound_context, get_logger, redact_secrets

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Domain exceptions
# -----------------------------------------------------------------------------

class Print3DException(Exception):
    """Base domain exception."""
    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        http_status: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.extra = extra or {}
        self.headers = headers or {}
        self.http_status = http_status
        super().__init__(self.message)

class AuthenticationError(Print3DException):
    """Authentication related errors."""

class Print3DValidationError(Print3DException):
    """Validation related errors."""

class NotFoundError(Print3DException):
    """Resource not found errors."""

class ConflictError(Print3DException):
    """Resource conflict errors."""

class PreconditionError(Print3DException):
    """A prerequisite of the requested operation is missing (e.g. no price)."""

class InvalidStatusError(PreconditionError):
    """The order is not in a status that allows the requested operation."""

    def __init__(self, message: str, *, current: Any = None, target: Any = None):
        extra = {}
        if current is not None:
            extra["current_status"] = getattr(current, "value", current)
        if target is not None:
            extra["target_status"] = getattr(target, "value", target)
        super().__init__(message, "invalid_status", extra=extra)

class ExternalServiceError(Print3DException):
    """External service errors."""

class EmailDeliveryError(ExternalServiceError):
    """Email could not be handed to the SMTP server."""

class StorageError(ExternalServiceError):
    """Blob storage upload/delete/fetch failed."""

class PaymentProviderError(ExternalServiceError):
    """Payment provider call failed."""

class WebhookVerificationError(Print3DException):
    """Incoming webhook payload or signature is invalid."""

class InvoiceGenerationError(ExternalServiceError):
    """Invoice PDF could not be rendered or stored."""

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _problem_json(
    title: str,
    detail: str,
    status_code: int,
    code: Optional[str] = None,
    instance: Optional[str] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    RFC 7807 inspired body (application/problem+json compatible).
    `error` mirrors `code` so clients can switch on a single field.
    """
    body: Dict[str, Any] = {
        "type": f"https://httpstatuses.com/{status_code}",
        "title": title,
        "status": status_code,
        "detail": detail,
        "error": code or title,
        "code": code,
    }
    if instance:
        body["instance"] = instance
    if extras:
        body["extra"] = redact_secrets(extras)
    return {k: v for k, v in body.items() if v is not None}

def _extract_request_id(headers: Mapping[str, str]) -> str:
    for k in ("x-request-id", "x-correlation-id"):
        if k in headers:
            return headers.get(k, "")
    return ""

def _json_problem_response(
    status_code: int,
    content: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=headers or {}, media_type="application/problem+json")

# -----------------------------------------------------------------------------
# IntegrityError parsing (Postgres/SQLite common patterns)
# -----------------------------------------------------------------------------

_DUP_RE = re.compile(r"duplicate key|unique constraint|unique violation", re.IGNORECASE)
_FK_RE = re.compile(r"foreign key", re.IGNORECASE)
_NOTNULL_RE = re.compile(r"not null", re.IGNORECASE)

def _parse_integrity_error(exc: IntegrityError) -> Tuple[str, str]:
    """Returns (message, code) for user-friendly error mapping."""
    text = str(getattr(exc, "orig", exc))
    if _DUP_RE.search(text):
        return ("A record with this value already exists", "duplicate_value")
    if _FK_RE.search(text):
        return ("Referenced record does not exist", "foreign_key_error")
    if _NOTNULL_RE.search(text):
        return ("Required field is missing", "required_field")
    return ("A database constraint was violated", "integrity_error")

def status_for_exception(exc: Print3DException) -> Tuple[int, str]:
    """Map a domain exception onto (HTTP status, problem title)."""
    if isinstance(exc, AuthenticationError):
        return exc.http_status or status.HTTP_401_UNAUTHORIZED, "Authentication error"
    if isinstance(exc, NotFoundError):
        return exc.http_status or status.HTTP_404_NOT_FOUND, "Resource not found"
    if isinstance(exc, ConflictError):
        return exc.http_status or status.HTTP_409_CONFLICT, "Conflict"
    if isinstance(exc, InvalidStatusError):
        return exc.http_status or status.HTTP_400_BAD_REQUEST, "Invalid order status"
    if isinstance(exc, ExternalServiceError):
        return exc.http_status or status.HTTP_500_INTERNAL_SERVER_ERROR, "Upstream service error"
    if isinstance(exc, Print3DValidationError):
        return exc.http_status or status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error"
    return exc.http_status or status.HTTP_400_BAD_REQUEST, "Bad request"

# -----------------------------------------------------------------------------
# Exception Handlers (FastAPI)
# -----------------------------------------------------------------------------

async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for uncaught exceptions."""
    rid = _extract_request_id(request.headers)
    with bound_context(request_id=rid or None):
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

    body = _problem_json(
        title="Internal server error",
        detail="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="server_error",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, body)

async def print3d_exception_handler(request: Request, exc: Print3DException) -> JSONResponse:
    """Handler for our domain exceptions. Maps to appropriate HTTP status codes."""
    sc, title = status_for_exception(exc)
    if sc == status.HTTP_401_UNAUTHORIZED:
        exc.headers.setdefault("WWW-Authenticate", "Bearer")

    rid = _extract_request_id(request.headers)
    with bound_context(request_id=rid or None):
        log = logger.error if sc >= 500 else logger.warning
        log(
            "Domain exception",
            exception_type=type(exc).__name__,
            message=exc.message,
            code=exc.code,
            path=request.url.path,
            method=request.method,
            extra=redact_secrets(exc.extra),
        )

    body = _problem_json(
        title=title,
        detail=exc.message,
        status_code=sc,
        code=exc.code,
        instance=str(request.url),
        extras=exc.extra,
    )
    return _json_problem_response(sc, body, headers=exc.headers)

async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Handler for DB integrity errors (duplicate, FK, not null)."""
    msg, code = _parse_integrity_error(exc)
    logger.warning(
        "Database integrity error",
        error=str(getattr(exc, "orig", exc)),
        path=request.url.path,
        method=request.method,
        code=code,
    )
    body = _problem_json(
        title="Integrity error",
        detail=msg,
        status_code=status.HTTP_409_CONFLICT,
        code=code,
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_409_CONFLICT, body)

async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors raised outside request parsing."""
    errs = exc.errors()
    logger.warning("Validation error", errors=redact_secrets(errs), path=request.url.path, method=request.method)
    body = _problem_json(
        title="Validation error",
        detail="One or more fields failed validation",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        instance=str(request.url),
        extras={"errors": errs},
    )
    return _json_problem_response(status.HTTP_422_UNPROCESSABLE_ENTITY, body)

async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for FastAPI RequestValidationError (body/query/path validation)."""
    errs = [
        {"path": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
        for e in exc.errors()
    ]
    logger.warning("Request validation error", errors=errs, path=request.url.path, method=request.method)
    body = _problem_json(
        title="Validation error",
        detail="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        instance=str(request.url),
        extras={"errors": errs},
    )
    return _json_problem_response(status.HTTP_422_UNPROCESSABLE_ENTITY, body)

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTP exceptions (unknown routes, wrong methods, framework errors)."""
    logger.info(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    body = _problem_json(
        title=f"HTTP {exc.status_code}",
        detail=str(exc.detail),
        status_code=exc.status_code,
        code=f"http_{exc.status_code}",
        instance=str(request.url),
    )
    return _json_problem_response(exc.status_code, body, headers=exc.headers or {})

async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Generic SQLAlchemy errors (not integrity)."""
    logger.error("SQLAlchemy error", exc_info=exc, path=request.url.path, method=request.method)
    body = _problem_json(
        title="Database error",
        detail="Database operation failed",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="db_error",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, body)

async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Operational DB errors (timeouts, connection issues)."""
    logger.error("DB operational error", exc_info=exc, path=request.url.path, method=request.method)
    body = _problem_json(
        title="Database unavailable",
        detail="Database is temporarily unavailable. Please retry later.",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code="db_unavailable",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_503_SERVICE_UNAVAILABLE, body)

# -----------------------------------------------------------------------------
# Registration
# -----------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to FastAPI app."""
    app.add_exception_handler(Print3DException, print3d_exception_handler)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    app.add_exception_handler(IntegrityError, integrity_error_handler)          # 409
    app.add_exception_handler(OperationalError, operational_error_handler)      # 503
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)    # 500

    app.add_exception_handler(Exception, global_exception_handler)

__all__ = [
    "Print3DException",
    "AuthenticationError",
    "Print3DValidationError",
    "NotFoundError",
    "ConflictError",
    "PreconditionError",
    "InvalidStatusError",
    "ExternalServiceError",
    "EmailDeliveryError",
    "StorageError",
    "PaymentProviderError",
    "WebhookVerificationError",
    "InvoiceGenerationError",
    "status_for_exception",
    "register_exception_handlers",
]
