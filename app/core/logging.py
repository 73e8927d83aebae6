# app/core/logging.py
"""
Centralized logging for Print3D.

Features:
- Stdlib logging (dictConfig) + structlog (JSON in prod, dev console otherwise).
- Rotating error log next to the main log file.
- Sensitive fields redaction.
- Request context (request_id, client_ip, user_agent, admin_id) via contextvars.
- ASGI middleware for request context & access logs.
- Audit logger for admin data changes.

Env knobs (via Settings):
  LOG_PATH=logs/app.log
  LOG_LEVEL=INFO
  LOG_FORMAT=json|text
  ENVIRONMENT=production|development|test
"""

from __future__ import annotations

import logging
import logging.config
import os
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Dict, Optional, Tuple

import structlog

from app.core.config import settings

# ---------- Context vars ----------
_ctx_request_id: ContextVar[str] = ContextVar("request_id", default="")
_ctx_admin_id: ContextVar[str] = ContextVar("admin_id", default="")
_ctx_client_ip: ContextVar[str] = ContextVar("client_ip", default="")
_ctx_user_agent: ContextVar[str] = ContextVar("user_agent", default="")

_CONFIGURED = False

# ---------- Secrets redaction ----------
_SECRET_KEYS = ("secret", "password", "token", "api_key", "iban", "signature")


def _mask_secret_value(v: Any) -> Any:
    s = str(v)
    if len(s) <= 6:
        return "***"
    return s[:3] + "***" + s[-3:]


def redact_secrets(data: Any) -> Any:
    if isinstance(data, dict):
        out: Dict[str, Any] = {}
        for k, v in data.items():
            lk = str(k).lower()
            if any(x in lk for x in _SECRET_KEYS) and "public" not in lk:
                out[k] = _mask_secret_value(v)
            else:
                out[k] = redact_secrets(v)
        return out
    if isinstance(data, list):
        return [redact_secrets(v) for v in data]
    if isinstance(data, tuple):
        return tuple(redact_secrets(v) for v in data)
    return data


# ---------- structlog processors ----------
def _inject_context(_, __, event_dict):
    rid = _ctx_request_id.get()
    aid = _ctx_admin_id.get()
    cip = _ctx_client_ip.get()
    ua = _ctx_user_agent.get()
    if rid:
        event_dict["request_id"] = rid
    if aid:
        event_dict["admin_id"] = aid
    if cip:
        event_dict["client_ip"] = cip
    if ua:
        event_dict["user_agent"] = ua
    return event_dict


def _redact_processor(_, __, event_dict):
    return redact_secrets(event_dict)


def _add_app(_, __, event_dict):
    event_dict["app"] = settings.PROJECT_NAME
    event_dict["version"] = settings.VERSION
    return event_dict


def _build_stdlib_dict_config(logs_dir: str) -> dict:
    os.makedirs(logs_dir, exist_ok=True)

    fmt_file = "%(asctime)s [%(levelname)s] %(name)s:%(filename)s:%(funcName)s:%(lineno)d - %(message)s"
    level = (settings.LOG_LEVEL or "INFO").upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": "%(message)s"},
            "file_detailed": {"format": fmt_file, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "level": level,
                "class": "logging.StreamHandler",
                "formatter": "console",
                "stream": "ext://sys.stdout",
            },
            "error_file": {
                "level": "ERROR",
                "class": "logging.handlers.RotatingFileHandler",
                "maxBytes": 10 * 1024 * 1024,
                "backupCount": 5,
                "formatter": "file_detailed",
                "filename": os.path.join(logs_dir, "errors.log"),
                "encoding": "utf8",
            },
        },
        "loggers": {
            "": {"handlers": ["console", "error_file"], "level": level, "propagate": False},
            "uvicorn": {"handlers": ["console"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["console", "error_file"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["console"], "level": "INFO", "propagate": False},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    }


def _configure_structlog() -> None:
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_context,
        _redact_processor,
        _add_app,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    json_output = settings.is_production or (
        (settings.LOG_FORMAT or "").lower() == "json" and not settings.DEBUG
    )
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------- Public API ----------
def setup_logging() -> None:
    """
    Centralized logging setup:
    - stdlib dictConfig (console + rotating error file)
    - structlog (JSON/console)
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    logs_dir = os.path.dirname(settings.LOG_PATH or "logs/app.log") or "logs"
    logging.config.dictConfig(_build_stdlib_dict_config(logs_dir))
    _configure_structlog()

    get_logger(__name__).info(
        "logging_initialized",
        environment=settings.ENVIRONMENT,
        level=settings.LOG_LEVEL,
        python=sys.version.split()[0],
    )
    _CONFIGURED = True


def get_logger(name: str):
    return structlog.get_logger(name)


# ---------- Context helpers ----------
def bind_context(
    request_id: Optional[str] = None,
    admin_id: Optional[str] = None,
    client_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    """Bind context values for subsequent logs."""
    if request_id is not None:
        _ctx_request_id.set(request_id)
    if admin_id is not None:
        _ctx_admin_id.set(str(admin_id))
    if client_ip is not None:
        _ctx_client_ip.set(client_ip)
    if user_agent is not None:
        _ctx_user_agent.set(user_agent)


@contextmanager
def bound_context(
    request_id: Optional[str] = None,
    admin_id: Optional[str] = None,
    client_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
):
    tokens: list[Tuple[ContextVar[str], Token]] = []
    if request_id is not None:
        tokens.append((_ctx_request_id, _ctx_request_id.set(request_id)))
    if admin_id is not None:
        tokens.append((_ctx_admin_id, _ctx_admin_id.set(str(admin_id))))
    if client_ip is not None:
        tokens.append((_ctx_client_ip, _ctx_client_ip.set(client_ip)))
    if user_agent is not None:
        tokens.append((_ctx_user_agent, _ctx_user_agent.set(user_agent)))
    try:
        yield
    finally:
        for var, tok in reversed(tokens):
            var.reset(tok)


class AuditLogger:
    def __init__(self):
        self.logger = get_logger("audit")

    def log_auth_success(self, admin_id: str, email: str, ip_address: str) -> None:
        self.logger.info("auth_success", admin_id=admin_id, email=email, ip_address=ip_address)

    def log_auth_failure(self, email: str, ip_address: str, reason: str) -> None:
        self.logger.warning("auth_failure", email=email, ip_address=ip_address, reason=reason)

    def log_data_change(
        self,
        admin_id: str | None,
        action: str,
        resource_type: str,
        resource_id: str,
        changes: dict[str, Any],
    ) -> None:
        self.logger.info(
            "data_change",
            admin_id=admin_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            changes=redact_secrets(changes),
        )


audit_logger = AuditLogger()


# ---------- ASGI middleware ----------
class LoggingContextMiddleware:
    """
    - Generates/reads X-Request-ID
    - Binds request context
    - Logs start/end with duration and status
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        headers = {k.decode().lower(): v.decode() for k, v in scope.get("headers", [])}
        request_id = headers.get("x-request-id") or str(uuid.uuid4())
        client = scope.get("client") or ("", 0)
        client_ip = client[0] if isinstance(client, (list, tuple)) and client else ""
        user_agent = headers.get("user-agent", "")
        path = scope.get("path", "")
        method = scope.get("method", "")

        start = time.perf_counter()
        status_code_holder = {"code": 500}

        async def _send(message):
            if message["type"] == "http.response.start":
                status_code_holder["code"] = message.get("status", 200)
                message.setdefault("headers", [])
                message["headers"] = list(message["headers"]) + [
                    (b"x-request-id", request_id.encode())
                ]
            await send(message)

        with bound_context(request_id=request_id, client_ip=client_ip, user_agent=user_agent):
            lg = get_logger("http")
            lg.info("request_start", method=method, path=path)
            try:
                await self.app(scope, receive, _send)
            finally:
                dur_ms = (time.perf_counter() - start) * 1000.0
                lg.info(
                    "request_end",
                    method=method,
                    path=path,
                    status=status_code_holder["code"],
                    duration_ms=round(dur_ms, 2),
                )


__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "bound_context",
    "AuditLogger",
    "audit_logger",
    "LoggingContextMiddleware",
    "redact_secrets",
]
