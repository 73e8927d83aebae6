# app/core/__init__.py
"""
Print3D core package: settings, logging, exceptions, database and security.

    from app.core import settings, get_logger
"""

from app.core.config import get_settings, settings
from app.core.logging import audit_logger, get_logger

__all__ = ["settings", "get_settings", "get_logger", "audit_logger"]
