"""
Security utilities for admin authentication.

- JWT (python-jose) with sub/email/name/iat/exp claims.
- Password hashing through a passlib CryptContext.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from jose import jwt
from jose.exceptions import JWTError
from passlib.context import CryptContext

from app.core.config import settings
from app.core.exceptions import AuthenticationError

# =============================================================================
# Password hashing
# =============================================================================
# pbkdf2_sha256 hashes new passwords; bcrypt hashes from older seeds still verify
pwd_context = CryptContext(
    schemes=["pbkdf2_sha256", "bcrypt"],
    deprecated="auto",
)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


# =============================================================================
# JWT
# =============================================================================
def _utcnow() -> datetime:
    return datetime.now(UTC)


def create_access_token(
    subject: str,
    *,
    email: str,
    name: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    now = _utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload: dict[str, Any] = {
        "sub": str(subject),
        "email": email,
        "name": name,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate a token; raises AuthenticationError on any failure."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        raise AuthenticationError("Token invalid sau expirat", "unauthorized") from e
    if not payload.get("sub"):
        raise AuthenticationError("Token invalid sau expirat", "unauthorized")
    return payload


__all__ = [
    "pwd_context",
    "get_password_hash",
    "verify_password",
    "create_access_token",
    "decode_access_token",
]
