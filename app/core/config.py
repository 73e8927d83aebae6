from __future__ import annotations

import os
import logging
from functools import lru_cache
from typing import Optional, List, Dict, Any

from pydantic import Field, EmailStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ================================
# HELPERS
# ================================
def _under_pytest() -> bool:
    return "PYTEST_CURRENT_TEST" in os.environ


def _mask_secret(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    s = str(val)
    if not s:
        return s
    if len(s) <= 6:
        return "***"
    return s[:3] + "***" + s[-3:]


def _parse_list_like(v):
    if isinstance(v, str):
        return [i.strip() for i in v.split(",") if i.strip()]
    return v


def _is_secret_key_name(key: str) -> bool:
    lk = key.lower()
    if any(s in lk for s in ("secret", "password", "token", "dsn")):
        return True
    if "key" in lk and "public" not in lk:
        return True
    return False


def normalize_async_database_url(url: str) -> str:
    """Map plain postgres URLs onto the asyncpg driver; other URLs pass through."""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql+"):
        return "postgresql+asyncpg://" + url.split("://", 1)[1]
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


class Settings(BaseSettings):
    """
    Print3D settings.
    - SQLite (aiosqlite) by default for local work, Postgres (asyncpg) in production.
    - Secrets are masked in summaries.
    - Seller data for invoices falls back to COMPANY_* when no DB row exists.
    """

    model_config = SettingsConfigDict(
        env_file=(".env.test", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    # ---- base
    PROJECT_NAME: str = Field(default="Print3D", description="Project name")
    VERSION: str = Field(default="0.1.0", description="Application version")
    DEBUG: bool = Field(default=False, description="Debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment")
    TESTING: bool = Field(default=False, description="Testing mode")
    API_PREFIX: str = Field(default="/api", description="API prefix")
    APP_URL: str = Field(default="http://localhost:3000", description="Public storefront URL")
    CORS_ORIGINS: List[str] = Field(default=["*"], description="CORS origins")

    # ---- security
    SECRET_KEY: str = Field(default="changeme", description="JWT secret key")
    ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7, description="Admin token expiry")

    # ---- database
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./print3d.db", description="Database URL")
    SQLALCHEMY_ECHO: bool = Field(default=False, description="Echo SQL statements")

    # ---- celery
    CELERY_BROKER_URL: str = Field(default="redis://localhost:6379/0", description="Celery broker URL")
    CELERY_RESULT_BACKEND: str = Field(default="redis://localhost:6379/0", description="Celery result backend")
    NOTIFIER_BACKEND: str = Field(default="asyncio", description="Status notifier dispatch: asyncio|celery")

    # ---- logging
    LOG_PATH: str = Field(default="logs/app.log", description="Log file path")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Logging format (json|text)")

    # ---- uploads
    MAX_UPLOAD_SIZE: int = Field(default=10 * 1024 * 1024, description="Max upload size")
    MAX_VARIANT_IMAGES: int = Field(default=5, description="Max images per variant upload")

    # ---- cloudinary
    CLOUDINARY_CLOUD_NAME: Optional[str] = Field(default=None, description="Cloudinary cloud name")
    CLOUDINARY_API_KEY: Optional[str] = Field(default=None, description="Cloudinary API key")
    CLOUDINARY_API_SECRET: Optional[str] = Field(default=None, description="Cloudinary API secret")
    CLOUDINARY_ROOT_FOLDER: str = Field(default="print3d", description="Root folder for uploads")

    # ---- stripe
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None, description="Stripe secret key")
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None, description="Stripe webhook signing secret")
    STRIPE_API_URL: str = Field(default="https://api.stripe.com/v1", description="Stripe API URL")
    STRIPE_CURRENCY: str = Field(default="ron", description="Checkout currency")

    # ---- email
    SMTP_HOST: str = Field(default="localhost", description="SMTP host")
    SMTP_PORT: int = Field(default=587, description="SMTP port")
    SMTP_USER: str = Field(default="", description="SMTP user")
    SMTP_PASSWORD: str = Field(default="", description="SMTP password")
    SMTP_FROM_EMAIL: EmailStr | None = Field(default=None, description="Sender email")
    SMTP_FROM_NAME: str = Field(default="Print3D", description="Sender display name")
    SMTP_TLS: bool = Field(default=True, description="Use STARTTLS")
    SMTP_SSL: bool = Field(default=False, description="Use SSL")

    # ---- seller defaults (invoice)
    COMPANY_NAME: str = Field(default="Print3D S.R.L.")
    COMPANY_CUI: str = Field(default="RO12345678")
    COMPANY_REG_COM: str = Field(default="J12/1234/2024")
    COMPANY_ADDRESS: str = Field(default="Str. Exemplu nr. 1")
    COMPANY_CITY: str = Field(default="Cluj-Napoca")
    COMPANY_COUNTY: str = Field(default="Cluj")
    COMPANY_POSTAL_CODE: str = Field(default="400001")
    COMPANY_COUNTRY: str = Field(default="Romania")
    COMPANY_BANK_NAME: str = Field(default="Banca Transilvania")
    COMPANY_IBAN: str = Field(default="RO49AAAA1B31007593840000")
    COMPANY_CAPITAL: str = Field(default="200 RON")
    COMPANY_EMAIL: str = Field(default="comenzi@print3d.ro")
    COMPANY_PHONE: str = Field(default="0740 000 000")

    # --------- validators ---------
    @field_validator("CORS_ORIGINS", mode="before")
    def _cors(cls, v):
        return _parse_list_like(v)

    @field_validator("SMTP_FROM_EMAIL", mode="before")
    def empty_email_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("DATABASE_URL")
    def normalize_database_url(cls, v):
        return normalize_async_database_url(v.strip())

    @field_validator("NOTIFIER_BACKEND")
    def check_notifier_backend(cls, v):
        v = (v or "asyncio").strip().lower()
        if v not in {"asyncio", "celery"}:
            raise ValueError(f"Unsupported NOTIFIER_BACKEND: {v}")
        return v

    @field_validator("ALGORITHM")
    def check_alg(cls, v):
        allowed = {"HS256", "HS384", "HS512"}
        if v not in allowed:
            raise ValueError(f"Unsupported JWT algorithm: {v}")
        return v

    # --------- properties ---------
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def smtp_settings(self) -> dict:
        use_ssl = bool(self.SMTP_SSL)
        return {
            "host": self.SMTP_HOST,
            "port": self.SMTP_PORT,
            "user": self.SMTP_USER,
            "password": self.SMTP_PASSWORD,
            "from_email": str(self.SMTP_FROM_EMAIL or self.COMPANY_EMAIL),
            "from_name": self.SMTP_FROM_NAME,
            "tls": bool(self.SMTP_TLS) and not use_ssl,
            "ssl": use_ssl,
        }

    @property
    def cloudinary_settings(self) -> dict:
        return {
            "cloud_name": self.CLOUDINARY_CLOUD_NAME,
            "api_key": self.CLOUDINARY_API_KEY,
            "api_secret": self.CLOUDINARY_API_SECRET,
        }

    @property
    def celery_settings(self) -> dict:
        return {
            "broker_url": self.CELERY_BROKER_URL,
            "result_backend": self.CELERY_RESULT_BACKEND,
        }

    @property
    def company_defaults(self) -> dict:
        return {
            "name": self.COMPANY_NAME,
            "cui": self.COMPANY_CUI,
            "reg_com": self.COMPANY_REG_COM,
            "address": self.COMPANY_ADDRESS,
            "city": self.COMPANY_CITY,
            "county": self.COMPANY_COUNTY,
            "postal_code": self.COMPANY_POSTAL_CODE,
            "country": self.COMPANY_COUNTRY,
            "bank_name": self.COMPANY_BANK_NAME,
            "iban": self.COMPANY_IBAN,
            "capital_social": self.COMPANY_CAPITAL,
            "email": self.COMPANY_EMAIL,
            "phone": self.COMPANY_PHONE,
        }

    # --------- checks ---------
    def check_secret_key(self) -> None:
        if self.is_production:
            if not self.SECRET_KEY or self.SECRET_KEY.strip().lower() in {"changeme", "secret", "password"}:
                raise ValueError("Set a secure SECRET_KEY in .env for production!")

    def check_stripe(self) -> None:
        if self.is_production and not (self.STRIPE_SECRET_KEY and self.STRIPE_WEBHOOK_SECRET):
            logging.getLogger(__name__).warning("Stripe keys are not configured; checkout will fail")

    def dump_settings_safe(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for k, v in self.model_dump().items():
            out[k] = _mask_secret(v) if _is_secret_key_name(k) and v is not None else v
        return out


@lru_cache
def get_settings() -> Settings:
    s = Settings()
    if not _under_pytest() and os.getenv("DISABLE_APP_STARTUP_HOOKS") != "1":
        s.check_secret_key()
        s.check_stripe()
    return s


settings = get_settings()

__all__ = ["Settings", "get_settings", "settings", "normalize_async_database_url"]
