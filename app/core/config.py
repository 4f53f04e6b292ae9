# app/core/config.py
from __future__ import annotations

"""
# CinePass — Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; explicit where prod needs secrets.
- Robust URL normalization and CSV → list helpers.
- Payment gateway credentials optional so imports never crash in dev.
- One frontend allow-list shared by CORS and the streaming origin check.

## Usage
    from app.core.config import settings
"""

import logging
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


def _normalize_url_like(v: str | None, *, require_scheme: bool = True) -> str:
    """Normalize to a string URL without trailing slash."""
    s = (v or "").strip()
    if not s:
        return ""
    if require_scheme and not (s.startswith("http://") or s.startswith("https://")):
        s = "https://" + s
    return s.rstrip("/")


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Security:
        - Explicit secret for JWT (access tokens and video capability tokens).
        - Gateway secret key and webhook secrets are `SecretStr`.

    Notes:
        - `DATABASE_URL_OVERRIDE` wins over the assembled Postgres DSN
          (handy for SQLite in local runs and tests).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "CinePass API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENV: Literal["development", "staging", "production", "test"] = "development"
    ENABLE_DOCS: bool = True

    # ── Security / JWT ────────────────────────────────────────
    JWT_SECRET_KEY: SecretStr = Field(...)
    JWT_ALGORITHM: Literal["HS256", "HS384", "HS512"] = "HS256"
    JWT_ISSUER: Optional[str] = None
    JWT_AUDIENCE: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60, ge=5, le=24 * 60)
    AUTH_FAIL_OPEN: bool = False

    # ── Redis / Rate limiting ─────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    DEFAULT_RATE_LIMIT: Optional[str] = None  # e.g., "200/minute"
    RATELIMIT_STORAGE_URI: Optional[str] = None  # fallback to REDIS_URL if unset

    # ── Database ──────────────────────────────────────────────
    DATABASE_URL_OVERRIDE: Optional[str] = None  # e.g. sqlite+aiosqlite:///./cinepass.db
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = SecretStr("postgres")
    POSTGRES_DB: str = "cinepass"

    # ── CORS / frontend allow-list ────────────────────────────
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = Field(
        default_factory=lambda: ["http://localhost:5173"]
    )
    FRONTEND_ORIGINS: Optional[str] = None  # CSV; also gates the stream endpoint

    # ── Payment gateway (YooKassa-compatible REST) ────────────
    PAYMENT_SHOP_ID: Optional[str] = None
    PAYMENT_SECRET_KEY: Optional[SecretStr] = None
    PAYMENT_API_BASE: str = "https://api.yookassa.ru/v3"
    PAYMENT_TIMEOUT_SECONDS: float = Field(20.0, gt=0, le=120)
    PAYMENT_REDIRECT_HOST: str = "http://localhost:5173"
    PAYMENT_DEFAULT_CURRENCY: str = "RUB"
    PAYMENT_METHOD: str = "bank_card"
    PAYMENT_WEBHOOK_SECRETS: Optional[str] = None  # CSV; HMAC check disabled when unset

    # ── Orders ────────────────────────────────────────────────
    ORDER_PAYMENT_WINDOW_HOURS: int = Field(24, ge=1, le=24 * 7)

    # ── Video access tokens & streaming ───────────────────────
    VIDEO_TOKEN_TTL_SECONDS: int = Field(2 * 60 * 60, ge=60, le=24 * 60 * 60)
    VIDEO_TOKEN_SWEEP_MINUTES: int = Field(30, ge=1, le=24 * 60)
    MEDIA_ROOT: str = "uploads"
    STREAM_CHUNK_SIZE: int = Field(1024 * 1024, ge=4096)

    # ── Scheduled maintenance ─────────────────────────────────
    SUBSCRIPTION_SWEEP_ENABLED: bool = True
    SUBSCRIPTION_SWEEP_HOUR: int = Field(0, ge=0, le=23)
    SUBSCRIPTION_SWEEP_MINUTE: int = Field(1, ge=0, le=59)
    SWEEP_LOCK_TTL_SECONDS: int = Field(300, ge=10)

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def _assemble_cors_origins(cls, v: str | List[str]):
        if isinstance(v, str):
            return _split_csv(v)
        return v

    @field_validator("FRONTEND_ORIGINS", mode="before")
    @classmethod
    def _normalize_frontend_csv(cls, v):
        return None if v is None else ",".join(_split_csv(str(v)))

    @field_validator("PAYMENT_REDIRECT_HOST", mode="before")
    @classmethod
    def _normalize_redirect_host(cls, v) -> str:
        return _normalize_url_like(str(v or "http://localhost:5173"))

    @field_validator("PAYMENT_API_BASE", mode="before")
    @classmethod
    def _normalize_api_base(cls, v) -> str:
        return _normalize_url_like(str(v or "https://api.yookassa.ru/v3"))

    @field_validator("PAYMENT_DEFAULT_CURRENCY", mode="before")
    @classmethod
    def _upper_currency(cls, v) -> str:
        return str(v or "RUB").strip().upper()

    # ── Derived / convenience properties ─────────────────────
    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def DATABASE_URL(self) -> str:
        """Sync Postgres DSN (alembic offline mode)."""
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD.get_secret_value()}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        """Async SQLAlchemy DSN; `DATABASE_URL_OVERRIDE` wins when set."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

    @property
    def frontend_origins_list(self) -> List[str]:
        """
        Frontend allow-list:
        Priority → FRONTEND_ORIGINS (CSV) → BACKEND_CORS_ORIGINS (typed list).
        """
        if self.FRONTEND_ORIGINS:
            return [o.rstrip("/") for o in _split_csv(self.FRONTEND_ORIGINS)]
        return [str(u).rstrip("/") for u in (self.BACKEND_CORS_ORIGINS or [])]

    @property
    def ratelimit_storage(self) -> Optional[str]:
        """Storage URI for SlowAPI; prefer RATELIMIT_STORAGE_URI, else REDIS_URL."""
        return self.RATELIMIT_STORAGE_URI or (self.REDIS_URL if self.REDIS_URL else None)

    @property
    def payment_webhook_secrets(self) -> List[str]:
        return _split_csv(self.PAYMENT_WEBHOOK_SECRETS)

    @property
    def payment_gateway_configured(self) -> bool:
        return bool(self.PAYMENT_SHOP_ID and self.PAYMENT_SECRET_KEY)


# Singleton instance
settings = Settings()
