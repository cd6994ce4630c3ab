# account_security/core/config.py

import json
import logging
from typing import Annotated, Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )

    # --- Environment & Debug ---
    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development", validation_alias="APP_ENV"
    )
    DEBUG: bool = Field(default=False, validation_alias=AliasChoices("DEBUG_MODE", "DEBUG"))
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
    )

    # --- Core Application Settings ---
    APP_NAME: str = Field(default="JobTracker Pro", validation_alias="APP_NAME")
    APP_VERSION: str = Field(default="0.1.0", validation_alias="APP_VERSION")
    APP_DESCRIPTION: str = Field(
        default="Account security API: login throttling, two-factor authentication and sessions.",
        validation_alias="APP_DESCRIPTION",
    )
    API_PREFIX: str = Field(default="/api", validation_alias="API_PREFIX")

    # --- Secrets & Token Issuance ---
    SECRET_KEY: str = Field(validation_alias=AliasChoices("JWT_SECRET_KEY", "SECRET_KEY"))
    TWO_FACTOR_ENCRYPTION_KEY: str | None = Field(
        default=None,
        description="Key material for encrypting TOTP secrets at rest. Falls back to SECRET_KEY.",
        validation_alias="TWO_FACTOR_ENCRYPTION_KEY",
    )
    ALGORITHM: str = Field(default="HS256", validation_alias="ALGORITHM")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=60 * 24, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    SESSION_COOKIE_NAME: str = Field(
        default="jtSessionToken", validation_alias="SESSION_COOKIE_NAME"
    )
    COOKIE_SECURE: bool = Field(default=True, validation_alias="COOKIE_SECURE")
    COOKIE_SAMESITE: Literal["lax", "strict", "none"] = Field(
        default="lax", validation_alias="COOKIE_SAMESITE"
    )

    # --- Login Throttling ---
    LOGIN_MAX_ATTEMPTS: int = Field(
        default=5,
        description="Failed attempts per (ip, email) before a lockout",
        validation_alias="LOGIN_MAX_ATTEMPTS",
    )
    LOGIN_ATTEMPT_WINDOW_SECONDS: int = Field(
        default=15 * 60,
        description="Window in which failed attempts are counted",
        validation_alias="LOGIN_ATTEMPT_WINDOW_SECONDS",
    )
    LOGIN_INITIAL_LOCKOUT_SECONDS: int = Field(
        default=60,
        description="Lockout duration of the first lockout cycle",
        validation_alias="LOGIN_INITIAL_LOCKOUT_SECONDS",
    )
    LOGIN_MAX_LOCKOUT_SECONDS: int = Field(
        default=15 * 60,
        description="Upper bound for escalated lockouts",
        validation_alias="LOGIN_MAX_LOCKOUT_SECONDS",
    )
    LOGIN_LOCKOUT_MULTIPLIER: int = Field(
        default=2,
        description="Escalation factor between successive lockout cycles",
        validation_alias="LOGIN_LOCKOUT_MULTIPLIER",
    )
    LOGIN_RATE_LIMIT: str = Field(
        default="20/minute",
        description="Per-IP request rate limit for the login endpoint (slowapi syntax)",
        validation_alias="LOGIN_RATE_LIMIT",
    )

    # --- Two-Factor Authentication ---
    TOTP_ISSUER: str | None = Field(default=None, validation_alias="TOTP_ISSUER")
    TOTP_VALID_WINDOW: int = Field(
        default=1,
        description="Accepted clock drift in time-steps on either side",
        validation_alias="TOTP_VALID_WINDOW",
    )
    BACKUP_CODE_COUNT: int = Field(default=10, validation_alias="BACKUP_CODE_COUNT")
    TWO_FACTOR_SETUP_TTL_SECONDS: int = Field(
        default=10 * 60, validation_alias="TWO_FACTOR_SETUP_TTL_SECONDS"
    )

    # --- Sessions ---
    SESSION_DURATION_DAYS: int = Field(default=30, validation_alias="SESSION_DURATION_DAYS")
    SESSION_ACTIVITY_UPDATE_SECONDS: int = Field(
        default=5 * 60,
        description="Minimum interval between lastActiveAt writes",
        validation_alias="SESSION_ACTIVITY_UPDATE_SECONDS",
    )
    HOUSEKEEPING_INTERVAL_SECONDS: int = Field(
        default=10 * 60,
        description="How often expired lockout records and sessions are purged. 0 disables it.",
        validation_alias="HOUSEKEEPING_INTERVAL_SECONDS",
    )

    # --- Networking ---
    # Only enable behind a proxy that overwrites X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = Field(default=False, validation_alias="TRUST_PROXY_HEADERS")
    BACKEND_CORS_ORIGINS: Annotated[list[str], NoDecode] = Field(
        default_factory=list, validation_alias="BACKEND_CORS_ORIGINS"
    )

    # --- Storage ---
    DATABASE_URL: str | None = Field(
        default=None,
        description="Async SQLAlchemy URL of the account store. In-memory accounts when unset.",
        validation_alias="DATABASE_URL",
    )
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # --- Security Log ---
    SECURITY_LOG_PATH: str | None = Field(
        default=None,
        description="Rotating file for fail2ban-style security events",
        validation_alias="SECURITY_LOG_PATH",
    )

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_json_list(cls, v: str | list | None) -> list[str]:
        """Parse JSON array strings from env vars into Python lists."""
        if v is None:
            return []
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(",") if item.strip()]
        return []

    @model_validator(mode="after")
    def check_lockout_bounds(self) -> "Settings":
        if self.LOGIN_MAX_ATTEMPTS < 1:
            raise ValueError("LOGIN_MAX_ATTEMPTS must be at least 1")
        if self.LOGIN_MAX_LOCKOUT_SECONDS < self.LOGIN_INITIAL_LOCKOUT_SECONDS:
            raise ValueError("LOGIN_MAX_LOCKOUT_SECONDS must not be below the initial lockout")
        if self.LOGIN_LOCKOUT_MULTIPLIER < 1:
            raise ValueError("LOGIN_LOCKOUT_MULTIPLIER must be at least 1")
        if self.TOTP_VALID_WINDOW > 1:
            logger.warning(
                "TOTP_VALID_WINDOW=%s accepts codes outside the +/-1 step drift tolerance",
                self.TOTP_VALID_WINDOW,
            )
        return self

    @property
    def totp_issuer(self) -> str:
        return self.TOTP_ISSUER or self.APP_NAME


settings = Settings()
