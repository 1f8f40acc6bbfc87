"""
core/config.py -- TodoVault settings, read once from the environment.

Settings is a pydantic-settings model: each field maps to an upper-cased
environment variable (database_url -> DATABASE_URL) and may also come from a
.env file in the working directory. get_settings() caches one instance.

Only two places call get_settings(): asgi.py, and create_app() when it is
given no Settings. Everything downstream receives plain values (the signing
secret, the database URL, listing bounds) from create_app() at construction.

Startup checks (model validators):
  - SECRET_KEY missing: generated with a warning when DEBUG=true, otherwise
    startup fails [M7]. Keys shorter than 32 characters always fail [M6].
  - DEFAULT_PAGE_LIMIT may not exceed MAX_PAGE_LIMIT.
  - A wildcard CORS origin outside DEBUG is logged as a warning.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or todos/.
"""

import logging
import secrets
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("todovault.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'todovault.db'}"


class DeploymentMode(str, Enum):
    """Controls how much failure detail the API discloses to clients."""

    development = "development"
    production = "production"


class Settings(BaseSettings):
    """Process-wide configuration. Tests construct it directly with keyword arguments."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    # DEBUG=true is development mode: full error diagnostics in responses.
    debug: bool = False
    # "" means unset; validate_secret_key replaces or rejects it.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # 90 days, the lifetime the mobile and web clients were built against.
    token_expire_seconds: int = 90 * 24 * 3600

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    default_page_limit: int = Field(default=100, ge=1)
    max_page_limit: int = Field(default=1000, ge=1)

    @property
    def mode(self) -> DeploymentMode:
        return DeploymentMode.development if self.debug else DeploymentMode.production

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Generate a throwaway key in development; require a real one otherwise [M6, M7]."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("SECRET_KEY not set; generated a development key. Tokens die with the process.")
            else:
                raise ValueError("SECRET_KEY must be set unless DEBUG=true.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY is too short; use at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_listing_bounds(self) -> "Settings":
        if self.default_page_limit > self.max_page_limit:
            raise ValueError("DEFAULT_PAGE_LIMIT must not exceed MAX_PAGE_LIMIT.")
        return self

    @model_validator(mode="after")
    def warn_on_open_cors(self) -> "Settings":
        """A wildcard origin is fine for local work but almost never intended in production."""
        if not self.debug and "*" in self.cors_origins:
            logger.warning(
                "WARNING: CORS_ORIGINS allows every origin in production. "
                "Set CORS_ORIGINS to your frontend domain(s)."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings built from the environment.

    Tests should pass Settings(...) to create_app() instead; if one must go
    through the environment, call get_settings.cache_clear() afterwards.
    """
    return Settings()
