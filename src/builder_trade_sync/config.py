"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
builder trade sync service, loading and validating environment
variables at startup. The resulting Settings object is built once by the
entry point and passed explicitly into the feed client and sync engine.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(
            ("postgresql://", "postgres://", "postgresql+asyncpg://", "sqlite+aiosqlite://")
        ):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v


class BuilderSettings(BaseSettings):
    """Polymarket CLOB builder credentials."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    clob_host: str = Field(
        default="https://clob.polymarket.com",
        alias="CLOB_HOST",
        description="CLOB HTTP API host",
    )
    chain_id: int = Field(
        default=137,
        alias="CLOB_CHAIN_ID",
        description="Chain ID (Polygon=137)",
    )
    api_key: SecretStr | None = Field(
        default=None,
        alias="POLY_BUILDER_API_KEY",
        description="Builder API key",
    )
    secret: SecretStr | None = Field(
        default=None,
        alias="POLY_BUILDER_SECRET",
        description="Builder API secret",
    )
    passphrase: SecretStr | None = Field(
        default=None,
        alias="POLY_BUILDER_PASSPHRASE",
        description="Builder API passphrase",
    )
    address: str | None = Field(
        default=None,
        alias="POLY_BUILDER_ADDRESS",
        description="Builder address (informational)",
    )

    @field_validator("clob_host")
    @classmethod
    def validate_clob_host(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("CLOB_HOST must be an HTTP(S) endpoint")
        return v.rstrip("/")

    @property
    def configured(self) -> bool:
        """Check if all three builder credentials are present."""
        return bool(self.api_key and self.secret and self.passphrase)


class SyncSettings(BaseSettings):
    """Trade sync loop limits."""

    model_config = SettingsConfigDict(env_prefix="SYNC_", extra="ignore")

    max_pages: int = Field(
        default=200,
        alias="SYNC_MAX_PAGES",
        ge=1,
        le=10_000,
        description="Hard cap on pages fetched per sync run",
    )
    max_retries: int = Field(
        default=4,
        alias="SYNC_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries per page fetch on transient failures",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from builder_trade_sync.config import get_settings

        settings = get_settings()
        print(settings.builder.clob_host)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    builder: BuilderSettings = Field(
        default_factory=lambda: BuilderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    sync: SyncSettings = Field(
        default_factory=lambda: SyncSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    api_host: str = Field(
        default="127.0.0.1",
        alias="API_HOST",
        description="Bind address for the HTTP API",
    )
    api_port: int = Field(
        default=8000,
        alias="API_PORT",
        description="HTTP port for the API",
        ge=1,
        le=65535,
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "builder": {
                "clob_host": self.builder.clob_host,
                "chain_id": str(self.builder.chain_id),
                "api_key": "(set)" if self.builder.api_key else "(not set)",
                "secret": "(set)" if self.builder.secret else "(not set)",
                "passphrase": "(set)" if self.builder.passphrase else "(not set)",
                "address": self.builder.address or "(not set)",
            },
            "sync": {
                "max_pages": str(self.sync.max_pages),
                "max_retries": str(self.sync.max_retries),
            },
            "log_level": self.log_level,
            "api_port": str(self.api_port),
        }

    def validate_requirements(
        self, *, command: Literal["sync", "check-connection", "serve", "init-db"]
    ) -> None:
        """Validate command-specific requirements.

        Commands that talk to the builder feed refuse to run without the
        full set of builder credentials.
        """
        if command in ("sync", "check-connection", "serve") and not self.builder.configured:
            raise ValueError(
                "POLY_BUILDER_API_KEY/POLY_BUILDER_SECRET/POLY_BUILDER_PASSPHRASE are required"
            )

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load the application settings once per process.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
