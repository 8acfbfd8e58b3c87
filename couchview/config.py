"""
Configuration for couchview.

Uses pydantic-settings for environment variable loading. Every setting
has a default suitable for a local CouchDB.

Invariants:
    - Credentials are never logged or exposed in error messages
    - Settings objects are immutable once loaded

Environment:
    COUCHVIEW_URL, COUCHVIEW_USERNAME, COUCHVIEW_PASSWORD,
    COUCHVIEW_TIMEOUT, COUCHVIEW_MAX_CONNECTIONS, COUCHVIEW_POOL_TIMEOUT,
    COUCHVIEW_DATABASE_PREFIX, COUCHVIEW_LOG_LEVEL, COUCHVIEW_LOG_FORMAT
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class StoreSettings(BaseSettings):
    """CouchDB connection settings."""

    url: str = Field(default="http://localhost:5984", description="CouchDB base URL")
    username: str | None = Field(default=None, description="Basic auth user")
    password: SecretStr | None = Field(default=None, description="Basic auth password")

    # Connection pool
    timeout: float = Field(default=30.0, description="Request timeout seconds")
    max_connections: int = Field(default=5, ge=1, description="Max pooled connections")
    pool_timeout: float = Field(default=2.0, description="Seconds to wait for a pooled connection")

    # Prepended to every entity's database name
    database_prefix: str = Field(default="", description="Database name prefix")

    model_config = {"env_prefix": "COUCHVIEW_", "frozen": True}

    @property
    def auth(self) -> tuple[str, str] | None:
        """Basic auth pair for the HTTP client, if configured."""
        if self.username is None:
            return None
        password = self.password.get_secret_value() if self.password else ""
        return (self.username, password)

    def database_name(self, source: str) -> str:
        """Database name for an entity source."""
        return f"{self.database_prefix}{source}"


class LoggingSettings(BaseSettings):
    """Logging settings."""

    level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    format: Literal["text", "json"] = Field(default="text", description="Log line format")

    model_config = {"env_prefix": "COUCHVIEW_LOG_", "frozen": True}

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level '{value}'")
        return level


@dataclass(frozen=True)
class Settings:
    """Complete configuration.

    Attributes:
        store: CouchDB connection settings
        logging: Logging settings
    """

    store: StoreSettings = field(default_factory=StoreSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def load(cls) -> Settings:
        """Load all sections from environment variables.

        Raises:
            pydantic.ValidationError: If a value is invalid
        """
        return cls(store=StoreSettings(), logging=LoggingSettings())

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "couchview configuration loaded",
            extra={
                "store_url": self.store.url,
                "store_user": self.store.username,
                "max_connections": self.store.max_connections,
                "timeout": self.store.timeout,
                "database_prefix": self.store.database_prefix,
                "log_level": self.logging.level,
            },
        )
