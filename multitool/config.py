"""
Connection and logging configuration: validated, immutable settings.

Uses pydantic-settings so every field can come from explicit arguments,
environment variables or a .env file. Explicit arguments win.

    DatabaseConfig    PostgreSQL pool settings   (env prefix DATABASE_)
    RedisConfig       Redis pool settings        (env prefix REDIS_)
    LoggingSettings   LOG_LEVEL / LOG_JSON

Usage:
    from multitool.config import DatabaseConfig, RedisConfig

    db = DatabaseConfig(host="localhost", database="orders", pool_max_size=5)
    cache = RedisConfig()               # localhost:6379/0, or REDIS_* env vars

Configs are frozen. Validation happens in the constructor and raises
multitool.errors.ValidationError before any connection is attempted.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Any, ClassVar, Optional, Tuple
from urllib.parse import quote, urlsplit

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from multitool.errors import ValidationError


# ═══════════════════════════════════════════════════════════════════════════
# Connection configs
# ═══════════════════════════════════════════════════════════════════════════

class ConnectionConfig(BaseSettings):
    """
    Fields shared by every pooled resource.

    Precedence: constructor argument > env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    scheme: ClassVar[str] = "tcp"
    # Schemes an explicit ``url`` may use; "+driver" suffixes are allowed.
    url_schemes: ClassVar[Tuple[str, ...]] = ("tcp",)

    host: str = Field(default="localhost", min_length=1, description="Server host name or address")
    port: int = Field(default=1, ge=1, le=65535, description="Server TCP port")
    username: Optional[str] = Field(default=None, description="Login user")
    password: Optional[str] = Field(default=None, repr=False, description="Login password")
    connect_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Seconds allowed to establish one new connection",
    )
    acquire_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Seconds to wait for a free connection at checkout",
    )
    pool_min_size: int = Field(default=0, ge=0, description="Connections opened up front")
    pool_max_size: int = Field(default=10, ge=1, description="Upper bound on open connections")
    url: Optional[str] = Field(
        default=None,
        repr=False,
        description="Full DSN; when set it replaces host/port/credentials",
    )

    def __init__(self, **values: Any) -> None:
        try:
            super().__init__(**values)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, type(self).__name__) from exc
        self._check_pool_bounds()

    @field_validator("host")
    @classmethod
    def _host_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("host must not be blank")
        return value

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value

        parts = urlsplit(value)
        scheme = parts.scheme.split("+", 1)[0]
        if scheme not in cls.url_schemes:
            raise ValueError(
                f"url scheme must be one of {', '.join(cls.url_schemes)}, got {parts.scheme or 'none'!r}"
            )
        # unix:// sockets carry a path, not a host and port
        if scheme == "unix":
            if not parts.path:
                raise ValueError("unix socket url needs a path")
            return value

        if not parts.hostname:
            raise ValueError("url must name a host")
        try:
            port = parts.port
        except ValueError:
            raise ValueError("url port must be in 1..65535") from None
        if port is not None and not 1 <= port <= 65535:
            raise ValueError("url port must be in 1..65535")
        return value

    def _check_pool_bounds(self) -> None:
        if self.pool_min_size > self.pool_max_size:
            raise ValidationError(
                f"Invalid {type(self).__name__}.pool_min_size: "
                f"{self.pool_min_size} exceeds pool_max_size {self.pool_max_size}",
                field="pool_min_size",
                constraint="pool_min_size <= pool_max_size",
            )

    def _path(self) -> str:
        return ""

    def dsn(self) -> str:
        """Connection string for the pooling library (contains the password)."""
        if self.url:
            return self.url

        auth = ""
        if self.username:
            auth = quote(self.username, safe="")
        if self.password:
            auth += ":" + quote(self.password, safe="")
        if auth:
            auth += "@"

        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{auth}{host}:{self.port}/{self._path()}"

    def redacted_dsn(self) -> str:
        """DSN safe for logs and health reports."""
        parts = urlsplit(self.dsn())
        if parts.password is None:
            return parts.geturl()

        host = parts.hostname or ""
        if ":" in host:
            host = f"[{host}]"
        netloc = f"{parts.username or ''}:***@{host}"
        if parts.port:
            netloc += f":{parts.port}"
        return parts._replace(netloc=netloc).geturl()


class DatabaseConfig(ConnectionConfig):
    """PostgreSQL connection pool settings."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    scheme: ClassVar[str] = "postgresql"
    url_schemes: ClassVar[Tuple[str, ...]] = ("postgresql", "postgres")

    port: int = Field(default=5432, ge=1, le=65535)
    username: Optional[str] = Field(default="postgres")
    database: str = Field(default="postgres", min_length=1, description="Database name")
    pool_min_size: int = Field(default=5, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    max_lifetime: float = Field(
        default=900.0,
        gt=0,
        description="Seconds before a connection is recycled on checkout",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")

    def _path(self) -> str:
        return quote(self.database, safe="")


class RedisConfig(ConnectionConfig):
    """Redis connection pool settings."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    scheme: ClassVar[str] = "redis"
    url_schemes: ClassVar[Tuple[str, ...]] = ("redis", "rediss", "unix")

    port: int = Field(default=6379, ge=1, le=65535)
    db: int = Field(default=0, ge=0, description="Logical database index")
    connect_timeout: float = Field(default=60.0, gt=0)
    acquire_timeout: float = Field(default=60.0, gt=0)
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)

    def _path(self) -> str:
        return str(self.db)


# ═══════════════════════════════════════════════════════════════════════════
# Logging settings
# ═══════════════════════════════════════════════════════════════════════════

class LogLevel(str, Enum):
    """Verbosity levels, most to least severe filter."""
    ERROR = "error"
    WARN  = "warn"
    INFO  = "info"
    DEBUG = "debug"
    TRACE = "trace"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str) -> "LogLevel":
        """Case-insensitive lookup; usable as an argparse ``type=``."""
        try:
            return cls(text.strip().lower())
        except (AttributeError, ValueError):
            raise ValueError(f"Invalid log level: {text}") from None


class LoggingSettings(BaseSettings):
    """Logging options loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_JSON: bool = False  # one JSON object per line instead of compact text

    def __init__(self, **values: Any) -> None:
        try:
            super().__init__(**values)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, type(self).__name__) from exc

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _parse_level(cls, value: Any) -> Any:
        if isinstance(value, str) and not isinstance(value, LogLevel):
            return LogLevel.parse(value)
        return value


@lru_cache()
def get_logging_settings() -> LoggingSettings:
    """Cached logging settings singleton."""
    return LoggingSettings()
