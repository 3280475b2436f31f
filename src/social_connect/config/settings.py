"""Settings configuration for the Social Connect service."""

import os
import tomllib
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from social_connect.core.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_MAX_PROVIDER_ATTEMPTS,
    DEFAULT_MAX_REFRESH_FAILURES,
    DEFAULT_REFRESH_MARGIN_SECONDS,
    DEFAULT_RETRY_BACKOFF_MAX_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_STATE_KEY_PREFIX,
    DEFAULT_STATE_MAX_ENTRIES,
    DEFAULT_STATE_TTL_SECONDS,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    DEFAULT_SWEEP_REFRESH_BUFFER_SECONDS,
    TWITTER_AUTHORIZE_URL,
    TWITTER_DEFAULT_SCOPES,
    TWITTER_PLATFORM_ID,
    TWITTER_PROFILE_URL,
    TWITTER_REVOKE_URL,
    TWITTER_TOKEN_URL,
)
from social_connect.core.validators import parse_scopes


__all__ = [
    "ConfigurationError",
    "DatabaseSettings",
    "ProviderSettings",
    "SchedulerSettings",
    "SecuritySettings",
    "ServerSettings",
    "Settings",
    "StateStoreSettings",
    "TokenSettings",
    "get_settings",
]

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_FILENAME = "social_connect.toml"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


class ServerSettings(BaseModel):
    """HTTP server and logging settings."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port")
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Render logs as JSON lines")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class ProviderSettings(BaseModel):
    """OAuth 2.0 provider endpoints and client credentials."""

    name: str = Field(default="twitter", description="Provider slug used in routes")
    platform_id: int = Field(
        default=TWITTER_PLATFORM_ID,
        description="Application platform id this provider serves",
    )
    client_id: str = Field(default="", description="OAuth client id")
    client_secret: SecretStr | None = Field(
        default=None,
        description="OAuth client secret (confidential clients only)",
    )
    authorize_url: str = Field(default=TWITTER_AUTHORIZE_URL)
    token_url: str = Field(default=TWITTER_TOKEN_URL)
    revoke_url: str | None = Field(default=TWITTER_REVOKE_URL)
    profile_url: str = Field(default=TWITTER_PROFILE_URL)
    default_scopes: list[str] = Field(
        default_factory=lambda: TWITTER_DEFAULT_SCOPES.copy(),
        description="Scopes requested when the caller does not specify any",
    )
    callback_base_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL the provider redirects back to",
    )
    callback_path: str = Field(default="/social/callback")

    @field_validator("default_scopes", mode="before")
    @classmethod
    def validate_scopes(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_scopes(v)
        return v

    @property
    def default_callback_url(self) -> str:
        """Callback URL used when initiate() is called without one."""
        return f"{self.callback_base_url.rstrip('/')}/{self.callback_path.lstrip('/')}"


class SecuritySettings(BaseModel):
    """Token encryption settings."""

    token_encryption_key: SecretStr | None = Field(
        default=None,
        description="URL-safe base64 encoding of 32 random bytes (AES-256-GCM)",
    )


class StateStoreSettings(BaseModel):
    """Pending OAuth state storage."""

    backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="memory is single-process only; use redis when running several instances",
    )
    redis_url: str = Field(default="redis://localhost:6379/0")
    key_prefix: str = Field(default=DEFAULT_STATE_KEY_PREFIX)
    ttl_seconds: int = Field(default=DEFAULT_STATE_TTL_SECONDS, ge=30, le=3600)
    max_entries: int = Field(default=DEFAULT_STATE_MAX_ENTRIES, ge=1)


class DatabaseSettings(BaseModel):
    """SQLite persistence for social accounts."""

    path: Path = Field(default=Path("~/.social_connect/social_connect.db"))

    @field_validator("path")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        return v.expanduser()


class TokenSettings(BaseModel):
    """Token lifecycle tuning."""

    refresh_margin_seconds: int = Field(
        default=DEFAULT_REFRESH_MARGIN_SECONDS,
        ge=0,
        description="Refresh when the access token expires within this window",
    )
    max_refresh_failures: int = Field(
        default=DEFAULT_MAX_REFRESH_FAILURES,
        ge=1,
        description="Consecutive rejected refreshes before the account is marked error",
    )
    http_timeout_seconds: float = Field(default=DEFAULT_HTTP_TIMEOUT_SECONDS, gt=0)
    max_provider_attempts: int = Field(default=DEFAULT_MAX_PROVIDER_ATTEMPTS, ge=1)
    retry_backoff_seconds: float = Field(default=DEFAULT_RETRY_BACKOFF_SECONDS, ge=0)
    retry_backoff_max_seconds: float = Field(
        default=DEFAULT_RETRY_BACKOFF_MAX_SECONDS, ge=0
    )


class SchedulerSettings(BaseModel):
    """Background refresh sweep."""

    enabled: bool = Field(default=True)
    interval_seconds: int = Field(default=DEFAULT_SWEEP_INTERVAL_SECONDS, ge=5)
    refresh_buffer_seconds: int = Field(
        default=DEFAULT_SWEEP_REFRESH_BUFFER_SECONDS, ge=0
    )


class Settings(BaseSettings):
    """
    Configuration settings for the Social Connect service.

    Settings are loaded from environment variables and .env files, using the
    ``SOCIAL_CONNECT_`` prefix and ``__`` for nested sections, e.g.
    ``SOCIAL_CONNECT_PROVIDER__CLIENT_ID``. Values from a TOML configuration
    file are passed explicitly and take precedence.
    """

    model_config = SettingsConfigDict(
        env_prefix="SOCIAL_CONNECT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    state_store: StateStoreSettings = Field(default_factory=StateStoreSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    tokens: TokenSettings = Field(default_factory=TokenSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    def model_dump_safe(self) -> dict[str, Any]:
        """
        Dump model data with secrets masked.

        Returns:
            dict: Configuration safe to log or print
        """
        # SecretStr renders as '**********' in JSON mode
        return self.model_dump(mode="json")

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Args:
            toml_path: Path to the TOML configuration file

        Returns:
            dict: Configuration data from the TOML file

        Raises:
            ValueError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ValueError(f"Cannot read TOML config file {toml_path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings instance from configuration file.

        Args:
            config_path: Path to configuration file. Can be:
                - None: Use CONFIG_FILE env var or ./social_connect.toml if present
                - Path or str: Use this specific config file
            **kwargs: Additional keyword arguments to override config values

        Returns:
            Settings: Configured Settings instance
        """
        if config_path is None:
            config_path_env = os.environ.get("CONFIG_FILE")
            config_path = (
                Path(config_path_env) if config_path_env else Path(DEFAULT_CONFIG_FILENAME)
            )

        if isinstance(config_path, str):
            config_path = Path(config_path)

        config_data: dict[str, Any] = {}
        if config_path.exists():
            config_data = cls.load_toml_config(config_path)
            logger.debug("config_file_loaded", path=str(config_path))

        # kwargs take precedence over file values
        merged_config = {**config_data, **kwargs}
        return cls(**merged_config)


def get_settings(config_path: Path | str | None = None) -> Settings:
    """Build settings with configuration file support.

    Args:
        config_path: Optional path to configuration file. If None, uses CONFIG_FILE
                    env var or ./social_connect.toml when it exists.

    Returns:
        Settings: Configured Settings instance

    Raises:
        ConfigurationError: If the file or environment values are invalid
    """
    try:
        return Settings.from_config(config_path=config_path)
    except (OSError, ValueError) as e:
        # pydantic.ValidationError subclasses ValueError
        raise ConfigurationError(f"Failed to load configuration: {e}") from e
