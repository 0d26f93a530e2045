"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Vybe alert engine, loading and validating environment variables at
startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string (in-memory store when unset)",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class VybeSettings(BaseSettings):
    """Vybe analytics API settings."""

    model_config = SettingsConfigDict(env_prefix="VYBE_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="VYBE_API_KEY",
        description="API key sent as x-api-key",
    )
    base_url: str = Field(
        default="https://api.vybenetwork.xyz",
        alias="VYBE_BASE_URL",
        description="Vybe API base URL",
    )
    request_timeout_seconds: float = Field(
        default=8.0,
        alias="VYBE_REQUEST_TIMEOUT_SECONDS",
        gt=0,
        le=120,
        description="HTTP timeout for a single request",
    )
    max_retries: int = Field(
        default=3,
        alias="VYBE_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retry attempts for transient upstream failures",
    )
    requests_per_second: float = Field(
        default=5.0,
        alias="VYBE_REQUESTS_PER_SECOND",
        gt=0,
        le=100,
        description="Client-side rate limit",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("VYBE_BASE_URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class WalletTrackerSettings(BaseSettings):
    """Wallet tracking engine settings."""

    model_config = SettingsConfigDict(env_prefix="WALLET_TRACKER_", extra="ignore")

    check_interval_seconds: int = Field(
        default=120,
        alias="WALLET_TRACKER_CHECK_INTERVAL_SECONDS",
        ge=10,
        le=24 * 3600,
        description="Period of the wallet scan cycle",
    )
    max_wallets_per_subscriber: int = Field(
        default=5,
        alias="WALLET_TRACKER_MAX_WALLETS_PER_SUBSCRIBER",
        ge=1,
        le=100,
        description="Maximum concurrently tracked wallets per subscriber",
    )
    value_change_percent: float = Field(
        default=5.0,
        alias="WALLET_TRACKER_VALUE_CHANGE_PERCENT",
        gt=0,
        description="Total value swing (%) that triggers an alert",
    )
    token_change_percent: float = Field(
        default=20.0,
        alias="WALLET_TRACKER_TOKEN_CHANGE_PERCENT",
        gt=0,
        description="Per-token value swing (%) that triggers an alert",
    )
    token_change_min_value_usd: float = Field(
        default=10.0,
        alias="WALLET_TRACKER_TOKEN_CHANGE_MIN_VALUE_USD",
        ge=0,
        description="Minimum new token value (USD) for per-token alerts",
    )
    max_backoff_seconds: int = Field(
        default=30 * 60,
        alias="WALLET_TRACKER_MAX_BACKOFF_SECONDS",
        ge=1,
        description="Cap of the per-wallet exponential backoff window",
    )
    fetch_concurrency: int = Field(
        default=5,
        alias="WALLET_TRACKER_FETCH_CONCURRENCY",
        ge=1,
        le=50,
        description="Concurrent balance fetches within one scan cycle",
    )
    call_timeout_seconds: float = Field(
        default=30.0,
        alias="WALLET_TRACKER_CALL_TIMEOUT_SECONDS",
        gt=0,
        description="Upper bound for a single upstream call made by the engine",
    )
    daily_snapshot_hour_utc: int = Field(
        default=0,
        alias="WALLET_TRACKER_DAILY_SNAPSHOT_HOUR_UTC",
        ge=0,
        le=23,
        description="Hour (UTC) at which dated daily wallet values are recorded",
    )


class WhaleWatchSettings(BaseSettings):
    """Whale watching engine settings."""

    model_config = SettingsConfigDict(env_prefix="WHALE_WATCH_", extra="ignore")

    check_interval_seconds: int = Field(
        default=600,
        alias="WHALE_WATCH_CHECK_INTERVAL_SECONDS",
        ge=10,
        le=24 * 3600,
        description="Period of the whale scan cycle",
    )
    page_size: int = Field(
        default=5,
        alias="WHALE_WATCH_PAGE_SIZE",
        ge=1,
        le=100,
        description="Transfers fetched per token per cycle",
    )
    initial_lookback_seconds: int = Field(
        default=3600,
        alias="WHALE_WATCH_INITIAL_LOOKBACK_SECONDS",
        ge=0,
        description="Scan window start relative to process start",
    )
    call_timeout_seconds: float = Field(
        default=30.0,
        alias="WHALE_WATCH_CALL_TIMEOUT_SECONDS",
        gt=0,
        description="Upper bound for a single upstream call made by the engine",
    )


class TelegramSettings(BaseSettings):
    """Telegram notification settings."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_", extra="ignore")

    bot_token: SecretStr | None = Field(
        default=None,
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram bot token",
    )
    api_base_url: str = Field(
        default="https://api.telegram.org",
        alias="TELEGRAM_API_BASE_URL",
        description="Telegram Bot API host",
    )

    @property
    def enabled(self) -> bool:
        """Check if Telegram notifications are enabled."""
        return self.bot_token is not None


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from vybe_alert_engine.config import get_settings

        settings = get_settings()
        print(settings.vybe.base_url)
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
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    vybe: VybeSettings = Field(
        default_factory=lambda: VybeSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    wallet_tracker: WalletTrackerSettings = Field(
        default_factory=lambda: WalletTrackerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    whale_watch: WhaleWatchSettings = Field(
        default_factory=lambda: WhaleWatchSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    telegram: TelegramSettings = Field(
        default_factory=lambda: TelegramSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Log alerts instead of delivering them",
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
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(in-memory)",
            "vybe": {
                "base_url": self.vybe.base_url,
                "api_key": "***" if self.vybe.api_key else "(not set)",
                "requests_per_second": str(self.vybe.requests_per_second),
            },
            "wallet_tracker": {
                "check_interval_seconds": str(self.wallet_tracker.check_interval_seconds),
                "max_wallets_per_subscriber": str(self.wallet_tracker.max_wallets_per_subscriber),
                "value_change_percent": str(self.wallet_tracker.value_change_percent),
            },
            "whale_watch": {
                "check_interval_seconds": str(self.whale_watch.check_interval_seconds),
                "page_size": str(self.whale_watch.page_size),
            },
            "telegram_enabled": str(self.telegram.enabled),
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(self, *, command: Literal["run"]) -> None:
        """Validate command-specific requirements.

        A capability required by the command that is not configured makes
        the application refuse to run.
        """
        if command == "run":
            if not self.vybe.api_key:
                raise ValueError("VYBE_API_KEY is required to poll the analytics API")
            if not self.dry_run and not self.telegram.enabled:
                raise ValueError("TELEGRAM_BOT_TOKEN is required unless DRY_RUN is set")

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
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
