"""
PageFeed Configuration System
=============================

Application settings from environment variables and Pydantic models.
Environment variables override Field defaults; the feeds file (see
``pagefeed.config.feeds``) overrides the output directory and proxy.
"""

import os
from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


APP_NAME = "pagefeed"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / fallback / APP_NAME


def default_config_path() -> Path:
    """Default location of the feeds file."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / "feeds.toml"


def default_cache_path() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", ".cache") / "cache.db"


class LogLevel(str, Enum):
    """Available log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProcessingSettings(BaseModel):
    """Run orchestration configuration."""

    parallel_feeds: int = Field(
        default=5, ge=1, le=64, description="Feeds processed concurrently"
    )


class LimitsSettings(BaseModel):
    """Network time limits."""

    request_timeout: float = Field(
        default=30.0, gt=0, le=600, description="Total request timeout in seconds"
    )
    connect_timeout: float = Field(
        default=10.0, gt=0, le=120, description="Connection timeout in seconds"
    )

    @field_validator("connect_timeout")
    @classmethod
    def validate_connect_timeout(cls, v, info):
        """Connecting cannot take longer than the whole request."""
        total = info.data.get("request_timeout")
        if total is not None and v > total:
            raise ValueError("connect_timeout cannot exceed request_timeout")
        return v


class HttpSettings(BaseModel):
    """HTTP client configuration."""

    user_agent: str = Field(
        default=f"{APP_NAME}/1.0", description="Default User-Agent header"
    )
    proxy: Optional[str] = Field(
        default=None, description="Proxy URL, overrides the proxy environment"
    )
    file_urls: bool = Field(default=False, description="Allow file:// source URLs")


class CacheSettings(BaseModel):
    """Cache database configuration."""

    path: str = Field(
        default_factory=lambda: str(default_cache_path()),
        description="SQLite cache database file path",
    )
    pool_size: int = Field(default=2, ge=1, le=20, description="Connection pool size")


class DateSettings(BaseModel):
    """Date normalization configuration."""

    reference_timezone: str = Field(
        default="UTC", description="Zone assumed for dates without an offset"
    )

    @field_validator("reference_timezone")
    @classmethod
    def validate_timezone(cls, v):
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_file_size_mb: int = Field(
        default=10, ge=1, le=100, description="Max log file size in MB"
    )
    backup_count: int = Field(
        default=5, ge=1, le=20, description="Number of log backup files"
    )
    structured_logging: bool = Field(
        default=False, description="Use structured JSON logging"
    )
    console_logging: bool = Field(default=True, description="Enable console logging")


class PageFeedSettings(BaseSettings):
    """Main application settings."""

    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    dates: DateSettings = Field(default_factory=DateSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    output_dir: str = Field(default=".", description="Directory feeds are written to")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "PAGEFEED_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate paths the run depends on."""
        errors = []

        try:
            Path(self.cache.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid cache path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path).expanduser()
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID,
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> PageFeedSettings:
    """Load settings from environment variables and defaults.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv

    load_dotenv()

    try:
        settings = PageFeedSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID,
        )


# Global settings instance
_settings: Optional[PageFeedSettings] = None


def get_settings(reload: bool = False) -> PageFeedSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
