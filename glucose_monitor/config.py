"""
Application configuration with Pydantic validation, and the persisted
Nightscout connection store.

Settings are loaded from environment variables with sensible defaults.
The connection itself (URL and optional API secret) is entered by the user
and kept in a small YAML key-value file so it survives restarts.
"""

import logging
import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from .constants import (
    CONFIG_KEY_SECRET,
    CONFIG_KEY_URL,
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILENAME,
    DEFAULT_HOST,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PORT,
    DEFAULT_TIME_RANGE_HOURS,
    POLL_INTERVAL_SECONDS,
    SUPPORTED_TIME_RANGES,
    GlucoseThreshold,
)
from .exceptions import ConfigStoreError
from .models import Configuration

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Variables use the ``GLUCOSE_MONITOR_`` prefix, e.g.
    ``GLUCOSE_MONITOR_POLL_INTERVAL_SECONDS=300``.
    Thresholds are validated to ensure logical ordering.
    """

    # =========================================================================
    # Connection Store
    # =========================================================================
    config_store_path: Path = Path.home() / DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILENAME

    # =========================================================================
    # Synchronization
    # =========================================================================
    poll_interval_seconds: int = POLL_INTERVAL_SECONDS
    http_timeout: int = DEFAULT_HTTP_TIMEOUT
    default_time_range_hours: int = DEFAULT_TIME_RANGE_HOURS

    # =========================================================================
    # Glucose Thresholds (mg/dL)
    # =========================================================================
    glucose_low: int = GlucoseThreshold.LOW
    glucose_high: int = GlucoseThreshold.HIGH

    # =========================================================================
    # Display
    # =========================================================================
    # IANA zone for chart labels; the host's local zone when unset
    display_timezone: Optional[str] = None

    # =========================================================================
    # Server Settings
    # =========================================================================
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    debug: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator('poll_interval_seconds', 'http_timeout')
    @classmethod
    def validate_positive_seconds(cls, v: int) -> int:
        """Validate intervals are at least one second."""
        if v < 1:
            raise ValueError(f"must be at least 1 second, got {v}")
        return v

    @field_validator('default_time_range_hours')
    @classmethod
    def validate_time_range(cls, v: int) -> int:
        """Validate the default window is one of the selectable ranges."""
        if v not in SUPPORTED_TIME_RANGES:
            raise ValueError(
                f"Invalid time range {v}. Must be one of: "
                f"{', '.join(str(h) for h in SUPPORTED_TIME_RANGES)}"
            )
        return v

    @field_validator('display_timezone')
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        """Validate the display timezone is a known IANA zone."""
        if not v:
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone '{v}'")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return v_upper

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'Settings':
        """Validate that threshold values are in logical order."""
        if not (0 < self.glucose_low < self.glucose_high):
            raise ValueError(
                f"glucose_low ({self.glucose_low}) must be positive and less than "
                f"glucose_high ({self.glucose_high})"
            )
        return self

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_display_tz(self) -> Optional[ZoneInfo]:
        """Return the chart label timezone, or None for the local zone."""
        if self.display_timezone:
            return ZoneInfo(self.display_timezone)
        return None

    class Config:
        env_prefix = "GLUCOSE_MONITOR_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# =============================================================================
# Connection Store
# =============================================================================

class ConfigStore:
    """
    Durable key-value store for the Nightscout connection.

    The file holds two keys, ``nightscoutUrl`` and ``apiSecret``; the secret
    is omitted when none was given. Nothing here touches the network.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[Configuration]:
        """
        Read the stored configuration.

        Returns:
            The saved Configuration, or None when nothing usable is stored

        Raises:
            ConfigStoreError: If the file exists but cannot be parsed
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigStoreError(path=str(self.path), original_error=e)

        if not isinstance(data, dict):
            raise ConfigStoreError(
                path=str(self.path),
                message="Stored configuration is not a key-value mapping",
            )

        url = data.get(CONFIG_KEY_URL)
        if not url:
            return None

        config = Configuration.create(url, data.get(CONFIG_KEY_SECRET))
        logger.debug(
            "Loaded stored configuration",
            extra={"endpoint_url": config.endpoint_url, "has_secret": bool(config.shared_secret)},
        )
        return config

    def save(self, config: Configuration) -> Configuration:
        """
        Persist a configuration, replacing any previous one.

        Raises:
            ConfigValidationError: If the endpoint URL is empty or invalid
        """
        # model_construct() skips validators
        config = Configuration.create(config.endpoint_url, config.shared_secret)

        data = {CONFIG_KEY_URL: config.endpoint_url}
        if config.shared_secret:
            data[CONFIG_KEY_SECRET] = config.shared_secret

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".config-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.info(
            "Saved Nightscout configuration",
            extra={"endpoint_url": config.endpoint_url, "has_secret": bool(config.shared_secret)},
        )
        return config

    def clear(self) -> None:
        """Remove the stored configuration."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.info("Cleared Nightscout configuration", extra={"path": str(self.path)})
