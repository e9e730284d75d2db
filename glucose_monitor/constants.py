"""
Application constants and magic number definitions.

This module centralizes all hardcoded values for better maintainability.
"""

import math
from enum import Enum, IntEnum
from typing import Tuple

from .exceptions import InvalidTimeRangeError


# =============================================================================
# Nightscout API
# =============================================================================

# Endpoint paths, relative to the configured Nightscout URL
CURRENT_ENTRY_PATH = "/api/v1/entries/current.json"
ENTRIES_PATH = "/api/v1/entries.json"

# Header carrying the static shared secret
API_SECRET_HEADER = "API-SECRET"

# Entry type reported for sensor glucose values
SGV_ENTRY_TYPE = "sgv"

# Nominal sampling interval of the CGM device (minutes)
SAMPLE_INTERVAL_MINUTES = 5

# Default HTTP timeout in seconds
DEFAULT_HTTP_TIMEOUT = 10


# =============================================================================
# Synchronization
# =============================================================================

# Fixed polling period while a configuration is present (5 minutes)
POLL_INTERVAL_SECONDS = 300

# Name given to the background polling thread
POLL_THREAD_NAME = "glucose-sync"


class TimeRange(IntEnum):
    """Selectable history window in hours."""
    THREE_HOURS = 3
    SIX_HOURS = 6
    TWELVE_HOURS = 12
    DAY = 24

    @classmethod
    def from_hours(cls, hours: int) -> "TimeRange":
        """
        Look up a supported window.

        Raises:
            InvalidTimeRangeError: If ``hours`` is not a selectable range
        """
        try:
            return cls(hours)
        except ValueError:
            raise InvalidTimeRangeError(hours, [r.value for r in cls])

    @property
    def hours(self) -> int:
        return int(self.value)

    @property
    def sample_count(self) -> int:
        """Number of entries to request for this window."""
        return sample_count(self.value)


SUPPORTED_TIME_RANGES: Tuple[int, ...] = tuple(r.value for r in TimeRange)
DEFAULT_TIME_RANGE_HOURS = TimeRange.DAY.value


def sample_count(range_hours: int) -> int:
    """Entries covering ``range_hours`` at the nominal sampling interval."""
    return math.ceil(range_hours * 60 / SAMPLE_INTERVAL_MINUTES)


class SyncStatus(str, Enum):
    """Synchronization state machine states."""
    UNCONFIGURED = "unconfigured"
    IDLE = "idle"
    SYNCING = "syncing"
    FAILED = "failed"


# =============================================================================
# Classification
# =============================================================================

class GlucoseThreshold:
    """Default glucose threshold values in mg/dL."""
    LOW = 70
    HIGH = 180


class GlucoseLevel(str, Enum):
    """Severity category of a glucose value."""
    LOW = "low"
    IN_RANGE = "in_range"
    HIGH = "high"
    UNKNOWN = "unknown"


class Trend(str, Enum):
    """Direction category of a reading."""
    RISING = "rising"
    FALLING = "falling"
    FLAT = "flat"
    UNKNOWN = "unknown"


GLUCOSE_UNIT = "mg/dL"

# Caption shown when a reading carries no direction token
DEFAULT_DIRECTION_LABEL = "Stable"

# Labels for missing timestamps
UNKNOWN_TIME_LABEL = "Unknown"
NEVER_SYNCED_LABEL = "Never"

# Chart labels are rendered as a 24-hour clock
CHART_LABEL_FORMAT = "%H:%M"


# =============================================================================
# Configuration Store
# =============================================================================

# Keys of the persisted key-value configuration
CONFIG_KEY_URL = "nightscoutUrl"
CONFIG_KEY_SECRET = "apiSecret"

DEFAULT_CONFIG_DIR = ".glucose_monitor"
DEFAULT_CONFIG_FILENAME = "config.yaml"

ALLOWED_URL_SCHEMES = frozenset({"http", "https"})


# =============================================================================
# Logging Constants
# =============================================================================

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_LEVEL = "INFO"


# =============================================================================
# Server Constants
# =============================================================================

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
SERVICE_NAME = "glucose-monitor"
