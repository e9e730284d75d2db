"""
Pydantic models for configuration, Nightscout payloads and API responses.
"""

from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    ALLOWED_URL_SCHEMES,
    GLUCOSE_UNIT,
    GlucoseLevel,
    SyncStatus,
    Trend,
)
from .exceptions import ConfigValidationError


# =============================================================================
# Configuration
# =============================================================================

class Configuration(BaseModel):
    """Connection settings for a single Nightscout instance."""

    model_config = ConfigDict(frozen=True)

    endpoint_url: str
    shared_secret: Optional[str] = None

    @field_validator("endpoint_url")
    @classmethod
    def validate_endpoint_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v:
            raise ValueError("Nightscout URL is required")
        parsed = urlparse(v)
        if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES or not parsed.netloc:
            raise ValueError(f"Invalid Nightscout URL '{v}'. Expected http(s)://host")
        return v.rstrip("/")

    @field_validator("shared_secret")
    @classmethod
    def empty_secret_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @classmethod
    def create(
        cls,
        endpoint_url: Optional[str],
        shared_secret: Optional[str] = None,
    ) -> "Configuration":
        """
        Build a configuration from user input.

        Raises:
            ConfigValidationError: If the URL is empty or not URL-shaped
        """
        try:
            return cls(endpoint_url=endpoint_url or "", shared_secret=shared_secret)
        except ValidationError as e:
            error = e.errors()[0]
            cause = error.get("ctx", {}).get("error")
            raise ConfigValidationError(
                message=str(cause) if cause else error["msg"],
                details=f"Field: {'.'.join(str(p) for p in error['loc'])}",
                original_error=e,
            )


# =============================================================================
# Glucose Data
# =============================================================================

class Reading(BaseModel):
    """The latest glucose measurement."""

    model_config = ConfigDict(frozen=True)

    value: int
    timestamp: datetime
    direction: Optional[str] = None


class Sample(BaseModel):
    """One historical glucose value."""

    model_config = ConfigDict(frozen=True)

    value: int
    timestamp: datetime


class ChartPoint(BaseModel):
    """A chart-ready point in an oldest-first series."""

    model_config = ConfigDict(frozen=True)

    label: str
    value: int
    timestamp: datetime


class NightscoutEntry(BaseModel):
    """
    Decode contract for a Nightscout ``entries`` record.

    ``sgv`` and ``date`` (epoch milliseconds) are required; everything
    else the server sends is ignored apart from ``direction`` and ``type``.
    """

    model_config = ConfigDict(extra="ignore")

    sgv: int
    date: int
    direction: Optional[str] = None
    type: Optional[str] = None

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.date / 1000, tz=timezone.utc)

    def to_reading(self) -> Reading:
        return Reading(value=self.sgv, timestamp=self.timestamp, direction=self.direction)

    def to_sample(self) -> Sample:
        return Sample(value=self.sgv, timestamp=self.timestamp)


# =============================================================================
# API Models
# =============================================================================

class DashboardView(BaseModel):
    """Read-only view-model handed to the presentation layer."""

    endpoint_url: Optional[str] = None
    status: SyncStatus
    current_value: Optional[int] = None
    unit: str = GLUCOSE_UNIT
    level: GlucoseLevel = GlucoseLevel.UNKNOWN
    trend: Trend = Trend.UNKNOWN
    direction: Optional[str] = None
    time_since: str
    time_range_hours: int
    series: List[ChartPoint] = Field(default_factory=list)
    loading: bool = False
    last_error: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    low_threshold: int
    high_threshold: int


class ConfigurationRequest(BaseModel):
    """Body of ``PUT /config``."""

    model_config = ConfigDict(populate_by_name=True)

    nightscout_url: str = Field(alias="nightscoutUrl")
    api_secret: Optional[str] = Field(default=None, alias="apiSecret")


class ConfigurationSummary(BaseModel):
    """Stored configuration without the secret itself."""

    model_config = ConfigDict(populate_by_name=True)

    nightscout_url: str = Field(alias="nightscoutUrl")
    has_secret: bool = Field(alias="hasSecret")


class TimeRangeRequest(BaseModel):
    """Body of ``PUT /range``."""

    hours: int


class RefreshResponse(BaseModel):
    """Result of a manual refresh."""

    started: bool
    dashboard: DashboardView


class HealthResponse(BaseModel):
    """Service information."""

    status: str
    service: str
