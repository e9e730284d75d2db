"""
Custom exceptions for the glucose monitor.

This module provides structured error handling with clear error codes
and user-friendly messages for better debugging and UX.
"""

from enum import Enum
from typing import Iterable, Optional


class ErrorCode(str, Enum):
    """Standardized error codes for the application."""

    # Nightscout API Errors (1xxx)
    NIGHTSCOUT_TRANSPORT = "NIGHTSCOUT_1001"
    NIGHTSCOUT_HTTP = "NIGHTSCOUT_1002"
    NIGHTSCOUT_DECODE = "NIGHTSCOUT_1003"

    # Configuration Errors (2xxx)
    CONFIG_INVALID = "CONFIG_2001"
    CONFIG_NOT_CONFIGURED = "CONFIG_2002"
    CONFIG_INVALID_URL = "CONFIG_2003"
    CONFIG_INVALID_TIME_RANGE = "CONFIG_2004"
    CONFIG_STORE_CORRUPT = "CONFIG_2005"


class GlucoseMonitorError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        self.original_error = original_error
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        """Returns the complete error message with code and details."""
        parts = [f"[{self.error_code.value}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.original_error:
            parts.append(f"Caused by: {type(self.original_error).__name__}: {self.original_error}")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Configuration
# =============================================================================

class ConfigurationError(GlucoseMonitorError):
    """Raised when configuration is invalid or unavailable."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        error_code: ErrorCode = ErrorCode.CONFIG_INVALID,
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            original_error=original_error,
        )


class ConfigValidationError(ConfigurationError):
    """Raised when a connection configuration is rejected before any network call."""

    def __init__(
        self,
        message: str = "Nightscout URL is required",
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIG_INVALID_URL,
            details=details,
            original_error=original_error,
        )


class InvalidTimeRangeError(ConfigurationError):
    """Raised when an unsupported history window is requested."""

    def __init__(self, hours: int, supported: Iterable[int]):
        super().__init__(
            message=f"Unsupported time range: {hours}h",
            error_code=ErrorCode.CONFIG_INVALID_TIME_RANGE,
            details=f"Supported ranges: {', '.join(f'{h}h' for h in supported)}",
        )
        self.hours = hours


class NotConfiguredError(ConfigurationError):
    """Raised when a dashboard operation is attempted without a configuration."""

    def __init__(self, message: str = "No Nightscout connection configured"):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIG_NOT_CONFIGURED,
            details="Save a Nightscout URL first",
        )


class ConfigStoreError(ConfigurationError):
    """Raised when the persisted configuration cannot be read."""

    def __init__(
        self,
        path: str,
        message: str = "Stored configuration is unreadable",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIG_STORE_CORRUPT,
            details=f"Path: {path}",
            original_error=original_error,
        )


# =============================================================================
# Nightscout API
# =============================================================================

class NightscoutError(GlucoseMonitorError):
    """Base class for failures of a remote Nightscout read."""


class TransportError(NightscoutError):
    """Raised when the Nightscout server cannot be reached."""

    def __init__(
        self,
        message: str = "Failed to connect to Nightscout",
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.NIGHTSCOUT_TRANSPORT,
            details=details,
            original_error=original_error,
        )


class HttpError(NightscoutError):
    """Raised when Nightscout answers with a non-2xx status."""

    def __init__(
        self,
        status: int,
        message: Optional[str] = None,
        details: Optional[str] = None,
    ):
        super().__init__(
            message=message or f"Failed to fetch data: HTTP {status}",
            error_code=ErrorCode.NIGHTSCOUT_HTTP,
            details=details,
        )
        self.status = status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status"] = self.status
        return data


class DecodeError(NightscoutError):
    """Raised when a Nightscout payload does not match the expected shape."""

    def __init__(
        self,
        message: str = "Malformed Nightscout payload",
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.NIGHTSCOUT_DECODE,
            details=details,
            original_error=original_error,
        )
