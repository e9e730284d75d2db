"""
Classification of a reading for display.

Severity follows the clinical target range (70-180 mg/dL by default);
trend follows the Nightscout ``direction`` token.
"""

from datetime import datetime
from typing import Optional

from .constants import (
    DEFAULT_DIRECTION_LABEL,
    UNKNOWN_TIME_LABEL,
    GlucoseLevel,
    GlucoseThreshold,
    Trend,
)


def classify_level(
    value: Optional[int],
    low: int = GlucoseThreshold.LOW,
    high: int = GlucoseThreshold.HIGH,
) -> GlucoseLevel:
    """
    Get the severity category of a glucose value.

    Both bounds belong to the target range:
    - Low: below ``low``
    - In range: ``low`` to ``high`` inclusive
    - High: above ``high``

    Args:
        value: Glucose value in mg/dL, or None when there is no reading
        low: Lower bound of the target range
        high: Upper bound of the target range

    Returns:
        GlucoseLevel for the value
    """
    if value is None:
        return GlucoseLevel.UNKNOWN
    if value < low:
        return GlucoseLevel.LOW
    if value > high:
        return GlucoseLevel.HIGH
    return GlucoseLevel.IN_RANGE


def classify_trend(direction: Optional[str]) -> Trend:
    """
    Get the trend category of a Nightscout direction token.

    Matching is case-insensitive on substrings, so ``SingleUp``,
    ``FortyFiveUp`` and ``DoubleUp`` are all rising. Any other non-empty
    token, including ``NOT COMPUTABLE``, is flat.
    """
    if not direction:
        return Trend.UNKNOWN

    token = direction.upper()
    if "UP" in token:
        return Trend.RISING
    if "DOWN" in token:
        return Trend.FALLING
    return Trend.FLAT


def direction_label(direction: Optional[str]) -> str:
    """Caption for the direction token."""
    return direction or DEFAULT_DIRECTION_LABEL


def time_since(timestamp: Optional[datetime], now: datetime) -> str:
    """
    Describe how long ago ``timestamp`` was, relative to ``now``.

    Minutes and hours are floored, so 90 seconds is "1 minute ago" and
    61 minutes is "1 hour ago".
    """
    if timestamp is None:
        return UNKNOWN_TIME_LABEL

    minutes = int((now - timestamp).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"

    hours = minutes // 60
    if hours == 1:
        return "1 hour ago"
    return f"{hours} hours ago"
