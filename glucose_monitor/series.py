"""Conversion of Nightscout history into a chart-ready series."""

from datetime import datetime, tzinfo
from typing import List, Optional, Sequence

from .constants import CHART_LABEL_FORMAT
from .models import ChartPoint, Sample


def format_time_label(point_time: datetime, tz: Optional[tzinfo] = None) -> str:
    """Render a timestamp as an ``HH:MM`` clock label in ``tz`` (local when None)."""
    return point_time.astimezone(tz).strftime(CHART_LABEL_FORMAT)


def to_chart_series(samples: Sequence[Sample], tz: Optional[tzinfo] = None) -> List[ChartPoint]:
    """
    Turn newest-first samples into an oldest-first chart series.

    Gaps in the data are kept as-is; nothing is interpolated or validated.

    Args:
        samples: Samples as returned by Nightscout (newest first)
        tz: Timezone for the labels, the local zone when None

    Returns:
        One ChartPoint per sample, in chronological order
    """
    return [
        ChartPoint(
            label=format_time_label(sample.timestamp, tz),
            value=sample.value,
            timestamp=sample.timestamp,
        )
        for sample in reversed(samples)
    ]
