"""
Glucose Monitor - a personal Nightscout glucose dashboard backend.

This package polls a Nightscout instance for the current reading and a
recent history window, classifies the reading and serves a chart-ready
view-model to a front end.
"""

__version__ = "1.0.0"
__author__ = "Glucose Monitor Contributors"

from .config import ConfigStore, Settings, get_settings
from .models import ChartPoint, Configuration, DashboardView, Reading, Sample
from .scheduler import SyncScheduler

__all__ = [
    "ConfigStore",
    "Settings",
    "get_settings",
    "ChartPoint",
    "Configuration",
    "DashboardView",
    "Reading",
    "Sample",
    "SyncScheduler",
]
