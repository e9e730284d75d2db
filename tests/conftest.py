"""
Pytest configuration and shared fixtures for the test suite.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient


NOW = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)


class FakePollTask:
    """Stand-in for PollTask that records calls instead of starting a thread."""

    instances = []

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        FakePollTask.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def tick(self):
        self.callback()


def make_entry(value, minutes_ago=0, direction="Flat", **extra):
    """Build a Nightscout entry dict as the API returns it."""
    entry = {
        "_id": f"id-{value}-{minutes_ago}",
        "sgv": value,
        "date": NOW_MS - minutes_ago * 60 * 1000,
        "dateString": (NOW - timedelta(minutes=minutes_ago)).isoformat(),
        "direction": direction,
        "type": "sgv",
    }
    entry.update(extra)
    return entry


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "glucose" / "config.yaml"


@pytest.fixture
def mock_settings(store_path):
    """Create settings pointing at a temporary store."""
    from glucose_monitor.config import Settings, get_settings

    get_settings.cache_clear()

    return Settings(
        config_store_path=store_path,
        display_timezone="UTC",
    )


@pytest.fixture
def config_store(mock_settings):
    from glucose_monitor.config import ConfigStore

    return ConfigStore(mock_settings.config_store_path)


@pytest.fixture
def configuration():
    from glucose_monitor.models import Configuration

    return Configuration(endpoint_url="https://x.example.com", shared_secret="s3cret")


@pytest.fixture
def current_entry():
    return make_entry(120, minutes_ago=3, direction="FortyFiveUp")


@pytest.fixture
def history_entries():
    """Three entries, newest first."""
    return [
        make_entry(120, minutes_ago=3, direction="FortyFiveUp"),
        make_entry(110, minutes_ago=8),
        make_entry(100, minutes_ago=13),
    ]


@pytest.fixture
def sample_reading(current_entry):
    from glucose_monitor.models import NightscoutEntry

    return NightscoutEntry.model_validate(current_entry).to_reading()


@pytest.fixture
def sample_history(history_entries):
    from glucose_monitor.models import NightscoutEntry

    return [NightscoutEntry.model_validate(e).to_sample() for e in history_entries]


@pytest.fixture
def mock_nightscout_client(sample_reading, sample_history):
    """Create a mock NightscoutClient returning the sample data."""
    from glucose_monitor.nightscout_client import NightscoutClient

    client = MagicMock(spec=NightscoutClient)
    client.fetch_current.return_value = sample_reading
    client.fetch_history.return_value = sample_history
    return client


@pytest.fixture
def fake_tasks():
    FakePollTask.instances = []
    return FakePollTask.instances


@pytest.fixture
def scheduler(mock_nightscout_client, config_store, mock_settings, fake_tasks):
    """Scheduler with a mocked client and no background thread."""
    from glucose_monitor.scheduler import SyncScheduler

    return SyncScheduler(
        client=mock_nightscout_client,
        store=config_store,
        settings=mock_settings,
        task_factory=FakePollTask,
        clock=lambda: NOW,
    )


@pytest.fixture
def test_client(scheduler, mock_settings):
    """Create a test client with mocked dependencies."""
    from glucose_monitor.config import get_settings
    from glucose_monitor.main import app, get_scheduler, reset_scheduler

    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_settings] = lambda: mock_settings

    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()
    reset_scheduler()
