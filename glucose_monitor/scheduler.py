"""
Synchronization scheduler.

Owns the polling cadence and the only mutable dashboard state. Every
trigger (timer tick, manual refresh, configuration or range change) goes
through one gate, so at most one sync cycle is in flight at a time.

State machine::

    UNCONFIGURED --save--> IDLE --trigger--> SYNCING --+--> IDLE
         ^                                            |
         +----------------- reset --------------------+--> FAILED --> IDLE
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .classifier import classify_level, classify_trend, direction_label, time_since
from .config import ConfigStore, Settings
from .constants import NEVER_SYNCED_LABEL, POLL_THREAD_NAME, SyncStatus, TimeRange
from .exceptions import ConfigurationError, NightscoutError, NotConfiguredError
from .models import ChartPoint, Configuration, DashboardView, Reading
from .nightscout_client import NightscoutClient
from .series import to_chart_series

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Poll Task
# =============================================================================

class PollTask:
    """
    Runs a callback immediately and then every ``interval`` seconds.

    ``cancel()`` is the cancel handle: the loop exits at its next wake-up
    and never calls the callback again.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        name: str = POLL_THREAD_NAME,
    ):
        self.interval = interval
        self._callback = callback
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def _run(self) -> None:
        logger.debug("Poll task started", extra={"interval": self.interval})
        while not self._stop.is_set():
            try:
                self._callback()
            except Exception as e:
                logger.error(f"Unexpected error in sync loop: {e}", exc_info=True)
            if self._stop.wait(self.interval):
                break
        logger.debug("Poll task stopped")


# =============================================================================
# Sync State
# =============================================================================

@dataclass
class SyncState:
    """Result of the most recent sync cycles."""
    last_reading: Optional[Reading] = None
    series: List[ChartPoint] = field(default_factory=list)
    last_error: Optional[NightscoutError] = None
    in_flight: bool = False
    last_attempt_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None


@dataclass
class SyncOutcome:
    """Separate outcomes of the two reads of one cycle."""
    reading: Optional[Reading] = None
    series: Optional[List[ChartPoint]] = None
    errors: List[NightscoutError] = field(default_factory=list)


# =============================================================================
# Scheduler
# =============================================================================

class SyncScheduler:
    """
    Coordinates configuration, polling and the dashboard view-model.

    Features:
    - Single flight: triggers arriving while a cycle runs are coalesced
    - Partial results: a failed read keeps the previous good value
    - Stale-result discard: results from before a configuration change,
      range change, reset or shutdown are never applied
    """

    def __init__(
        self,
        client: NightscoutClient,
        store: ConfigStore,
        settings: Settings,
        task_factory: Callable[[float, Callable[[], None]], PollTask] = PollTask,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the scheduler in the UNCONFIGURED state.

        Args:
            client: Nightscout client used for both reads
            store: Persistent connection store
            settings: Application settings (interval, thresholds, timezone)
            task_factory: Builds the periodic task; tests inject a fake
            clock: Returns the current aware datetime
        """
        self.client = client
        self.store = store
        self.settings = settings
        self._task_factory = task_factory
        self._clock = clock

        self._gate = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = SyncState()
        self._status = SyncStatus.UNCONFIGURED
        self._config: Optional[Configuration] = None
        self._time_range = TimeRange.from_hours(settings.default_time_range_hours)
        self._epoch = 0
        self._task: Optional[PollTask] = None

    # =========================================================================
    # Read-only accessors
    # =========================================================================

    @property
    def status(self) -> SyncStatus:
        with self._state_lock:
            return self._status

    @property
    def configuration(self) -> Optional[Configuration]:
        with self._state_lock:
            return self._config

    @property
    def time_range(self) -> TimeRange:
        with self._state_lock:
            return self._time_range

    @property
    def state(self) -> SyncState:
        """Snapshot of the sync state."""
        with self._state_lock:
            return replace(self._state, series=list(self._state.series))

    # =========================================================================
    # Commands
    # =========================================================================

    def start(self) -> bool:
        """
        Resume from the stored configuration, if any.

        A stored file that cannot be read or holds an invalid URL leaves the
        scheduler UNCONFIGURED so a new configuration can replace it.

        Returns:
            True if a configuration was found and polling started
        """
        try:
            config = self.store.load()
        except ConfigurationError as e:
            logger.error(
                "Ignoring unusable stored configuration",
                extra={"error_code": e.error_code.value, "details": e.details},
                exc_info=True,
            )
            return False
        if config is None:
            logger.info("No stored Nightscout configuration; waiting for setup")
            return False
        self._activate(config)
        return True

    def set_configuration(
        self,
        endpoint_url: Optional[str],
        shared_secret: Optional[str] = None,
    ) -> Configuration:
        """
        Validate, persist and activate a new connection.

        Raises:
            ConfigValidationError: If the URL is empty or invalid; the
                current state is left untouched
        """
        config = self.store.save(Configuration.create(endpoint_url, shared_secret))
        self._activate(config)
        return config

    def reset_configuration(self) -> None:
        """Stop polling, forget the connection and drop all fetched data."""
        self._cancel_task()
        self.store.clear()
        with self._state_lock:
            self._config = None
            self._epoch += 1
            self._state = SyncState(in_flight=self._state.in_flight)
            self._transition(SyncStatus.UNCONFIGURED)
        logger.info("Configuration reset")

    def set_time_range(self, hours: int) -> TimeRange:
        """
        Select the history window; a change triggers an immediate sync.

        Raises:
            InvalidTimeRangeError: If ``hours`` is not a supported range
        """
        time_range = TimeRange.from_hours(hours)
        with self._state_lock:
            if time_range == self._time_range:
                return time_range
            self._time_range = time_range
            self._epoch += 1
            configured = self._config is not None

        logger.info(
            "Time range changed",
            extra={"range_hours": time_range.hours, "sample_count": time_range.sample_count},
        )
        if configured:
            self._rearm()
        return time_range

    def refresh_now(self) -> bool:
        """
        Run a sync cycle in the calling thread.

        Returns:
            False if the trigger was coalesced into a cycle already in flight

        Raises:
            NotConfiguredError: If no connection is configured
        """
        with self._state_lock:
            if self._config is None:
                raise NotConfiguredError()
        return self.sync()

    def shutdown(self) -> None:
        """Cancel the timer; a cycle still in flight will not be applied."""
        self._cancel_task()
        with self._state_lock:
            self._epoch += 1
        logger.info("Sync scheduler stopped")

    # =========================================================================
    # View
    # =========================================================================

    def view(self) -> DashboardView:
        """
        Build the dashboard view-model.

        Raises:
            NotConfiguredError: If no connection is configured
        """
        with self._state_lock:
            if self._config is None:
                raise NotConfiguredError()
            config = self._config
            status = self._status
            time_range = self._time_range
            reading = self._state.last_reading
            series = list(self._state.series)
            error = self._state.last_error
            loading = self._state.in_flight
            last_sync_at = self._state.last_success_at

        value = reading.value if reading else None
        direction = reading.direction if reading else None

        return DashboardView(
            endpoint_url=config.endpoint_url,
            status=status,
            current_value=value,
            level=classify_level(value, self.settings.glucose_low, self.settings.glucose_high),
            trend=classify_trend(direction),
            direction=direction_label(direction) if reading else None,
            time_since=time_since(reading.timestamp, self._clock()) if reading else NEVER_SYNCED_LABEL,
            time_range_hours=time_range.hours,
            series=series,
            loading=loading,
            last_error=error.message if error else None,
            last_sync_at=last_sync_at,
            low_threshold=self.settings.glucose_low,
            high_threshold=self.settings.glucose_high,
        )

    # =========================================================================
    # Sync Cycle
    # =========================================================================

    def sync(self) -> bool:
        """
        Run one sync cycle unless one is already in flight.

        Returns:
            True if a result was applied to the state; False if the trigger
            was coalesced into a cycle in flight, or the cycle's result was
            discarded because of a reset or shutdown
        """
        if not self._gate.acquire(blocking=False):
            logger.debug("Sync already in flight; trigger coalesced")
            return False

        try:
            while True:
                with self._state_lock:
                    if self._config is None:
                        return False
                    config = self._config
                    time_range = self._time_range
                    epoch = self._epoch
                    self._state.in_flight = True
                    self._transition(SyncStatus.SYNCING)

                outcome = self._run_cycle(config, time_range)

                with self._state_lock:
                    if epoch == self._epoch:
                        self._apply(outcome)
                        return True

                    logger.info(
                        "Discarding stale sync result",
                        extra={"epoch": epoch, "current_epoch": self._epoch},
                    )
                    # Torn down or reset while in flight
                    if self._config is None or self._task is None:
                        return False
        finally:
            with self._state_lock:
                self._state.in_flight = False
                if self._status == SyncStatus.SYNCING:
                    self._transition(
                        SyncStatus.IDLE if self._config is not None else SyncStatus.UNCONFIGURED
                    )
            self._gate.release()

    def _run_cycle(self, config: Configuration, time_range: TimeRange) -> SyncOutcome:
        """Fetch current reading, then history; capture each outcome separately."""
        outcome = SyncOutcome()
        logger.debug(
            "Sync started",
            extra={"endpoint_url": config.endpoint_url, "range_hours": time_range.hours},
        )

        try:
            outcome.reading = self.client.fetch_current(config)
        except NightscoutError as e:
            self._log_fetch_error("current reading", e)
            outcome.errors.append(e)

        try:
            samples = self.client.fetch_history(config, time_range.hours)
            outcome.series = to_chart_series(samples, self.settings.get_display_tz())
        except NightscoutError as e:
            self._log_fetch_error("historical data", e)
            outcome.errors.append(e)

        return outcome

    def _apply(self, outcome: SyncOutcome) -> None:
        """Apply a cycle's outcome. Caller holds the state lock."""
        now = self._clock()
        state = self._state
        if outcome.reading is not None:
            state.last_reading = outcome.reading
        if outcome.series is not None:
            state.series = outcome.series
        state.last_attempt_at = now

        if outcome.errors:
            state.last_error = outcome.errors[0]
            self._transition(SyncStatus.FAILED)
            logger.warning(
                "Sync failed; keeping last good data",
                extra={
                    "error_code": state.last_error.error_code.value,
                    "failures": len(outcome.errors),
                    "has_reading": state.last_reading is not None,
                    "series_length": len(state.series),
                },
            )
            self._transition(SyncStatus.IDLE)
            return

        state.last_error = None
        state.last_success_at = now
        self._transition(SyncStatus.IDLE)
        logger.info(
            "Sync complete",
            extra={
                "value": outcome.reading.value if outcome.reading else None,
                "series_length": len(state.series),
            },
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _activate(self, config: Configuration) -> None:
        with self._state_lock:
            self._config = config
            self._epoch += 1
            if self._status == SyncStatus.UNCONFIGURED:
                self._transition(SyncStatus.IDLE)
        logger.info(
            "Nightscout configuration active",
            extra={"endpoint_url": config.endpoint_url, "has_secret": bool(config.shared_secret)},
        )
        self._rearm()

    def _rearm(self) -> None:
        """Replace the poll task; the new one syncs immediately."""
        task = self._task_factory(self.settings.poll_interval_seconds, self.sync)
        with self._state_lock:
            previous, self._task = self._task, task
        if previous is not None:
            previous.cancel()
        task.start()

    def _cancel_task(self) -> None:
        with self._state_lock:
            task, self._task = self._task, None
        if task is not None:
            task.cancel()

    def _transition(self, status: SyncStatus) -> None:
        """Move the state machine. Caller holds the state lock."""
        if status != self._status:
            logger.debug(f"Sync status {self._status.value} -> {status.value}")
            self._status = status

    @staticmethod
    def _log_fetch_error(what: str, error: NightscoutError) -> None:
        logger.error(
            f"Error fetching {what} from Nightscout",
            extra={
                "error_code": error.error_code.value,
                "error_message": error.message,
                "details": error.details,
            },
        )
