"""
FastAPI application for the glucose monitor.

This module exposes the dashboard view-model and the configuration
commands over HTTP for a browser or widget front end.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import ConfigStore, get_settings
from .constants import DEFAULT_LOG_FORMAT, SERVICE_NAME
from .exceptions import (
    ConfigStoreError,
    ConfigurationError,
    GlucoseMonitorError,
    NotConfiguredError,
)
from .models import (
    ConfigurationRequest,
    ConfigurationSummary,
    DashboardView,
    HealthResponse,
    RefreshResponse,
    TimeRangeRequest,
)
from .nightscout_client import NightscoutClient
from .scheduler import SyncScheduler

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format=DEFAULT_LOG_FORMAT,
)
logger = logging.getLogger(__name__)


# =============================================================================
# Dependency Injection
# =============================================================================

_scheduler: Optional[SyncScheduler] = None


def get_scheduler() -> SyncScheduler:
    """
    Get the singleton SyncScheduler instance.

    Returns:
        Scheduler wired to the configured store and Nightscout client
    """
    global _scheduler
    if _scheduler is None:
        settings = get_settings()
        _scheduler = SyncScheduler(
            client=NightscoutClient(timeout=settings.http_timeout),
            store=ConfigStore(settings.config_store_path),
            settings=settings,
        )
    return _scheduler


def reset_scheduler() -> None:
    """Shut down and drop the singleton scheduler (useful for testing)."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown()
    _scheduler = None


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start polling from the stored configuration; stop it on shutdown."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)
    logger.info("Glucose monitor starting up")

    scheduler = app.dependency_overrides.get(get_scheduler, get_scheduler)()
    scheduler.start()
    yield
    scheduler.shutdown()
    scheduler.client.close()
    logger.info("Glucose monitor shutting down")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Glucose Monitor",
    description="Polls a Nightscout instance and serves a glucose dashboard view-model",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(GlucoseMonitorError)
async def glucose_monitor_error_handler(
    request: Request,
    exc: GlucoseMonitorError,
) -> JSONResponse:
    """Handle custom application exceptions with structured error responses."""
    logger.error(
        "Application error",
        extra={
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details,
            "path": request.url.path,
        }
    )

    status_code = 500
    if isinstance(exc, NotConfiguredError):
        status_code = 409
    elif isinstance(exc, ConfigurationError) and not isinstance(exc, ConfigStoreError):
        status_code = 422

    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict(),
    )


# =============================================================================
# Middleware
# =============================================================================

@app.middleware("http")
async def add_request_context(request: Request, call_next):
    """Add request ID and timing to all requests."""
    request_id = str(uuid.uuid4())[:8]
    start_time = datetime.now()

    request.state.request_id = request_id

    response = await call_next(request)

    duration_ms = (datetime.now() - start_time).total_seconds() * 1000

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    logger.info(
        "Request completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }
    )

    return response


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/", response_model=HealthResponse)
async def root():
    """
    Root endpoint - service information.

    Returns service name and status for quick verification.
    """
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint for liveness probes."""
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
    }


@app.get("/dashboard", response_model=DashboardView)
def get_dashboard(scheduler: SyncScheduler = Depends(get_scheduler)):
    """
    Get the dashboard view-model.

    **Response Fields**:
    - `current_value`: Latest glucose value in mg/dL
    - `level`: low, in_range, high or unknown
    - `trend`: rising, falling, flat or unknown
    - `time_since`: Age of the latest reading, e.g. "5 minutes ago"
    - `series`: Oldest-first chart points for the selected range
    - `loading`: Whether a sync cycle is in flight
    - `last_error`: Message of the last failed sync, if any

    Returns 409 while no Nightscout connection is configured.
    """
    return scheduler.view()


@app.get("/config", response_model=ConfigurationSummary)
def get_config(scheduler: SyncScheduler = Depends(get_scheduler)):
    """Get the active Nightscout URL; the secret itself is never returned."""
    config = scheduler.configuration
    if config is None:
        raise NotConfiguredError()
    return ConfigurationSummary(
        nightscout_url=config.endpoint_url,
        has_secret=bool(config.shared_secret),
    )


@app.put("/config", response_model=DashboardView)
def put_config(
    body: ConfigurationRequest,
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """
    Save the Nightscout connection and start polling.

    Returns 422 when the URL is empty or not an http(s) URL.
    """
    scheduler.set_configuration(body.nightscout_url, body.api_secret)
    return scheduler.view()


@app.delete("/config", status_code=204)
def delete_config(scheduler: SyncScheduler = Depends(get_scheduler)):
    """Forget the Nightscout connection and stop polling."""
    scheduler.reset_configuration()


@app.put("/range", response_model=DashboardView)
def put_range(
    body: TimeRangeRequest,
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """
    Select the chart window in hours (3, 6, 12 or 24).

    Returns 422 for unsupported ranges.
    """
    scheduler.set_time_range(body.hours)
    if scheduler.configuration is None:
        raise NotConfiguredError()
    return scheduler.view()


@app.post("/refresh", response_model=RefreshResponse)
def refresh(scheduler: SyncScheduler = Depends(get_scheduler)):
    """
    Sync now instead of waiting for the next tick.

    `started` is true when this request's sync result was applied. It is
    false when a sync was already in flight (that sync's result is what
    the dashboard will show) or when the result was discarded by a
    concurrent reset.
    """
    started = scheduler.refresh_now()
    return RefreshResponse(started=started, dashboard=scheduler.view())
