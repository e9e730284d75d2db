"""
Nightscout REST client.

Issues the two reads the dashboard needs (the current entry and a window of
recent entries) and maps every failure onto the application's error types.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from .constants import (
    API_SECRET_HEADER,
    CURRENT_ENTRY_PATH,
    DEFAULT_HTTP_TIMEOUT,
    ENTRIES_PATH,
    SGV_ENTRY_TYPE,
    sample_count,
)
from .exceptions import DecodeError, HttpError, TransportError
from .models import Configuration, NightscoutEntry, Reading, Sample

logger = logging.getLogger(__name__)


def decode_entry(payload: Any) -> NightscoutEntry:
    """
    Validate a single entry object against the decode contract.

    Raises:
        DecodeError: If ``payload`` is not an object with ``sgv`` and ``date``
    """
    if not isinstance(payload, dict):
        raise DecodeError(
            message="Expected a JSON object for a Nightscout entry",
            details=f"Got: {type(payload).__name__}",
        )
    try:
        return NightscoutEntry.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise DecodeError(
            message="Nightscout entry is missing or has invalid fields",
            details=f"Fields: {fields}",
            original_error=e,
        )


def decode_current(payload: Any) -> Reading:
    """
    Decode the ``current.json`` payload into a Reading.

    Nightscout returns either a bare object or a one-element array.
    """
    if isinstance(payload, list):
        if not payload:
            raise DecodeError(
                message="No glucose reading available",
                details="current.json returned an empty array",
            )
        payload = payload[0]
    return decode_entry(payload).to_reading()


def decode_history(payload: Any) -> List[Sample]:
    """Decode the ``entries.json`` array, keeping sensor glucose entries only."""
    if not isinstance(payload, list):
        raise DecodeError(
            message="Expected a JSON array of Nightscout entries",
            details=f"Got: {type(payload).__name__}",
        )

    samples = []
    for item in payload:
        if isinstance(item, dict) and item.get("type") not in (None, SGV_ENTRY_TYPE):
            continue
        samples.append(decode_entry(item).to_sample())
    return samples


class NightscoutClient:
    """
    Blocking client for a Nightscout instance.

    The client is stateless apart from its HTTP session; the connection
    settings are passed to every call so a configuration change never
    requires rebuilding it.
    """

    def __init__(
        self,
        timeout: int = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            timeout: Per-request timeout in seconds
            session: Optional pre-built session (tests inject a mock)
        """
        self.timeout = timeout
        self._session = session or requests.Session()

    def fetch_current(self, config: Configuration) -> Reading:
        """
        Fetch the latest glucose reading.

        Raises:
            TransportError: If the server cannot be reached
            HttpError: On a non-2xx response
            DecodeError: If the payload is not a valid entry
        """
        payload = self._get_json(config, CURRENT_ENTRY_PATH, what="current reading")
        reading = decode_current(payload)

        logger.info(
            "Fetched current reading",
            extra={
                "value": reading.value,
                "direction": reading.direction,
                "timestamp": reading.timestamp.isoformat(),
            },
        )
        return reading

    def fetch_history(self, config: Configuration, range_hours: int) -> List[Sample]:
        """
        Fetch recent entries covering ``range_hours``, newest first.

        Raises:
            TransportError: If the server cannot be reached
            HttpError: On a non-2xx response
            DecodeError: If the payload is not an array of valid entries
        """
        count = sample_count(range_hours)
        payload = self._get_json(
            config,
            ENTRIES_PATH,
            params={"count": count},
            what="historical data",
        )
        samples = decode_history(payload)[:count]

        logger.info(
            "Fetched historical data",
            extra={"range_hours": range_hours, "requested": count, "received": len(samples)},
        )
        return samples

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()

    def _get_json(
        self,
        config: Configuration,
        path: str,
        what: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{config.endpoint_url}{path}"
        headers = {"Accept": "application/json"}
        if config.shared_secret:
            headers[API_SECRET_HEADER] = config.shared_secret

        try:
            response = self._session.get(
                url,
                headers=headers,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(
                message=f"Timed out fetching {what}",
                details=f"URL: {url}",
                original_error=e,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(
                message=f"Failed to connect to Nightscout fetching {what}",
                details=f"URL: {url}",
                original_error=e,
            )

        if not 200 <= response.status_code < 300:
            raise HttpError(
                status=response.status_code,
                message=f"Failed to fetch {what}: {response.status_code} {response.reason or ''}".rstrip(),
                details=f"URL: {url}",
            )

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(
                message=f"Nightscout returned invalid JSON for {what}",
                details=f"URL: {url}",
                original_error=e,
            )
