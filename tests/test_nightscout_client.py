"""Tests for glucose_monitor/nightscout_client.py module."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_entry
from glucose_monitor.exceptions import DecodeError, HttpError, TransportError
from glucose_monitor.models import Configuration
from glucose_monitor.nightscout_client import (
    NightscoutClient,
    decode_current,
    decode_history,
)


def _response(payload=None, status_code=200, reason="OK", json_error=None):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return NightscoutClient(timeout=5, session=session)


@pytest.fixture
def open_config():
    return Configuration.create("https://x.example.com")


class TestDecodeCurrent:
    """Tests for decode_current function."""

    def test_object(self, current_entry):
        """Test a bare entry object decodes."""
        reading = decode_current(current_entry)
        assert reading.value == 120
        assert reading.direction == "FortyFiveUp"
        assert reading.timestamp == datetime(2024, 1, 15, 10, 27, tzinfo=timezone.utc)

    def test_single_element_array(self, current_entry):
        """Test a one-element array decodes to its entry."""
        assert decode_current([current_entry]).value == 120

    def test_empty_array(self):
        """Test an empty array is a decode error."""
        with pytest.raises(DecodeError):
            decode_current([])

    @pytest.mark.parametrize(
        "payload",
        [
            {"date": 1705314600000},
            {"sgv": 120},
            {"sgv": "high", "date": 1705314600000},
            {"sgv": 120, "date": "yesterday"},
            "120",
            None,
        ],
    )
    def test_shape_mismatch(self, payload):
        """Test missing or invalid fields are decode errors."""
        with pytest.raises(DecodeError):
            decode_current(payload)

    def test_error_names_fields(self):
        """Test the error names the offending field."""
        with pytest.raises(DecodeError) as exc_info:
            decode_current({"date": 1705314600000})
        assert "sgv" in exc_info.value.details


class TestDecodeHistory:
    """Tests for decode_history function."""

    def test_keeps_order(self, history_entries):
        """Test entries stay newest first."""
        samples = decode_history(history_entries)
        assert [s.value for s in samples] == [120, 110, 100]

    def test_skips_non_sgv_entries(self):
        """Test calibration and meter entries are skipped."""
        payload = [
            make_entry(120),
            {"type": "cal", "date": 1705314600000, "slope": 850},
            {"type": "mbg", "mbg": 115, "date": 1705314600000},
            make_entry(110, minutes_ago=5),
        ]
        assert [s.value for s in decode_history(payload)] == [120, 110]

    def test_untyped_entries_kept(self):
        """Test entries without a type are treated as sensor values."""
        payload = [{"sgv": 101, "date": 1705314600000}]
        assert decode_history(payload)[0].value == 101

    def test_not_an_array(self, current_entry):
        """Test an object payload is a decode error."""
        with pytest.raises(DecodeError):
            decode_history(current_entry)

    def test_invalid_entry(self):
        """Test one bad entry fails the whole payload."""
        with pytest.raises(DecodeError):
            decode_history([make_entry(120), {"sgv": 110}])


class TestFetchCurrent:
    """Tests for NightscoutClient.fetch_current."""

    def test_request(self, client, session, configuration, current_entry):
        """Test URL, secret header and timeout."""
        session.get.return_value = _response(current_entry)

        reading = client.fetch_current(configuration)

        assert reading.value == 120
        args, kwargs = session.get.call_args
        assert args[0] == "https://x.example.com/api/v1/entries/current.json"
        assert kwargs["headers"]["API-SECRET"] == "s3cret"
        assert kwargs["timeout"] == 5

    def test_no_secret_header(self, client, session, open_config, current_entry):
        """Test no secret header is sent without a secret."""
        session.get.return_value = _response(current_entry)

        client.fetch_current(open_config)

        _, kwargs = session.get.call_args
        assert "API-SECRET" not in kwargs["headers"]

    def test_http_error(self, client, session, open_config):
        """Test non-2xx responses raise HttpError with the status."""
        session.get.return_value = _response(status_code=401, reason="Unauthorized")

        with pytest.raises(HttpError) as exc_info:
            client.fetch_current(open_config)

        assert exc_info.value.status == 401
        assert "401 Unauthorized" in exc_info.value.message

    def test_connection_error(self, client, session, open_config):
        """Test connection failures raise TransportError."""
        session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TransportError) as exc_info:
            client.fetch_current(open_config)

        assert isinstance(exc_info.value.original_error, requests.exceptions.ConnectionError)

    def test_timeout(self, client, session, open_config):
        """Test timeouts raise TransportError."""
        session.get.side_effect = requests.exceptions.Timeout()

        with pytest.raises(TransportError) as exc_info:
            client.fetch_current(open_config)

        assert "Timed out" in exc_info.value.message

    def test_invalid_json(self, client, session, open_config):
        """Test a non-JSON body raises DecodeError."""
        session.get.return_value = _response(json_error=ValueError("Expecting value"))

        with pytest.raises(DecodeError):
            client.fetch_current(open_config)


class TestFetchHistory:
    """Tests for NightscoutClient.fetch_history."""

    def test_request_count(self, client, session, configuration, history_entries):
        """Test the entry count is derived from the range."""
        session.get.return_value = _response(history_entries)

        samples = client.fetch_history(configuration, 3)

        assert [s.value for s in samples] == [120, 110, 100]
        args, kwargs = session.get.call_args
        assert args[0] == "https://x.example.com/api/v1/entries.json"
        assert kwargs["params"] == {"count": 36}
        assert kwargs["headers"]["API-SECRET"] == "s3cret"

    def test_day_count(self, client, session, open_config):
        """Test a 24-hour window requests 288 entries."""
        session.get.return_value = _response([])

        assert client.fetch_history(open_config, 24) == []
        assert session.get.call_args[1]["params"] == {"count": 288}

    def test_truncates_to_count(self, client, session, open_config):
        """Test extra entries beyond the count are dropped."""
        payload = [make_entry(100 + i, minutes_ago=5 * i) for i in range(40)]
        session.get.return_value = _response(payload)

        samples = client.fetch_history(open_config, 3)

        assert len(samples) == 36
        assert samples[0].value == 100

    def test_http_error(self, client, session, open_config):
        """Test non-2xx responses raise HttpError."""
        session.get.return_value = _response(status_code=500, reason="Internal Server Error")

        with pytest.raises(HttpError) as exc_info:
            client.fetch_history(open_config, 6)

        assert exc_info.value.status == 500


class TestClose:
    """Tests for NightscoutClient.close."""

    def test_closes_session(self, client, session):
        """Test the session is closed."""
        client.close()
        session.close.assert_called_once()
