"""Tests for user-facing error formatting."""

import asyncio
import logging

import aiohttp
import pytest

from ledgerbridge.error_format import (
    BLOCKED_MESSAGE,
    NETWORK_MESSAGE,
    STATUS_MESSAGES,
    UNEXPECTED_MESSAGE,
    UNKNOWN_MESSAGE,
    format_error,
    log_error,
)
from ledgerbridge.errors import LedgerError, LedgerHTTPError, LedgerNetworkError


class TestFormatError:
    """Tests for format_error."""

    def test_none(self):
        assert format_error(None) == UNKNOWN_MESSAGE

    def test_network_error(self):
        """Test a transport failure without a response maps to connectivity."""
        assert format_error(LedgerNetworkError("Network Error: refused")) == NETWORK_MESSAGE

    def test_aiohttp_connection_error(self):
        assert format_error(aiohttp.ClientConnectionError("reset by peer")) == NETWORK_MESSAGE

    def test_timeout(self):
        assert format_error(asyncio.TimeoutError()) == NETWORK_MESSAGE

    def test_network_error_text(self):
        assert format_error(RuntimeError("Network Error")) == NETWORK_MESSAGE

    def test_cors(self):
        assert format_error(RuntimeError("blocked by CORS policy")) == BLOCKED_MESSAGE
        assert format_error(RuntimeError("No Access-Control-Allow-Origin")) == BLOCKED_MESSAGE

    def test_network_wins_over_status(self):
        """Test classification order: network before HTTP status."""
        error = LedgerNetworkError("Network Error")
        error.status = 404
        assert format_error(error) == NETWORK_MESSAGE

    @pytest.mark.parametrize("status", [404, 401, 403, 500])
    def test_status_table(self, status):
        assert format_error(LedgerHTTPError(status)) == STATUS_MESSAGES[status]

    def test_not_found_message(self):
        assert "not found" in format_error(LedgerHTTPError(404)).lower()

    def test_other_status_uses_server_message(self):
        error = LedgerHTTPError(409, {"error": "Contract already archived"})
        assert format_error(error) == "Contract already archived"

    def test_server_message_comes_from_http_error(self):
        """Test the shown text is the HTTP error's own server_message."""
        error = LedgerHTTPError(422, {"error": "", "message": "Choice not found"})
        assert error.server_message == "Choice not found"
        assert format_error(error) == error.server_message

    def test_other_status_uses_message_field(self):
        error = LedgerHTTPError(422, {"message": "Invalid choice argument"})
        assert format_error(error) == "Invalid choice argument"

    def test_other_status_generic(self):
        error = LedgerHTTPError(418, "teapot")
        assert format_error(error) == "Error 418: Request failed with status code 418"

    def test_plain_message(self):
        assert format_error(ValueError("something broke")) == "something broke"

    def test_empty_message_falls_back(self):
        """Test an error with neither status nor text is still described."""
        message = format_error(Exception())
        assert message == UNEXPECTED_MESSAGE
        assert message

    def test_str_raising_does_not_propagate(self):
        """Test format_error never raises."""
        class Weird(Exception):
            def __str__(self):
                raise RuntimeError("nope")

        assert format_error(Weird()) == UNEXPECTED_MESSAGE

    def test_ledger_error_status_passthrough(self):
        """Test LedgerError exposes the status of its original error."""
        original = LedgerHTTPError(403)
        wrapped = LedgerError(format_error(original), original_error=original)
        assert wrapped.status == 403
        assert wrapped.message == STATUS_MESSAGES[403]


class TestLogError:
    """Tests for log_error."""

    def test_logs_context(self, caplog):
        with caplog.at_level(logging.ERROR, logger="ledgerbridge.error_format"):
            log_error(LedgerHTTPError(404), "MarketDetail")

        assert "[MarketDetail]" in caplog.text
        assert "Resource not found" in caplog.text
