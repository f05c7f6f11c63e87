import logging
from unittest.mock import MagicMock, patch

import pytest
import requests

from ip_resolver import (
    CONNECT_TIMEOUT,
    OPEN_CIDR,
    fetch_public_ip,
    is_ipv4,
    resolve_caller_cidr,
)

ENDPOINTS = ("https://one.example", "https://two.example", "https://three.example")


def response(text, ok=True, status_code=200):
    mock_response = MagicMock()
    mock_response.text = text
    mock_response.ok = ok
    mock_response.status_code = status_code
    return mock_response


class TestResolveCallerCidr:
    """Test cases for public IP detection."""

    @patch("ip_resolver.requests.get")
    def test_first_valid_answer_wins(self, mock_get):
        """Test that empty answers are skipped until a valid address."""
        mock_get.side_effect = [response(""), response(""), response("203.0.113.5")]

        assert resolve_caller_cidr(ENDPOINTS) == "203.0.113.5/32"
        assert [c.args[0] for c in mock_get.call_args_list] == list(ENDPOINTS)

    @patch("ip_resolver.requests.get")
    def test_stops_at_first_success(self, mock_get):
        mock_get.side_effect = [response("198.51.100.7\n")]

        assert resolve_caller_cidr(ENDPOINTS) == "198.51.100.7/32"
        assert mock_get.call_count == 1

    @patch("ip_resolver.requests.get")
    def test_fallback_to_open_range(self, mock_get, caplog):
        """Test that exhausting every service yields 0.0.0.0/0 with a warning."""
        mock_get.side_effect = [
            response(""),
            response("<html>rate limited</html>"),
            response("not-an-ip"),
        ]

        with caplog.at_level(logging.WARNING):
            assert resolve_caller_cidr(ENDPOINTS) == OPEN_CIDR

        assert "NOT safe for production" in caplog.text

    @patch("ip_resolver.requests.get")
    def test_network_errors_are_skipped(self, mock_get):
        mock_get.side_effect = [
            requests.ConnectTimeout("timed out"),
            requests.ConnectionError("refused"),
            response("203.0.113.9"),
        ]

        assert resolve_caller_cidr(ENDPOINTS) == "203.0.113.9/32"

    @patch("ip_resolver.requests.get")
    def test_http_errors_are_skipped(self, mock_get):
        mock_get.side_effect = [response("203.0.113.1", ok=False, status_code=503)]

        assert fetch_public_ip("https://one.example") is None

    @patch("ip_resolver.requests.get")
    def test_timeout_is_passed(self, mock_get):
        mock_get.return_value = response("203.0.113.5")

        fetch_public_ip("https://one.example")

        assert mock_get.call_args.kwargs["timeout"][0] == CONNECT_TIMEOUT


class TestIsIpv4:
    @pytest.mark.parametrize("text", ["203.0.113.5", "0.0.0.0", "255.255.255.255"])
    def test_valid(self, text):
        assert is_ipv4(text)

    @pytest.mark.parametrize(
        "text", ["", "203.0.113", "203.0.113.256", "2001:db8::1", "1234", "a.b.c.d"]
    )
    def test_invalid(self, text):
        assert not is_ipv4(text)
