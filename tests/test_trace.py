"""Tests for the trace module."""

import socket
import ssl
from unittest.mock import MagicMock, Mock, patch

import pytest

from tapr.trace import trace_request


def _addrinfo(ip: str = "93.184.216.34", port: int = 443) -> list:
    return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (ip, port))]


@pytest.fixture
def http_response() -> MagicMock:
    """A fake http.client response."""
    response = MagicMock()
    response.status = 200
    response.reason = "OK"
    response.version = 11
    response.read.return_value = b"hello world"
    return response


class TestTraceRequest:
    """Tests for trace_request function."""

    @pytest.mark.parametrize("url", ["ftp://example.com", "not a url", "https://"])
    def test_invalid_url(self, url: str) -> None:
        """Non-http URLs fail without touching the network."""
        with patch("tapr.trace.socket.getaddrinfo") as mock_dns:
            result = trace_request(url)

        assert result.error is not None
        assert "Invalid URL" in result.error
        mock_dns.assert_not_called()

    @patch("tapr.trace.socket.getaddrinfo")
    def test_dns_failure(self, mock_dns: Mock) -> None:
        """Resolution errors are reported, not raised."""
        mock_dns.side_effect = socket.gaierror(-2, "Name or service not known")

        result = trace_request("https://no-such-host.invalid")

        assert result.error is not None
        assert result.error.startswith("DNS resolution failed")
        assert result.status_code is None

    @patch("tapr.trace.socket.create_connection")
    @patch("tapr.trace.socket.getaddrinfo")
    def test_connect_timeout(self, mock_dns: Mock, mock_connect: Mock) -> None:
        """A connect timeout keeps the DNS timing."""
        mock_dns.return_value = _addrinfo(port=80)
        mock_connect.side_effect = TimeoutError("timed out")

        result = trace_request("http://example.com", timeout=2.0)

        assert result.error == "Timeout after 2s"
        assert result.dns_lookup_ms >= 0
        assert result.tcp_connection_ms == 0.0
        assert result.remote_addr == "93.184.216.34:80"

    @patch("tapr.trace.ssl.create_default_context")
    @patch("tapr.trace.socket.create_connection")
    @patch("tapr.trace.socket.getaddrinfo")
    def test_tls_failure(self, mock_dns: Mock, mock_connect: Mock, mock_context: Mock) -> None:
        """Handshake errors are reported and the socket is closed."""
        mock_dns.return_value = _addrinfo()
        sock = MagicMock()
        mock_connect.return_value = sock
        mock_context.return_value.wrap_socket.side_effect = ssl.SSLError("certificate verify failed")

        result = trace_request("https://example.com")

        assert result.error is not None
        assert result.error.startswith("TLS handshake failed")
        sock.close.assert_called_once()

    @patch("tapr.trace.http.client.HTTPConnection")
    @patch("tapr.trace.socket.create_connection")
    @patch("tapr.trace.socket.getaddrinfo")
    def test_http_success(
        self,
        mock_dns: Mock,
        mock_connect: Mock,
        mock_conn_cls: Mock,
        http_response: MagicMock,
    ) -> None:
        """A plain-HTTP trace reports every phase except TLS."""
        mock_dns.return_value = _addrinfo(port=8080)
        conn = mock_conn_cls.return_value
        conn.getresponse.return_value = http_response

        result = trace_request("http://example.com:8080/health?full=1", headers={"X-Test": "1"})

        assert result.error is None
        assert result.status_code == 200
        assert result.status_text == "200 OK"
        assert result.protocol == "HTTP/1.1"
        assert result.size_bytes == len(b"hello world")
        assert result.tls_handshake_ms == 0.0
        assert result.remote_addr == "93.184.216.34:8080"
        assert result.total_ms >= result.server_processing_ms

        method, path = conn.request.call_args.args
        assert (method, path) == ("GET", "/health?full=1")
        assert conn.request.call_args.kwargs["headers"]["X-Test"] == "1"
        assert conn.sock is mock_connect.return_value
        conn.close.assert_called_once()

    @patch("tapr.trace.http.client.HTTPSConnection")
    @patch("tapr.trace.ssl.create_default_context")
    @patch("tapr.trace.socket.create_connection")
    @patch("tapr.trace.socket.getaddrinfo")
    def test_https_success(
        self,
        mock_dns: Mock,
        mock_connect: Mock,
        mock_context: Mock,
        mock_conn_cls: Mock,
        http_response: MagicMock,
    ) -> None:
        """An HTTPS trace wraps the socket with SNI for the hostname."""
        mock_dns.return_value = _addrinfo()
        conn = mock_conn_cls.return_value
        conn.getresponse.return_value = http_response

        result = trace_request("https://example.com")

        assert result.error is None
        wrap = mock_context.return_value.wrap_socket
        wrap.assert_called_once_with(mock_connect.return_value, server_hostname="example.com")
        assert conn.sock is wrap.return_value
        assert conn.request.call_args.args == ("GET", "/")
