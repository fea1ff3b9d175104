"""Per-phase request timing: DNS, TCP connect, TLS, server processing, transfer."""

import http.client
import logging
import socket
import ssl
import time
from urllib.parse import urlparse

from .config import DEFAULT_TIMEOUT
from .models import TraceResult
from .probe import USER_AGENT

logger = logging.getLogger(__name__)

_PROTOCOL_VERSIONS = {10: "HTTP/1.0", 11: "HTTP/1.1"}


def _ms(start: float, end: float) -> float:
    return (end - start) * 1000


def trace_request(
    url: str,
    method: str = "GET",
    timeout: float = DEFAULT_TIMEOUT,
    headers: dict[str, str] | None = None,
) -> TraceResult:
    """Perform a request on a fresh connection and time each phase.

    Every phase is done by hand on a new socket (no connection reuse), so the
    breakdown reflects a cold request: DNS lookup, TCP connect, TLS
    handshake (https only), server processing (request sent until the
    response head arrives) and content transfer (reading the full body).

    Args:
        url: URL to trace (http or https).
        method: HTTP method.
        timeout: Socket timeout in seconds for each phase.
        headers: Extra request headers.

    Returns:
        TraceResult with phase timings. On failure, ``error`` is set and the
        phases completed so far are still reported.
    """
    parsed = urlparse(url)
    hostname = parsed.hostname
    if parsed.scheme not in ("http", "https") or not hostname:
        return TraceResult(url=url, error="Invalid URL: must be http(s) with a hostname")

    is_https = parsed.scheme == "https"
    port = parsed.port or (443 if is_https else 80)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"

    phases: dict[str, float] = {}
    remote_addr: str | None = None
    sock: socket.socket | None = None
    conn: http.client.HTTPConnection | None = None
    overall_start = time.monotonic()

    def failed(error: str) -> TraceResult:
        logger.debug("Trace of %s failed: %s", url, error)
        return TraceResult(
            url=url,
            total_ms=_ms(overall_start, time.monotonic()),
            remote_addr=remote_addr,
            error=error,
            **phases,
        )

    try:
        dns_start = time.monotonic()
        infos = socket.getaddrinfo(hostname, port, type=socket.SOCK_STREAM)
        phases["dns_lookup_ms"] = _ms(dns_start, time.monotonic())
        if not infos:
            return failed(f"DNS resolution failed: no addresses for {hostname}")
        address = infos[0][4]
        remote_addr = f"{address[0]}:{address[1]}"

        connect_start = time.monotonic()
        sock = socket.create_connection((address[0], address[1]), timeout=timeout)
        phases["tcp_connection_ms"] = _ms(connect_start, time.monotonic())

        if is_https:
            tls_start = time.monotonic()
            context = ssl.create_default_context()
            sock = context.wrap_socket(sock, server_hostname=hostname)
            phases["tls_handshake_ms"] = _ms(tls_start, time.monotonic())
            conn = http.client.HTTPSConnection(hostname, port, timeout=timeout)
        else:
            conn = http.client.HTTPConnection(hostname, port, timeout=timeout)
        # Hand over the already-connected socket so connect() is never called.
        conn.sock = sock

        request_headers = {"User-Agent": USER_AGENT, "Connection": "close"}
        if headers:
            request_headers.update(headers)

        got_conn = time.monotonic()
        conn.request(method.upper(), path, headers=request_headers)
        response = conn.getresponse()
        first_byte = time.monotonic()
        body = response.read()
        transfer_end = time.monotonic()

        phases["server_processing_ms"] = _ms(got_conn, first_byte)
        phases["content_transfer_ms"] = _ms(first_byte, transfer_end)
        logger.debug("Trace of %s phases: %s", url, phases)

        return TraceResult(
            url=url,
            total_ms=_ms(overall_start, transfer_end),
            status_code=response.status,
            status_text=f"{response.status} {response.reason}".strip(),
            protocol=_PROTOCOL_VERSIONS.get(response.version),
            remote_addr=remote_addr,
            size_bytes=len(body),
            **phases,
        )

    except socket.gaierror as e:
        return failed(f"DNS resolution failed: {e}")
    except ssl.SSLError as e:
        return failed(f"TLS handshake failed: {e}")
    except TimeoutError:
        return failed(f"Timeout after {timeout:g}s")
    except (OSError, http.client.HTTPException) as e:
        return failed(f"Request failed: {e}")
    finally:
        if conn is not None:
            conn.close()
        elif sock is not None:
            sock.close()
