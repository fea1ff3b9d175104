"""Data models for probe, batch, and trace results."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single HTTP request attempt.

    Attributes:
        url: URL that was requested.
        latency_ms: Elapsed time in milliseconds. Always set, even on failure.
        status_code: HTTP status code, or None if the request failed.
        status_text: Status line text (e.g., "200 OK"), or None if the request failed.
        size_bytes: Response size from Content-Length, or -1 if unknown.
        protocol: HTTP protocol version (e.g., "HTTP/1.1"), or None if unknown.
        error: Transport error description, or None if a response was received.
    """

    url: str
    latency_ms: float
    status_code: int | None = None
    status_text: str | None = None
    size_bytes: int = -1
    protocol: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether a response was received (no transport error)."""
        return self.error is None


@dataclass(frozen=True)
class BatchResult:
    """Result of testing one endpoint in a batch run.

    Attributes:
        name: Endpoint display name.
        url: Endpoint URL.
        method: HTTP method used.
        expected_status: Status code the endpoint was expected to return.
        result: The underlying probe result.
        success: True if no error occurred and the status matched.
        message: Failure description, or None on success.
    """

    name: str
    url: str
    method: str
    expected_status: int
    result: ProbeResult
    success: bool
    message: str | None = None


@dataclass(frozen=True)
class TraceResult:
    """Per-phase timing breakdown of a single request.

    Phases that did not happen (e.g., TLS for plain HTTP) are 0.0.
    """

    url: str
    dns_lookup_ms: float = 0.0
    tcp_connection_ms: float = 0.0
    tls_handshake_ms: float = 0.0
    server_processing_ms: float = 0.0
    content_transfer_ms: float = 0.0
    total_ms: float = 0.0
    status_code: int | None = None
    status_text: str | None = None
    protocol: str | None = None
    remote_addr: str | None = None
    size_bytes: int = -1
    error: str | None = None
