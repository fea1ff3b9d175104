"""Single HTTP probes with timing, retry/backoff, and batch evaluation."""

import logging
import time

import requests

from .config import DEFAULT_TIMEOUT, EndpointConfig
from .models import BatchResult, ProbeResult

logger = logging.getLogger(__name__)

USER_AGENT = "tapr/0.1"

# urllib3 reports the protocol version as an integer (11 == HTTP/1.1).
_PROTOCOL_VERSIONS = {9: "HTTP/0.9", 10: "HTTP/1.0", 11: "HTTP/1.1", 20: "HTTP/2.0", 30: "HTTP/3.0"}


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


def _make_request(
    url: str,
    method: str,
    timeout: float,
    headers: dict[str, str] | None,
    body: str | None,
) -> ProbeResult:
    """Perform one request attempt and measure its latency.

    The body is not downloaded; latency covers the time until the response
    headers arrive.
    """
    request_headers = {"User-Agent": USER_AGENT}
    if headers:
        request_headers.update(headers)

    start = time.monotonic()
    try:
        response = requests.request(
            method,
            url,
            headers=request_headers,
            data=body.encode("utf-8") if body is not None else None,
            timeout=timeout,
            allow_redirects=True,
            stream=True,
        )
    except requests.RequestException as e:
        return ProbeResult(url=url, latency_ms=_elapsed_ms(start), error=str(e) or type(e).__name__)

    latency_ms = _elapsed_ms(start)
    try:
        content_length = response.headers.get("Content-Length")
        try:
            size = int(content_length) if content_length is not None else -1
        except ValueError:
            size = -1

        return ProbeResult(
            url=url,
            latency_ms=latency_ms,
            status_code=response.status_code,
            status_text=f"{response.status_code} {response.reason or ''}".strip(),
            size_bytes=size,
            protocol=_PROTOCOL_VERSIONS.get(getattr(response.raw, "version", None)),
        )
    finally:
        response.close()


def ping(
    url: str,
    method: str = "GET",
    timeout: float = DEFAULT_TIMEOUT,
    headers: dict[str, str] | None = None,
    body: str | None = None,
    retries: int = 0,
) -> ProbeResult:
    """Make an HTTP request and return timing and response information.

    Transport errors are retried up to ``retries`` times with exponential
    backoff (1s, 2s, 4s, ...). Any HTTP status, including 4xx/5xx, counts as
    a response and is never retried.

    Args:
        url: URL to request.
        method: HTTP method.
        timeout: Per-attempt timeout in seconds.
        headers: Extra request headers.
        body: Optional request body.
        retries: Number of retry attempts after the first failure.

    Returns:
        The result of the last attempt.
    """
    method = method.upper()
    max_attempts = max(retries, 0) + 1
    result = _make_request(url, method, timeout, headers, body)

    for attempt in range(1, max_attempts):
        if result.ok:
            break
        delay = 2 ** (attempt - 1)
        logger.warning(
            "Request to %s failed (attempt %d/%d, retrying in %ds): %s",
            url,
            attempt,
            max_attempts,
            delay,
            result.error,
        )
        time.sleep(delay)
        result = _make_request(url, method, timeout, headers, body)

    return result


def probe_endpoint(endpoint: EndpointConfig, default_timeout: float = DEFAULT_TIMEOUT) -> ProbeResult:
    """Probe a batch endpoint once, without retries.

    The endpoint's own timeout takes precedence over ``default_timeout``.
    """
    timeout = endpoint.timeout if endpoint.timeout is not None else default_timeout
    return ping(
        endpoint.url,
        method=endpoint.method,
        timeout=timeout,
        headers=endpoint.headers,
        body=endpoint.body,
        retries=0,
    )


def evaluate(endpoint: EndpointConfig, result: ProbeResult) -> BatchResult:
    """Pair a probe result with its endpoint and decide pass/fail.

    An endpoint passes only when the request completed without a transport
    error and returned exactly the expected status code.
    """
    if result.error is not None:
        success = False
        message: str | None = f"Error: {result.error}"
    elif result.status_code != endpoint.expected_status:
        success = False
        message = f"Expected {endpoint.expected_status}, got {result.status_code}"
    else:
        success = True
        message = None

    return BatchResult(
        name=endpoint.name,
        url=endpoint.url,
        method=endpoint.method,
        expected_status=endpoint.expected_status,
        result=result,
        success=success,
        message=message,
    )
