"""Continuous monitoring of a single endpoint."""

import logging
import time
from collections.abc import Callable
from threading import Event

from .config import DEFAULT_TIMEOUT
from .models import ProbeResult
from .probe import ping
from .stats import History, Tracker

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.0  # seconds between requests
DEFAULT_HISTORY_SIZE = 10


class Watcher:
    """Probes one URL at a fixed interval and keeps running statistics.

    Only one request is in flight at a time. The loop is stopped by reaching
    ``count`` requests or by setting the stop event passed to ``run``.

    Example:
        watcher = Watcher("https://api.example.com/health", interval=5)
        watcher.run(stop_event)
        print(watcher.tracker.success_rate())
    """

    def __init__(
        self,
        url: str,
        interval: float = DEFAULT_INTERVAL,
        count: int = 0,
        method: str = "GET",
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        retries: int = 0,
        history_size: int = DEFAULT_HISTORY_SIZE,
        on_update: Callable[["Watcher"], None] | None = None,
        probe: Callable[[], ProbeResult] | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            url: URL to monitor.
            interval: Seconds between the start of consecutive requests.
            count: Number of requests to make (0 = until stopped).
            method: HTTP method.
            timeout: Per-request timeout in seconds.
            headers: Extra request headers.
            retries: Retry attempts per request on transport errors.
            history_size: Number of recent results to keep.
            on_update: Called after every request (e.g., to redraw stats).
            probe: Override for the request function, mainly for tests.
        """
        if interval <= 0:
            raise ValueError(f"Interval must be positive (got {interval})")
        if count < 0:
            raise ValueError(f"Count must be non-negative (got {count})")

        self.url = url
        self.interval = interval
        self.count = count
        self.tracker = Tracker()
        self.history = History(history_size)
        self.request_count = 0
        self.duration = 0.0
        self._on_update = on_update

        if probe is None:

            def probe() -> ProbeResult:
                return ping(url, method=method, timeout=timeout, headers=headers, retries=retries)

        self._probe = probe

    def _make_request(self) -> None:
        result = self._probe()
        self.tracker.record(result.latency_ms, result.ok)
        self.history.add(result)
        self.request_count += 1

        logger.debug(
            "%s: %s (%.0fms)",
            self.url,
            result.status_code if result.ok else result.error,
            result.latency_ms,
        )

        if self._on_update is not None:
            self._on_update(self)

    def _done(self) -> bool:
        return self.count > 0 and self.request_count >= self.count

    def run(self, stop_event: Event | None = None) -> None:
        """Run the watch loop until the count is reached or stop is requested."""
        stop_event = stop_event or Event()
        start = time.monotonic()
        next_at = start

        try:
            while not stop_event.is_set() and not self._done():
                self._make_request()
                if self._done():
                    break

                next_at += self.interval
                # wait() so a signal handler setting the event interrupts the sleep
                stop_event.wait(timeout=max(next_at - time.monotonic(), 0.0))
        finally:
            self.duration = time.monotonic() - start

        logger.debug("Watch loop exited after %d requests", self.request_count)
