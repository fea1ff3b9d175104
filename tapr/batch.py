"""Concurrent batch testing of multiple endpoints."""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

from .config import DEFAULT_TIMEOUT, ConfigError, EndpointConfig
from .models import BatchResult, ProbeResult
from .probe import evaluate, probe_endpoint
from .stats import BatchSummary

logger = logging.getLogger(__name__)

ProbeFunc = Callable[[EndpointConfig], ProbeResult]


class _BatchRun:
    """State shared by the workers of one batch run.

    The stop event is the only cancellation signal: once set, no new probe is
    admitted. Probes already running are not interrupted; they finish within
    their own timeout and their results are dropped by the collector.
    """

    def __init__(
        self,
        probe: ProbeFunc,
        concurrency: int,
        deadline: float | None,
        fail_fast: bool,
    ) -> None:
        self._probe = probe
        self._gate = threading.BoundedSemaphore(concurrency)
        self._deadline = deadline
        self._fail_fast = fail_fast
        self.stop_event = threading.Event()

    def deadline_passed(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def _admitted(self) -> bool:
        return not self.stop_event.is_set() and not self.deadline_passed()

    def test(self, endpoint: EndpointConfig) -> BatchResult | None:
        """Worker body: probe one endpoint, or skip it if the run has stopped."""
        if not self._admitted():
            return None

        with self._gate:
            # Re-check after waiting for a slot.
            if not self._admitted():
                return None

            start = time.monotonic()
            try:
                probe_result = self._probe(endpoint)
            except Exception as e:
                logger.error("Probe for %s raised unexpectedly: %s", endpoint.name, e)
                probe_result = ProbeResult(
                    url=endpoint.url,
                    latency_ms=(time.monotonic() - start) * 1000,
                    error=str(e) or type(e).__name__,
                )

        result = evaluate(endpoint, probe_result)

        if self._fail_fast and not result.success and not self.stop_event.is_set():
            logger.info("Fail-fast triggered by %s: %s", endpoint.name, result.message)
            self.stop_event.set()

        return result


def run_batch(
    endpoints: Sequence[EndpointConfig],
    concurrency: int,
    max_time: float | None = None,
    fail_fast: bool = False,
    default_timeout: float = DEFAULT_TIMEOUT,
    probe: ProbeFunc | None = None,
    on_result: Callable[[BatchResult], None] | None = None,
) -> BatchSummary:
    """Test all endpoints with bounded parallelism and aggregate the results.

    At most ``concurrency`` probes are in flight at once. Each probe is made
    exactly once; batch mode never retries so flaky endpoints show up as
    failures.

    With ``fail_fast``, the first failing result stops admission of further
    endpoints and any result arriving after it is discarded. With
    ``max_time``, the run returns once the deadline passes even if probes are
    still in flight; ``summary.deadline_exceeded`` is set and endpoints that
    were not collected are counted in ``summary.skipped``.

    Args:
        endpoints: Endpoints to test. Must not be empty.
        concurrency: Maximum number of simultaneous probes (>= 1).
        max_time: Deadline for the whole batch in seconds, or None.
        fail_fast: Stop after the first failing endpoint.
        default_timeout: Per-request timeout for endpoints without their own.
        probe: Probe function; defaults to a single HTTP request per endpoint.
        on_result: Called from the collecting thread for every counted result.

    Returns:
        The populated BatchSummary.

    Raises:
        ConfigError: If there are no endpoints or concurrency is below 1.
    """
    if not endpoints:
        raise ConfigError("No endpoints to test")
    if concurrency < 1:
        raise ConfigError(f"Concurrency must be at least 1 (got {concurrency})")
    if max_time is not None and max_time <= 0:
        raise ConfigError(f"Max time must be positive (got {max_time})")

    if probe is None:

        def probe(endpoint: EndpointConfig) -> ProbeResult:
            return probe_endpoint(endpoint, default_timeout)

    summary = BatchSummary()
    start = time.monotonic()
    deadline = start + max_time if max_time is not None else None
    run = _BatchRun(probe, concurrency, deadline, fail_fast)

    logger.debug("Running batch of %d endpoints (concurrency: %d)", len(endpoints), concurrency)

    executor = ThreadPoolExecutor(max_workers=min(concurrency, len(endpoints)), thread_name_prefix="tapr-batch")
    futures: dict[Future, EndpointConfig] = {executor.submit(run.test, endpoint): endpoint for endpoint in endpoints}

    try:
        for future in as_completed(futures, timeout=run.remaining()):
            result = future.result()
            if result is None:
                continue

            summary.add_result(result)
            if on_result is not None:
                try:
                    on_result(result)
                except Exception as e:
                    logger.error("Result callback failed: %s", e)

            if fail_fast and not result.success:
                summary.stopped_early = True
                run.stop_event.set()
                break
    except TimeoutError:
        summary.deadline_exceeded = True
        run.stop_event.set()
        logger.info("Batch exceeded max-time limit (%.1fs)", max_time)
    finally:
        # In-flight probes are left to finish on their own; queued ones never start.
        executor.shutdown(wait=False, cancel_futures=True)

    if not summary.deadline_exceeded and run.deadline_passed() and summary.total < len(endpoints):
        summary.deadline_exceeded = True
        logger.info("Batch exceeded max-time limit (%.1fs)", max_time)

    summary.skipped = len(endpoints) - summary.total
    summary.total_time_ms = (time.monotonic() - start) * 1000

    logger.debug(
        "Batch finished: %d/%d passed, %d skipped in %.0fms",
        summary.successful,
        summary.total,
        summary.skipped,
        summary.total_time_ms,
    )
    return summary
