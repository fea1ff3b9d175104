"""Request statistics: rolling tracker, bounded history, and batch summary."""

import math
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

from .models import BatchResult, ProbeResult

# Responses slower than this are flagged as slow (milliseconds).
SLOW_THRESHOLD_MS = 500.0


def _success_rate(successful: int, total: int) -> float:
    if total == 0:
        return 0.0
    return successful / total * 100


class Tracker:
    """Running statistics for a single endpoint in watch mode.

    Average, percentiles and standard deviation are recomputed from the full
    latency history on every call.
    """

    def __init__(self) -> None:
        self.total = 0
        self.successful = 0
        self.failed = 0
        self.latencies: list[float] = []
        # None until the first sample; 0.0 is a valid measurement.
        self.min_latency_ms: float | None = None
        self.max_latency_ms: float | None = None

    def record(self, latency_ms: float, success: bool) -> None:
        """Record one request outcome."""
        self.total += 1
        if success:
            self.successful += 1
        else:
            self.failed += 1

        self.latencies.append(latency_ms)

        if self.min_latency_ms is None or latency_ms < self.min_latency_ms:
            self.min_latency_ms = latency_ms
        if self.max_latency_ms is None or latency_ms > self.max_latency_ms:
            self.max_latency_ms = latency_ms

    def avg_latency(self) -> float:
        """Arithmetic mean of all recorded latencies, or 0.0 if none."""
        if not self.latencies:
            return 0.0
        return sum(self.latencies) / len(self.latencies)

    def percentile(self, p: float) -> float:
        """Nearest-rank percentile of recorded latencies.

        Uses ``index = floor(n * p) - 1`` clamped to the valid range, so
        ``percentile(0.0)`` is the minimum and ``percentile(1.0)`` the maximum.
        No interpolation is performed.

        Args:
            p: Percentile as a fraction in [0, 1] (0.95 for P95).

        Returns:
            The latency at that rank, or 0.0 if nothing was recorded.
        """
        if not 0.0 <= p <= 1.0:
            raise ValueError(f"Percentile must be between 0 and 1 (got {p})")
        if not self.latencies:
            return 0.0

        ordered = sorted(self.latencies)
        index = math.floor(len(ordered) * p) - 1
        index = min(max(index, 0), len(ordered) - 1)
        return ordered[index]

    def std_dev(self) -> float:
        """Population standard deviation of recorded latencies."""
        if not self.latencies:
            return 0.0
        mean = self.avg_latency()
        variance = sum((latency - mean) ** 2 for latency in self.latencies) / len(self.latencies)
        return math.sqrt(variance)

    def success_rate(self) -> float:
        """Percentage of successful requests (0.0 when nothing recorded)."""
        return _success_rate(self.successful, self.total)


@dataclass(frozen=True)
class HistoryEntry:
    """A probe result and when it was recorded."""

    timestamp: datetime
    result: ProbeResult


class History:
    """Fixed-size window of the most recent probe results.

    Once full, adding an entry evicts the oldest one.
    """

    def __init__(self, max_size: int) -> None:
        if max_size < 1:
            raise ValueError(f"History size must be at least 1 (got {max_size})")
        self.max_size = max_size
        self._entries: deque[HistoryEntry] = deque(maxlen=max_size)

    def add(self, result: ProbeResult, timestamp: datetime | None = None) -> None:
        """Record a result, stamped with the current UTC time by default."""
        self._entries.append(HistoryEntry(timestamp=timestamp or datetime.now(UTC), result=result))

    def get_recent(self, n: int) -> list[HistoryEntry]:
        """Return the last ``n`` entries, oldest first."""
        if n <= 0:
            return []
        n = min(n, len(self._entries))
        return list(self._entries)[-n:]

    def size(self) -> int:
        """Number of entries currently held."""
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class BatchSummary:
    """Aggregate of all endpoint results in a batch run.

    ``results`` is in completion order, which varies between runs when
    endpoints are tested concurrently. Sort before rendering if a stable
    order is needed.

    Attributes:
        total: Endpoints with a collected result.
        successful: Results that passed.
        failed: Results that failed (transport error or status mismatch).
        slow: Error-free results slower than SLOW_THRESHOLD_MS.
        avg_latency_ms: Mean latency of error-free results.
        total_time_ms: Wall time of the whole batch, set once the run ends.
        deadline_exceeded: The batch hit its max-time limit; results may be partial.
        stopped_early: Fail-fast stopped the batch after a failure.
        skipped: Endpoints that were never tested.
        results: Individual results in completion order.
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    slow: int = 0
    avg_latency_ms: float = 0.0
    total_time_ms: float = 0.0
    deadline_exceeded: bool = False
    stopped_early: bool = False
    skipped: int = 0
    results: list[BatchResult] = field(default_factory=list)
    _latency_samples: int = field(default=0, init=False, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def add_result(self, result: BatchResult) -> None:
        """Add one endpoint result and update the running statistics.

        Only error-free results feed the latency average: a timed-out request
        says nothing about how fast the endpoint is.
        """
        with self._lock:
            self.results.append(result)
            self.total += 1

            if result.success:
                self.successful += 1
            else:
                self.failed += 1

            probe = result.result
            if probe.error is None:
                if probe.latency_ms > SLOW_THRESHOLD_MS:
                    self.slow += 1
                self._latency_samples += 1
                n = self._latency_samples
                self.avg_latency_ms = (self.avg_latency_ms * (n - 1) + probe.latency_ms) / n

    def success_rate(self) -> float:
        """Percentage of endpoints that passed (0.0 for an empty summary)."""
        return _success_rate(self.successful, self.total)
