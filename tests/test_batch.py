"""Tests for the batch module."""

import threading
import time
from unittest.mock import patch

import pytest

from tapr.batch import run_batch
from tapr.config import ConfigError, EndpointConfig
from tapr.models import BatchResult, ProbeResult


def _endpoints(count: int, expected_status: int = 200) -> list[EndpointConfig]:
    return [
        EndpointConfig(name=f"ep{i}", url=f"https://api.example.com/{i}", expected_status=expected_status)
        for i in range(count)
    ]


def _ok(endpoint: EndpointConfig, latency_ms: float = 10.0, status: int = 200) -> ProbeResult:
    return ProbeResult(url=endpoint.url, latency_ms=latency_ms, status_code=status)


class ConcurrencyProbe:
    """Fake probe that records the peak number of simultaneous calls."""

    def __init__(self, delay: float = 0.02) -> None:
        self.delay = delay
        self.in_flight = 0
        self.peak = 0
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, endpoint: EndpointConfig) -> ProbeResult:
        with self._lock:
            self.in_flight += 1
            self.calls += 1
            self.peak = max(self.peak, self.in_flight)
        time.sleep(self.delay)
        with self._lock:
            self.in_flight -= 1
        return _ok(endpoint)


class TestRunBatch:
    """Tests for run_batch function."""

    def test_all_success(self) -> None:
        """Every endpoint is tested once and counted."""
        endpoints = _endpoints(6)
        summary = run_batch(endpoints, concurrency=3, probe=_ok)

        assert summary.total == 6
        assert summary.successful == 6
        assert summary.failed == 0
        assert summary.skipped == 0
        assert not summary.deadline_exceeded
        assert not summary.stopped_early
        assert summary.total_time_ms >= 0
        assert {r.name for r in summary.results} == {e.name for e in endpoints}

    def test_success_predicate(self) -> None:
        """Success means no error and exactly the expected status."""
        endpoints = _endpoints(3)
        outcomes = {
            endpoints[0].url: ProbeResult(url=endpoints[0].url, latency_ms=5.0, status_code=200),
            endpoints[1].url: ProbeResult(url=endpoints[1].url, latency_ms=5.0, status_code=503),
            endpoints[2].url: ProbeResult(url=endpoints[2].url, latency_ms=5.0, error="refused"),
        }

        summary = run_batch(endpoints, concurrency=2, probe=lambda ep: outcomes[ep.url])

        by_name = {r.name: r for r in summary.results}
        assert by_name["ep0"].success
        assert by_name["ep1"].message == "Expected 200, got 503"
        assert by_name["ep2"].message == "Error: refused"
        for result in summary.results:
            probe = result.result
            assert result.success == (probe.error is None and probe.status_code == result.expected_status)
        assert summary.successful + summary.failed == summary.total == 3

    def test_concurrency_bound(self) -> None:
        """No more than `concurrency` probes run at the same time."""
        probe = ConcurrencyProbe()
        summary = run_batch(_endpoints(12), concurrency=3, probe=probe)

        assert summary.total == 12
        assert probe.calls == 12
        assert 1 <= probe.peak <= 3

    def test_concurrency_one_is_sequential(self) -> None:
        """Concurrency 1 never overlaps probes."""
        probe = ConcurrencyProbe(delay=0.005)
        run_batch(_endpoints(5), concurrency=1, probe=probe)
        assert probe.peak == 1

    def test_concurrency_above_endpoint_count(self) -> None:
        """Concurrency larger than the batch is fine."""
        summary = run_batch(_endpoints(2), concurrency=50, probe=_ok)
        assert summary.total == 2

    def test_fail_fast_stops_admission(self) -> None:
        """With one worker, the first failure stops the rest."""
        calls: list[str] = []

        def failing(endpoint: EndpointConfig) -> ProbeResult:
            calls.append(endpoint.name)
            return _ok(endpoint, status=500)

        summary = run_batch(_endpoints(5), concurrency=1, fail_fast=True, probe=failing)

        assert summary.total == 1
        assert summary.failed == 1
        assert summary.stopped_early
        assert summary.skipped == 4
        assert len(calls) < 5

    def test_fail_fast_keeps_failing_result(self) -> None:
        """The result that triggered fail-fast is always in the summary."""
        endpoints = _endpoints(4)

        def probe(endpoint: EndpointConfig) -> ProbeResult:
            if endpoint.name == "ep1":
                return _ok(endpoint, status=404)
            return _ok(endpoint)

        summary = run_batch(endpoints, concurrency=1, fail_fast=True, probe=probe)

        assert summary.failed == 1
        assert any(r.name == "ep1" and not r.success for r in summary.results)

    def test_no_fail_fast_tests_everything(self) -> None:
        """Without fail-fast, failures don't stop the batch."""
        summary = run_batch(_endpoints(5), concurrency=2, probe=lambda ep: _ok(ep, status=500))

        assert summary.total == 5
        assert summary.failed == 5
        assert not summary.stopped_early

    def test_max_time_returns_partial(self) -> None:
        """The batch returns soon after the deadline, flagged as partial."""
        release = threading.Event()

        def slow(endpoint: EndpointConfig) -> ProbeResult:
            if endpoint.name != "ep0":
                release.wait(timeout=5)
            return _ok(endpoint)

        start = time.monotonic()
        try:
            summary = run_batch(_endpoints(4), concurrency=4, max_time=0.2, probe=slow)
        finally:
            release.set()
        elapsed = time.monotonic() - start

        assert elapsed < 2.0
        assert summary.deadline_exceeded
        assert summary.total < 4
        assert summary.skipped == 4 - summary.total

    def test_max_time_not_hit(self) -> None:
        """A fast batch under the deadline is not flagged."""
        summary = run_batch(_endpoints(3), concurrency=3, max_time=5.0, probe=_ok)

        assert not summary.deadline_exceeded
        assert summary.total == 3

    def test_probe_exception_becomes_failure(self) -> None:
        """An exception inside a probe is a failed result, not a crash."""

        def broken(endpoint: EndpointConfig) -> ProbeResult:
            if endpoint.name == "ep1":
                raise RuntimeError("boom")
            return _ok(endpoint)

        summary = run_batch(_endpoints(3), concurrency=2, probe=broken)

        assert summary.total == 3
        assert summary.failed == 1
        failed = next(r for r in summary.results if not r.success)
        assert failed.result.error == "boom"

    def test_on_result_called_for_each(self) -> None:
        """The callback sees every counted result."""
        seen: list[BatchResult] = []
        summary = run_batch(_endpoints(4), concurrency=2, probe=_ok, on_result=seen.append)

        assert len(seen) == 4
        assert sorted(r.name for r in seen) == sorted(r.name for r in summary.results)

    def test_on_result_errors_are_contained(self) -> None:
        """A failing callback doesn't abort the batch."""

        def bad_callback(result: BatchResult) -> None:
            raise ValueError("display broke")

        summary = run_batch(_endpoints(3), concurrency=2, probe=_ok, on_result=bad_callback)
        assert summary.total == 3

    def test_default_probe_uses_batch_timeout(self) -> None:
        """Without a probe override, endpoints are probed with the default timeout."""
        endpoints = _endpoints(2)
        with patch("tapr.batch.probe_endpoint", side_effect=lambda ep, timeout: _ok(ep)) as mock_probe:
            summary = run_batch(endpoints, concurrency=2, default_timeout=4.0)

        assert summary.total == 2
        assert {c.args[1] for c in mock_probe.call_args_list} == {4.0}

    def test_average_latency(self) -> None:
        """Average latency covers error-free results."""
        endpoints = _endpoints(3)
        latencies = {endpoints[0].url: 100.0, endpoints[1].url: 200.0, endpoints[2].url: 600.0}

        summary = run_batch(endpoints, concurrency=3, probe=lambda ep: _ok(ep, latency_ms=latencies[ep.url]))

        assert summary.avg_latency_ms == pytest.approx(300.0)
        assert summary.slow == 1


class TestRunBatchSetupErrors:
    """Tests for run_batch argument validation."""

    def test_empty_endpoints(self) -> None:
        """An empty batch is a setup error."""
        with pytest.raises(ConfigError, match="No endpoints"):
            run_batch([], concurrency=2, probe=_ok)

    def test_zero_concurrency(self) -> None:
        """Concurrency below 1 is a setup error."""
        with pytest.raises(ConfigError, match="Concurrency"):
            run_batch(_endpoints(1), concurrency=0, probe=_ok)

    def test_non_positive_max_time(self) -> None:
        """A zero max-time is a setup error."""
        with pytest.raises(ConfigError, match="Max time"):
            run_batch(_endpoints(1), concurrency=1, max_time=0, probe=_ok)
