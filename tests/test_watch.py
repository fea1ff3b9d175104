"""Tests for the watch module."""

import threading
from itertools import count
from unittest.mock import patch

import pytest

from tapr.models import ProbeResult
from tapr.watch import Watcher


def _sequence_probe(results: list[ProbeResult]):
    calls = count()

    def probe() -> ProbeResult:
        return results[next(calls) % len(results)]

    return probe


OK = ProbeResult(url="https://example.com", latency_ms=25.0, status_code=200)
FAIL = ProbeResult(url="https://example.com", latency_ms=1000.0, error="connection refused")


class TestWatcher:
    """Tests for Watcher class."""

    def test_rejects_invalid_interval(self) -> None:
        """Interval must be positive."""
        with pytest.raises(ValueError, match="Interval"):
            Watcher("https://example.com", interval=0)

    def test_rejects_negative_count(self) -> None:
        """Count cannot be negative."""
        with pytest.raises(ValueError, match="Count"):
            Watcher("https://example.com", count=-1)

    def test_stops_after_count(self) -> None:
        """The loop makes exactly `count` requests."""
        watcher = Watcher("https://example.com", interval=0.01, count=4, probe=_sequence_probe([OK]))
        watcher.run()

        assert watcher.request_count == 4
        assert watcher.tracker.total == 4
        assert watcher.tracker.successful == 4
        assert watcher.duration >= 0

    def test_records_failures(self) -> None:
        """Transport errors count as failures in the tracker."""
        watcher = Watcher(
            "https://example.com",
            interval=0.01,
            count=4,
            probe=_sequence_probe([OK, FAIL]),
        )
        watcher.run()

        assert watcher.tracker.successful == 2
        assert watcher.tracker.failed == 2
        assert watcher.tracker.max_latency_ms == 1000.0

    def test_history_is_bounded(self) -> None:
        """History keeps only the most recent entries."""
        watcher = Watcher(
            "https://example.com",
            interval=0.001,
            count=8,
            history_size=3,
            probe=_sequence_probe([OK]),
        )
        watcher.run()

        assert len(watcher.history) == 3
        assert watcher.tracker.total == 8

    def test_stop_event_ends_loop(self) -> None:
        """Setting the stop event ends an infinite watch."""
        stop = threading.Event()

        def on_update(watcher: Watcher) -> None:
            if watcher.request_count == 3:
                stop.set()

        watcher = Watcher(
            "https://example.com",
            interval=0.01,
            count=0,
            on_update=on_update,
            probe=_sequence_probe([OK]),
        )
        watcher.run(stop)

        assert watcher.request_count == 3

    def test_stop_interrupts_wait(self) -> None:
        """A long interval doesn't delay stopping."""
        stop = threading.Event()
        watcher = Watcher("https://example.com", interval=60, probe=_sequence_probe([OK]))

        timer = threading.Timer(0.05, stop.set)
        timer.start()
        try:
            watcher.run(stop)
        finally:
            timer.cancel()

        assert watcher.request_count == 1
        assert watcher.duration < 5

    def test_pre_set_stop_event(self) -> None:
        """An already-set event means no requests."""
        stop = threading.Event()
        stop.set()
        watcher = Watcher("https://example.com", probe=_sequence_probe([OK]))
        watcher.run(stop)

        assert watcher.request_count == 0

    def test_on_update_called_each_request(self) -> None:
        """The update callback fires after every request."""
        updates: list[int] = []
        watcher = Watcher(
            "https://example.com",
            interval=0.001,
            count=3,
            on_update=lambda w: updates.append(w.request_count),
            probe=_sequence_probe([OK]),
        )
        watcher.run()

        assert updates == [1, 2, 3]

    @patch("tapr.watch.ping")
    def test_default_probe_uses_ping(self, mock_ping) -> None:
        """Without a probe override, requests go through ping with the watch options."""
        mock_ping.return_value = OK
        watcher = Watcher(
            "https://example.com",
            interval=0.001,
            count=1,
            method="HEAD",
            timeout=3.0,
            headers={"X-Test": "1"},
            retries=2,
        )
        watcher.run()

        mock_ping.assert_called_once_with(
            "https://example.com",
            method="HEAD",
            timeout=3.0,
            headers={"X-Test": "1"},
            retries=2,
        )
