"""Human-readable terminal rendering for ping, watch, batch, and trace output.

Every function returns a string; printing is left to the CLI.
"""

from datetime import datetime

from .models import BatchResult, ProbeResult, TraceResult
from .output import (
    blue,
    cyan,
    format_bytes,
    format_duration,
    format_latency,
    green,
    latency_bar,
    red,
    result_error,
    yellow,
)
from .stats import SLOW_THRESHOLD_MS, BatchSummary, History, Tracker

CLEAR_SCREEN = "\033[H\033[2J"
RULE = "─" * 75

_SENSITIVE_HEADERS = ("authorization", "api-key", "x-api-key", "token", "password")


def is_sensitive_header(name: str) -> bool:
    """Whether a header name likely carries a secret."""
    lowered = name.lower()
    return any(marker in lowered for marker in _SENSITIVE_HEADERS)


def mask_value(value: str) -> str:
    """Mask a secret, keeping only its last 4 characters."""
    if len(value) <= 4:
        return "***"
    return "***" + value[-4:]


def _rate_color(rate: float):
    if rate == 100:
        return green
    if rate >= 80:
        return yellow
    return red


def _boxed(title: str) -> str:
    width = 69
    return "\n".join(
        [
            "┌" + "─" * width + "┐",
            "│ " + title.ljust(width - 1) + "│",
            "└" + "─" * width + "┘",
        ]
    )


# ---------------------------------------------------------------------------
# ping
# ---------------------------------------------------------------------------


def render_request_details(
    url: str,
    method: str,
    timeout: float,
    retries: int,
    headers: dict[str, str],
) -> str:
    """Verbose request summary with sensitive header values masked."""
    lines = [
        "   Request",
        f"   URL:     {blue(url)}",
        f"   Method:  {method}",
        f"   Timeout: {timeout:g}s",
    ]
    if retries > 0:
        lines.append(f"   Retries: {retries}")
    if headers:
        lines.append(f"   Headers: {len(headers)} total")
        for key, value in headers.items():
            shown = mask_value(value) if is_sensitive_header(key) else value
            lines.append(f"     {key}: {shown}")
    return "\n".join(lines) + "\n"


def render_ping_result(result: ProbeResult) -> str:
    """One-shot result: success block or error block."""
    if result.error is not None:
        return f"{red('✗')} Failed to ping {result.url}\n  Error: {result.error}"

    lines = [
        f"{green('✓')} Success",
        f"  Status:   {result.status_text or result.status_code}",
        f"  Latency:  {format_latency(result.latency_ms)}",
    ]
    if result.protocol:
        lines.append(f"  Protocol: {result.protocol}")
    if result.size_bytes > 0:
        lines.append(f"  Size:     {format_bytes(result.size_bytes)}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# batch
# ---------------------------------------------------------------------------


def render_batch_header(endpoint_count: int, concurrency: int) -> str:
    box = _boxed(f"Running batch: {endpoint_count} endpoints (concurrency: {concurrency})")
    return box + "\nTesting endpoints... ⚡"


def render_failure_line(result: BatchResult) -> str:
    """Single-line failure notice, used in quiet mode."""
    return f"{red('✗')} {result.name}: {result_error(result)}"


def _result_row(result: BatchResult) -> str:
    name = result.name if len(result.name) <= 20 else result.name[:17] + "..."
    probe = result.result
    status = str(probe.status_code) if probe.ok and probe.status_code is not None else "-"
    latency = format_duration(probe.latency_ms) if probe.ok else "-"
    size = format_bytes(probe.size_bytes) if probe.size_bytes > 0 else "-"

    if not result.success:
        indicator = red(f"✗ {result.message}")
    elif probe.latency_ms > SLOW_THRESHOLD_MS:
        indicator = yellow("⚠️  SLOW")
    else:
        indicator = green("✓")

    return f"{name:<20} {result.method:<7} {status:<7} {latency:<10} {size:<8} {indicator}"


def render_batch_results(summary: BatchSummary, max_time: float | None = None) -> str:
    """Results table followed by the summary block and final verdict."""
    lines = [
        f"{'ENDPOINT':<20} {'METHOD':<7} {'STATUS':<7} {'LATENCY':<10} {'SIZE':<8} RESULT",
        RULE,
    ]
    lines.extend(_result_row(result) for result in summary.results)

    rate = summary.success_rate()
    lines.extend(
        [
            "",
            RULE,
            "📊 Summary",
            f"   Total:        {summary.total} endpoints",
            f"   Successful:   {_rate_color(rate)(str(summary.successful))} ({rate:.1f}%)",
            f"   Failed:       {red(str(summary.failed))}",
        ]
    )
    if summary.slow > 0:
        lines.append(f"   Slow:         {yellow(str(summary.slow))} (> {SLOW_THRESHOLD_MS:.0f}ms)")
    if summary.total > 0 and summary.avg_latency_ms > 0:
        lines.append(f"   Avg Latency:  {format_latency(summary.avg_latency_ms)}")
    lines.append(f"   Total Time:   {format_duration(summary.total_time_ms)}")

    if summary.deadline_exceeded:
        limit = f" ({max_time:g}s)" if max_time is not None else ""
        lines.append(
            yellow(f"⏱️  Batch exceeded max-time limit{limit}: {summary.skipped} endpoint(s) not tested")
        )
    elif summary.stopped_early:
        lines.append(yellow(f"⚠️  Stopped on first failure: {summary.skipped} endpoint(s) not tested"))

    lines.append("")
    if summary.failed == 0:
        lines.append(green("✓ All endpoints healthy!"))
    else:
        lines.append(red(f"✗ {summary.failed} endpoint(s) failed!"))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


def render_watch_header(url: str, interval: float, count: int) -> str:
    limit = f"Count: {count}" if count > 0 else "Count: infinite"
    return _boxed(f"Watching: {url}") + f"\n Interval: {interval:g}s, {limit}"


def _history_row(timestamp: datetime, result: ProbeResult, max_latency_ms: float | None) -> str:
    time_str = timestamp.astimezone().strftime("%H:%M:%S")
    if result.ok:
        mark, status = green("✓"), str(result.status_code)
    else:
        mark, status = red("✗"), "Error"
    bar = latency_bar(result.latency_ms, max_latency_ms)
    return f"   {time_str:<8}  {mark}  {status:<10}  {format_duration(result.latency_ms):<10}  {bar}"


def render_watch_stats(tracker: Tracker, history: History, recent: int = 5) -> str:
    """Live statistics and the most recent checks."""
    rate = tracker.success_rate()
    lines = [
        "",
        f"📈 Live Stats ({tracker.total} requests)",
        f"   Success Rate:  {_rate_color(rate)(f'{rate:.1f}%')} ({tracker.successful}/{tracker.total})",
    ]
    if tracker.total > 0:
        lines.extend(
            [
                f"   Avg Latency:   {format_latency(tracker.avg_latency())}",
                f"   Min Latency:   {green(format_duration(tracker.min_latency_ms))}",
                f"   Max Latency:   {red(format_duration(tracker.max_latency_ms))}",
            ]
        )
        if tracker.total >= 2:
            lines.append(f"   P95 Latency:   {format_duration(tracker.percentile(0.95))}")

    lines.extend(
        [
            "",
            "📊 Recent Checks",
            f"   {'TIME':<8}  {'✓/✗':<3}  {'STATUS':<10}  {'LATENCY':<10}  {'PERFORMANCE':<25}",
            "   " + "─" * 65,
        ]
    )
    for entry in history.get_recent(recent):
        lines.append(_history_row(entry.timestamp, entry.result, tracker.max_latency_ms))

    lines.extend(["", blue("Press Ctrl+C to stop...")])
    return "\n".join(lines)


def generate_insights(tracker: Tracker, duration: float, request_count: int) -> list[str]:
    """Observations about reliability, speed, and consistency of a watch session."""
    insights: list[str] = []

    rate = tracker.success_rate()
    if tracker.total > 0 and rate == 100:
        insights.append(green("✓ Perfect reliability - no failures detected"))
    elif tracker.failed > 0:
        failure_rate = tracker.failed / tracker.total * 100
        insights.append(red(f"⚠️  {failure_rate:.1f}% failure rate - investigate error patterns"))

    if tracker.total > 0:
        avg = tracker.avg_latency()
        if avg < 50:
            insights.append(cyan("⚡ Exceptional response times (< 50ms average)"))
        elif avg < 200:
            insights.append(green("✓ Fast response times (< 200ms average)"))
        elif avg < 500:
            insights.append(yellow("⚠️  Moderate response times (200-500ms average)"))
        elif avg < 1000:
            insights.append(yellow("⚠️  Slow response times (500ms-1s average)"))
        else:
            insights.append(red("⚠️  Very slow response times (> 1s average)"))

        if avg > 0:
            variance_ratio = tracker.std_dev() / avg
            if variance_ratio < 0.2:
                insights.append(green("✓ Highly consistent performance (low variance)"))
            elif variance_ratio > 0.5:
                insights.append(yellow("⚠️  Inconsistent performance (high variance)"))

        spread = tracker.max_latency_ms - tracker.min_latency_ms
        if spread > 1000:
            insights.append(
                yellow(
                    f"⚠️  Large latency spread: {format_duration(tracker.min_latency_ms)} (min) "
                    f"to {format_duration(tracker.max_latency_ms)} (max)"
                )
            )

        if duration > 0:
            insights.append(f"📈 Throughput: {request_count / duration:.2f} requests/second")

    if duration > 300:
        insights.append(f"⏱️  Long monitoring session: {duration:.0f}s")

    return insights


def _std_dev_label(std_dev_ms: float) -> str:
    if std_dev_ms < 50:
        return green("(very consistent)")
    if std_dev_ms < 200:
        return yellow("(moderate variance)")
    return red("(high variance)")


def render_watch_summary(
    url: str,
    method: str,
    tracker: Tracker,
    duration: float,
    request_count: int,
) -> str:
    """Final report printed when a watch session ends."""
    rate = tracker.success_rate()
    color = _rate_color(rate)
    mark = "✓" if rate == 100 else "⚠️" if rate >= 80 else "✗"

    lines = [
        "",
        _boxed("📋 Watch Summary"),
        "🎯 Endpoint",
        f"   URL:      {url}",
        f"   Method:   {method}",
        f"   Duration: {duration:.0f}s",
        f"   Requests: {request_count}",
        "📊 Results",
        f"   Success Rate:  {mark} {color(f'{rate:.1f}%')} ({tracker.successful}/{tracker.total})",
        f"   Successful:    {green(str(tracker.successful))}",
        f"   Failed:        {red(str(tracker.failed))}",
        "",
    ]

    if tracker.total > 0:
        lines.extend(
            [
                "⚡ Performance",
                f"   Min Latency:   {cyan(format_duration(tracker.min_latency_ms))}",
                f"   Max Latency:   {red(format_duration(tracker.max_latency_ms))}",
                f"   Avg Latency:   {format_latency(tracker.avg_latency())}",
            ]
        )
        if tracker.total >= 2:
            lines.extend(
                [
                    f"   P50 Latency:   {format_duration(tracker.percentile(0.50))}",
                    f"   P95 Latency:   {format_duration(tracker.percentile(0.95))}",
                    f"   P99 Latency:   {format_duration(tracker.percentile(0.99))}",
                ]
            )
        std_dev = tracker.std_dev()
        lines.extend([f"   Std Dev:       {format_duration(std_dev)} {_std_dev_label(std_dev)}", ""])

    lines.append("💡 Insights")
    lines.extend(f"   {insight}" for insight in generate_insights(tracker, duration, request_count))
    lines.append("")

    if rate == 100:
        lines.append(green("✓ All requests successful! API is healthy."))
    elif rate >= 80:
        lines.append(yellow("⚠️  Some failures detected. API may be unstable."))
    else:
        lines.append(red("✗ High failure rate. API needs attention!"))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# trace
# ---------------------------------------------------------------------------


def _status_color(code: int | None):
    if code is None:
        return red
    if 200 <= code < 300:
        return green
    if 300 <= code < 400:
        return blue
    if 400 <= code < 500:
        return yellow
    return red


def render_trace_result(result: TraceResult) -> str:
    """Timeline of request phases with bars, response info, and insights."""
    phases = [
        ("DNS Lookup", result.dns_lookup_ms, cyan),
        ("TCP Connection", result.tcp_connection_ms, green),
        ("TLS Handshake", result.tls_handshake_ms, blue),
        ("Server Processing", result.server_processing_ms, yellow),
        ("Content Transfer", result.content_transfer_ms, green),
    ]
    longest = max(duration for _, duration, _ in phases) or 1.0
    total = result.total_ms or 1.0
    bar_width = 20

    lines = ["📊 Request Timeline"]
    for name, duration, color in phases:
        if duration <= 0:
            continue
        filled = max(int(duration / longest * bar_width), 1)
        bar = "█" * filled + "░" * (bar_width - filled)
        lines.append(f"   {name:<18} {color(bar)}  {format_duration(duration):<8} ({duration / total * 100:5.1f}%)")

    lines.extend(
        [
            "   " + "─" * 50,
            f"   {'Total Time':<18} {' ' * bar_width}  {cyan(format_duration(result.total_ms))}",
            "📬 Response",
            f"   Status:   {_status_color(result.status_code)(result.status_text or str(result.status_code))}",
            f"   Protocol: {result.protocol or 'unknown'}",
        ]
    )
    if result.size_bytes > 0:
        lines.append(f"   Size:     {format_bytes(result.size_bytes)}")
    if result.remote_addr:
        lines.append(f"   Server:   {result.remote_addr}")

    lines.extend(["", "💡 Insights"])
    lines.extend(f"   {insight}" for insight in generate_trace_insights(result))
    return "\n".join(lines)


def generate_trace_insights(result: TraceResult) -> list[str]:
    """Flag the phases that are unusually fast or slow."""
    insights: list[str] = []
    total = result.total_ms or 1.0

    def share(ms: float) -> float:
        return ms / total * 100

    if result.dns_lookup_ms > 0:
        if result.dns_lookup_ms < 10:
            insights.append(green("✓ Fast DNS lookup (likely cached)"))
        elif result.dns_lookup_ms > 100:
            insights.append(
                yellow(
                    f"⚠️  Slow DNS lookup ({format_duration(result.dns_lookup_ms)}, "
                    f"{share(result.dns_lookup_ms):.1f}% of total)"
                )
            )

    if result.tcp_connection_ms > 0:
        if result.tcp_connection_ms < 20:
            insights.append(green("✓ Fast TCP connection (server nearby)"))
        elif result.tcp_connection_ms > 100:
            insights.append(
                yellow(
                    f"⚠️  Slow TCP connection ({format_duration(result.tcp_connection_ms)}, "
                    f"{share(result.tcp_connection_ms):.1f}% of total) - server may be far away"
                )
            )

    if result.tls_handshake_ms > 0:
        if result.tls_handshake_ms < 50:
            insights.append(green("✓ Fast TLS handshake"))
        elif result.tls_handshake_ms > 200:
            insights.append(
                yellow(
                    f"⚠️  Slow TLS handshake ({format_duration(result.tls_handshake_ms)}, "
                    f"{share(result.tls_handshake_ms):.1f}% of total) - consider connection reuse"
                )
            )

    if result.server_processing_ms > 0:
        if result.server_processing_ms < 100:
            insights.append(green("✓ Fast server processing"))
        elif result.server_processing_ms > 500:
            insights.append(
                yellow(
                    f"⚠️  Slow server processing ({format_duration(result.server_processing_ms)}, "
                    f"{share(result.server_processing_ms):.1f}% of total) - backend optimization needed"
                )
            )
        if share(result.server_processing_ms) > 50:
            insights.append(
                yellow(
                    f"⚠️  Server processing is {share(result.server_processing_ms):.1f}% "
                    "of total time - main bottleneck"
                )
            )

    if result.content_transfer_ms > 0 and result.size_bytes > 0:
        if result.content_transfer_ms < 50:
            insights.append(green("✓ Fast content transfer"))
        elif share(result.content_transfer_ms) > 20:
            insights.append(
                yellow(
                    f"⚠️  Slow content transfer ({share(result.content_transfer_ms):.1f}% of total) "
                    "- consider compression or CDN"
                )
            )

    if result.total_ms < 200:
        insights.append(cyan("⚡ Excellent overall performance (< 200ms)"))
    elif result.total_ms > 1000:
        insights.append(red("⚠️  Poor overall performance (> 1s) - multiple issues need attention"))

    if not insights:
        insights.append("✓ No major issues detected")
    return insights
