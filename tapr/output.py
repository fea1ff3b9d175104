"""Output formatting: ANSI colors, JSON/CSV serialization, and exit codes."""

import csv
import io
import json
import os

from .models import BatchResult
from .stats import SLOW_THRESHOLD_MS, BatchSummary

# Exit codes for CI/CD integration
EXIT_SUCCESS = 0  # All tests passed
EXIT_FAILURE = 1  # At least one endpoint failed
EXIT_ERROR = 2  # Configuration error, invalid arguments, etc.

# Responses faster than this are colored green (milliseconds).
FAST_THRESHOLD_MS = 200.0

CSV_FIELDS = (
    "name",
    "url",
    "method",
    "status",
    "expected_status",
    "latency_ms",
    "size_bytes",
    "success",
    "error",
)

_RESET = "\033[0m"
_RED = "\033[31m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_BLUE = "\033[34m"
_CYAN = "\033[36m"


def _colors_enabled() -> bool:
    # https://no-color.org/
    return not os.environ.get("NO_COLOR")


def _colorize(text: str, color: str) -> str:
    if not _colors_enabled():
        return text
    return f"{color}{text}{_RESET}"


def green(text: str) -> str:
    """Success, fast responses."""
    return _colorize(text, _GREEN)


def red(text: str) -> str:
    """Errors, failures, slow responses."""
    return _colorize(text, _RED)


def yellow(text: str) -> str:
    """Warnings, moderate responses."""
    return _colorize(text, _YELLOW)


def blue(text: str) -> str:
    return _colorize(text, _BLUE)


def cyan(text: str) -> str:
    """Exceptional performance."""
    return _colorize(text, _CYAN)


def format_duration(ms: float) -> str:
    """Human-readable duration, e.g. "850µs", "123.4ms", "2.35s"."""
    if ms < 1:
        return f"{ms * 1000:.0f}µs"
    if ms < 1000:
        return f"{ms:.1f}ms"
    return f"{ms / 1000:.2f}s"


def format_latency(ms: float) -> str:
    """Duration colored green (<200ms), yellow (<500ms) or red."""
    text = format_duration(ms)
    if ms < FAST_THRESHOLD_MS:
        return green(text)
    if ms < SLOW_THRESHOLD_MS:
        return yellow(text)
    return red(text)


def format_bytes(size: int) -> str:
    """Human-readable byte count (e.g., "1.20 KB")."""
    kb = 1024
    mb = 1024 * kb
    if size >= mb:
        return f"{size / mb:.2f} MB"
    if size >= kb:
        return f"{size / kb:.2f} KB"
    return f"{size} bytes"


def latency_bar(latency_ms: float, max_latency_ms: float | None, width: int = 15) -> str:
    """Color-coded bar showing a latency relative to the slowest seen."""
    if not max_latency_ms:
        return "[" + "·" * width + "]   0%"

    ratio = latency_ms / max_latency_ms
    percentage = min(int(ratio * 100), 100)
    filled = min(max(int(ratio * width), 0), width)

    blazing = latency_ms < 50
    if blazing and filled == 0:
        filled = 1

    if blazing:
        bar = green("★" * filled)
    elif latency_ms < FAST_THRESHOLD_MS:
        bar = green("█" * filled)
    elif latency_ms < SLOW_THRESHOLD_MS:
        bar = yellow("█" * filled)
    else:
        bar = red("█" * filled)

    badge = " ⚡" if blazing else ""
    return f"[{bar}{'·' * (width - filled)}] {percentage:3d}%{badge}"


def result_error(result: BatchResult) -> str | None:
    """Error text for a failed result: transport error first, then mismatch message."""
    if result.result.error is not None:
        return result.result.error
    if not result.success:
        return result.message
    return None


def _result_to_dict(result: BatchResult) -> dict:
    entry = {
        "name": result.name,
        "url": result.url,
        "method": result.method,
        "status": result.result.status_code or 0,
        "expected_status": result.expected_status,
        "latency_ms": int(result.result.latency_ms),
        "size_bytes": result.result.size_bytes,
        "success": result.success,
    }
    error = result_error(result)
    if error:
        entry["error"] = error
    return entry


def batch_summary_to_dict(summary: BatchSummary) -> dict:
    """Convert a batch summary into a JSON-serializable dictionary."""
    data = {
        "total": summary.total,
        "successful": summary.successful,
        "failed": summary.failed,
        "slow": summary.slow,
        "success_rate": summary.success_rate(),
        "avg_latency_ms": int(summary.avg_latency_ms),
        "total_time_ms": int(summary.total_time_ms),
        "results": [_result_to_dict(result) for result in summary.results],
    }
    if summary.deadline_exceeded:
        data["deadline_exceeded"] = True
        data["skipped"] = summary.skipped
    return data


def format_batch_json(summary: BatchSummary) -> str:
    """Serialize a batch summary as indented JSON."""
    return json.dumps(batch_summary_to_dict(summary), indent=2, ensure_ascii=False)


def format_batch_csv(summary: BatchSummary) -> str:
    """Serialize batch results as CSV with a header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_FIELDS)
    for result in summary.results:
        writer.writerow(
            [
                result.name,
                result.url,
                result.method,
                result.result.status_code or 0,
                result.expected_status,
                int(result.result.latency_ms),
                result.result.size_bytes,
                "true" if result.success else "false",
                result_error(result) or "",
            ]
        )
    return buffer.getvalue()


def exit_code(summary: BatchSummary) -> int:
    """Process exit code for a finished batch: 0 if nothing failed, else 1."""
    return EXIT_FAILURE if summary.failed > 0 else EXIT_SUCCESS
