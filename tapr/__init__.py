"""Tapr - API health checker for the command line."""

import argparse
import logging
import signal
import sys
from threading import Event
from typing import Optional

__version__ = "0.1.0"

OUTPUT_FORMATS = ("pretty", "json", "csv")

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)


def _setup_logging(level: str = "WARNING") -> None:
    """Configure logging for the application.

    Logs go to stderr so stdout stays clean for JSON/CSV reports.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, stopping...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _error(args: argparse.Namespace, message: str) -> None:
    """Print a setup error to stderr unless running silent."""
    from .output import red

    if not args.silent:
        print(red(f"Error: {message}"), file=sys.stderr)


def _valid_url(url: str) -> bool:
    return url.startswith(("http://", "https://"))


def _resolve_headers(args: argparse.Namespace) -> dict[str, str]:
    """Merge headers from --headers and -H; inline values win."""
    from .config import load_headers, merge_headers, parse_inline_headers

    file_headers = load_headers(args.headers) if args.headers else None
    inline_headers = parse_inline_headers(args.header) if args.header else None
    return merge_headers(file_headers, inline_headers)


def _prepare_request(args: argparse.Namespace) -> Optional[dict[str, str]]:
    """Validate the URL and load headers; None means a setup error was reported."""
    from .config import ConfigError

    if not _valid_url(args.url):
        _error(args, "URL must start with http:// or https://")
        return None
    try:
        return _resolve_headers(args)
    except ConfigError as e:
        _error(args, f"loading headers: {e}")
        return None


def _cmd_ping(args: argparse.Namespace) -> int:
    """Execute the ping command - a single request."""
    from .display import render_ping_result, render_request_details
    from .output import EXIT_FAILURE, EXIT_SUCCESS
    from .probe import ping

    headers = _prepare_request(args)
    if headers is None:
        return EXIT_FAILURE

    if args.verbose and not (args.quiet or args.silent):
        print(render_request_details(args.url, args.method.upper(), args.timeout, args.retries, headers))

    result = ping(
        args.url,
        method=args.method,
        timeout=args.timeout,
        headers=headers,
        retries=args.retries,
    )

    if not args.silent and (not args.quiet or not result.ok):
        print(render_ping_result(result), file=sys.stdout if result.ok else sys.stderr)

    return EXIT_SUCCESS if result.ok else EXIT_FAILURE


def _cmd_watch(args: argparse.Namespace) -> int:
    """Execute the watch command - probe a URL until stopped."""
    global _shutdown_event

    from .display import CLEAR_SCREEN, render_watch_header, render_watch_stats, render_watch_summary
    from .output import EXIT_FAILURE, EXIT_SUCCESS
    from .watch import Watcher

    headers = _prepare_request(args)
    if headers is None:
        return EXIT_FAILURE

    show = not (args.quiet or args.silent)

    def on_update(watcher: Watcher) -> None:
        if not show:
            return
        print(CLEAR_SCREEN + render_watch_header(watcher.url, watcher.interval, watcher.count))
        print(render_watch_stats(watcher.tracker, watcher.history), flush=True)

    try:
        watcher = Watcher(
            args.url,
            interval=args.interval,
            count=args.count,
            method=args.method.upper(),
            timeout=args.timeout,
            headers=headers,
            retries=args.retries,
            on_update=on_update,
        )
    except ValueError as e:
        _error(args, str(e))
        return EXIT_FAILURE

    _shutdown_event = Event()
    previous_term = signal.signal(signal.SIGTERM, _handle_shutdown)
    previous_int = signal.signal(signal.SIGINT, _handle_shutdown)

    try:
        watcher.run(_shutdown_event)
    except KeyboardInterrupt:
        # Backup handler if signal doesn't work
        logger.info("Keyboard interrupt received")
    finally:
        signal.signal(signal.SIGTERM, previous_term)
        signal.signal(signal.SIGINT, previous_int)

    if not args.silent:
        print(
            render_watch_summary(
                watcher.url,
                args.method.upper(),
                watcher.tracker,
                watcher.duration,
                watcher.request_count,
            )
        )

    return EXIT_SUCCESS if watcher.tracker.failed == 0 else EXIT_FAILURE


def _cmd_batch(args: argparse.Namespace) -> int:
    """Execute the batch command - test every endpoint in a config file."""
    from .batch import run_batch
    from .config import ConfigError, load_batch_config
    from .display import render_batch_header, render_batch_results, render_failure_line
    from .models import BatchResult
    from .output import EXIT_ERROR, exit_code, format_batch_csv, format_batch_json, yellow

    if args.output not in OUTPUT_FORMATS:
        _error(args, f"Unknown output format: {args.output}")
        return EXIT_ERROR

    # 1. Load configuration
    try:
        config = load_batch_config(args.config)
    except ConfigError as e:
        _error(args, f"loading batch config: {e}")
        return EXIT_ERROR

    concurrency = args.concurrency if args.concurrency > 0 else config.concurrency
    pretty = args.output == "pretty" and not (args.quiet or args.silent)

    if pretty:
        print(render_batch_header(len(config.endpoints), concurrency))

    def on_result(result: BatchResult) -> None:
        # Quiet mode reports failures as they arrive.
        if args.quiet and not args.silent and not result.success:
            print(render_failure_line(result), file=sys.stderr)

    # 2. Run the batch
    try:
        summary = run_batch(
            config.endpoints,
            concurrency,
            max_time=args.max_time,
            fail_fast=args.fail_fast,
            default_timeout=config.timeout,
            on_result=on_result,
        )
    except ConfigError as e:
        _error(args, str(e))
        return EXIT_ERROR

    if summary.deadline_exceeded and not args.silent:
        print(
            yellow(f"⏱️  Batch exceeded max-time limit ({args.max_time:g}s)"),
            file=sys.stderr,
        )

    # 3. Report
    if args.silent:
        pass
    elif args.output == "json":
        print(format_batch_json(summary))
    elif args.output == "csv":
        sys.stdout.write(format_batch_csv(summary))
    elif pretty:
        print(render_batch_results(summary, args.max_time))

    return exit_code(summary)


def _cmd_trace(args: argparse.Namespace) -> int:
    """Execute the trace command - per-phase timing of one request."""
    from .display import render_request_details, render_trace_result
    from .output import EXIT_FAILURE, EXIT_SUCCESS, red
    from .trace import trace_request

    headers = _prepare_request(args)
    if headers is None:
        return EXIT_FAILURE

    show = not (args.quiet or args.silent)
    if show:
        print(f"\n🔍 Tracing request to {args.url}...\n")
        if args.verbose:
            print(render_request_details(args.url, args.method.upper(), args.timeout, 0, headers))

    result = trace_request(args.url, method=args.method, timeout=args.timeout, headers=headers)

    if result.error is not None:
        if not args.silent:
            print(f"{red('✗')} Trace failed: {result.error}", file=sys.stderr)
        return EXIT_FAILURE

    if show:
        print(render_trace_result(result))
    return EXIT_SUCCESS


def _cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command."""
    print(f"Tapr version {__version__}")
    return 0


def _duration(value: str) -> float:
    """argparse type for durations such as "10", "500ms" or "1m30s"."""
    from .config import ConfigError, parse_duration

    try:
        seconds = parse_duration(value)
    except ConfigError as e:
        raise argparse.ArgumentTypeError(str(e))
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"duration must be positive: {value!r}")
    return seconds


def _add_global_options(parser: argparse.ArgumentParser, suppress: bool = False) -> None:
    """Options accepted both before and after the subcommand.

    Subcommand copies use SUPPRESS defaults so they don't clobber values
    given before the subcommand.
    """

    def default(value: object) -> object:
        return argparse.SUPPRESS if suppress else value

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=default(False),
        help="Only show errors (no output on success)",
    )
    parser.add_argument(
        "--silent",
        action="store_true",
        default=default(False),
        help="No output at all (only exit code)",
    )
    parser.add_argument(
        "-o", "--output",
        default=default("pretty"),
        help="Output format: pretty, json, csv (default: pretty)",
    )
    parser.add_argument(
        "--log-level",
        default=default("WARNING"),
        help="Logging level for diagnostics on stderr (default: WARNING)",
    )


def _add_request_options(parser: argparse.ArgumentParser, retries: bool = True) -> None:
    """URL argument plus the options shared by ping, watch and trace."""
    from .config import DEFAULT_TIMEOUT

    parser.add_argument("url", help="URL to request (http:// or https://)")
    parser.add_argument(
        "-t", "--timeout",
        type=_duration,
        default=DEFAULT_TIMEOUT,
        help="Maximum time to wait for response, e.g. 10s or 500ms (default: 10s)",
    )
    parser.add_argument(
        "-X", "--method",
        default="GET",
        help="HTTP method (GET, POST, PUT, PATCH, DELETE)",
    )
    parser.add_argument(
        "--headers",
        help="Path to YAML file containing request headers",
    )
    parser.add_argument(
        "-H", "--header",
        action="append",
        default=[],
        help="Add a header (format: 'Key: Value'), repeatable",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed request information and debug logging",
    )
    if retries:
        parser.add_argument(
            "-r", "--retries",
            type=int,
            default=0,
            help="Number of retry attempts on failure (default: 0)",
        )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    from .watch import DEFAULT_INTERVAL

    parser = argparse.ArgumentParser(
        prog="tapr",
        description="Tapr - API health checker: ping, watch, batch test and trace HTTP endpoints",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"tapr {__version__}",
    )
    _add_global_options(parser)

    subparsers = parser.add_subparsers(dest="command")

    # Ping subcommand
    ping_parser = subparsers.add_parser(
        "ping",
        help="Make a single request and report status and latency",
    )
    _add_request_options(ping_parser)
    _add_global_options(ping_parser, suppress=True)
    ping_parser.set_defaults(func=_cmd_ping)

    # Watch subcommand
    watch_parser = subparsers.add_parser(
        "watch",
        help="Continuously monitor an endpoint with live statistics",
    )
    _add_request_options(watch_parser)
    watch_parser.add_argument(
        "-i", "--interval",
        type=_duration,
        default=DEFAULT_INTERVAL,
        help="Time between requests (default: 2s)",
    )
    watch_parser.add_argument(
        "-n", "--count",
        type=int,
        default=0,
        help="Number of requests (0 = until interrupted)",
    )
    _add_global_options(watch_parser, suppress=True)
    watch_parser.set_defaults(func=_cmd_watch)

    # Batch subcommand
    batch_parser = subparsers.add_parser(
        "batch",
        help="Test multiple endpoints from a YAML config file",
    )
    batch_parser.add_argument("config", help="Path to the batch YAML file")
    batch_parser.add_argument(
        "-c", "--concurrency",
        type=int,
        default=0,
        help="Number of concurrent requests (0 = use config value)",
    )
    batch_parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop testing on first failure",
    )
    batch_parser.add_argument(
        "--max-time",
        type=_duration,
        default=None,
        help="Maximum time for the entire batch, e.g. 30s or 5m",
    )
    _add_global_options(batch_parser, suppress=True)
    batch_parser.set_defaults(func=_cmd_batch)

    # Trace subcommand
    trace_parser = subparsers.add_parser(
        "trace",
        help="Show a per-phase timing breakdown of one request",
    )
    _add_request_options(trace_parser, retries=False)
    _add_global_options(trace_parser, suppress=True)
    trace_parser.set_defaults(func=_cmd_trace)

    # Version subcommand
    version_parser = subparsers.add_parser(
        "version",
        help="Print the version number",
    )
    version_parser.set_defaults(func=_cmd_version)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the tapr command.

    Returns:
        Process exit code: 0 on success, 1 on failure, 2 on setup errors
        in batch mode.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    level = "DEBUG" if getattr(args, "verbose", False) else args.log_level
    _setup_logging(level)

    return args.func(args)
