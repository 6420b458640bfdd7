"""CLI entry point for the Gmail Spam Counter."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Any

from gmail_spam_counter.config.settings import SpamCounterSettings
from gmail_spam_counter.core.auth import authenticate, build_gmail_service
from gmail_spam_counter.core.backoff import BackoffPolicy
from gmail_spam_counter.core.exceptions import Cancelled, TimeoutExceeded
from gmail_spam_counter.core.gmail_client import GmailClient
from gmail_spam_counter.core.models import FetchProgress, PipelineConfig
from gmail_spam_counter.core.summary import summary_lines
from gmail_spam_counter.pipeline.orchestrator import SpamCountPipeline

EXIT_ERROR = 1
EXIT_TIMEOUT = 124
EXIT_CANCELLED = 130


def setup_logging(level: str) -> None:
    """Configure logging with timestamp and module info."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def on_progress(progress: FetchProgress) -> None:
    """Print progress updates to stdout."""
    print(
        f"[{progress.current_stage}] "
        f"pages={progress.pages_listed} "
        f"dispatched={progress.ids_dispatched}",
        end="\r",
        flush=True,
    )


def _add_count_args(subparser: argparse.ArgumentParser) -> None:
    """Add the run window, timeout and concurrency flags to a subparser."""
    subparser.add_argument(
        "--days", "-d", type=int, default=None,
        help="Number of days to look back for spam (default: from settings)",
    )
    subparser.add_argument(
        "--timeout", "-t", type=float, default=None,
        help="Overall timeout in seconds for listing and fetching",
    )
    subparser.add_argument(
        "--workers", "-w", type=int, default=None,
        help="Maximum number of concurrent message fetches",
    )
    subparser.add_argument(
        "--jitter", type=float, default=None,
        help="Upper bound in seconds of the random delay before each fetch",
    )
    subparser.add_argument("--label", "-l", help="Gmail label ID (default: SPAM)")
    subparser.add_argument("--debug", action="store_true", help="Enable debug logging")


def _validate_count_args(args: argparse.Namespace) -> None:
    """Reject non-positive window, timeout and worker values."""
    if args.days is not None and args.days <= 0:
        print("Error: --days must be positive", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    if args.timeout is not None and args.timeout <= 0:
        print("Error: --timeout must be positive", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    if args.workers is not None and args.workers <= 0:
        print("Error: --workers must be positive", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    if args.jitter is not None and args.jitter < 0:
        print("Error: --jitter must be non-negative", file=sys.stderr)
        sys.exit(EXIT_ERROR)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gmail Spam Counter - Count spam messages per day"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    count_parser = subparsers.add_parser("count", help="Count spam messages per day")
    _add_count_args(count_parser)

    subparsers.add_parser("auth", help="Authenticate and show the account address")
    return parser


def apply_overrides(
    settings: SpamCounterSettings, args: argparse.Namespace
) -> SpamCounterSettings:
    """Return settings with any CLI flags layered on top."""
    update: dict[str, Any] = {}
    for arg_name, field_name in (
        ("days", "lookback_days"),
        ("timeout", "timeout_seconds"),
        ("workers", "max_concurrent_fetches"),
        ("jitter", "fetch_jitter_seconds"),
        ("label", "label"),
    ):
        value = getattr(args, arg_name, None)
        if value is not None:
            update[field_name] = value
    if getattr(args, "debug", False):
        update["log_level"] = "DEBUG"
    return settings.model_copy(update=update)


def backoff_from_settings(settings: SpamCounterSettings) -> BackoffPolicy:
    return BackoffPolicy(
        base_delay_seconds=settings.backoff_base_seconds,
        max_delay_seconds=settings.backoff_max_seconds,
        jitter_seconds=settings.backoff_jitter_seconds,
        max_attempts=settings.max_attempts,
    )


def build_client(settings: SpamCounterSettings) -> GmailClient:
    """Authenticate and wrap the Gmail service."""
    settings.ensure_directories()
    creds = authenticate(
        settings.credentials_path,
        settings.token_path,
        timeout_seconds=settings.auth_timeout_seconds,
        open_browser=settings.open_browser,
    )
    service = build_gmail_service(creds)
    return GmailClient(service, credentials=creds, num_retries=settings.num_retries)


def run_count(settings: SpamCounterSettings) -> None:
    """Run the pipeline and print the per-day summary."""
    config = PipelineConfig.from_settings(settings)
    print(
        f"Fetching spam for the past {config.lookback_days} days "
        f"(credentials: {settings.credentials_path}, token: {settings.token_path})"
    )
    client = build_client(settings)

    pipeline = SpamCountPipeline(
        config,
        client,
        backoff=backoff_from_settings(settings),
        on_progress=on_progress,
    )
    previous_handler = signal.signal(signal.SIGTERM, lambda signum, frame: pipeline.cancel())
    try:
        histogram = pipeline.run()
    finally:
        signal.signal(signal.SIGTERM, previous_handler)
        print()

    if not histogram:
        print(
            f"No spam messages found for the past {config.lookback_days} days "
            "(based on internalDate)."
        )
        return

    print(
        f"Spam email counts for the past {config.lookback_days} days "
        "(based on internalDate, local timezone):"
    )
    for line in summary_lines(histogram, config.cutoff_date):
        print(line)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(EXIT_ERROR)

    if args.command == "count":
        _validate_count_args(args)

    settings = apply_overrides(SpamCounterSettings(), args)
    setup_logging(settings.log_level)

    try:
        if args.command == "count":
            run_count(settings)

        elif args.command == "auth":
            client = build_client(settings)
            print(f"Authenticated as {client.get_profile_email()}")

    except TimeoutExceeded as e:
        print(f"\nError: {e} after {settings.timeout_seconds:.0f}s", file=sys.stderr)
        sys.exit(EXIT_TIMEOUT)
    except (Cancelled, KeyboardInterrupt):
        print("\n\nInterrupted by user")
        sys.exit(EXIT_CANCELLED)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
