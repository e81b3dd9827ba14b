"""Command-line interface for the purchase register watcher."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from .config import ENV_APP_URL, ENV_WORKBOOK_PATH, WatcherConfig, config_from_env
from .errors import WatcherError
from .excel_reader import extract_active_records
from .log import configure_logging
from .runner import watch
from .serial_time import DateTimePolicy
from .snapshot import records_to_json

logger = logging.getLogger("purchase_watcher.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Watch a purchase register workbook and send changed records"
    )
    parser.add_argument("--workbook", help=f"Register workbook (default: ${ENV_WORKBOOK_PATH})")
    parser.add_argument("--url", help=f"Receiver URL (default: ${ENV_APP_URL})")
    parser.add_argument("--snapshot", help="Snapshot file with the previous active records")
    parser.add_argument("--interval", type=float, help="Seconds between modification checks")
    parser.add_argument("--lookback-days", type=int, help="Skip bids older than this many days")
    parser.add_argument(
        "--no-lookback", action="store_true", help="Disable the bidding date filter"
    )
    parser.add_argument("--offset", help="Timestamp offset, e.g. +00:00, Z or +03:00")
    parser.add_argument(
        "--datetime-policy",
        choices=[p.value for p in DateTimePolicy],
        help="How time cells are merged with their date cells",
    )
    parser.add_argument(
        "--strict-columns",
        action="store_true",
        help="Fail when any expected named range is missing",
    )
    parser.add_argument("--env-file", help="Optional .env file with configuration")
    parser.add_argument("--log-file", help="Optional log file path")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    parser.add_argument(
        "--once",
        action="store_true",
        help="Print the current active records as JSON and exit",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> WatcherConfig:
    """Layer command-line arguments over the environment configuration."""
    load_dotenv(args.env_file)
    environ = dict(os.environ)
    if args.workbook:
        environ[ENV_WORKBOOK_PATH] = args.workbook
    if args.url:
        environ[ENV_APP_URL] = args.url

    # A one-shot extraction never sends, so it needs no receiver
    config = config_from_env(environ, require_url=not args.once)
    config = config.with_overrides(
        snapshot_path=Path(args.snapshot) if args.snapshot else None,
        poll_interval=args.interval,
        lookback_days=args.lookback_days,
        timestamp_offset=args.offset,
        datetime_policy=args.datetime_policy,
        strict_columns=True if args.strict_columns else None,
    )
    if args.no_lookback:
        config = replace(config, lookback_days=None)
    return config


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        configure_logging(args.log_level, Path(args.log_file) if args.log_file else None)
    except ValueError as exc:
        logger.error("invalid log level %r: %s", args.log_level, exc)
        return 1

    try:
        config = config_from_args(args)
        if args.once:
            records = extract_active_records(config.workbook_path, config.extraction) or []
            print(records_to_json(records))
            return 0
        watch(config)
    except (WatcherError, OSError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1

    logger.info("done")
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
