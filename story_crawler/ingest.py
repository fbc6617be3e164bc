"""Command-line entrypoint for a single story ingestion pass."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .categories import load_category_catalog
from .config import ConfigurationError, IngestConfig, load_config_from_env
from .database import build_session_factory
from .runner import RunResult, run_configured_pass
from .scheduler import CategoryScheduler

LOGGER = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape the next category in the rotation into the story store")
    parser.add_argument(
        "--db-url",
        type=str,
        default=None,
        help="SQLAlchemy database URL (defaults to DATABASE_URL or DATABASE_PATH)",
    )
    parser.add_argument(
        "--categories-file",
        type=Path,
        default=None,
        help="JSON catalog mapping category keys to index-page URLs",
    )
    parser.add_argument(
        "--synopsis-delay",
        type=float,
        default=None,
        help="Seconds to wait before each synopsis request (default: 15)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Number of stories committed per transaction (default: 10)",
    )
    parser.add_argument("--log-dir", type=Path, default=None, help="Directory for failure logs")
    parser.add_argument(
        "--no-failure-log",
        action="store_true",
        help="Do not append synopsis failures to the NDJSON failure log",
    )
    parser.add_argument(
        "--show-state",
        action="store_true",
        help="Print the stored rotation pointer and the next category, then exit",
    )
    return parser


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def build_config(args: argparse.Namespace) -> IngestConfig:
    config = load_config_from_env()
    if args.db_url:
        config.db_url = args.db_url
    if args.categories_file is not None:
        config.categories_file = args.categories_file
    if args.log_dir is not None:
        config.log_dir = args.log_dir
    if args.synopsis_delay is not None:
        if args.synopsis_delay < 0:
            raise ConfigurationError("--synopsis-delay must not be negative")
        config.rate_limit.synopsis_delay = args.synopsis_delay
    if args.batch_size is not None:
        if args.batch_size <= 0:
            raise ConfigurationError("--batch-size must be positive")
        config.batch_size = args.batch_size
    config.failure_log_enabled = not args.no_failure_log
    return config


def show_state(config: IngestConfig) -> None:
    categories = load_category_catalog(config.categories_file)
    config.ensure_directories()
    scheduler = CategoryScheduler(categories, build_session_factory(config.db_url))
    state = scheduler.load_state()
    upcoming = scheduler.next()
    print(f"Stored pointer: {state.last_scraped_category_index!r} ({len(categories)} categories)")
    print(f"Next category: #{upcoming.index} {upcoming.key} -> {upcoming.index_url}")


def _summarize(result: RunResult) -> None:
    LOGGER.info(
        "Pass finished at %s: category=%s listed=%d candidates=%d pending=%d persisted=%d "
        "batches=%s synopsis_failures=%d advanced=%s",
        result.stage.value,
        result.category_key,
        result.listed,
        result.candidates,
        result.pending,
        result.persisted,
        result.batch_sizes,
        result.synopsis_failures,
        result.advanced,
    )


def main(argv: Sequence[str] | None = None) -> int:
    configure_logging()
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as exc:
        parser.error(str(exc))

    if args.show_state:
        try:
            show_state(config)
        except ConfigurationError as exc:
            parser.error(str(exc))
        return 0

    result = run_configured_pass(config)
    _summarize(result)
    return 0 if result.succeeded else 1


__all__ = ["build_arg_parser", "build_config", "configure_logging", "main"]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
