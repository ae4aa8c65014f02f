"""Command-line interface for the webrss service."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import pprint
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, collect_urls, parse_app_config, parse_duration
from .runner import RunConfig, serve

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Poll Atom and RSS feeds and serve the latest entries over HTTP."
    )
    parser.add_argument("urls", nargs="*", metavar="URL", help="Feed URLs to poll.")
    parser.add_argument(
        "--config",
        default=None,
        help="Optional path to a configuration XML file.",
    )
    parser.add_argument(
        "--feeds",
        default=None,
        help="File containing a list of feeds, one URL per line (or OPML).",
    )
    parser.add_argument(
        "--cache", default=None, help="File for storing feed results."
    )
    parser.add_argument(
        "--freq",
        default=None,
        help="Duration between feed polls, e.g. 1h or 15m.",
    )
    parser.add_argument(
        "--http", default=None, help="HTTP listen address, e.g. :8080."
    )
    parser.add_argument("--cert", default=None, help="Certificate file.")
    parser.add_argument("--key", default=None, help="Private key for certificate.")

    # Overrides for logging/debugging
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )

    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def build_run_config(args: argparse.Namespace, app_config: AppConfig) -> RunConfig:
    """Merge CLI flags over the config file values."""
    feeds_file = args.feeds or app_config.feeds_file
    frequency = parse_duration(args.freq) if args.freq else app_config.frequency

    return RunConfig(
        urls=collect_urls(args.urls, feeds_file),
        cache_file=args.cache or app_config.cache_file,
        frequency=frequency,
        http_address=args.http or app_config.http_address,
        cert_file=args.cert or app_config.cert_file,
        key_file=args.key or app_config.key_file,
        concurrency=app_config.concurrency,
        timeout=app_config.timeout,
        recent_hours=app_config.recent_hours,
        static_dir=app_config.static_dir,
        database=app_config.database,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config) if args.config else AppConfig()

        # Determine logging settings (CLI overrides Config)
        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file

        configure_logging(log_level, log_file)

        config = build_run_config(args, app_config)

        config_dict = dataclasses.asdict(config)
        database = config_dict.get("database") or {}
        if database.get("connection_string"):
            database["connection_string"] = "***MASKED***"

        logger.info("Active Configuration:\n%s", pprint.pformat(config_dict))

        serve(config)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, OSError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    return 0
