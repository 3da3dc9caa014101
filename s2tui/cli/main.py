"""Main entry point for the s2tui dashboard."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from ..config import ConfigError, load_config, resolve_settings
from ..tui.app import run_dashboard
from .client import S2Client

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s2tui",
        description="Terminal dashboard for S2 basins, streams and access tokens",
    )
    parser.add_argument("--config", help="Path to config.yaml (default: ~/.config/s2/config.yaml)")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--log-file", help="Log file (the terminal belongs to the dashboard)")
    parser.add_argument(
        "--poll-interval",
        type=int,
        metavar="MS",
        help="Max wait for input or events per frame, in milliseconds",
    )
    return parser


def setup_logging(level: str, log_file: str):
    Path(log_file).expanduser().parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        filename=str(Path(log_file).expanduser()),
    )
    # Request lines from httpx are noise at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main(argv: Optional[list] = None) -> int:
    """Main entry point for s2tui."""
    args = build_parser().parse_args(argv)

    try:
        settings = resolve_settings(load_config(args.config))
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        settings.log_level = args.log_level.upper()
    if args.log_file:
        settings.log_file = args.log_file
    if args.poll_interval is not None:
        if args.poll_interval <= 0:
            print("Error: --poll-interval must be positive", file=sys.stderr)
            return 1
        settings.poll_interval = args.poll_interval / 1000

    setup_logging(settings.log_level, settings.log_file)
    logger.info(f"Starting s2tui against {settings.account_endpoint}")

    client = S2Client(
        access_token=settings.access_token,
        account_endpoint=settings.account_endpoint,
        basin_endpoint=settings.basin_endpoint,
        timeout=settings.request_timeout,
    )
    try:
        return run_dashboard(
            client,
            poll_interval=settings.poll_interval,
            splash_duration=settings.splash_duration,
        )
    except KeyboardInterrupt:
        return 130
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
