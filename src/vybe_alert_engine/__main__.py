"""Command-line entrypoint: ``python -m vybe_alert_engine run``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys

from pydantic import ValidationError

from vybe_alert_engine.config import get_settings
from vybe_alert_engine.pipeline import Pipeline

logger = logging.getLogger("vybe_alert_engine")


def setup_logging(level: int) -> None:
    """Configure root logging."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vybe-alert-engine",
        description="Solana wallet and whale tracking alert engine",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the wallet and whale scan loops")
    run.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log alerts instead of sending them",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.dry_run:
        settings.dry_run = True

    setup_logging(settings.get_logging_level())

    try:
        settings.validate_requirements(command=args.command)
    except ValueError as e:
        logger.error("%s", e)
        return 2

    logger.info("Starting with settings: %s", settings.redacted_summary())
    pipeline = Pipeline(settings)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(pipeline.run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
