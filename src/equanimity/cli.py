"""Command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

from equanimity import __version__
from equanimity._instance import InstanceLock
from equanimity._irsdk import IRacingRuntime
from equanimity.app import EquanimityApp, reset_paints
from equanimity.config import EquanimityConfig
from equanimity.exceptions import EquanimityInstanceError
from equanimity.options import load_options

_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_logger = logging.getLogger("equanimity")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="equanimity",
        description="Give every other driver the same common paint and reload it in the simulator.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--reset",
        action="store_true",
        help="Delete every participant paint, request a global reload and exit.",
    )
    mode.add_argument(
        "--random-per-driver",
        action="store_true",
        help="Re-stage random assets for every new driver instead of once per connection.",
    )
    parser.add_argument("--options", type=Path, default=None, help="Option file (default: ./equanimity.ini).")
    parser.add_argument("--paint-root", type=Path, default=None, help="Simulator paint folder.")
    parser.add_argument("--skip-cleanup", action="store_true", help="Do not run cleanup on exit.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(*, verbose: bool, log_dir: Path | None = None) -> Path | None:
    """Log to the console and optionally mirror to a per-run file. Returns the file path."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMAT, stream=sys.stdout)
    if log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / time.strftime("equanimity-%Y%m%d-%H%M%S.log")
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    return log_path


def build_config(args: argparse.Namespace) -> EquanimityConfig:
    overrides: dict[str, object] = {}
    if args.options is not None:
        overrides["options_path"] = args.options
    if args.paint_root is not None:
        overrides["paint_root"] = args.paint_root
    if args.random_per_driver:
        overrides["random_per_driver"] = True
    if args.skip_cleanup:
        overrides["skip_cleanup"] = True
    return EquanimityConfig.from_env(**overrides)


async def _run(args: argparse.Namespace, config: EquanimityConfig) -> int:
    runtime = IRacingRuntime(poll_interval=config.poll_interval)
    if args.reset:
        removed = await reset_paints(config, runtime)
        _logger.info("Reset complete, %d files removed", removed)
        return 0

    options = load_options(config.options_path)
    if options.log_to_file:
        log_path = configure_logging(verbose=args.verbose, log_dir=config.log_dir)
        _logger.info("Logging to %s", log_path)

    app = EquanimityApp(config, options, runtime)
    return await app.run()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    config = build_config(args)

    if not config.paint_root.is_dir():
        _logger.error("Paint folder does not exist: %s", config.paint_root)
        return 1

    try:
        with InstanceLock(config.lock_path):
            return asyncio.run(_run(args, config))
    except EquanimityInstanceError as exc:
        _logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
