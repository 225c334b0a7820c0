"""am2r-bot command line."""

from __future__ import annotations

import argparse
import sys

import anyio

from . import __version__
from .bridge import build_bridge_config, run_main_loop
from .commands import default_registry
from .commands.whereis import WhereIsTable
from .config import HOME_CONFIG_PATH, ConfigError, load_settings
from .logging import get_logger, setup_logging

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="am2r-bot")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Connect to Matrix and answer commands")
    run.add_argument(
        "--config",
        default=str(HOME_CONFIG_PATH),
        help="Path to the bot's TOML config (default: %(default)s)",
    )
    run.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Override logging.level from the config file.",
    )

    sub.add_parser("commands", help="List commands and whereis aliases")

    return parser


def _print_commands() -> int:
    registry = default_registry()
    print("commands:")
    for name in registry.names():
        print(f"  {name}")
    print("whereis aliases:")
    for entry in WhereIsTable().entries:
        print(f"  {', '.join(entry.aliases)}")
    return 0


def _run(config_path: str, log_level: str | None) -> int:
    try:
        settings, cfg_path = load_settings(config_path)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        log_level or settings.logging.level,
        json=settings.logging.json_output,
    )
    logger.info("bot.config.loaded", path=str(cfg_path), version=__version__)

    cfg = build_bridge_config(settings)
    try:
        started = anyio.run(run_main_loop, cfg)
    except KeyboardInterrupt:
        logger.info("bot.shutdown")
        return 0
    return 0 if started else 1


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "run":
        raise SystemExit(_run(args.config, args.log_level))
    if args.cmd == "commands":
        raise SystemExit(_print_commands())

    parser.error(f"unknown command: {args.cmd}")


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
