"""Argument parsing and dispatch for the tap CLI."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

from tap_core.errors import TapError

from .commands import COMMANDS

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tap", description="Install prebuilt formula releases")
    parser.add_argument("--prefix", default=None, help="Install prefix (default: $TAP_PREFIX or $HOMEBREW_PREFIX)")
    parser.add_argument("--formula", default=None, help="Formula YAML file (default: bundled formula)")
    parser.add_argument("--config", default=None, help="Path to config.toml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, command_cls in COMMANDS.items():
        summary = (command_cls.__doc__ or "").strip().splitlines()
        sub = subparsers.add_parser(name, help=summary[0] if summary else None)
        command_cls.configure(sub)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    command = COMMANDS[args.command]()
    try:
        return command.run(args)
    except TapError as exc:
        logger.debug("command %s failed", args.command, exc_info=True)
        print(f"[tap:{args.command}] {exc}")
        return 1
