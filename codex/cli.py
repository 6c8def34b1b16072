"""Campaign Codex operator CLI: ``codex <command>``.

Subcommands are registered from ``codex.commands.registry``; each one sets
``func`` on the parsed namespace and returns a process exit code.
"""
from __future__ import annotations

import argparse
import logging
import sys

from codex import __version__
from codex.commands.registry import register_all


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codex",
        description="Campaign Codex: change-proposal engine for RPG campaigns",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    sub = parser.add_subparsers(dest="command")
    register_all(sub)
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(0)

    sys.exit(args.func(args) or 0)
