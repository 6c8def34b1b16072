"""Subcommand discovery for the codex CLI.

Each module in ``COMMAND_MODULES`` lives in ``codex.commands`` and exposes
``register(subparsers)``; registration order is the order shown in ``--help``.
"""
from __future__ import annotations

from importlib import import_module
from types import ModuleType
from typing import Iterator

COMMAND_MODULES: tuple[str, ...] = (
    "doctor",
    "setup",
    "serve",
    "models",
)


def load_command(name: str) -> ModuleType:
    module = import_module(f"codex.commands.{name}")
    if not callable(getattr(module, "register", None)):
        raise RuntimeError(f"codex.commands.{name} does not define register(subparsers)")
    return module


def iter_command_modules() -> Iterator[ModuleType]:
    for name in COMMAND_MODULES:
        yield load_command(name)


def register_all(subparsers) -> None:
    for module in iter_command_modules():
        module.register(subparsers)
