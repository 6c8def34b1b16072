import argparse

from codex.commands.registry import COMMAND_MODULES, register_all


def test_registry_registers_expected_commands() -> None:
    parser = argparse.ArgumentParser()
    sub = parser.add_subparsers(dest="command")

    register_all(sub)

    registered = set(sub.choices.keys())
    assert registered == {"doctor", "setup", "serve", "models"}


def test_registry_module_list_is_unique_and_stable() -> None:
    assert len(COMMAND_MODULES) == len(set(COMMAND_MODULES))
    assert COMMAND_MODULES[0] == "doctor"
    assert COMMAND_MODULES[-1] == "models"


def test_build_parser_accepts_global_flags() -> None:
    from codex.cli import build_parser

    args = build_parser().parse_args(["-v", "models"])
    assert args.verbose is True
    assert args.command == "models"
