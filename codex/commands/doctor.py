"""``codex doctor``: environment health check.

Checks: Python version, deps installed, database migrated, templates
present, prompt pack complete, LLM provider reachable, default model listed by the provider.
"""
from __future__ import annotations

import asyncio
import importlib.util
import sqlite3
import sys
from pathlib import Path

# ANSI helpers (no-op on dumb terminals)
_COLOR = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _ok(msg: str) -> str:
    return f"  [OK]   {msg}" if not _COLOR else f"  \033[32m[OK]\033[0m   {msg}"


def _warn(msg: str) -> str:
    return f"  [WARN] {msg}" if not _COLOR else f"  \033[33m[WARN]\033[0m {msg}"


def _fail(msg: str) -> str:
    return f"  [FAIL] {msg}" if not _COLOR else f"  \033[31m[FAIL]\033[0m {msg}"


def _section(title: str) -> str:
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}"


def register(subparsers) -> None:
    p = subparsers.add_parser("doctor", help="Check environment health")
    p.add_argument("--db", default=None, help="SQLite database path (default: CODEX_DB_PATH)")
    p.add_argument("--offline", action="store_true", help="Skip the LLM provider check")
    p.set_defaults(func=run)


def _check_python() -> bool:
    v = sys.version_info
    ok = v >= (3, 10)
    line = f"Python {v.major}.{v.minor}.{v.micro}"
    print(_ok(line) if ok else _fail(f"{line}: need 3.10+"))
    return ok


def _check_deps() -> list[str]:
    required = ["fastapi", "uvicorn", "pydantic", "httpx", "yaml"]
    missing = []
    for mod in required:
        try:
            if importlib.util.find_spec(mod) is None:
                missing.append(mod)
        except (ImportError, ValueError):
            missing.append(mod)
    if missing:
        print(_fail(f"Missing packages: {', '.join(missing)}"))
        print("         Run: pip install -e .")
    else:
        print(_ok(f"All {len(required)} required packages installed"))
    return missing


def _check_database(db_path: str) -> bool:
    if not Path(db_path).exists():
        print(_fail(f"Database missing: {db_path}"))
        print("         Run: codex setup")
        return False
    try:
        conn = sqlite3.connect(db_path)
        try:
            tables = {
                r[0]
                for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            }
            templates = (
                conn.execute("SELECT COUNT(*) FROM proposal_templates").fetchone()[0]
                if "proposal_templates" in tables
                else 0
            )
        finally:
            conn.close()
    except sqlite3.Error as e:
        print(_fail(f"Database unreadable: {e}"))
        return False
    expected = {"entities", "relationships", "proposals", "proposal_comments", "proposal_templates", "llm_contexts"}
    missing = sorted(expected - tables)
    if missing:
        print(_fail(f"Database not migrated (missing tables: {', '.join(missing)})"))
        print("         Run: codex setup")
        return False
    print(_ok(f"Database: {db_path}"))
    if templates:
        print(_ok(f"{templates} proposal template(s)"))
    else:
        print(_warn("No proposal templates (generation will use the built-in default prompt)"))
    return True


def _check_prompt_pack() -> bool:
    from backend.app.prompts.registry import DEFAULT_PACK_VERSION, available_prompts

    pack = available_prompts()
    missing = [] if "proposal_system" in pack["prompts"] else ["proposal_system.txt"]
    if "proposal_templates" not in pack["templates"]:
        missing.append("proposal_templates.yaml")
    if missing:
        print(_fail(f"Prompt pack {DEFAULT_PACK_VERSION} incomplete (missing: {', '.join(missing)})"))
        return False
    print(_ok(f"Prompt pack {DEFAULT_PACK_VERSION}: {len(pack['prompts'])} prompt(s), {len(pack['templates'])} template file(s)"))
    return True


async def _provider_models() -> tuple[str, list[str]]:
    from backend.app.config import load_llm_config
    from backend.app.core.llm_provider import create_provider

    config = load_llm_config()
    async with create_provider(config) as provider:
        return config.default_model, await provider.list_models()


def _check_provider() -> bool:
    from backend.app.core.llm_provider import LLMProviderError

    try:
        default_model, models = asyncio.run(_provider_models())
    except LLMProviderError as e:
        print(_fail(f"LLM provider not reachable: {e.message}"))
        return False
    print(_ok(f"LLM provider reachable ({len(models)} model(s) listed)"))
    if models and default_model not in models and not any(m.split(":")[0] == default_model for m in models):
        print(_warn(f"Default model {default_model!r} not listed by the provider"))
    return True


def run(args) -> int:
    from shared.config import DEFAULT_DB_PATH

    print(_section("Campaign Codex Doctor"))
    errors = 0

    if not _check_python():
        errors += 1

    if _check_deps():
        errors += 1

    if not _check_database(getattr(args, "db", None) or DEFAULT_DB_PATH):
        errors += 1

    if not _check_prompt_pack():
        errors += 1

    if getattr(args, "offline", False):
        print(_warn("Skipping LLM provider check (--offline)"))
    elif not _check_provider():
        errors += 1

    print()
    if errors == 0:
        print(_ok("All checks passed: ready to run!"))
        return 0
    print(_fail(f"{errors} issue(s) found: see above for fixes"))
    return 1
