"""``codex setup``: first-time project setup.

Creates the data dir, applies database migrations, seeds the default
proposal templates and runs ``codex doctor`` to verify.
"""
from __future__ import annotations

import asyncio
from pathlib import Path

from backend.app.db.migrate import apply_schema


def register(subparsers) -> None:
    p = subparsers.add_parser("setup", help="First-time project setup")
    p.add_argument("--db", default=None, help="SQLite database path (default: CODEX_DB_PATH)")
    p.add_argument("--skip-seed", action="store_true", help="Do not seed the default templates")
    p.add_argument("--skip-doctor", action="store_true", help="Do not run the health check afterwards")
    p.set_defaults(func=run)


async def _seed(db_path: str) -> int:
    from backend.app.core.templates import TemplateService
    from backend.app.db.connection import connection_scope
    from backend.app.repositories.proposals import ProposalStore

    with connection_scope(db_path) as conn:
        created = await TemplateService(ProposalStore(conn)).seed_default_templates()
    return len(created)


def run(args) -> int:
    from shared.config import DEFAULT_DB_PATH

    db_path = args.db or DEFAULT_DB_PATH
    print("\n  Campaign Codex: Setup\n")

    data_dir = Path(db_path).parent
    status = "(exists)" if data_dir.exists() else "(created)"
    data_dir.mkdir(parents=True, exist_ok=True)
    print(f"  Directory: {data_dir} {status}")

    applied = apply_schema(db_path)
    print(f"  Database: {db_path} ({len(applied)} migration(s) applied)")

    if args.skip_seed:
        print("  Skipping template seed (--skip-seed)")
    else:
        seeded = asyncio.run(_seed(db_path))
        print(f"  Templates: {seeded} default template(s) seeded" if seeded else "  Templates: already present")

    if args.skip_doctor:
        return 0
    print("\n  Running health check...\n")
    from codex.commands.doctor import run as doctor_run
    args.db = db_path
    return doctor_run(args)
