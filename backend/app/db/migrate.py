"""Schema migration: applies numbered SQL files from migrations/ in order.

Idempotent: each migration name recorded in schema_migrations; applied once.

Usage:
    python -m backend.app.db.migrate --db ./data/codex.db
"""
import argparse
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from backend.app.db.connection import connection_scope

logger = logging.getLogger(__name__)

SCHEMA_MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  name TEXT PRIMARY KEY,
  applied_at TEXT NOT NULL
);
"""

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def _migration_files() -> list[Path]:
    """Return sorted list of .sql files in migrations/ (0001_*.sql, 0002_*.sql, ...)."""
    if not MIGRATIONS_DIR.exists():
        return []
    return sorted(MIGRATIONS_DIR.glob("*.sql"))


def apply_migrations(conn: sqlite3.Connection) -> list[str]:
    """Apply pending migrations on an open connection; returns the names applied."""
    conn.executescript(SCHEMA_MIGRATIONS_TABLE)
    conn.commit()

    applied: list[str] = []
    for fp in _migration_files():
        name = fp.stem  # e.g. 0001_init
        row = conn.execute(
            "SELECT name FROM schema_migrations WHERE name = ?",
            (name,),
        ).fetchone()
        if row:
            continue
        conn.executescript(fp.read_text(encoding="utf-8"))
        conn.execute(
            "INSERT INTO schema_migrations (name, applied_at) VALUES (?, ?)",
            (name, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        applied.append(name)
        logger.info("Applied migration %s", name)
    return applied


def apply_schema(db_path: str) -> list[str]:
    """Apply all pending migrations to the database at ``db_path``."""
    with connection_scope(db_path) as conn:
        return apply_migrations(conn)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Apply migrations to SQLite database."
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to SQLite database file (default: CODEX_DB_PATH)",
    )
    args = parser.parse_args()
    if args.db is None:
        from backend.app.config import DEFAULT_DB_PATH

        args.db = DEFAULT_DB_PATH
    applied = apply_schema(args.db)
    print(f"Migrations applied to {args.db}: {', '.join(applied) or 'none pending'}")


if __name__ == "__main__":
    main()
