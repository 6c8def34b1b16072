"""SQLite connections for the proposal and entity stores.

Every connection gets the ``sqlite3.Row`` row factory, enforced foreign keys
(comments cascade with their proposal) and a busy timeout. Handlers are async
and may resume on another thread, so thread affinity checks are off.
"""
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

MEMORY_DB = ":memory:"
BUSY_TIMEOUT_MS = 5000


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open ``db_path`` (creating parent dirs) or an in-memory database.

    The caller owns the connection and must close it; see ``connection_scope``.
    """
    if db_path != MEMORY_DB:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    return conn


@contextmanager
def connection_scope(db_path: str) -> Iterator[sqlite3.Connection]:
    """Connection that is closed when the block exits, even on error."""
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()
