"""Pytest setup: force temp files into workspace, isolate the data dir, shared SQLite fixtures."""
from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest

from backend.app.db.connection import get_connection
from backend.app.db.migrate import apply_migrations
from backend.app.repositories.entities import EntityRepositorySet
from backend.app.repositories.proposals import ProposalStore


def pytest_sessionstart(session) -> None:
    """Redirect temp files to a writable workspace path for tests."""
    tmp_root = Path(__file__).resolve().parent / ".tmp"
    tmp_root.mkdir(parents=True, exist_ok=True)
    for key in ("TMPDIR", "TEMP", "TMP"):
        os.environ[key] = str(tmp_root)
    tempfile.tempdir = str(tmp_root)
    os.environ["CODEX_SEED_TEMPLATES"] = "0"
    os.environ["CODEX_LLM_API_KEY"] = "test-key"

    class _WorkspaceTemporaryDirectory:
        """TemporaryDirectory variant that uses a workspace path with safe permissions."""

        def __init__(self, suffix: str | None = None, prefix: str | None = None, dir: str | None = None, **_kwargs):
            base = Path(dir) if dir else tmp_root
            name = f"{(prefix or 'tmp')}{uuid4().hex}{suffix or ''}"
            self._path = base / name
            self._path.mkdir(parents=True, exist_ok=False)

        def __enter__(self) -> str:
            return str(self._path)

        def __exit__(self, exc_type, exc, tb) -> None:
            shutil.rmtree(self._path, ignore_errors=True)

    tempfile.TemporaryDirectory = _WorkspaceTemporaryDirectory


@pytest.fixture
def conn():
    """Migrated in-memory database."""
    c = get_connection(":memory:")
    apply_migrations(c)
    yield c
    c.close()


@pytest.fixture
def store(conn):
    return ProposalStore(conn)


@pytest.fixture
def repositories(conn):
    return EntityRepositorySet.sqlite(conn)
