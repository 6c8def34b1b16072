"""Shared configuration constants used by the backend and the CLI."""
from __future__ import annotations

import os
from pathlib import Path


def _env_flag(name: str, default: bool = False) -> bool:
    """Read boolean env flag."""
    val = os.environ.get(name, "").strip().lower()
    if not val:
        return default
    return val in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Project root: resolve relative to this file's location
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Data directories - use absolute paths to avoid CWD dependency
DATA_ROOT = Path(os.environ.get("CODEX_DATA_ROOT", str(_PROJECT_ROOT / "data")))
DEFAULT_DB_PATH = os.environ.get("CODEX_DB_PATH", str(DATA_ROOT / "codex.db"))

# Seed the built-in template pack on API startup when the store is empty
SEED_DEFAULT_TEMPLATES = _env_flag("CODEX_SEED_TEMPLATES", default=True)
