"""Prompt pack access.

A pack version is a directory under ``backend/app/prompts`` holding system
prompts as ``.txt`` and template definitions as ``.yaml``. Prompt text is
cached per (name, version); template packs are re-read on every call so
callers may mutate what they get back.
"""
from __future__ import annotations

import hashlib
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

PACK_ROOT = Path(__file__).resolve().parent
DEFAULT_PACK_VERSION = "v1"


def pack_dir(version: str = DEFAULT_PACK_VERSION) -> Path:
    return PACK_ROOT / version


def available_prompts(version: str = DEFAULT_PACK_VERSION) -> dict[str, list[str]]:
    """Names in a pack grouped by kind: ``{"prompts": [...], "templates": [...]}``."""
    root = pack_dir(version)
    if not root.is_dir():
        return {"prompts": [], "templates": []}
    return {
        "prompts": sorted(p.stem for p in root.glob("*.txt")),
        "templates": sorted(p.stem for p in root.glob("*.yaml")),
    }


@lru_cache(maxsize=64)
def load_prompt(name: str, version: str = DEFAULT_PACK_VERSION) -> str:
    return (pack_dir(version) / f"{name}.txt").read_text(encoding="utf-8").strip()


def prompt_version_id(name: str, version: str = DEFAULT_PACK_VERSION) -> str:
    """``<version>:<first 12 hex of sha256(prompt)>``, recorded as generation provenance."""
    digest = hashlib.sha256(load_prompt(name, version).encode("utf-8")).hexdigest()
    return f"{version}:{digest[:12]}"


def load_template_pack(name: str = "proposal_templates", version: str = DEFAULT_PACK_VERSION) -> list[dict[str, Any]]:
    path = pack_dir(version) / f"{name}.yaml"
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    entries = data.get("templates") or []
    if not isinstance(entries, list):
        raise ValueError(f"{path.name}: 'templates' must be a list")
    return [dict(entry) for entry in entries]
