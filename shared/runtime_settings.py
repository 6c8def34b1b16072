"""Process settings for the API server and the ``codex serve`` command.

Read once from the environment (``CODEX_DEV_MODE``, ``CODEX_CORS_ALLOW_ORIGINS``,
``CODEX_HOST``, ``CODEX_PORT``). An explicit mapping can be passed for tests.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# Local front-end dev servers; used when no allowlist is configured.
DEFAULT_DEV_CORS_ALLOW_ORIGINS: tuple[str, ...] = tuple(
    f"http://{host}{port}"
    for port in ("", ":3000", ":5173")
    for host in ("localhost", "127.0.0.1")
)

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RuntimeSettings:
    dev_mode: bool
    cors_allow_origins: list[str]
    host: str
    port: int

    @property
    def api_base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def allows_any_origin(self) -> bool:
        return "*" in self.cors_allow_origins


def env_flag(name: str, default: bool = False, environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    val = env.get(name, "").strip().lower()
    if not val:
        return default
    return val in _TRUTHY


def parse_cors_allowlist(raw: str, fallback: tuple[str, ...] = DEFAULT_DEV_CORS_ALLOW_ORIGINS) -> list[str]:
    """Comma-separated origins; an empty value means the dev fallback."""
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or list(fallback)


def _parse_port(raw: str) -> int:
    if not raw:
        return DEFAULT_PORT
    if raw.isdigit() and 0 < int(raw) < 65536:
        return int(raw)
    logger.warning("Ignoring invalid CODEX_PORT=%r; using %d", raw, DEFAULT_PORT)
    return DEFAULT_PORT


def load_runtime_settings(environ: Mapping[str, str] | None = None) -> RuntimeSettings:
    env = os.environ if environ is None else environ
    return RuntimeSettings(
        dev_mode=env_flag("CODEX_DEV_MODE", default=True, environ=env),
        cors_allow_origins=parse_cors_allowlist(env.get("CODEX_CORS_ALLOW_ORIGINS", "")),
        host=env.get("CODEX_HOST", "").strip() or DEFAULT_HOST,
        port=_parse_port(env.get("CODEX_PORT", "").strip()),
    )
