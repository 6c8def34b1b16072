"""App config: LLM provider settings, model catalog and DB path, with env overrides.

Env overrides (all optional):
    CODEX_LLM_PROVIDER      openai | ollama (default: openai)
    CODEX_LLM_API_KEY       falls back to OPENAI_API_KEY
    CODEX_LLM_BASE_URL      default depends on provider
    CODEX_LLM_MODEL         default model id
    CODEX_LLM_TEMPERATURE, CODEX_LLM_MAX_TOKENS, CODEX_LLM_TOP_P
    CODEX_LLM_TIMEOUT       seconds
    CODEX_LLM_CACHE         1/0
    CODEX_LLM_CACHE_TTL     seconds
"""
from __future__ import annotations

import logging
import os

from backend.app.models.llm import LLMConfig, LLMModelInfo, LLMProviderType
from shared.config import DEFAULT_DB_PATH, _env_flag, _env_float

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_DB_PATH", "DEFAULT_BASE_URLS", "default_model_catalog", "load_llm_config"]

DEFAULT_BASE_URLS: dict[LLMProviderType, str] = {
    LLMProviderType.OPENAI: "https://api.openai.com/v1",
    LLMProviderType.OLLAMA: "http://localhost:11434",
}


def default_model_catalog() -> tuple[LLMModelInfo, ...]:
    """Built-in catalog; an env-selected model missing here is appended at load time."""
    return (
        LLMModelInfo(
            id="gpt-4o",
            name="GPT-4o",
            provider=LLMProviderType.OPENAI,
            context_window=128000,
            max_tokens=4096,
            capabilities=["chat", "completion", "function_calling", "vision"],
        ),
        LLMModelInfo(
            id="gpt-3.5-turbo",
            name="GPT-3.5 Turbo",
            provider=LLMProviderType.OPENAI,
            context_window=16385,
            max_tokens=4096,
            capabilities=["chat", "completion", "function_calling"],
        ),
        LLMModelInfo(
            id="llama3",
            name="Llama 3 (local)",
            provider=LLMProviderType.OLLAMA,
            context_window=8192,
            max_tokens=2048,
            capabilities=["chat", "completion"],
        ),
    )


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def load_llm_config() -> LLMConfig:
    """Build the process-wide LLMConfig from the environment."""
    raw_provider = os.environ.get("CODEX_LLM_PROVIDER", "openai").strip().lower() or "openai"
    try:
        provider = LLMProviderType(raw_provider)
    except ValueError:
        logger.warning("Unknown CODEX_LLM_PROVIDER=%r; using openai", raw_provider)
        provider = LLMProviderType.OPENAI

    default_model = os.environ.get("CODEX_LLM_MODEL", "").strip()
    if not default_model:
        default_model = "gpt-4o" if provider == LLMProviderType.OPENAI else "llama3"

    models = default_model_catalog()
    if not any(m.id == default_model for m in models):
        models = models + (
            LLMModelInfo(id=default_model, name=default_model, provider=provider),
        )

    config = LLMConfig(
        provider=provider,
        api_key=os.environ.get("CODEX_LLM_API_KEY", os.environ.get("OPENAI_API_KEY", "")).strip(),
        base_url=os.environ.get("CODEX_LLM_BASE_URL", "").strip() or DEFAULT_BASE_URLS[provider],
        models=models,
        default_model=default_model,
        temperature=_env_float("CODEX_LLM_TEMPERATURE", 0.7),
        max_tokens=_env_int("CODEX_LLM_MAX_TOKENS", 1000),
        top_p=_env_float("CODEX_LLM_TOP_P", 1.0),
        timeout=_env_float("CODEX_LLM_TIMEOUT", 60.0),
        cache_enabled=_env_flag("CODEX_LLM_CACHE", default=True),
        cache_ttl=_env_float("CODEX_LLM_CACHE_TTL", 3600.0),
    )
    logger.info(
        "LLM config: provider=%s model=%s base_url=%s cache=%s",
        config.provider.value,
        config.default_model,
        "custom" if os.environ.get("CODEX_LLM_BASE_URL") else "default",
        config.cache_enabled,
    )
    return config
