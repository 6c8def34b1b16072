"""`codex models`: show the effective LLM provider/model configuration."""
from __future__ import annotations

from backend.app.config import load_llm_config


def register(subparsers) -> None:
    p = subparsers.add_parser("models", help="Show effective LLM provider/model config")
    p.set_defaults(func=run)


def run(args) -> int:
    config = load_llm_config()
    print("Effective LLM config (after env overrides):")
    print()
    print(f"  provider:      {config.provider.value}")
    print(f"  base_url:      {config.base_url}")
    print(f"  api_key:       {'set' if config.api_key else 'not set'}")
    print(f"  default_model: {config.default_model}")
    print(f"  temperature:   {config.temperature}")
    print(f"  max_tokens:    {config.max_tokens}")
    print(f"  timeout:       {config.timeout}s")
    print(f"  cache:         {'on' if config.cache_enabled else 'off'} (ttl {config.cache_ttl}s)")
    print("\nModel catalog:")
    for m in config.models:
        marker = "*" if m.id == config.default_model else "-"
        print(f"  {marker} {m.id} ({m.provider.value}) context={m.context_window} max_tokens={m.max_tokens}")

    print("\nOverride pattern:")
    print("  CODEX_LLM_PROVIDER, CODEX_LLM_MODEL, CODEX_LLM_BASE_URL, CODEX_LLM_API_KEY")
    print("Example (local Ollama):")
    print("  CODEX_LLM_PROVIDER=ollama")
    print("  CODEX_LLM_MODEL=llama3")
    return 0
