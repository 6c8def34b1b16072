"""LLM service: config holder, provider dispatch and response caching.

One LLMService per process (see backend.app.api.deps.get_llm_service). The
configuration is an immutable LLMConfig held by LLMConfigHolder; updates
replace the whole object, so a request that already read the config keeps a
consistent snapshot.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import ValidationError

from backend.app.core.error_handling import ModelNotFoundError, ProposalValidationError
from backend.app.core.llm_provider import LLMProviderProtocol, create_provider
from backend.app.core.response_cache import ResponseCache, cache_key
from backend.app.models.llm import (
    LLMConfig,
    LLMConfigUpdate,
    LLMMessage,
    LLMModelInfo,
    LLMProviderType,
    LLMRequestOptions,
    LLMResponse,
)

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[LLMConfig, LLMProviderType], LLMProviderProtocol]


class LLMConfigHolder:
    """Owns the current LLMConfig; ``replace`` swaps the reference in one step."""

    def __init__(self, config: LLMConfig):
        self._config = config

    @property
    def current(self) -> LLMConfig:
        return self._config

    def replace(self, config: LLMConfig) -> LLMConfig:
        self._config = config
        return config


class LLMService:
    def __init__(
        self,
        config: LLMConfig | LLMConfigHolder,
        cache: ResponseCache | None = None,
        provider_factory: ProviderFactory | None = None,
    ):
        self.holder = config if isinstance(config, LLMConfigHolder) else LLMConfigHolder(config)
        self.cache = cache if cache is not None else ResponseCache()
        self._provider_factory = provider_factory or (lambda cfg, kind: create_provider(cfg, kind))
        self._providers: dict[LLMProviderType, LLMProviderProtocol] = {}
        # Clients built for a replaced config; closed on shutdown so in-flight calls can finish.
        self._retired: list[LLMProviderProtocol] = []

    @property
    def config(self) -> LLMConfig:
        return self.holder.current

    # ------------------------------------------------------------------
    # Config and catalog
    # ------------------------------------------------------------------

    async def update_config(self, patch: LLMConfigUpdate | dict[str, Any]) -> LLMConfig:
        """Merge ``patch`` into the current config and swap it in."""
        current = self.holder.current
        try:
            if not isinstance(patch, LLMConfigUpdate):
                patch = LLMConfigUpdate.model_validate(patch)
            changes = patch.model_dump(exclude_unset=True)
            updated = LLMConfig.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise ProposalValidationError(
                "Invalid LLM configuration", details={"errors": e.errors(include_url=False, include_context=False, include_input=False)}
            ) from e
        self.holder.replace(updated)
        self._retired.extend(self._providers.values())
        self._providers = {}
        logger.info("LLM config updated: %s", ", ".join(sorted(changes)) or "no fields")
        return updated

    async def get_models(self) -> list[LLMModelInfo]:
        return list(self.holder.current.models)

    async def get_model(self, model_id: str) -> LLMModelInfo | None:
        return next((m for m in self.holder.current.models if m.id == model_id), None)

    async def require_model(self, model_id: str) -> LLMModelInfo:
        model = await self.get_model(model_id)
        if model is None:
            raise ModelNotFoundError(model_id)
        return model

    def clear_cache(self) -> int:
        return self.cache.clear()

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def _provider_type_for(self, model: str, config: LLMConfig) -> LLMProviderType:
        info = next((m for m in config.models if m.id == model), None)
        return info.provider if info is not None else config.provider

    def _provider(self, kind: LLMProviderType, config: LLMConfig) -> LLMProviderProtocol:
        provider = self._providers.get(kind)
        if provider is None:
            provider = self._provider_factory(config, kind)
            self._providers[kind] = provider
        return provider

    async def chat(self, messages: list[LLMMessage], options: LLMRequestOptions | None = None) -> LLMResponse:
        """Send a chat completion, filling unset options from the current config."""
        options = options or LLMRequestOptions()
        config = self.holder.current
        model = options.model or config.default_model

        key = cache_key(messages, model, options)
        if config.cache_enabled:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("LLM cache hit (model=%s)", model)
                return cached

        resolved = LLMRequestOptions(
            **(options.model_extra or {}),
            model=model,
            temperature=options.temperature if options.temperature is not None else config.temperature,
            max_tokens=options.max_tokens if options.max_tokens is not None else config.max_tokens,
            top_p=options.top_p if options.top_p is not None else config.top_p,
            frequency_penalty=(
                options.frequency_penalty if options.frequency_penalty is not None else config.frequency_penalty
            ),
            presence_penalty=(
                options.presence_penalty if options.presence_penalty is not None else config.presence_penalty
            ),
        )
        kind = self._provider_type_for(model, config)
        response = await self._provider(kind, config).chat(messages, resolved)

        if config.cache_enabled:
            self.cache.put(key, response, config.cache_ttl)
        return response

    async def aclose(self) -> None:
        for provider in [*self._providers.values(), *self._retired]:
            try:
                await provider.aclose()
            except Exception as e:
                logger.warning("Failed to close LLM provider client: %s", e)
        self._providers = {}
        self._retired = []
