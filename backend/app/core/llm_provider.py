"""LLM provider abstraction: one async chat interface over OpenAI-compatible and Ollama backends.

Each provider implements LLMProviderProtocol. LLMService dispatches to the
provider that owns the requested model (see backend.app.core.llm_service).
"""
from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from backend.app.core.error_handling import UpstreamError
from backend.app.models.llm import (
    LLMConfig,
    LLMMessage,
    LLMMessageRole,
    LLMProviderType,
    LLMRequestOptions,
    LLMResponse,
    LLMUsage,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 60.0
# Payload keys the client owns; per-call extras never override them.
_RESERVED_PAYLOAD_KEYS = frozenset({"model", "messages", "stream"})


class LLMProviderError(UpstreamError):
    """Raised when an LLM request fails (transport, HTTP status or malformed body)."""

    default_code = "LLM_PROVIDER_ERROR"


@runtime_checkable
class LLMProviderProtocol(Protocol):
    """Unified interface for LLM providers."""

    async def chat(self, messages: List[LLMMessage], options: LLMRequestOptions) -> LLMResponse:
        """Send a chat completion. Returns the assistant message and usage."""
        ...

    async def list_models(self) -> List[str]:
        """Model ids the backend reports as installed/available."""
        ...

    async def aclose(self) -> None:
        ...


def _wire_messages(messages: List[LLMMessage]) -> List[Dict[str, str]]:
    return [{"role": m.role.value, "content": m.content} for m in messages]


class _HTTPProvider:
    """Shared httpx plumbing: one AsyncClient per provider, uniform error mapping."""

    label = "LLM"

    def __init__(
        self,
        base_url: str,
        default_model: str,
        timeout: float | None = None,
        headers: Optional[Dict[str, str]] = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout or _DEFAULT_TIMEOUT
        self.client = client or httpx.AsyncClient(timeout=self.timeout)
        self._headers = headers or {}

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(method, url, headers=self._headers, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("%s request timed out (%s %s): %s", self.label, method, url, exc)
            raise LLMProviderError(
                f"{self.label} request timed out after {self.timeout}s", code="LLM_TIMEOUT"
            ) from exc
        except httpx.ConnectError as exc:
            logger.error("Cannot connect to %s at %s: %s", self.label, self.base_url, exc)
            raise LLMProviderError(f"Cannot connect to {self.label} at {self.base_url}") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "%s returned HTTP %d: %s",
                self.label,
                exc.response.status_code,
                exc.response.text[:500],
            )
            raise LLMProviderError(
                f"{self.label} HTTP error {exc.response.status_code}",
                details={"status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            # Catch-all for any other httpx transport/protocol errors
            logger.error("%s network error: %s", self.label, exc)
            raise LLMProviderError(f"{self.label} network error: {exc}") from exc

        try:
            body = response.json()
        except (ValueError, RecursionError) as exc:
            logger.error(
                "%s response was not valid JSON (status %d, first 500 chars): %s",
                self.label,
                response.status_code,
                response.text[:500],
            )
            raise LLMProviderError(f"{self.label} returned non-JSON response") from exc
        if not isinstance(body, dict):
            raise LLMProviderError(f"{self.label} returned unexpected response shape")
        return body


class OpenAICompatClient(_HTTPProvider):
    """Client for OpenAI-compatible chat completion APIs.

    Works with any endpoint that serves ``/chat/completions`` and ``/models``
    under the configured base URL (OpenAI, OpenRouter, vLLM, ...).
    """

    label = "OpenAI-compatible API"

    def __init__(
        self,
        api_key: str = "",
        base_url: str | None = None,
        default_model: str = "gpt-4o",
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        headers = {"content-type": "application/json"}
        if api_key:
            headers["authorization"] = f"Bearer {api_key}"
        super().__init__(
            base_url or "https://api.openai.com/v1",
            default_model,
            timeout=timeout,
            headers=headers,
            client=client,
        )

    async def chat(self, messages: List[LLMMessage], options: LLMRequestOptions) -> LLMResponse:
        fields: Dict[str, Any] = {
            "model": options.model or self.default_model,
            "messages": _wire_messages(messages),
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
        }
        payload = {k: v for k, v in fields.items() if v is not None}
        for key, value in (options.model_extra or {}).items():
            if key not in _RESERVED_PAYLOAD_KEYS:
                payload.setdefault(key, value)

        body = await self._request("POST", "/chat/completions", json=payload)

        choices = body.get("choices") or []
        choice = choices[0] if choices else {}
        message = choice.get("message") or {}
        usage = body.get("usage") or {}
        return LLMResponse(
            id=str(body.get("id") or f"chatcmpl-{uuid.uuid4().hex}"),
            model=str(body.get("model") or payload["model"]),
            created=int(body.get("created") or time.time()),
            message=LLMMessage(role=LLMMessageRole.ASSISTANT, content=message.get("content") or ""),
            usage=LLMUsage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            ),
            finish_reason=choice.get("finish_reason") or "stop",
        )

    async def list_models(self) -> List[str]:
        body = await self._request("GET", "/models")
        return [str(m.get("id")) for m in body.get("data", []) if isinstance(m, dict) and m.get("id")]


class OllamaClient(_HTTPProvider):
    """Client for a local Ollama daemon (``/api/chat``, ``/api/tags``)."""

    label = "Ollama"

    def __init__(
        self,
        base_url: str | None = None,
        default_model: str = "llama3",
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            (base_url or "http://localhost:11434").strip(),
            default_model,
            timeout=timeout,
            client=client,
        )

    async def chat(self, messages: List[LLMMessage], options: LLMRequestOptions) -> LLMResponse:
        model = options.model or self.default_model
        sampling = {
            "temperature": options.temperature,
            "num_predict": options.max_tokens,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
        }
        payload: Dict[str, Any] = {
            "model": model,
            "messages": _wire_messages(messages),
            "stream": False,
            "options": {k: v for k, v in sampling.items() if v is not None},
        }

        body = await self._request("POST", "/api/chat", json=payload)

        message = body.get("message") or {}
        prompt_tokens = int(body.get("prompt_eval_count") or 0)
        completion_tokens = int(body.get("eval_count") or 0)
        return LLMResponse(
            id=f"ollama-{uuid.uuid4().hex}",
            model=str(body.get("model") or model),
            created=int(time.time()),
            message=LLMMessage(role=LLMMessageRole.ASSISTANT, content=message.get("content") or ""),
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=body.get("done_reason") or "stop",
        )

    async def list_models(self) -> List[str]:
        body = await self._request("GET", "/api/tags")
        return [str(m.get("name")) for m in body.get("models", []) if isinstance(m, dict) and m.get("name")]


def create_provider(
    config: LLMConfig,
    provider: LLMProviderType | None = None,
    client: httpx.AsyncClient | None = None,
) -> LLMProviderProtocol:
    """Factory: create the provider client for ``provider`` (default: the configured one)."""
    provider = provider or config.provider
    if provider == LLMProviderType.OLLAMA:
        base_url = config.base_url if config.provider == LLMProviderType.OLLAMA else None
        return OllamaClient(
            base_url=base_url or None,
            default_model=config.default_model,
            timeout=config.timeout,
            client=client,
        )
    if provider == LLMProviderType.OPENAI:
        base_url = config.base_url if config.provider == LLMProviderType.OPENAI else None
        return OpenAICompatClient(
            api_key=config.api_key,
            base_url=base_url or None,
            default_model=config.default_model,
            timeout=config.timeout,
            client=client,
        )
    raise NotImplementedError(f"Provider '{provider}' not supported. Supported: openai, ollama.")
