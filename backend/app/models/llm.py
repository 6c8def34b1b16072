"""Models for the model-invocation layer: messages, options, responses, config."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.models.proposal import CodexModel


class LLMProviderType(str, Enum):
    OPENAI = "openai"
    OLLAMA = "ollama"


class LLMMessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class LLMMessage(CodexModel):
    role: LLMMessageRole
    content: str


class LLMRequestOptions(CodexModel):
    """Per-call options. Unknown keys are kept and forwarded to the provider."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None


class LLMUsage(CodexModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(CodexModel):
    id: str
    model: str
    created: int
    message: LLMMessage
    usage: LLMUsage = Field(default_factory=LLMUsage)
    finish_reason: str = "stop"


class LLMModelInfo(CodexModel):
    id: str
    name: str
    provider: LLMProviderType
    context_window: int = 8192
    max_tokens: int = 4096
    is_available: bool = True
    capabilities: list[str] = Field(default_factory=lambda: ["chat"])


class LLMConfig(CodexModel):
    """Process-wide model configuration.

    Frozen: updates build a new object (``model_copy``) and the holder swaps
    the reference, so readers always see a complete configuration.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    provider: LLMProviderType = LLMProviderType.OPENAI
    api_key: str = ""
    base_url: str = ""
    models: tuple[LLMModelInfo, ...] = ()
    default_model: str = "gpt-4o"
    temperature: float = 0.7
    max_tokens: int = 1000
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    timeout: float = 60.0
    cache_enabled: bool = True
    cache_ttl: float = 3600.0

    def public_view(self) -> dict[str, Any]:
        """Wire dict with the API key masked."""
        data = self.to_wire()
        if data.get("apiKey"):
            data["apiKey"] = "***"
        return data


class LLMConfigUpdate(CodexModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    provider: LLMProviderType | None = None
    api_key: str | None = None
    base_url: str | None = None
    models: list[LLMModelInfo] | None = None
    default_model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    timeout: float | None = None
    cache_enabled: bool | None = None
    cache_ttl: float | None = None


class LLMContext(CodexModel):
    """Stored conversation for one chat session."""

    session_id: str
    user_id: str | None = None
    messages: list[LLMMessage] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime | None = None


class LLMContextUpdate(CodexModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    messages: list[LLMMessage]
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatRequest(CodexModel):
    messages: list[LLMMessage] = Field(min_length=1)
    options: LLMRequestOptions = Field(default_factory=LLMRequestOptions)
