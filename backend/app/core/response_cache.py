"""In-process TTL cache for chat completions.

Cache key: the exact (messages, model, options) triple, serialized as
sorted-key JSON. Entries expire after the configured TTL and the oldest are
evicted past ``max_entries``. No lock: concurrent misses for the same key may
both call the provider and the last writer wins.
"""
from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable

from backend.app.constants import CACHE_MAX_ENTRIES
from backend.app.models.llm import LLMMessage, LLMRequestOptions, LLMResponse

logger = logging.getLogger(__name__)


def cache_key(messages: list[LLMMessage], model: str, options: LLMRequestOptions) -> str:
    """Stable key for a request as the caller issued it (before config defaults)."""
    payload = {
        "messages": [m.to_wire() for m in messages],
        "model": model,
        "options": options.model_dump(mode="json", by_alias=True, exclude_none=True),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class ResponseCache:
    """Best-effort TTL cache of LLMResponse objects."""

    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, LLMResponse]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> LLMResponse | None:
        """Return the cached response, or None on miss / expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, response = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return response

    def put(self, key: str, response: LLMResponse, ttl: float) -> None:
        if ttl <= 0:
            return
        self._entries[key] = (self._clock() + ttl, response)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> int:
        """Drop every entry; returns how many were removed."""
        count = len(self._entries)
        self._entries.clear()
        if count:
            logger.info("Cleared %d cached LLM responses", count)
        return count

    def stats(self) -> dict[str, Any]:
        return {"entries": len(self._entries), "maxEntries": self.max_entries}
