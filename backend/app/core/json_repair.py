"""JSON extraction and repair utilities for model completions.

Single source of truth for pulling a JSON payload out of LLM text that may be
wrapped in markdown fences, surrounded by prose, or carry trailing commas.
"""
from __future__ import annotations

import re

_JSON_FENCE_RE = re.compile(r"```json[ \t]*\r?\n(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```[^\n`]*\r?\n(.*?)```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_trailing_commas(text: str) -> str:
    """Remove trailing commas before ``]`` or ``}``."""
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def _balanced_span(text: str, opener: str, closer: str) -> str | None:
    """Return the first balanced ``opener ... closer`` span, string-aware."""
    start = text.find(opener)
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        c = text[i]
        if escape_next:
            escape_next = False
            continue
        if c == "\\":
            escape_next = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c == opener:
            depth += 1
        elif c == closer:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    # Unmatched
    return None


def extract_json_object(text: str) -> str | None:
    """Extract the first complete top-level JSON object from text.

    Returns the extracted JSON string (trailing commas repaired), or None if
    no balanced object is found.
    """
    if not text or not text.strip():
        return None
    span = _balanced_span(text, "{", "}")
    return strip_trailing_commas(span) if span is not None else None


def extract_json_candidate(text: str) -> str:
    """Pick the substring of a completion most likely to hold the JSON payload.

    Tried in order:
    1. a fenced block labelled ``json``
    2. any fenced block
    3. the first balanced top-level ``{...}``
    4. the raw text itself

    Never returns None; the caller decides whether the candidate decodes.
    """
    raw = text or ""
    for pattern in (_JSON_FENCE_RE, _ANY_FENCE_RE):
        match = pattern.search(raw)
        if match and match.group(1).strip():
            return strip_trailing_commas(match.group(1).strip())
    obj = extract_json_object(raw)
    if obj is not None:
        return obj
    return raw.strip()
