"""Prompt rendering: ``{{ name }}`` substitution for templates and custom prompts."""
from __future__ import annotations

import re
from typing import Any, Mapping

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def render_prompt(template: str, variables: Mapping[str, Any]) -> str:
    """Replace every ``{{ name }}`` with ``str(variables[name])``.

    Unknown names and names mapped to None are left verbatim. Substitution is
    a single pass over the original template, so values that themselves look
    like placeholders are not expanded again.
    """
    if not template:
        return template or ""

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        value = variables.get(name)
        if value is None:
            return match.group(0)
        return str(value)

    return _PLACEHOLDER_RE.sub(_sub, template)


def template_variables(template: str) -> list[str]:
    """Placeholder names in first-seen order (used by template previews)."""
    seen: dict[str, None] = {}
    for match in _PLACEHOLDER_RE.finditer(template or ""):
        seen.setdefault(match.group(1), None)
    return list(seen)
