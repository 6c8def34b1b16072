"""Turn a model completion into a proposal draft.

The parser never raises: every completion yields either a ``ParsedProposal``
(decoded and default-filled) or a ``FallbackProposal`` that carries the raw
text for a human reviewer.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Union

from pydantic import ValidationError

from backend.app.constants import (
    DEFAULT_PROPOSAL_DESCRIPTION,
    DEFAULT_PROPOSAL_REASON,
    DEFAULT_PROPOSAL_TITLE,
    FALLBACK_DESCRIPTION,
    FALLBACK_REASON,
    FALLBACK_TITLE,
    SYSTEM_AUTHOR,
)
from backend.app.core.json_repair import extract_json_candidate
from backend.app.models.proposal import (
    ChangeField,
    NewComment,
    ProposalDraft,
    ProposalEntityType,
    ProposalType,
    RelationshipChange,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedProposal:
    draft: ProposalDraft
    dropped_changes: int = 0
    dropped_relationship_changes: int = 0


@dataclass(frozen=True)
class FallbackProposal:
    draft: ProposalDraft
    error: str


ParseOutcome = Union[ParsedProposal, FallbackProposal]


def _coerce_type(value: Any) -> ProposalType:
    """Case-insensitive proposal type; anything unrecognised is an update."""
    if isinstance(value, str):
        try:
            return ProposalType(value.strip().lower())
        except ValueError:
            pass
    return ProposalType.UPDATE


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def _entries(data: dict[str, Any], *keys: str) -> list[Any]:
    for key in keys:
        value = data.get(key)
        if isinstance(value, list):
            return value
    return []


def _validate_entries(items: list[Any], model: type) -> tuple[list[Any], int]:
    kept: list[Any] = []
    dropped = 0
    for item in items:
        if not isinstance(item, dict):
            dropped += 1
            continue
        try:
            kept.append(model.model_validate(item))
        except ValidationError:
            dropped += 1
    return kept, dropped


def build_fallback(
    raw: str,
    error: str,
    entity_type: ProposalEntityType,
    entity_id: str | None = None,
) -> FallbackProposal:
    """Pending-able draft whose only comment holds the error and the raw text verbatim."""
    draft = ProposalDraft(
        type=ProposalType.UPDATE if entity_id else ProposalType.CREATE,
        entity_type=entity_type,
        entity_id=entity_id,
        title=FALLBACK_TITLE,
        description=FALLBACK_DESCRIPTION,
        reason=FALLBACK_REASON,
        comments=[
            NewComment(
                content=f"Error parsing proposal: {error}\n\nRaw response:\n{raw}",
                created_by=SYSTEM_AUTHOR,
            )
        ],
        metadata={"parseError": error},
    )
    return FallbackProposal(draft=draft, error=error)


def parse_proposal_response(
    raw: str,
    entity_type: ProposalEntityType,
    entity_id: str | None = None,
) -> ParseOutcome:
    """Decode a completion into a draft for ``entity_type`` / ``entity_id``."""
    candidate = extract_json_candidate(raw)
    try:
        data = json.loads(candidate)
    except (ValueError, RecursionError) as exc:
        logger.warning("Proposal response is not valid JSON: %s", exc)
        return build_fallback(raw, str(exc), entity_type, entity_id)

    if isinstance(data, list):
        data = next((item for item in data if isinstance(item, dict)), None)
    if not isinstance(data, dict):
        logger.warning("Proposal response did not decode to an object")
        return build_fallback(raw, "Response is not a JSON object", entity_type, entity_id)

    changes, dropped_changes = _validate_entries(_entries(data, "changes"), ChangeField)
    relationships, dropped_relationships = _validate_entries(
        _entries(data, "relationshipChanges", "relationship_changes"), RelationshipChange
    )
    if dropped_changes or dropped_relationships:
        logger.info(
            "Dropped malformed entries from proposal response: changes=%d relationships=%d",
            dropped_changes,
            dropped_relationships,
        )

    draft = ProposalDraft(
        type=_coerce_type(data.get("type")),
        entity_type=entity_type,
        entity_id=entity_id,
        title=_text(data.get("title"), DEFAULT_PROPOSAL_TITLE),
        description=_text(data.get("description"), DEFAULT_PROPOSAL_DESCRIPTION),
        reason=_text(data.get("reason"), DEFAULT_PROPOSAL_REASON),
        changes=changes,
        relationship_changes=relationships,
    )
    return ParsedProposal(
        draft=draft,
        dropped_changes=dropped_changes,
        dropped_relationship_changes=dropped_relationships,
    )
