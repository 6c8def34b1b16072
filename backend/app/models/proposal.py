"""Pydantic models for change proposals, comments, templates and apply results.

Wire format is camelCase (``entityType``, ``newValue``); Python attributes are
snake_case. Both spellings are accepted on input.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProposalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    MODIFIED = "modified"


class ProposalType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RELATE = "relate"


class ProposalEntityType(str, Enum):
    WORLD = "world"
    CAMPAIGN = "campaign"
    SESSION = "session"
    CHARACTER = "character"
    LOCATION = "location"
    ITEM = "item"
    EVENT = "event"
    POWER = "power"
    RELATIONSHIP = "relationship"


class CodexModel(BaseModel):
    """Base model: camelCase aliases, populate by field name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-safe dict with camelCase keys (API and store format)."""
        return self.model_dump(mode="json", by_alias=True)


class ChangeField(CodexModel):
    """One attribute change. ``old_value`` is informational only."""

    field: str
    old_value: Any = None
    new_value: Any
    description: str | None = None


class RelationshipChange(CodexModel):
    """A directed, typed edge to create or merge between two entities."""

    source_id: str
    source_type: ProposalEntityType
    target_id: str
    target_type: ProposalEntityType
    relationship_type: str
    properties: dict[str, Any] = Field(default_factory=dict)


class ProposalComment(CodexModel):
    id: str
    content: str
    created_by: str
    created_at: datetime


class NewComment(CodexModel):
    """Comment attached to a draft before it is persisted (e.g. parse fallback)."""

    content: str
    created_by: str


class ChangeProposal(CodexModel):
    id: str
    type: ProposalType
    entity_type: ProposalEntityType
    entity_id: str | None = None
    title: str
    description: str = ""
    reason: str = ""
    status: ProposalStatus = ProposalStatus.PENDING
    changes: list[ChangeField] = Field(default_factory=list)
    relationship_changes: list[RelationshipChange] = Field(default_factory=list)
    created_by: str
    created_at: datetime
    updated_at: datetime
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    comments: list[ProposalComment] = Field(default_factory=list)
    context_id: str | None = None
    prompt_id: str | None = None
    llm_model: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProposalDraft(CodexModel):
    """Input to ``ProposalLifecycle.create``.

    ``type`` and ``entity_type`` are optional here so the lifecycle can
    reject their absence with a domain error instead of a schema error.
    Any ``status`` sent by a client is ignored; new proposals are pending.
    """

    type: ProposalType | None = None
    entity_type: ProposalEntityType | None = None
    entity_id: str | None = None
    title: str = "Untitled Proposal"
    description: str = ""
    reason: str = ""
    changes: list[ChangeField] = Field(default_factory=list)
    relationship_changes: list[RelationshipChange] = Field(default_factory=list)
    comments: list[NewComment] = Field(default_factory=list)
    context_id: str | None = None
    prompt_id: str | None = None
    llm_model: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProposalUpdate(CodexModel):
    """Partial edit. Status and review stamps are not editable here."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    type: ProposalType | None = None
    entity_type: ProposalEntityType | None = None
    entity_id: str | None = None
    title: str | None = None
    description: str | None = None
    reason: str | None = None
    changes: list[ChangeField] | None = None
    relationship_changes: list[RelationshipChange] | None = None
    context_id: str | None = None
    prompt_id: str | None = None
    llm_model: str | None = None
    metadata: dict[str, Any] | None = None


class ProposalFilter(CodexModel):
    status: list[ProposalStatus] = Field(default_factory=list)
    type: list[ProposalType] = Field(default_factory=list)
    entity_type: list[ProposalEntityType] = Field(default_factory=list)
    entity_id: str | None = None
    context_id: str | None = None
    created_by: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    search: str | None = None


class ProposalGenerationRequest(CodexModel):
    entity_type: ProposalEntityType
    entity_id: str | None = None
    context_id: str | None = None
    prompt_id: str | None = None
    custom_prompt: str | None = None
    model: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)


class RelationshipResult(CodexModel):
    index: int
    success: bool
    message: str
    source_id: str
    target_id: str
    relationship_type: str


class ApplicationResult(CodexModel):
    success: bool
    proposal_id: str
    entity_id: str | None = None
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ProposalTemplate(CodexModel):
    id: str
    name: str
    description: str = ""
    entity_type: ProposalEntityType
    prompt_template: str
    system_prompt: str | None = None
    default_model: str | None = None
    required_context: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class TemplateCreate(CodexModel):
    name: str | None = None
    description: str = ""
    entity_type: ProposalEntityType | None = None
    prompt_template: str | None = None
    system_prompt: str | None = None
    default_model: str | None = None
    required_context: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class TemplateUpdate(CodexModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    name: str | None = None
    description: str | None = None
    entity_type: ProposalEntityType | None = None
    prompt_template: str | None = None
    system_prompt: str | None = None
    default_model: str | None = None
    required_context: bool | None = None
    metadata: dict[str, Any] | None = None
