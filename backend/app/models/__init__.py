"""Application models (proposals, templates, LLM transport)."""
from .proposal import (
    ApplicationResult,
    ChangeField,
    ChangeProposal,
    ProposalComment,
    ProposalDraft,
    ProposalEntityType,
    ProposalFilter,
    ProposalGenerationRequest,
    ProposalStatus,
    ProposalTemplate,
    ProposalType,
    ProposalUpdate,
    RelationshipChange,
)
from .llm import LLMConfig, LLMMessage, LLMMessageRole, LLMRequestOptions, LLMResponse

__all__ = [
    "ApplicationResult",
    "ChangeField",
    "ChangeProposal",
    "ProposalComment",
    "ProposalDraft",
    "ProposalEntityType",
    "ProposalFilter",
    "ProposalGenerationRequest",
    "ProposalStatus",
    "ProposalTemplate",
    "ProposalType",
    "ProposalUpdate",
    "RelationshipChange",
    "LLMConfig",
    "LLMMessage",
    "LLMMessageRole",
    "LLMRequestOptions",
    "LLMResponse",
]
