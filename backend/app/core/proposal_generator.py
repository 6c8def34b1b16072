"""Proposal generation: context assembly, prompt resolution, model call and parsing.

Every successful model call yields a persisted PENDING proposal: unparsable
output becomes a fallback proposal carrying the raw text. Model failures are
logged and rethrown with nothing persisted.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from backend.app.constants import NO_CONTEXT_DATA, NO_ENTITY_DATA
from backend.app.core.error_handling import (
    AuthorRequiredError,
    ProposalValidationError,
    log_error_with_context,
)
from backend.app.core.llm_service import LLMService
from backend.app.core.prompt_renderer import render_prompt
from backend.app.core.proposal_lifecycle import ProposalLifecycle
from backend.app.core.proposal_parser import FallbackProposal, parse_proposal_response
from backend.app.core.templates import TemplateService
from backend.app.models.llm import LLMMessage, LLMMessageRole, LLMRequestOptions
from backend.app.models.proposal import (
    ChangeProposal,
    ProposalEntityType,
    ProposalGenerationRequest,
    ProposalTemplate,
)
from backend.app.prompts.registry import load_prompt
from backend.app.repositories.entities import EntityRepositorySet

logger = logging.getLogger(__name__)


@dataclass
class ResolvedPrompt:
    prompt: str
    system_prompt: str
    template: ProposalTemplate | None = None
    source: str = "default"


def _pretty(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def default_prompt(entity_type: ProposalEntityType, entity_data: Any, context_data: Any) -> str:
    """Built-in user prompt used when no template applies."""
    kind = entity_type.value
    if entity_data:
        prompt = f"Generate a proposal to update the following {kind}:\n\n{_pretty(entity_data)}\n\n"
    elif context_data:
        prompt = f"Generate a proposal to create a new {kind} in the context of:\n\n{_pretty(context_data)}\n\n"
    else:
        prompt = f"Generate a proposal to create a new {kind}.\n\n"
    prompt += f"Please provide a detailed proposal with changes that would improve or enhance this {kind}."
    if context_data:
        prompt += " Make sure your proposal is consistent with the context provided."
    return prompt


class ProposalGenerator:
    def __init__(
        self,
        lifecycle: ProposalLifecycle,
        templates: TemplateService,
        repositories: EntityRepositorySet,
        llm: LLMService,
    ):
        self.lifecycle = lifecycle
        self.templates = templates
        self.repositories = repositories
        self.llm = llm

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def _load_entity(self, request: ProposalGenerationRequest) -> dict[str, Any] | None:
        if not request.entity_id:
            return None
        try:
            return await self.repositories.for_kind(request.entity_type).get_by_id(request.entity_id)
        except Exception as e:
            logger.warning(
                "Could not load %s %s for generation: %s", request.entity_type.value, request.entity_id, e
            )
            return None

    async def _load_context(self, context_id: str | None) -> dict[str, Any] | None:
        """Campaign with that id, else session plus its parent campaign under ``campaign``."""
        if not context_id:
            return None
        try:
            campaign = await self.repositories.for_kind(ProposalEntityType.CAMPAIGN).get_by_id(context_id)
            if campaign:
                return campaign
            session = await self.repositories.for_kind(ProposalEntityType.SESSION).get_by_id(context_id)
            if not session:
                return None
            context = dict(session)
            parent_id = session.get("campaignId") or session.get("campaign_id")
            if parent_id:
                parent = await self.repositories.for_kind(ProposalEntityType.CAMPAIGN).get_by_id(parent_id)
                if parent:
                    context["campaign"] = parent
            return context
        except Exception as e:
            logger.warning("Could not load generation context %s: %s", context_id, e)
            return None

    # ------------------------------------------------------------------
    # Prompt
    # ------------------------------------------------------------------

    async def resolve_prompt(
        self,
        request: ProposalGenerationRequest,
        entity_data: Any,
        context_data: Any,
    ) -> ResolvedPrompt:
        variables = {
            "entityType": request.entity_type.value,
            "entityId": request.entity_id or "",
            "entityData": _pretty(entity_data) if entity_data else NO_ENTITY_DATA,
            "contextId": request.context_id or "",
            "contextData": _pretty(context_data) if context_data else NO_CONTEXT_DATA,
        }
        default_system = load_prompt("proposal_system")

        if request.custom_prompt:
            return ResolvedPrompt(
                prompt=render_prompt(request.custom_prompt, variables),
                system_prompt=default_system,
                source="custom",
            )

        if request.prompt_id:
            template = await self.templates.get(request.prompt_id)
        else:
            template = await self.templates.default_for(request.entity_type)

        if template is None:
            return ResolvedPrompt(
                prompt=default_prompt(request.entity_type, entity_data, context_data),
                system_prompt=default_system,
            )
        system_prompt = render_prompt(template.system_prompt, variables) if template.system_prompt else default_system
        return ResolvedPrompt(
            prompt=render_prompt(template.prompt_template, variables),
            system_prompt=system_prompt,
            template=template,
            source="template",
        )

    # ------------------------------------------------------------------
    # Generate
    # ------------------------------------------------------------------

    async def generate(self, request: ProposalGenerationRequest, author_id: str | None) -> ChangeProposal:
        """Draft, parse and persist a proposal for ``request``."""
        if not author_id or not str(author_id).strip():
            raise AuthorRequiredError()
        try:
            options = LLMRequestOptions.model_validate(request.options or {})
        except ValidationError as e:
            raise ProposalValidationError(
                "Invalid generation options",
                details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            ) from e
        entity_data = await self._load_entity(request)
        context_data = await self._load_context(request.context_id)
        resolved = await self.resolve_prompt(request, entity_data, context_data)
        template = resolved.template

        context_missing = bool(template and template.required_context and not context_data)
        if context_missing:
            logger.warning(
                "Template %s requires context but none was resolved (contextId=%s)",
                template.id, request.context_id,
            )

        model = request.model or (template.default_model if template else None) or options.model
        if model:
            options = options.model_copy(update={"model": model})

        messages = [
            LLMMessage(role=LLMMessageRole.SYSTEM, content=resolved.system_prompt),
            LLMMessage(role=LLMMessageRole.USER, content=resolved.prompt),
        ]
        try:
            response = await self.llm.chat(messages, options)
        except Exception as e:
            log_error_with_context(
                e,
                node_name="generator",
                entity_type=request.entity_type.value,
                user_id=author_id,
                extra_context={"prompt_source": resolved.source, "model": model},
            )
            raise

        outcome = parse_proposal_response(response.message.content, request.entity_type, request.entity_id)
        metadata: dict[str, Any] = {
            "usage": response.usage.to_wire(),
            "finishReason": response.finish_reason,
            "promptSource": resolved.source,
        }
        if isinstance(outcome, FallbackProposal):
            metadata["parseError"] = outcome.error
        else:
            if outcome.dropped_changes:
                metadata["droppedChanges"] = outcome.dropped_changes
            if outcome.dropped_relationship_changes:
                metadata["droppedRelationshipChanges"] = outcome.dropped_relationship_changes
        if context_missing:
            metadata["contextMissing"] = True

        draft = outcome.draft.model_copy(
            update={
                "context_id": request.context_id,
                "prompt_id": template.id if template else None,
                "llm_model": response.model or model,
                "metadata": {**outcome.draft.metadata, **metadata},
            }
        )
        proposal = await self.lifecycle.create(draft, author_id)
        logger.info(
            "Generated proposal %s for %s (source=%s, model=%s, fallback=%s)",
            proposal.id,
            request.entity_type.value,
            resolved.source,
            proposal.llm_model,
            isinstance(outcome, FallbackProposal),
        )
        return proposal
