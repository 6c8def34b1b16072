"""Proposal template management: CRUD, render preview and default-pack seeding."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from backend.app.core.error_handling import ProposalValidationError, TemplateNotFoundError
from backend.app.core.prompt_renderer import render_prompt, template_variables
from backend.app.models.proposal import (
    ProposalEntityType,
    ProposalTemplate,
    TemplateCreate,
    TemplateUpdate,
)
from backend.app.prompts.registry import load_template_pack
from backend.app.repositories.proposals import ProposalStore

logger = logging.getLogger(__name__)


class TemplateService:
    def __init__(self, store: ProposalStore):
        self.store = store

    async def create(self, data: TemplateCreate) -> ProposalTemplate:
        missing = [
            wire
            for wire, value in (
                ("name", data.name),
                ("entityType", data.entity_type),
                ("promptTemplate", data.prompt_template),
            )
            if value is None or (isinstance(value, str) and not value.strip())
        ]
        if missing:
            raise ProposalValidationError(
                "Name, entity type, and prompt template are required",
                code="TEMPLATE_FIELDS_REQUIRED",
                details={"fields": missing},
            )
        now = datetime.now(timezone.utc)
        template = ProposalTemplate(
            id=str(uuid.uuid4()),
            name=data.name,
            description=data.description,
            entity_type=data.entity_type,
            prompt_template=data.prompt_template,
            system_prompt=data.system_prompt,
            default_model=data.default_model,
            required_context=data.required_context,
            metadata=data.metadata,
            created_at=now,
            updated_at=now,
        )
        created = await self.store.create_template(template)
        logger.info("Created template %s (%s) for %s", created.id, created.name, created.entity_type.value)
        return created

    async def get(self, template_id: str) -> ProposalTemplate:
        template = await self.store.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    async def list(self, entity_type: ProposalEntityType | None = None) -> list[ProposalTemplate]:
        return await self.store.list_templates(entity_type)

    async def default_for(self, entity_type: ProposalEntityType) -> ProposalTemplate | None:
        """The first (oldest) template registered for ``entity_type``."""
        templates = await self.store.list_templates(entity_type)
        return templates[0] if templates else None

    async def update(self, template_id: str, patch: TemplateUpdate) -> ProposalTemplate:
        template = await self.get(template_id)
        changes = patch.model_dump(exclude_unset=True)
        for key in ("name", "prompt_template", "entity_type"):
            if key in changes and not changes[key]:
                raise ProposalValidationError(
                    f"{key} cannot be empty", code="TEMPLATE_FIELDS_REQUIRED", details={"fields": [key]}
                )
        if not changes:
            return template
        updated = template.model_copy(
            update={**{k: getattr(patch, k) for k in changes}, "updated_at": datetime.now(timezone.utc)}
        )
        saved = await self.store.save_template(updated)
        if saved is None:
            raise TemplateNotFoundError(template_id)
        return saved

    async def delete(self, template_id: str) -> None:
        if not await self.store.delete_template(template_id):
            raise TemplateNotFoundError(template_id)
        logger.info("Deleted template %s", template_id)

    async def render(self, template_id: str, variables: Mapping[str, Any]) -> dict[str, Any]:
        """Render preview of a stored template with caller-supplied variables."""
        template = await self.get(template_id)
        return {
            "templateId": template.id,
            "prompt": render_prompt(template.prompt_template, variables),
            "systemPrompt": render_prompt(template.system_prompt, variables) if template.system_prompt else None,
            "variables": template_variables(template.prompt_template),
        }

    async def seed_default_templates(self) -> list[ProposalTemplate]:
        """Load the built-in template pack when the store has no templates."""
        existing = self.store.count_templates()
        if existing:
            logger.info("Found %d existing templates; skipping default template seed", existing)
            return []
        created = []
        for definition in load_template_pack():
            created.append(await self.create(TemplateCreate.model_validate(definition)))
        logger.info("Seeded %d default proposal templates", len(created))
        return created
