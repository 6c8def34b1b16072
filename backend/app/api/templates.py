"""Proposal template API: CRUD and render preview.

Mounted before the proposal router so ``/proposals/templates`` is not captured
by ``/proposals/{proposal_id}``.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from backend.app.api.deps import Services, get_services
from backend.app.core.error_handling import create_success_response
from backend.app.models.proposal import CodexModel, ProposalEntityType, TemplateCreate, TemplateUpdate

router = APIRouter(prefix="/proposals/templates", tags=["proposal-templates"])


class RenderRequest(CodexModel):
    variables: dict[str, Any] = Field(default_factory=dict)


@router.get("")
async def list_templates(
    entity_type: ProposalEntityType | None = Query(None, alias="entityType"),
    services: Services = Depends(get_services),
):
    templates = await services.templates.list(entity_type)
    return create_success_response([t.to_wire() for t in templates])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_template(body: TemplateCreate, services: Services = Depends(get_services)):
    template = await services.templates.create(body)
    return create_success_response(template.to_wire())


@router.get("/{template_id}")
async def get_template(template_id: str, services: Services = Depends(get_services)):
    template = await services.templates.get(template_id)
    return create_success_response(template.to_wire())


@router.patch("/{template_id}")
async def update_template(
    template_id: str,
    body: TemplateUpdate,
    services: Services = Depends(get_services),
):
    template = await services.templates.update(template_id, body)
    return create_success_response(template.to_wire())


@router.delete("/{template_id}")
async def delete_template(template_id: str, services: Services = Depends(get_services)):
    await services.templates.delete(template_id)
    return create_success_response({"id": template_id, "deleted": True})


@router.post("/{template_id}/render")
async def render_template(
    template_id: str,
    body: RenderRequest,
    services: Services = Depends(get_services),
):
    return create_success_response(await services.templates.render(template_id, body.variables))
