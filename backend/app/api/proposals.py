"""Proposal API: CRUD, comments, review, apply and LLM generation."""
from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from backend.app.api.deps import Services, get_services, get_user_id
from backend.app.core.error_handling import create_error_response, create_success_response
from backend.app.models.proposal import (
    CodexModel,
    ProposalDraft,
    ProposalEntityType,
    ProposalFilter,
    ProposalGenerationRequest,
    ProposalStatus,
    ProposalType,
    ProposalUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proposals", tags=["proposals"])


# --- Request models ---


class CommentRequest(CodexModel):
    content: str | None = None


class ReviewRequest(CodexModel):
    status: str | None = None
    comment: str | None = None


# --- Routes ---


@router.get("")
async def list_proposals(
    status_: list[ProposalStatus] | None = Query(None, alias="status"),
    type_: list[ProposalType] | None = Query(None, alias="type"),
    entity_type: list[ProposalEntityType] | None = Query(None, alias="entityType"),
    entity_id: str | None = Query(None, alias="entityId"),
    context_id: str | None = Query(None, alias="contextId"),
    created_by: str | None = Query(None, alias="createdBy"),
    created_after: datetime | None = Query(None, alias="createdAfter"),
    created_before: datetime | None = Query(None, alias="createdBefore"),
    search: str | None = Query(None),
    services: Services = Depends(get_services),
):
    flt = ProposalFilter(
        status=status_ or [],
        type=type_ or [],
        entity_type=entity_type or [],
        entity_id=entity_id,
        context_id=context_id,
        created_by=created_by,
        created_after=created_after,
        created_before=created_before,
        search=search,
    )
    proposals = await services.lifecycle.list(flt)
    return create_success_response([p.to_wire() for p in proposals])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_proposal(
    body: ProposalDraft,
    user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    proposal = await services.lifecycle.create(body, user_id)
    return create_success_response(proposal.to_wire())


@router.post("/generate", status_code=status.HTTP_201_CREATED)
async def generate_proposal(
    body: ProposalGenerationRequest,
    user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    proposal = await services.generator.generate(body, user_id)
    return create_success_response(proposal.to_wire())


@router.get("/{proposal_id}")
async def get_proposal(proposal_id: str, services: Services = Depends(get_services)):
    proposal = await services.lifecycle.get(proposal_id)
    return create_success_response(proposal.to_wire())


@router.patch("/{proposal_id}")
async def update_proposal(
    proposal_id: str,
    body: ProposalUpdate,
    services: Services = Depends(get_services),
):
    proposal = await services.lifecycle.update(proposal_id, body)
    return create_success_response(proposal.to_wire())


@router.delete("/{proposal_id}")
async def delete_proposal(proposal_id: str, services: Services = Depends(get_services)):
    await services.lifecycle.delete(proposal_id)
    return create_success_response({"id": proposal_id, "deleted": True})


@router.post("/{proposal_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    proposal_id: str,
    body: CommentRequest,
    user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    proposal = await services.lifecycle.add_comment(proposal_id, body.content, user_id)
    return create_success_response(proposal.to_wire())


@router.post("/{proposal_id}/review")
async def review_proposal(
    proposal_id: str,
    body: ReviewRequest,
    user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    proposal = await services.lifecycle.review(proposal_id, body.status or "", user_id, body.comment)
    return create_success_response(proposal.to_wire())


@router.post("/{proposal_id}/apply")
async def apply_proposal(
    proposal_id: str,
    user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    result = await services.lifecycle.apply(proposal_id, user_id)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=create_error_response("APPLY_FAILED", result.message, details=result.to_wire()),
        )
    return create_success_response(result.to_wire())
