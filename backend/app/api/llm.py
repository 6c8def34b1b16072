"""LLM API: config (key masked), model catalog, direct chat, session context and cache reset."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from backend.app.api.deps import Services, get_llm_service, get_services, get_user_id
from backend.app.constants import CHAT_SYSTEM_PROMPT
from backend.app.core.error_handling import ContextNotFoundError, create_success_response
from backend.app.core.llm_service import LLMService
from backend.app.models.llm import (
    ChatRequest,
    LLMConfigUpdate,
    LLMContext,
    LLMContextUpdate,
    LLMMessage,
    LLMMessageRole,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/llm", tags=["llm"])


@router.get("/config")
async def get_config(llm: LLMService = Depends(get_llm_service)):
    return create_success_response(llm.config.public_view())


@router.patch("/config")
async def update_config(body: LLMConfigUpdate, llm: LLMService = Depends(get_llm_service)):
    updated = await llm.update_config(body)
    return create_success_response(updated.public_view())


@router.get("/models")
async def list_models(llm: LLMService = Depends(get_llm_service)):
    return create_success_response([m.to_wire() for m in await llm.get_models()])


@router.get("/models/{model_id}")
async def get_model(model_id: str, llm: LLMService = Depends(get_llm_service)):
    model = await llm.require_model(model_id)
    return create_success_response(model.to_wire())


@router.post("/chat")
async def chat(
    body: ChatRequest,
    user_id: str | None = Depends(get_user_id),
    llm: LLMService = Depends(get_llm_service),
):
    """Chat completion. Requests from a known user without a system message get one naming them."""
    messages = list(body.messages)
    if user_id and not any(m.role == LLMMessageRole.SYSTEM for m in messages):
        messages.insert(
            0, LLMMessage(role=LLMMessageRole.SYSTEM, content=CHAT_SYSTEM_PROMPT.format(user_id=user_id))
        )
    response = await llm.chat(messages, body.options)
    return create_success_response(response.to_wire())


@router.get("/context/{session_id}")
async def get_context(session_id: str, services: Services = Depends(get_services)):
    context = await services.contexts.get(session_id)
    if context is None:
        raise ContextNotFoundError(session_id)
    return create_success_response(context.to_wire())


@router.post("/context/{session_id}")
async def save_context(
    session_id: str,
    body: LLMContextUpdate,
    user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    context = LLMContext(
        session_id=session_id, user_id=user_id, messages=body.messages, metadata=body.metadata
    )
    saved = await services.contexts.save(context)
    return create_success_response(saved.to_wire())


@router.delete("/context/{session_id}")
async def delete_context(session_id: str, services: Services = Depends(get_services)):
    if not await services.contexts.delete(session_id):
        raise ContextNotFoundError(session_id)
    logger.info("Deleted LLM context %s", session_id)
    return create_success_response({"sessionId": session_id, "deleted": True})


@router.delete("/cache")
async def clear_cache(llm: LLMService = Depends(get_llm_service)):
    return create_success_response({"cleared": llm.clear_cache()})
