"""Error handling: domain error taxonomy, structured logging and response envelopes."""
from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class CodexError(Exception):
    """Base domain error. Carries a machine-readable code and an HTTP status."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


# (a) validation ---------------------------------------------------------------

class ProposalValidationError(CodexError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthorRequiredError(CodexError):
    status_code = 401
    default_code = "AUTHOR_REQUIRED"

    def __init__(self, message: str = "User ID is required"):
        super().__init__(message)


# (b) not found ----------------------------------------------------------------

class NotFoundError(CodexError):
    status_code = 404
    default_code = "NOT_FOUND"


class ProposalNotFoundError(NotFoundError):
    default_code = "PROPOSAL_NOT_FOUND"

    def __init__(self, proposal_id: str):
        super().__init__(f"Proposal with ID {proposal_id} not found", details={"proposalId": proposal_id})
        self.proposal_id = proposal_id


class TemplateNotFoundError(NotFoundError):
    default_code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        super().__init__(f"Template with ID {template_id} not found", details={"templateId": template_id})
        self.template_id = template_id


class ModelNotFoundError(NotFoundError):
    default_code = "MODEL_NOT_FOUND"

    def __init__(self, model_id: str):
        super().__init__(f"Model with ID {model_id} not found", details={"modelId": model_id})


class ContextNotFoundError(NotFoundError):
    default_code = "CONTEXT_NOT_FOUND"

    def __init__(self, session_id: str):
        super().__init__(f"LLM context for session {session_id} not found", details={"sessionId": session_id})


class EntityNotFoundError(NotFoundError):
    default_code = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            details={"entityType": entity_type, "entityId": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


# (c) preconditions ------------------------------------------------------------

class PreconditionError(CodexError):
    status_code = 400
    default_code = "PRECONDITION_FAILED"


class ProposalNotApprovedError(PreconditionError):
    default_code = "PROPOSAL_NOT_APPROVED"

    def __init__(self, proposal_id: str, status: str):
        super().__init__(
            "Proposal must be approved before applying changes",
            details={"proposalId": proposal_id, "status": status},
        )


class InvalidStatusTransitionError(PreconditionError):
    default_code = "INVALID_STATUS_TRANSITION"


class EntityInUseError(PreconditionError):
    default_code = "ENTITY_HAS_RELATIONSHIPS"


class UnsupportedEntityTypeError(PreconditionError):
    default_code = "UNSUPPORTED_ENTITY_TYPE"


# (d) upstream -----------------------------------------------------------------

class UpstreamError(CodexError):
    status_code = 500
    default_code = "UPSTREAM_ERROR"


def log_error_with_context(
    error: Exception,
    node_name: str,
    proposal_id: str | None = None,
    entity_type: str | None = None,
    user_id: str | None = None,
    extra_context: dict[str, Any] | None = None,
) -> None:
    """
    Log an error with full context: proposal, entity kind, user, component and stack trace.

    Args:
        error: The exception that occurred
        node_name: Component where it happened (e.g., 'lifecycle', 'generator', 'api')
        proposal_id: Proposal ID for context
        entity_type: Entity kind involved, if any
        user_id: Requesting user, if known
        extra_context: Additional context dict to include in log
    """
    context_parts = []
    if proposal_id:
        context_parts.append(f"proposal_id={proposal_id}")
    if entity_type:
        context_parts.append(f"entity_type={entity_type}")
    if user_id:
        context_parts.append(f"user_id={user_id}")
    context_str = ", ".join(context_parts) if context_parts else "no context"

    extra: dict[str, Any] = {}
    if extra_context:
        extra.update(extra_context)
    if proposal_id:
        extra["proposal_id"] = proposal_id
    if entity_type:
        extra["entity_type"] = entity_type
    if user_id:
        extra["user_id"] = user_id
    extra["node_name"] = node_name

    logger.error(
        f"[{node_name}] Error: {type(error).__name__}: {str(error)} ({context_str})",
        exc_info=True,
        extra=extra,
    )


def create_error_response(
    error_code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create the failure envelope shared by every endpoint.

    Returns:
        ``{"success": False, "error": {"code", "message", "details"?}}``
    """
    error: dict[str, Any] = {
        "code": error_code,
        "message": message,
    }
    if details:
        error["details"] = details
    return {"success": False, "error": error}


def create_success_response(data: Any) -> dict[str, Any]:
    """Create the success envelope: ``{"success": True, "data": ...}``."""
    return {"success": True, "data": data}
