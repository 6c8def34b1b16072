"""Proposal lifecycle: creation, review state machine, comments and apply.

Status moves off PENDING only through ``review``; nothing returns to PENDING.
``apply`` requires APPROVED and dispatches the proposal's mutations to the
repository registered for its entity kind.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from backend.app.constants import APPLIED_COMMENT, SYSTEM_AUTHOR
from backend.app.core.error_handling import (
    AuthorRequiredError,
    InvalidStatusTransitionError,
    ProposalNotApprovedError,
    ProposalNotFoundError,
    ProposalValidationError,
    log_error_with_context,
)
from backend.app.models.proposal import (
    ApplicationResult,
    ChangeField,
    ChangeProposal,
    ProposalComment,
    ProposalDraft,
    ProposalFilter,
    ProposalStatus,
    ProposalType,
    ProposalUpdate,
    RelationshipResult,
)
from backend.app.repositories.entities import EntityRepositorySet
from backend.app.repositories.proposals import ProposalStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_user(user_id: str | None) -> str:
    if not user_id or not str(user_id).strip():
        raise AuthorRequiredError()
    return str(user_id).strip()


def collapse_changes(changes: list[ChangeField]) -> dict[str, Any]:
    """Attribute map from change fields; a later change to the same field wins."""
    return {c.field: c.new_value for c in changes}


def _new_comment(content: str, author_id: str, created_at: datetime) -> ProposalComment:
    return ProposalComment(
        id=str(uuid.uuid4()),
        content=content,
        created_by=author_id,
        created_at=created_at,
    )


class ProposalLifecycle:
    def __init__(self, store: ProposalStore, repositories: EntityRepositorySet):
        self.store = store
        self.repositories = repositories

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(self, draft: ProposalDraft, author_id: str | None) -> ChangeProposal:
        """Persist a draft as a new PENDING proposal."""
        author = _require_user(author_id)
        missing = [name for name, value in (("type", draft.type), ("entityType", draft.entity_type)) if value is None]
        if missing:
            raise ProposalValidationError(
                f"Missing required fields: {', '.join(missing)}",
                code="MISSING_REQUIRED_FIELDS",
                details={"fields": missing},
            )

        now = _utcnow()
        proposal = ChangeProposal(
            id=str(uuid.uuid4()),
            type=draft.type,
            entity_type=draft.entity_type,
            entity_id=draft.entity_id or None,
            title=draft.title,
            description=draft.description,
            reason=draft.reason,
            status=ProposalStatus.PENDING,
            changes=draft.changes,
            relationship_changes=draft.relationship_changes,
            created_by=author,
            created_at=now,
            updated_at=now,
            comments=[_new_comment(c.content, c.created_by, now) for c in draft.comments],
            context_id=draft.context_id,
            prompt_id=draft.prompt_id,
            llm_model=draft.llm_model,
            metadata=draft.metadata,
        )
        created = await self.store.create(proposal)
        logger.info(
            "Created proposal %s (%s %s) by %s",
            created.id, created.type.value, created.entity_type.value, author,
        )
        return created

    async def get(self, proposal_id: str) -> ChangeProposal:
        proposal = await self.store.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal

    async def list(self, flt: ProposalFilter | None = None) -> list[ChangeProposal]:
        return await self.store.list(flt)

    async def update(self, proposal_id: str, patch: ProposalUpdate) -> ChangeProposal:
        """Edit narrative fields, payload, target or provenance. Status is untouched."""
        proposal = await self.get(proposal_id)
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            return proposal
        # Re-validate so nested payloads stay typed.
        data = proposal.model_dump()
        data.update({k: getattr(patch, k) for k in changes})
        data["updated_at"] = _utcnow()
        updated = ChangeProposal.model_validate(data)
        saved = await self.store.save(updated)
        if saved is None:
            raise ProposalNotFoundError(proposal_id)
        return saved

    async def delete(self, proposal_id: str) -> None:
        if not await self.store.delete(proposal_id):
            raise ProposalNotFoundError(proposal_id)
        logger.info("Deleted proposal %s", proposal_id)

    # ------------------------------------------------------------------
    # Review and comments
    # ------------------------------------------------------------------

    async def review(
        self,
        proposal_id: str,
        new_status: ProposalStatus | str,
        reviewer_id: str | None,
        comment: str | None = None,
    ) -> ChangeProposal:
        """Move a proposal to APPROVED, REJECTED or MODIFIED.

        The first review stamps ``reviewed_by``/``reviewed_at``; later reviews
        keep the original reviewer. An optional non-blank comment is appended.
        """
        reviewer = _require_user(reviewer_id)
        try:
            target = ProposalStatus(new_status)
        except ValueError as exc:
            raise InvalidStatusTransitionError(
                f"Invalid status: {new_status}", details={"status": str(new_status)}
            ) from exc
        if target == ProposalStatus.PENDING:
            raise InvalidStatusTransitionError(
                "A proposal cannot be moved back to pending",
                details={"status": target.value},
            )

        proposal = await self.get(proposal_id)
        now = _utcnow()
        update: dict[str, Any] = {"status": target, "updated_at": now}
        if proposal.reviewed_by is None:
            update["reviewed_by"] = reviewer
            update["reviewed_at"] = now
        saved = await self.store.save(proposal.model_copy(update=update))
        if saved is None:
            raise ProposalNotFoundError(proposal_id)

        if comment and comment.strip():
            await self.store.add_comment(proposal_id, _new_comment(comment, reviewer, now), now)
            saved = await self.get(proposal_id)

        logger.info(
            "Proposal %s reviewed: %s -> %s by %s",
            proposal_id, proposal.status.value, target.value, reviewer,
        )
        return saved

    async def add_comment(self, proposal_id: str, content: str | None, author_id: str | None) -> ChangeProposal:
        author = _require_user(author_id)
        if not content or not content.strip():
            raise ProposalValidationError("Comment content is required", code="COMMENT_CONTENT_REQUIRED")
        await self.get(proposal_id)
        now = _utcnow()
        await self.store.add_comment(proposal_id, _new_comment(content, author, now), now)
        return await self.get(proposal_id)

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    async def apply(self, proposal_id: str, requester_id: str | None) -> ApplicationResult:
        """Execute an APPROVED proposal against its entity repository."""
        requester = _require_user(requester_id)
        proposal = await self.get(proposal_id)
        if proposal.status != ProposalStatus.APPROVED:
            raise ProposalNotApprovedError(proposal_id, proposal.status.value)

        repo = self.repositories.for_kind(proposal.entity_type)
        try:
            if proposal.type == ProposalType.CREATE:
                entity = await repo.create(collapse_changes(proposal.changes))
                result = ApplicationResult(
                    success=True,
                    proposal_id=proposal_id,
                    entity_id=entity.get("id"),
                    message=f"Created {proposal.entity_type.value} {entity.get('id')}",
                    details={"entity": entity},
                )
            elif proposal.type == ProposalType.UPDATE:
                entity_id = self._require_entity_id(proposal)
                entity = await repo.update(entity_id, collapse_changes(proposal.changes))
                result = ApplicationResult(
                    success=True,
                    proposal_id=proposal_id,
                    entity_id=entity_id,
                    message=f"Updated {proposal.entity_type.value} {entity_id}",
                    details={"entity": entity},
                )
            elif proposal.type == ProposalType.DELETE:
                entity_id = self._require_entity_id(proposal)
                deleted = await repo.delete(entity_id)
                result = ApplicationResult(
                    success=deleted,
                    proposal_id=proposal_id,
                    entity_id=entity_id,
                    message=(
                        f"Deleted {proposal.entity_type.value} {entity_id}"
                        if deleted
                        else f"Failed to delete {proposal.entity_type.value} {entity_id}"
                    ),
                )
            else:
                result = await self._apply_relationships(proposal)
        except Exception as e:
            log_error_with_context(
                e,
                node_name="lifecycle.apply",
                proposal_id=proposal_id,
                entity_type=proposal.entity_type.value,
                user_id=requester,
            )
            raise

        if result.success:
            await self.review(proposal_id, ProposalStatus.APPROVED, requester, APPLIED_COMMENT)
            logger.info("Applied proposal %s: %s", proposal_id, result.message)
        else:
            logger.warning("Proposal %s was not applied: %s", proposal_id, result.message)
        return result

    @staticmethod
    def _require_entity_id(proposal: ChangeProposal) -> str:
        if not proposal.entity_id:
            raise ProposalValidationError(
                f"Entity ID is required for {proposal.type.value} proposals",
                code="ENTITY_ID_REQUIRED",
                details={"proposalId": proposal.id},
            )
        return proposal.entity_id

    async def _apply_relationships(self, proposal: ChangeProposal) -> ApplicationResult:
        """Merge every edge independently; overall success only if all succeed."""
        if not proposal.relationship_changes:
            raise ProposalValidationError(
                "Relationship proposals require at least one relationship change",
                code="RELATIONSHIP_CHANGES_REQUIRED",
                details={"proposalId": proposal.id},
            )

        results: list[RelationshipResult] = []
        for index, change in enumerate(proposal.relationship_changes):
            try:
                await self.repositories.relationships.merge(change)
                outcome = (True, "Relationship created")
            except Exception as e:
                logger.warning(
                    "Relationship %d of proposal %s failed (%s -[%s]-> %s): %s",
                    index, proposal.id, change.source_id, change.relationship_type, change.target_id, e,
                )
                outcome = (False, str(e))
            results.append(
                RelationshipResult(
                    index=index,
                    success=outcome[0],
                    message=outcome[1],
                    source_id=change.source_id,
                    target_id=change.target_id,
                    relationship_type=change.relationship_type,
                )
            )

        failed = sum(1 for r in results if not r.success)
        return ApplicationResult(
            success=failed == 0,
            proposal_id=proposal.id,
            entity_id=proposal.entity_id,
            message=(
                f"Applied {len(results)} relationship change(s)"
                if failed == 0
                else f"{failed} of {len(results)} relationship change(s) failed"
            ),
            details={"results": [r.to_wire() for r in results]},
        )
