"""SQLite-backed store for proposals, their comments and proposal templates.

Plain persistence: no status rules live here (see ProposalLifecycle). Payload
lists and metadata are stored as JSON columns in camelCase wire form.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from backend.app.models.proposal import (
    ChangeField,
    ChangeProposal,
    ProposalComment,
    ProposalEntityType,
    ProposalFilter,
    ProposalTemplate,
    RelationshipChange,
)

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_comment(row: sqlite3.Row) -> ProposalComment:
    return ProposalComment(
        id=row["id"],
        content=row["content"],
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


def _row_to_proposal(row: sqlite3.Row, comments: list[ProposalComment]) -> ChangeProposal:
    return ChangeProposal(
        id=row["id"],
        type=row["type"],
        entity_type=row["entity_type"],
        entity_id=row["entity_id"],
        title=row["title"],
        description=row["description"],
        reason=row["reason"],
        status=row["status"],
        changes=[ChangeField.model_validate(c) for c in json.loads(row["changes_json"] or "[]")],
        relationship_changes=[
            RelationshipChange.model_validate(r) for r in json.loads(row["relationship_changes_json"] or "[]")
        ],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        reviewed_by=row["reviewed_by"],
        reviewed_at=row["reviewed_at"],
        comments=comments,
        context_id=row["context_id"],
        prompt_id=row["prompt_id"],
        llm_model=row["llm_model"],
        metadata=json.loads(row["metadata_json"] or "{}"),
    )


def _row_to_template(row: sqlite3.Row) -> ProposalTemplate:
    return ProposalTemplate(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        entity_type=row["entity_type"],
        prompt_template=row["prompt_template"],
        system_prompt=row["system_prompt"],
        default_model=row["default_model"],
        required_context=bool(row["required_context"]),
        metadata=json.loads(row["metadata_json"] or "{}"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _proposal_columns(p: ChangeProposal) -> dict[str, Any]:
    return {
        "type": p.type.value,
        "entity_type": p.entity_type.value,
        "entity_id": p.entity_id,
        "title": p.title,
        "description": p.description,
        "reason": p.reason,
        "status": p.status.value,
        "changes_json": json.dumps([c.to_wire() for c in p.changes]),
        "relationship_changes_json": json.dumps([r.to_wire() for r in p.relationship_changes]),
        "created_by": p.created_by,
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
        "reviewed_by": p.reviewed_by,
        "reviewed_at": _iso(p.reviewed_at),
        "context_id": p.context_id,
        "prompt_id": p.prompt_id,
        "llm_model": p.llm_model,
        "metadata_json": json.dumps(p.metadata, default=str),
    }


def _template_columns(t: ProposalTemplate) -> dict[str, Any]:
    return {
        "name": t.name,
        "description": t.description,
        "entity_type": t.entity_type.value,
        "prompt_template": t.prompt_template,
        "system_prompt": t.system_prompt,
        "default_model": t.default_model,
        "required_context": 1 if t.required_context else 0,
        "metadata_json": json.dumps(t.metadata, default=str),
        "created_at": _iso(t.created_at),
        "updated_at": _iso(t.updated_at),
    }


class ProposalStore:
    """Proposals, comments and templates on one SQLite connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ── Proposals ─────────────────────────────────────────────────────

    def _comments(self, proposal_id: str) -> list[ProposalComment]:
        rows = self.conn.execute(
            "SELECT * FROM proposal_comments WHERE proposal_id=? ORDER BY created_at, rowid",
            (proposal_id,),
        ).fetchall()
        return [_row_to_comment(r) for r in rows]

    async def create(self, proposal: ChangeProposal) -> ChangeProposal:
        """Insert the proposal together with any comments it already carries."""
        cols = {"id": proposal.id, **_proposal_columns(proposal)}
        self.conn.execute(
            f"INSERT INTO proposals ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
            tuple(cols.values()),
        )
        for comment in proposal.comments:
            self._insert_comment(proposal.id, comment)
        self.conn.commit()
        return await self.get(proposal.id)

    async def get(self, proposal_id: str) -> ChangeProposal | None:
        row = self.conn.execute("SELECT * FROM proposals WHERE id=?", (proposal_id,)).fetchone()
        if row is None:
            return None
        return _row_to_proposal(row, self._comments(proposal_id))

    async def list(self, flt: ProposalFilter | None = None) -> list[ChangeProposal]:
        """Newest first. Empty filter lists mean "any"."""
        flt = flt or ProposalFilter()
        clauses: list[str] = []
        params: list[Any] = []

        for column, values in (
            ("status", flt.status),
            ("type", flt.type),
            ("entity_type", flt.entity_type),
        ):
            if values:
                clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(v.value for v in values)
        for column, value in (
            ("entity_id", flt.entity_id),
            ("context_id", flt.context_id),
            ("created_by", flt.created_by),
        ):
            if value:
                clauses.append(f"{column} = ?")
                params.append(value)
        if flt.created_after is not None:
            clauses.append("created_at >= ?")
            params.append(_iso(flt.created_after))
        if flt.created_before is not None:
            clauses.append("created_at <= ?")
            params.append(_iso(flt.created_before))
        if flt.search:
            needle = flt.search.lower()
            clauses.append("(instr(lower(title), ?) > 0 OR instr(lower(description), ?) > 0)")
            params.extend([needle, needle])

        sql = "SELECT * FROM proposals"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, rowid DESC"
        rows = self.conn.execute(sql, params).fetchall()
        return [_row_to_proposal(r, self._comments(r["id"])) for r in rows]

    async def save(self, proposal: ChangeProposal) -> ChangeProposal | None:
        """Overwrite every proposal column (comments are managed separately)."""
        cols = _proposal_columns(proposal)
        cur = self.conn.execute(
            f"UPDATE proposals SET {', '.join(f'{c}=?' for c in cols)} WHERE id=?",
            (*cols.values(), proposal.id),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            return None
        return await self.get(proposal.id)

    async def delete(self, proposal_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM proposals WHERE id=?", (proposal_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def _insert_comment(self, proposal_id: str, comment: ProposalComment) -> None:
        self.conn.execute(
            "INSERT INTO proposal_comments (id, proposal_id, content, created_by, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (comment.id, proposal_id, comment.content, comment.created_by, _iso(comment.created_at)),
        )

    async def add_comment(self, proposal_id: str, comment: ProposalComment, touched_at: datetime) -> None:
        """Append a comment and bump the proposal's ``updated_at``."""
        self._insert_comment(proposal_id, comment)
        self.conn.execute(
            "UPDATE proposals SET updated_at=? WHERE id=?", (_iso(touched_at), proposal_id)
        )
        self.conn.commit()

    # ── Templates ─────────────────────────────────────────────────────

    async def create_template(self, template: ProposalTemplate) -> ProposalTemplate:
        cols = {"id": template.id, **_template_columns(template)}
        self.conn.execute(
            f"INSERT INTO proposal_templates ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
            tuple(cols.values()),
        )
        self.conn.commit()
        return await self.get_template(template.id)

    async def get_template(self, template_id: str) -> ProposalTemplate | None:
        row = self.conn.execute(
            "SELECT * FROM proposal_templates WHERE id=?", (template_id,)
        ).fetchone()
        return _row_to_template(row) if row else None

    async def list_templates(self, entity_type: ProposalEntityType | None = None) -> list[ProposalTemplate]:
        """Oldest first, so the first template for a kind is its default."""
        if entity_type is not None:
            rows = self.conn.execute(
                "SELECT * FROM proposal_templates WHERE entity_type=? ORDER BY created_at, rowid",
                (ProposalEntityType(entity_type).value,),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM proposal_templates ORDER BY created_at, rowid"
            ).fetchall()
        return [_row_to_template(r) for r in rows]

    async def save_template(self, template: ProposalTemplate) -> ProposalTemplate | None:
        cols = _template_columns(template)
        cur = self.conn.execute(
            f"UPDATE proposal_templates SET {', '.join(f'{c}=?' for c in cols)} WHERE id=?",
            (*cols.values(), template.id),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            return None
        return await self.get_template(template.id)

    async def delete_template(self, template_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM proposal_templates WHERE id=?", (template_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def count_templates(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM proposal_templates").fetchone()[0]
