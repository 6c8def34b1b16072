"""SQLite-backed relationship (edge) repository.

Edges are directed and typed. Merging an edge that already exists for the same
(source, target, relationship type) replaces its properties instead of adding a
duplicate, so re-applying a RELATE proposal is idempotent.
"""
from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from backend.app.constants import RELATIONSHIP_TYPE_PATTERN
from backend.app.core.error_handling import EntityNotFoundError, ProposalValidationError
from backend.app.models.proposal import RelationshipChange

logger = logging.getLogger(__name__)

_RELATIONSHIP_TYPE_RE = re.compile(RELATIONSHIP_TYPE_PATTERN)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _row_to_edge(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "sourceId": row["source_id"],
        "sourceType": row["source_type"],
        "targetId": row["target_id"],
        "targetType": row["target_type"],
        "relationshipType": row["relationship_type"],
        "properties": json.loads(row["properties_json"] or "{}"),
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


class RelationshipRepository:
    """Edges between entities stored in the ``entities`` table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _endpoint_exists(self, entity_id: str, kind: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM entities WHERE id=? AND kind=?", (entity_id, kind)
        ).fetchone()
        return row is not None

    async def merge(self, change: RelationshipChange) -> dict[str, Any]:
        """Create the edge or replace the properties of the existing one."""
        if not _RELATIONSHIP_TYPE_RE.match(change.relationship_type or ""):
            raise ProposalValidationError(
                f"Invalid relationship type {change.relationship_type!r}",
                code="INVALID_RELATIONSHIP_TYPE",
            )
        for entity_id, kind in (
            (change.source_id, change.source_type.value),
            (change.target_id, change.target_type.value),
        ):
            if not self._endpoint_exists(entity_id, kind):
                raise EntityNotFoundError(kind, entity_id)

        now = _now_iso()
        props = json.dumps(change.properties)
        existing = self.conn.execute(
            "SELECT id FROM relationships WHERE source_id=? AND target_id=? AND relationship_type=?",
            (change.source_id, change.target_id, change.relationship_type),
        ).fetchone()
        if existing is None:
            edge_id = str(uuid.uuid4())
            self.conn.execute(
                "INSERT INTO relationships (id, source_id, source_type, target_id, target_type, "
                "relationship_type, properties_json, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    edge_id, change.source_id, change.source_type.value,
                    change.target_id, change.target_type.value,
                    change.relationship_type, props, now, now,
                ),
            )
        else:
            edge_id = existing["id"]
            self.conn.execute(
                "UPDATE relationships SET properties_json=?, source_type=?, target_type=?, updated_at=? "
                "WHERE id=?",
                (props, change.source_type.value, change.target_type.value, now, edge_id),
            )
        self.conn.commit()
        return await self.get_by_id(edge_id)

    async def get_by_id(self, edge_id: str) -> dict[str, Any] | None:
        row = self.conn.execute("SELECT * FROM relationships WHERE id=?", (edge_id,)).fetchone()
        return _row_to_edge(row) if row else None

    async def list_for_entity(self, entity_id: str) -> list[dict[str, Any]]:
        """All edges where the entity is source or target."""
        rows = self.conn.execute(
            "SELECT * FROM relationships WHERE source_id=? OR target_id=? ORDER BY created_at, rowid",
            (entity_id, entity_id),
        ).fetchall()
        return [_row_to_edge(r) for r in rows]

    async def delete(self, edge_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM relationships WHERE id=?", (edge_id,))
        self.conn.commit()
        return cur.rowcount > 0


class RelationshipEntityRepository:
    """Entity-repository view over edges, so RELATIONSHIP dispatches like any other kind.

    ``create`` takes the RelationshipChange wire shape; ``update`` may change
    ``properties`` only.
    """

    def __init__(self, relationships: RelationshipRepository):
        self.relationships = relationships

    async def create(self, attrs: dict[str, Any]) -> dict[str, Any]:
        try:
            change = RelationshipChange.model_validate(attrs)
        except ValidationError as exc:
            raise ProposalValidationError(
                "Relationship requires sourceId, sourceType, targetId, targetType and relationshipType",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
        return await self.relationships.merge(change)

    async def update(self, entity_id: str, attrs: dict[str, Any]) -> dict[str, Any]:
        existing = await self.relationships.get_by_id(entity_id)
        if existing is None:
            raise EntityNotFoundError("relationship", entity_id)
        properties = attrs.get("properties", existing["properties"])
        if not isinstance(properties, dict):
            raise ProposalValidationError("Relationship properties must be an object")
        self.relationships.conn.execute(
            "UPDATE relationships SET properties_json=?, updated_at=? WHERE id=?",
            (json.dumps(properties), _now_iso(), entity_id),
        )
        self.relationships.conn.commit()
        return await self.relationships.get_by_id(entity_id)

    async def delete(self, entity_id: str) -> bool:
        return await self.relationships.delete(entity_id)

    async def get_by_id(self, entity_id: str) -> dict[str, Any] | None:
        return await self.relationships.get_by_id(entity_id)
