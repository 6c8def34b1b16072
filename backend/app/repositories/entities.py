"""Entity repositories and the per-kind dispatch table used by apply.

Every entity kind except RELATIONSHIP is a JSON document in the ``entities``
table; RELATIONSHIP is served by the edge repository through an adapter.
EntityRepositorySet must cover every ProposalEntityType: a missing kind is a
construction error, never a silent no-op at apply time.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol, runtime_checkable

from backend.app.core.error_handling import (
    EntityInUseError,
    EntityNotFoundError,
    UnsupportedEntityTypeError,
)
from backend.app.models.proposal import ProposalEntityType, RelationshipChange
from backend.app.repositories.relationships import (
    RelationshipEntityRepository,
    RelationshipRepository,
)

logger = logging.getLogger(__name__)

_RESERVED_KEYS = ("id", "createdAt", "updatedAt")


@runtime_checkable
class EntityRepository(Protocol):
    async def create(self, attrs: dict[str, Any]) -> dict[str, Any]:
        ...

    async def update(self, entity_id: str, attrs: dict[str, Any]) -> dict[str, Any]:
        ...

    async def delete(self, entity_id: str) -> bool:
        ...

    async def get_by_id(self, entity_id: str) -> dict[str, Any] | None:
        ...


@runtime_checkable
class RelationshipWriter(Protocol):
    async def merge(self, change: RelationshipChange) -> dict[str, Any]:
        ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _row_to_entity(row: sqlite3.Row) -> dict[str, Any]:
    data = json.loads(row["data_json"] or "{}")
    return {**data, "id": row["id"], "createdAt": row["created_at"], "updatedAt": row["updated_at"]}


class SqliteEntityRepository:
    """Documents of one kind in the shared ``entities`` table."""

    def __init__(self, conn: sqlite3.Connection, kind: ProposalEntityType):
        if kind == ProposalEntityType.RELATIONSHIP:
            raise ValueError("Relationships are stored as edges; use RelationshipEntityRepository")
        self.conn = conn
        self.kind = kind

    def _row(self, entity_id: str) -> sqlite3.Row | None:
        return self.conn.execute(
            "SELECT * FROM entities WHERE id=? AND kind=?", (entity_id, self.kind.value)
        ).fetchone()

    async def create(self, attrs: dict[str, Any]) -> dict[str, Any]:
        entity_id = str(attrs.get("id") or uuid.uuid4())
        data = {k: v for k, v in attrs.items() if k not in _RESERVED_KEYS}
        now = _now_iso()
        self.conn.execute(
            "INSERT INTO entities (id, kind, data_json, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (entity_id, self.kind.value, json.dumps(data), now, now),
        )
        self.conn.commit()
        logger.debug("Created %s %s", self.kind.value, entity_id)
        return {**data, "id": entity_id, "createdAt": now, "updatedAt": now}

    async def update(self, entity_id: str, attrs: dict[str, Any]) -> dict[str, Any]:
        """Shallow-merge ``attrs`` into the stored document."""
        row = self._row(entity_id)
        if row is None:
            raise EntityNotFoundError(self.kind.value, entity_id)
        data = json.loads(row["data_json"] or "{}")
        data.update({k: v for k, v in attrs.items() if k not in _RESERVED_KEYS})
        now = _now_iso()
        self.conn.execute(
            "UPDATE entities SET data_json=?, updated_at=? WHERE id=?",
            (json.dumps(data), now, entity_id),
        )
        self.conn.commit()
        return {**data, "id": entity_id, "createdAt": row["created_at"], "updatedAt": now}

    async def delete(self, entity_id: str) -> bool:
        """Delete the entity. False if it does not exist; refuses while edges reference it."""
        if self._row(entity_id) is None:
            return False
        in_use = self.conn.execute(
            "SELECT COUNT(*) FROM relationships WHERE source_id=? OR target_id=?",
            (entity_id, entity_id),
        ).fetchone()[0]
        if in_use:
            raise EntityInUseError(
                f"Cannot delete {self.kind.value} {entity_id}: it has {in_use} relationship(s)",
                details={"entityType": self.kind.value, "entityId": entity_id, "relationships": in_use},
            )
        cur = self.conn.execute(
            "DELETE FROM entities WHERE id=? AND kind=?", (entity_id, self.kind.value)
        )
        self.conn.commit()
        return cur.rowcount > 0

    async def get_by_id(self, entity_id: str) -> dict[str, Any] | None:
        row = self._row(entity_id)
        return _row_to_entity(row) if row else None


class EntityRepositorySet:
    """Total lookup table from entity kind to repository, plus the edge writer."""

    def __init__(
        self,
        repositories: Mapping[ProposalEntityType, EntityRepository],
        relationships: RelationshipWriter,
    ):
        missing = [kind.value for kind in ProposalEntityType if kind not in repositories]
        if missing:
            raise ValueError(f"No repository registered for entity kind(s): {', '.join(missing)}")
        self._repositories = dict(repositories)
        self.relationships = relationships

    def for_kind(self, kind: ProposalEntityType | str) -> EntityRepository:
        try:
            return self._repositories[ProposalEntityType(kind)]
        except (KeyError, ValueError) as exc:
            raise UnsupportedEntityTypeError(
                f"Unsupported entity type: {kind}", details={"entityType": str(kind)}
            ) from exc

    def kinds(self) -> list[ProposalEntityType]:
        return list(self._repositories)

    @classmethod
    def sqlite(cls, conn: sqlite3.Connection) -> "EntityRepositorySet":
        """Standard wiring: one document repository per kind, edges for RELATIONSHIP."""
        edges = RelationshipRepository(conn)
        repositories: dict[ProposalEntityType, EntityRepository] = {
            kind: SqliteEntityRepository(conn, kind)
            for kind in ProposalEntityType
            if kind != ProposalEntityType.RELATIONSHIP
        }
        repositories[ProposalEntityType.RELATIONSHIP] = RelationshipEntityRepository(edges)
        return cls(repositories, edges)
