"""SQLite store for per-session chat context (``llm_contexts``)."""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone

from backend.app.models.llm import LLMContext, LLMMessage

logger = logging.getLogger(__name__)


def _row_to_context(row: sqlite3.Row) -> LLMContext:
    return LLMContext(
        session_id=row["session_id"],
        user_id=row["user_id"],
        messages=[LLMMessage.model_validate(m) for m in json.loads(row["messages_json"] or "[]")],
        metadata=json.loads(row["metadata_json"] or "{}"),
        updated_at=row["updated_at"],
    )


class LLMContextStore:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    async def get(self, session_id: str) -> LLMContext | None:
        row = self.conn.execute(
            "SELECT * FROM llm_contexts WHERE session_id=?", (session_id,)
        ).fetchone()
        return _row_to_context(row) if row else None

    async def save(self, context: LLMContext) -> LLMContext:
        """Insert or replace the whole context for ``context.session_id``."""
        stamped = context.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        self.conn.execute(
            """
            INSERT INTO llm_contexts (session_id, user_id, messages_json, metadata_json, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
              user_id=excluded.user_id,
              messages_json=excluded.messages_json,
              metadata_json=excluded.metadata_json,
              updated_at=excluded.updated_at
            """,
            (
                stamped.session_id,
                stamped.user_id,
                json.dumps([m.to_wire() for m in stamped.messages]),
                json.dumps(stamped.metadata),
                stamped.updated_at.isoformat(timespec="microseconds"),
            ),
        )
        self.conn.commit()
        logger.debug("Saved LLM context %s (%d messages)", stamped.session_id, len(stamped.messages))
        return stamped

    async def delete(self, session_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM llm_contexts WHERE session_id=?", (session_id,))
        self.conn.commit()
        return cur.rowcount > 0
