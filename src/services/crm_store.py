"""Data access for the CRM tools: invited users, leads, notes, follow-ups
and ranked document retrieval.

Every method performs exactly one statement.  Ownership of notes and
follow-ups is enforced inside the statement's WHERE clause so that a
delete/complete can never touch another user's row, and there is no
window between "check" and "act".
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, insert, select, text, update
from sqlalchemy.ext.asyncio import AsyncEngine

from src.services.database import follow_up, invited_user, lead, note

logger = logging.getLogger(__name__)

# Cosine distance via pgvector's <=> operator; similarity = 1 - distance
_NEAREST_CHUNKS_SQL = text(
    """
    SELECT dc.id AS id,
           d.path AS path,
           dc.content AS content,
           (1 - (dc.embedding <=> CAST(:embedding AS vector))) AS similarity
      FROM doc_chunk dc
      JOIN doc d ON dc.doc_id = d.id
     ORDER BY dc.embedding <=> CAST(:embedding AS vector)
     LIMIT :limit
    """
)


def to_pg_vector(values: list[float]) -> str:
    """Render a vector in pgvector's text input format."""
    return "[" + ",".join(repr(float(v)) for v in values) + "]"


class CrmStore:
    """Thin query layer over the async engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    # ── Users ────────────────────────────────────────────────────────

    async def find_user_by_passcode(self, passcode: str) -> dict[str, Any] | None:
        stmt = select(invited_user.c.id, invited_user.c.name).where(
            invited_user.c.passcode == passcode
        ).limit(1)
        async with self._engine.connect() as conn:
            row = (await conn.execute(stmt)).mappings().first()
        return dict(row) if row else None

    # ── Leads ────────────────────────────────────────────────────────

    async def insert_lead(self, name: str, email: str, source: str | None) -> dict[str, Any]:
        stmt = (
            insert(lead)
            .values(name=name, email=email, source=source)
            .returning(lead.c.id, lead.c.created_at)
        )
        async with self._engine.begin() as conn:
            row = (await conn.execute(stmt)).mappings().one()
        return dict(row)

    async def list_leads(self, limit: int) -> list[dict[str, Any]]:
        stmt = (
            select(lead.c.id, lead.c.name, lead.c.email, lead.c.source, lead.c.created_at)
            .order_by(lead.c.created_at.desc(), lead.c.id.desc())
            .limit(limit)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [dict(r) for r in rows]

    # ── Notes ────────────────────────────────────────────────────────

    async def insert_note(self, user_id: int, body: str) -> dict[str, Any]:
        stmt = (
            insert(note)
            .values(user_id=user_id, text=body)
            .returning(note.c.id, note.c.created_at)
        )
        async with self._engine.begin() as conn:
            row = (await conn.execute(stmt)).mappings().one()
        return dict(row)

    async def list_notes(self, user_id: int, limit: int) -> list[dict[str, Any]]:
        stmt = (
            select(note.c.id, note.c.text, note.c.created_at)
            .where(note.c.user_id == user_id)
            .order_by(note.c.created_at.desc(), note.c.id.desc())
            .limit(limit)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [dict(r) for r in rows]

    async def delete_note(self, note_id: int, user_id: int) -> dict[str, Any] | None:
        stmt = (
            delete(note)
            .where(note.c.id == note_id, note.c.user_id == user_id)
            .returning(note.c.id, note.c.text, note.c.created_at)
        )
        async with self._engine.begin() as conn:
            row = (await conn.execute(stmt)).mappings().first()
        return dict(row) if row else None

    # ── Follow-ups ───────────────────────────────────────────────────

    async def insert_follow_up(
        self,
        user_id: int,
        title: str,
        due_at: datetime | None,
        notes: str | None,
    ) -> dict[str, Any]:
        stmt = (
            insert(follow_up)
            .values(user_id=user_id, title=title, due_at=due_at, notes=notes, status="pending")
            .returning(follow_up.c.id, follow_up.c.created_at, follow_up.c.due_at)
        )
        async with self._engine.begin() as conn:
            row = (await conn.execute(stmt)).mappings().one()
        return dict(row)

    async def list_follow_ups(self, user_id: int, status: str, limit: int) -> list[dict[str, Any]]:
        stmt = (
            select(
                follow_up.c.id,
                follow_up.c.title,
                follow_up.c.due_at,
                follow_up.c.notes,
                follow_up.c.status,
                follow_up.c.created_at,
                follow_up.c.completed_at,
            )
            .where(follow_up.c.user_id == user_id, follow_up.c.status == status)
            .order_by(func.coalesce(follow_up.c.due_at, follow_up.c.created_at).asc(), follow_up.c.id.asc())
            .limit(limit)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [dict(r) for r in rows]

    async def complete_follow_up(self, follow_up_id: int, user_id: int) -> dict[str, Any] | None:
        stmt = (
            update(follow_up)
            .where(follow_up.c.id == follow_up_id, follow_up.c.user_id == user_id)
            .values(status="completed", completed_at=func.now())
            .returning(follow_up.c.id, follow_up.c.title, follow_up.c.completed_at, follow_up.c.due_at)
        )
        async with self._engine.begin() as conn:
            row = (await conn.execute(stmt)).mappings().first()
        return dict(row) if row else None

    # ── Document retrieval ───────────────────────────────────────────

    async def nearest_chunks(self, embedding: list[float], limit: int) -> list[dict[str, Any]]:
        """Top-*limit* document chunks by cosine similarity, most similar first."""
        async with self._engine.connect() as conn:
            result = await conn.execute(
                _NEAREST_CHUNKS_SQL,
                {"embedding": to_pg_vector(embedding), "limit": limit},
            )
            rows = result.mappings().all()
        return [dict(r) for r in rows]
