"""Persistence of per-conversation sessions.

``get_session`` is a single insert-if-absent followed by a read inside one
transaction, so two requests racing on the first message of a
conversation converge on the same row instead of creating two.

``save_session`` is a full overwrite of the two mutable fields
(``authenticated_user`` and ``history``).  It is called after every
mutation in a turn and is safe to repeat.

Known limitation: there is no per-conversation lock.  Two turns submitted
concurrently for the same id may interleave their saves and the last one
wins.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine

from src.models import AuthenticatedUser, Message, Session
from src.services.database import session_table

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 120

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SessionStore:
    def __init__(self, engine: AsyncEngine, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._engine = engine
        self._history_limit = history_limit
        try:
            self._insert = _INSERT_BY_DIALECT[engine.dialect.name]
        except KeyError:
            raise ValueError(f"Unsupported database dialect: {engine.dialect.name}") from None

    async def get_session(self, session_id: str) -> Session:
        """Load the session for *session_id*, creating an empty one if needed."""
        create = (
            self._insert(session_table)
            .values(id=session_id, authenticated_user=None, history=[])
            .on_conflict_do_nothing(index_elements=[session_table.c.id])
        )
        read = select(
            session_table.c.id,
            session_table.c.created_at,
            session_table.c.authenticated_user,
            session_table.c.history,
        ).where(session_table.c.id == session_id)

        async with self._engine.begin() as conn:
            created = (await conn.execute(create)).rowcount
            row = (await conn.execute(read)).mappings().one()

        if created:
            logger.info("Created session %s", session_id)
        return self._from_row(row)

    async def save_session(self, session: Session) -> None:
        """Persist authenticated identity and the most recent history entries."""
        history = self.truncate(session.history)
        user = session.authenticated_user.model_dump() if session.authenticated_user else None
        stmt = (
            update(session_table)
            .where(session_table.c.id == session.id)
            .values(
                authenticated_user=user,
                history=[m.model_dump() for m in history],
            )
        )
        async with self._engine.begin() as conn:
            await conn.execute(stmt)

    def truncate(self, history: list[Message]) -> list[Message]:
        """Return the last ``history_limit`` entries without touching *history*."""
        if self._history_limit <= 0:
            return []
        if len(history) <= self._history_limit:
            return list(history)
        return history[-self._history_limit:]

    @staticmethod
    def _from_row(row: Any) -> Session:
        raw_history = row["history"] if isinstance(row["history"], list) else []
        history = []
        for item in raw_history:
            try:
                history.append(Message.model_validate(item))
            except ValueError:
                logger.warning("Skipping malformed history entry in session %s", row["id"])
        user_data = row["authenticated_user"]
        user = AuthenticatedUser.model_validate(user_data) if isinstance(user_data, dict) else None
        return Session(
            id=row["id"],
            created_at=row["created_at"],
            history=history,
            authenticated_user=user,
        )
