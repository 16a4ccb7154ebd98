"""Relational schema and async engine construction.

All statements in the project are built from these SQLAlchemy Core tables
(or bound ``text()`` for the pgvector query), so every value reaches the
database as a bound parameter.

The ``doc`` / ``doc_chunk`` tables used by document search are owned by
the ingestion pipeline (they need the pgvector extension) and are not
declared here.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

metadata = MetaData()

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

invited_user = Table(
    "invited_user",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", Text, nullable=False),
    Column("passcode", Text, nullable=False, unique=True),
)

lead = Table(
    "lead",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", Text, nullable=False),
    Column("email", Text, nullable=False),
    Column("source", Text),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

note = Table(
    "note",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("invited_user.id")),
    Column("text", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

follow_up = Table(
    "follow_up",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("invited_user.id"), nullable=False),
    Column("title", Text, nullable=False),
    Column("due_at", DateTime(timezone=True)),
    Column("notes", Text),
    Column("status", String(16), nullable=False, server_default="pending"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("completed_at", DateTime(timezone=True)),
)

session_table = Table(
    "session",
    metadata,
    Column("id", Text, primary_key=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("authenticated_user", JSONType),
    Column("history", JSONType, nullable=False),
    Index("session_created_at_idx", "created_at"),
)


def create_engine(url: str, **kwargs) -> AsyncEngine:
    """Build the process-wide async engine (one connection pool)."""
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


async def create_schema(engine: AsyncEngine) -> None:
    """Create the relational tables if they do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Database schema ensured (%d tables)", len(metadata.tables))
