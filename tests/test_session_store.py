"""Tests for session get-or-create, persistence and history truncation."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update

from src.models import AuthenticatedUser, Message
from src.services.database import create_engine, create_schema, session_table
from src.services.session_store import SessionStore


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """File-backed SQLite engine with a real connection pool."""
    eng = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    await create_schema(eng)
    yield eng
    await eng.dispose()


class TestGetSession:
    @pytest.mark.asyncio
    async def test_creates_empty_session(self, engine):
        session = await SessionStore(engine).get_session("conv-new")
        assert session.id == "conv-new"
        assert session.history == []
        assert session.authenticated_user is None
        assert session.created_at is not None

    @pytest.mark.asyncio
    async def test_second_call_loads_existing(self, engine):
        store = SessionStore(engine)
        first = await store.get_session("conv-1")
        first.append("user", "hello")
        await store.save_session(first)

        again = await store.get_session("conv-1")
        assert [m.content for m in again.history] == ["hello"]

    @pytest.mark.asyncio
    async def test_repeated_get_creates_one_row(self, engine):
        store = SessionStore(engine)
        for _ in range(3):
            await store.get_session("conv-race")

        async with engine.connect() as conn:
            count = (await conn.execute(
                select(func.count()).select_from(session_table).where(session_table.c.id == "conv-race")
            )).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_malformed_history_entries_are_skipped(self, engine):
        store = SessionStore(engine)
        await store.get_session("conv-bad")
        async with engine.begin() as conn:
            await conn.execute(
                update(session_table)
                .where(session_table.c.id == "conv-bad")
                .values(history=[{"role": "user", "content": "ok"}, {"role": "system", "content": "nope"}, 42])
            )
        session = await store.get_session("conv-bad")
        assert [m.content for m in session.history] == ["ok"]

    @pytest.mark.asyncio
    async def test_concurrent_first_access_creates_one_row(self, file_engine):
        store = SessionStore(file_engine)
        sessions = await asyncio.gather(*(store.get_session("conv-race") for _ in range(8)))

        assert {s.id for s in sessions} == {"conv-race"}
        assert all(s.history == [] for s in sessions)
        async with file_engine.connect() as conn:
            count = (await conn.execute(
                select(func.count()).select_from(session_table).where(session_table.c.id == "conv-race")
            )).scalar_one()
        assert count == 1

        winner = sessions[3]
        winner.append("user", "first message")
        await store.save_session(winner)
        reloaded = await store.get_session("conv-race")
        assert [m.content for m in reloaded.history] == ["first message"]

    def test_rejects_unknown_dialect(self):
        fake_engine = MagicMock()
        fake_engine.dialect.name = "mysql"
        with pytest.raises(ValueError, match="mysql"):
            SessionStore(fake_engine)


class TestSaveSession:
    @pytest.mark.asyncio
    async def test_persists_authenticated_user(self, engine):
        store = SessionStore(engine)
        session = await store.get_session("conv-auth")
        session.authenticated_user = AuthenticatedUser(id=7, name="Carla")
        await store.save_session(session)

        loaded = await store.get_session("conv-auth")
        assert loaded.authenticated_user == AuthenticatedUser(id=7, name="Carla")

    @pytest.mark.asyncio
    async def test_repeated_saves_are_idempotent(self, engine):
        store = SessionStore(engine)
        session = await store.get_session("conv-idem")
        session.append("user", "hi")
        await store.save_session(session)
        await store.save_session(session)

        loaded = await store.get_session("conv-idem")
        assert [m.content for m in loaded.history] == ["hi"]

    @pytest.mark.asyncio
    async def test_truncates_persisted_history_only(self, engine):
        store = SessionStore(engine, history_limit=5)
        session = await store.get_session("conv-long")
        for i in range(8):
            session.append("user", f"m{i}")
        await store.save_session(session)

        # the in-memory history the turn is still using is untouched
        assert len(session.history) == 8
        loaded = await store.get_session("conv-long")
        assert [m.content for m in loaded.history] == ["m3", "m4", "m5", "m6", "m7"]


class TestTruncate:
    @staticmethod
    def _store(limit: int) -> SessionStore:
        engine = MagicMock()
        engine.dialect.name = "sqlite"
        return SessionStore(engine, history_limit=limit)

    def test_keeps_most_recent(self):
        store = self._store(2)
        history = [Message(role="user", content=str(i)) for i in range(4)]
        kept = store.truncate(history)
        assert [m.content for m in kept] == ["2", "3"]
        assert len(history) == 4

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_keeps_nothing(self, limit):
        history = [Message(role="user", content="hi")]
        assert self._store(limit).truncate(history) == []
        assert len(history) == 1

    def test_under_limit_is_a_copy(self):
        store = self._store(10)
        history = [Message(role="assistant", content="x")]
        kept = store.truncate(history)
        assert kept == history
        assert kept is not history
