"""Composition root: build every shared resource exactly once.

Both the FastAPI lifespan and the CLI call :func:`build_agent`; nothing
else in the project opens connection pools or HTTP clients.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from src.agent import Agent, create_agent
from src.config import DATABASE_URL, HISTORY_LIMIT
from src.services.crm_store import CrmStore
from src.services.database import create_engine, create_schema
from src.services.embeddings import EmbeddingClient
from src.services.llm_client import LLMClient
from src.services.session_store import SessionStore
from src.tools.registry import build_tool_registry

logger = logging.getLogger(__name__)


@dataclass
class AgentRuntime:
    agent: Agent
    engine: AsyncEngine
    embedder: EmbeddingClient

    async def aclose(self) -> None:
        await self.embedder.aclose()
        await self.engine.dispose()
        logger.info("Agent resources released")


async def build_agent(database_url: str | None = None, *, ensure_schema: bool = True) -> AgentRuntime:
    engine = create_engine(database_url or DATABASE_URL)
    if ensure_schema:
        await create_schema(engine)

    store = CrmStore(engine)
    embedder = EmbeddingClient()
    tools = build_tool_registry(store, embedder)
    agent = create_agent(SessionStore(engine, HISTORY_LIMIT), tools, LLMClient())
    return AgentRuntime(agent=agent, engine=engine, embedder=embedder)
