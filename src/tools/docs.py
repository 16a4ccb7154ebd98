"""Semantic search over the ingested documentation."""

from __future__ import annotations

import logging
from typing import Any

from src.config import DOC_MIN_SIMILARITY, DOC_SEARCH_LIMIT
from src.services.crm_store import CrmStore
from src.services.embeddings import EmbeddingClient
from src.tools.base import ToolContext, ToolResult
from src.tools.validation import SearchDocsInput

logger = logging.getLogger(__name__)


class DocumentSearch:
    """One embedding request + one ranked retrieval per question.

    The retrieval layer returns the nearest chunks regardless of score;
    chunks below ``min_similarity`` are dropped here.
    """

    def __init__(
        self,
        store: CrmStore,
        embedder: EmbeddingClient,
        *,
        limit: int = DOC_SEARCH_LIMIT,
        min_similarity: float = DOC_MIN_SIMILARITY,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._limit = limit
        self._min_similarity = min_similarity

    async def search(self, question: str) -> list[dict[str, Any]]:
        vector = await self._embedder.embed(question)
        rows = await self._store.nearest_chunks(vector, self._limit)
        results = []
        for row in rows:
            similarity = round(float(row["similarity"]), 3)
            if similarity < self._min_similarity:
                continue
            results.append({
                "id": int(row["id"]),
                "path": row["path"],
                "content": row["content"],
                "similarity": similarity,
            })
        logger.debug(
            "Doc search kept %d/%d chunks for %r", len(results), len(rows), question[:80],
        )
        return results

    async def search_docs(self, params: SearchDocsInput, ctx: ToolContext) -> ToolResult:
        results = await self.search(params.question)
        return {
            "success": True,
            "question": params.question,
            "results": results,
            "message": f"Found {len(results)} relevant fragment{'' if len(results) == 1 else 's'}.",
        }
