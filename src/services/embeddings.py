"""Async HTTP client for an Ollama-compatible embedding endpoint.

Ollama has shipped several response shapes over time, so a request is
attempted in three variants, in order:

  1. ``POST /api/embed``      with ``input: "<text>"``   → ``{"embeddings": [[...]]}``
  2. ``POST /api/embed``      with ``input: ["<text>"]`` → ``{"embeddings": [[...]]}``
  3. ``POST /api/embeddings`` with ``prompt: "<text>"``  → ``{"embedding": [...]}``

The first variant that yields a numeric vector wins.  Network errors and
timeouts are not retried across variants; they surface immediately as
:class:`EmbeddingError`.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from src.config import EMBEDDING_MODEL, EMBEDDING_TIMEOUT_SECONDS, OLLAMA_BASE_URL
from src.services.metrics import metrics

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when no embedding could be obtained for a text."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _is_vector(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and isinstance(value[0], (int, float))


def _vector_from(data: Any) -> list[float] | None:
    """Extract a vector from either the batch or the legacy response shape."""
    if not isinstance(data, dict):
        return None
    batch = data.get("embeddings")
    if isinstance(batch, list) and batch and _is_vector(batch[0]):
        return [float(v) for v in batch[0]]
    single = data.get("embedding")
    if _is_vector(single):
        return [float(v) for v in single]
    return None


class EmbeddingClient:
    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._model = model or EMBEDDING_MODEL
        self._client = httpx.AsyncClient(
            base_url=(base_url or OLLAMA_BASE_URL).rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=timeout or EMBEDDING_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.post(path, json=payload)
        except httpx.TimeoutException as exc:
            raise EmbeddingError(f"Embedding request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request to {path} failed: {exc}") from exc

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*."""
        attempts = [
            ("/api/embed", {"model": self._model, "input": text}),
            ("/api/embed", {"model": self._model, "input": [text]}),
            ("/api/embeddings", {"model": self._model, "prompt": text}),
        ]
        t0 = time.perf_counter()
        response: httpx.Response | None = None
        try:
            for path, payload in attempts:
                response = await self._post(path, payload)
                if response.is_success:
                    try:
                        vector = _vector_from(response.json())
                    except ValueError:
                        vector = None
                    if vector:
                        elapsed = (time.perf_counter() - t0) * 1000
                        metrics.record_success("ollama", "embed", latency_ms=elapsed)
                        return vector
                logger.debug(
                    "Embedding variant %s %s gave no vector (status %d)",
                    path, list(payload)[1], response.status_code,
                )
        except EmbeddingError as exc:
            metrics.record_failure(
                "ollama", "embed",
                error_type=type(exc.__cause__ or exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise

        status = response.status_code if response is not None else None
        body = response.text[:200] if response is not None else ""
        metrics.record_failure("ollama", "embed", error_type="EmptyEmbedding")
        raise EmbeddingError(
            f"No embedding returned. Last response: {status} {body}",
            status_code=status,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
