"""LLM completion client.

Wraps ``ChatAnthropic`` behind a plain text-in / text-out contract:
``complete(system, messages, temperature, max_tokens) -> str``.  Any
transport failure, timeout, non-success status, or empty completion is
raised as :class:`LLMProviderError` so the agent can treat the provider
step as a single catchable failure.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Sequence

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from src.config import ANTHROPIC_API_KEY, LLM_TIMEOUT_SECONDS, MODEL_NAME
from src.models import Message
from src.services.metrics import metrics

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """Raised when the completion provider fails to return usable text."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _build_chat_model() -> ChatAnthropic:
    """Build the Anthropic chat model (no tool bindings: plans come back as JSON text)."""
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.0,
        max_tokens=1024,
        timeout=LLM_TIMEOUT_SECONDS,
        max_retries=1,
    )


def to_chat_messages(system: str, messages: Sequence[Message]) -> list[BaseMessage]:
    converted: list[BaseMessage] = [SystemMessage(content=system)]
    for msg in messages:
        cls = HumanMessage if msg.role == "user" else AIMessage
        converted.append(cls(content=msg.content))
    return converted


def _text_of(response: BaseMessage) -> str:
    content = response.content
    if isinstance(content, str):
        return content
    # Anthropic may return a list of content blocks
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LLMClient:
    def __init__(self, chat_model: BaseChatModel | None = None, *, timeout: float | None = None):
        self._model = chat_model or _build_chat_model()
        self._timeout = timeout or LLM_TIMEOUT_SECONDS

    async def complete(
        self,
        system: str,
        messages: Sequence[Message],
        *,
        temperature: float = 0.0,
        max_tokens: int = 1024,
        operation: str = "plan",
    ) -> str:
        """Return the completion text for the conversation."""
        t0 = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._model.ainvoke(
                    to_chat_messages(system, messages),
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            metrics.record_failure("anthropic", operation, error_type="Timeout",
                                   latency_ms=(time.perf_counter() - t0) * 1000)
            raise LLMProviderError(f"LLM request timed out after {self._timeout:.0f}s") from exc
        except Exception as exc:
            metrics.record_failure("anthropic", operation, error_type=type(exc).__name__,
                                   latency_ms=(time.perf_counter() - t0) * 1000)
            raise LLMProviderError(
                f"LLM request failed: {exc}",
                status_code=getattr(exc, "status_code", None),
            ) from exc

        elapsed = (time.perf_counter() - t0) * 1000
        text = _text_of(response).strip()
        if not text:
            metrics.record_failure("anthropic", operation, error_type="EmptyContent", latency_ms=elapsed)
            raise LLMProviderError("LLM returned an empty completion")

        metrics.record_success("anthropic", operation, latency_ms=elapsed)
        logger.debug("LLM %s completed in %.0fms (%d chars)", operation, elapsed, len(text))
        return text
