"""Async OpenAI client: chat relay, single-shot completions, embeddings."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import openai

from src.config import settings
from src.errors import ConfigurationError, RateLimitedError, UpstreamAuthError, UpstreamError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

_client: openai.AsyncOpenAI | None = None


@dataclass
class ChatCompletion:
    """What the relay hands back to the browser."""

    response: str
    tokens: int
    model: str

    def to_dict(self) -> dict[str, Any]:
        return {"response": self.response, "tokens": self.tokens, "model": self.model}


def require_api_key() -> str:
    """Return the configured key or fail before any network call."""
    if not settings.openai_api_key:
        logger.error("OPENAI_API_KEY environment variable is missing")
        raise ConfigurationError()
    return settings.openai_api_key


def _get_client() -> openai.AsyncOpenAI:
    """Return a lazily-initialised AsyncOpenAI singleton."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = openai.AsyncOpenAI(
            api_key=require_api_key(),
            timeout=settings.chat_timeout_seconds,
        )
        logger.info("OpenAI client ready (key %s)", settings.masked_api_key())
    return _client


def _reset_client() -> None:
    """Drop the cached client (for testing / key rotation)."""
    global _client  # noqa: PLW0603
    _client = None


def translate_error(exc: Exception) -> UpstreamError | UpstreamAuthError | RateLimitedError:
    """Map an upstream exception onto the relay's error taxonomy."""
    if isinstance(exc, openai.AuthenticationError):
        return UpstreamAuthError()
    if isinstance(exc, openai.RateLimitError):
        return RateLimitedError()
    status = getattr(exc, "status_code", None)
    if status == 401:
        return UpstreamAuthError()
    if status == 429:
        return RateLimitedError()
    return UpstreamError(str(exc))


@asynccontextmanager
async def upstream_call(operation: str) -> AsyncIterator[None]:
    """Run an upstream request, re-raising failures as relay errors."""
    try:
        yield
    except (UpstreamError, UpstreamAuthError, RateLimitedError):
        raise
    except Exception as exc:
        logger.exception("%s failed", operation)
        raise translate_error(exc) from exc


async def complete_chat(
    messages: list[dict[str, Any]],
    system_prompt: str | None = None,
) -> ChatCompletion:
    """Forward a conversation to the completions endpoint.

    The caller's list is never mutated; a non-empty *system_prompt* is
    prepended as a ``system`` turn on a copy.
    """
    require_api_key()
    all_messages = list(messages)
    if system_prompt:
        all_messages = [{"role": "system", "content": system_prompt}, *all_messages]

    logger.info("Processing chat request with %d messages", len(all_messages))
    client = _get_client()
    async with upstream_call("Chat completion"):
        completion = await client.chat.completions.create(
            model=settings.chat_model,
            messages=all_messages,
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
            presence_penalty=settings.chat_presence_penalty,
            frequency_penalty=settings.chat_frequency_penalty,
            timeout=settings.chat_timeout_seconds,
        )

    text = completion.choices[0].message.content or ""
    tokens = completion.usage.total_tokens if completion.usage else 0
    logger.info("Chat response generated (%d tokens)", tokens)
    return ChatCompletion(response=text, tokens=tokens, model=completion.model)


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | None = None,
    model: str | None = None,
    temperature: float = 0.3,
) -> str:
    """Single-shot call for internal tasks (extraction, plan steps).

    No persona, no memory, no sampling penalties.
    """
    require_api_key()
    all_messages = list(messages)
    if system is not None:
        all_messages = [{"role": "system", "content": system}, *all_messages]
    client = _get_client()
    async with upstream_call("Completion"):
        completion = await client.chat.completions.create(
            model=model or settings.extraction_model,
            messages=all_messages,
            temperature=temperature,
        )
    return completion.choices[0].message.content or ""


async def embed_text(text: str) -> list[float]:
    """Return the embedding vector for *text*."""
    require_api_key()
    client = _get_client()
    async with upstream_call("Embedding"):
        result = await client.embeddings.create(model=settings.embedding_model, input=text)
    return list(result.data[0].embedding)
