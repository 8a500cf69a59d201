"""LLM provider base class.

Every provider implements two coroutines:
  - complete(messages, ...) -> str                 (returns response text)
  - stream_text_deltas(messages, ...) -> AsyncIterator[str]

``stream_text_deltas`` opens the stream before returning, so connection and
authentication errors surface at the ``await`` (where the router can fail
over).  Errors raised while iterating belong to the streaming relay.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator


class LLMProvider(ABC):
    """Abstract base for completion providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'sambanova', 'deepseek')."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict],
        *,
        temperature: float = 1.0,
        max_tokens: int = 4000,
    ) -> str:
        """Send messages and return the full response text."""
        ...

    @abstractmethod
    async def stream_text_deltas(
        self,
        messages: list[dict],
        *,
        temperature: float = 1.0,
        max_tokens: int = 4000,
    ) -> AsyncIterator[str]:
        """Open a streaming request and return an iterator of text deltas."""
        ...
