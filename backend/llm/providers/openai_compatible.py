"""OpenAI-compatible providers (SambaNova Cloud, DeepSeek).

Both vendors speak the OpenAI Chat Completions protocol, so one client class
serves both; the subclasses only pin the endpoint and default model.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from .base import LLMProvider

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(LLMProvider):
    """Chat Completions over ``openai.AsyncOpenAI`` with a custom base URL."""

    PROVIDER_NAME = ""
    DEFAULT_MODEL = ""
    DEFAULT_BASE_URL = ""

    def __init__(self, api_key: str, model: str = "", base_url: str = "", timeout: float = 60.0):
        from openai import AsyncOpenAI  # type: ignore[import-untyped]

        self._base_url = base_url or self.DEFAULT_BASE_URL
        # Failover is the router's job; no hidden SDK retries.
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=self._base_url,
            timeout=timeout,
            max_retries=0,
        )
        self._model = model or self.DEFAULT_MODEL
        logger.info(f"{self.name} provider ready (model={self._model}, base_url={self._base_url})")

    @property
    def name(self) -> str:
        return self.PROVIDER_NAME

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: list[dict],
        *,
        temperature: float = 1.0,
        max_tokens: int = 4000,
    ) -> str:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return (response.choices[0].message.content or "").strip()

    async def stream_text_deltas(
        self,
        messages: list[dict],
        *,
        temperature: float = 1.0,
        max_tokens: int = 4000,
    ) -> AsyncIterator[str]:
        stream = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            stream=True,
        )
        return self._deltas(stream)

    @staticmethod
    async def _deltas(stream) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta and delta.content:
                    yield delta.content
        finally:
            # Releases the HTTP response when the consumer stops early.
            await stream.close()


class SambaNovaProvider(OpenAICompatibleProvider):
    """SambaNova Cloud: primary provider."""

    PROVIDER_NAME = "sambanova"
    DEFAULT_MODEL = "DeepSeek-V3-0324"
    DEFAULT_BASE_URL = "https://api.sambanova.ai/v1"


class DeepSeekProvider(OpenAICompatibleProvider):
    """DeepSeek platform API: secondary provider."""

    PROVIDER_NAME = "deepseek"
    DEFAULT_MODEL = "deepseek-chat"
    DEFAULT_BASE_URL = "https://api.deepseek.com"
