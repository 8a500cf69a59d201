"""Provider registry.

Exactly two interchangeable providers exist, named by ``ProviderName``.
``build_provider`` instantiates one from its ``ProviderSettings``; the
``openai`` SDK is imported lazily inside the provider constructor.

Usage:
    from llm.providers import ProviderName, ProviderSettings, build_provider
    p = build_provider(ProviderName.DEEPSEEK, ProviderSettings(api_key="..."))
    text = await p.complete(messages)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .base import LLMProvider

logger = logging.getLogger(__name__)


class ProviderName(str, Enum):
    SAMBANOVA = "sambanova"   # primary
    DEEPSEEK = "deepseek"     # secondary

    @property
    def alternate(self) -> "ProviderName":
        return ProviderName.DEEPSEEK if self is ProviderName.SAMBANOVA else ProviderName.SAMBANOVA

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ProviderName"]:
        """Map a user/config string to a provider; None when unrecognized."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class ProviderSettings:
    """Credentials and call parameters for one provider."""
    api_key: str = ""
    model: str = ""
    base_url: str = ""
    max_tokens: int = 4000
    temperature: float = 1.0
    timeout: float = 60.0

    @property
    def credentialed(self) -> bool:
        return bool(self.api_key)


def build_provider(name: ProviderName, spec: ProviderSettings) -> LLMProvider:
    """Instantiate the provider ``name`` configured by ``spec``."""
    from .openai_compatible import DeepSeekProvider, SambaNovaProvider

    cls = SambaNovaProvider if name is ProviderName.SAMBANOVA else DeepSeekProvider
    return cls(
        api_key=spec.api_key,
        model=spec.model,
        base_url=spec.base_url,
        timeout=spec.timeout,
    )


__all__ = ["LLMProvider", "ProviderName", "ProviderSettings", "build_provider"]
