"""Provider router: pick a provider, fail over once, fall back last.

One ``CompletionRouter`` is built per request from a ``ProviderConfig``
snapshot, so a caller's ``set_provider`` never leaks into other requests.

Resolution for a call:
  1. the per-call hint when that provider is credentialed,
  2. else the router default (``set_provider`` or ``LLM_PROVIDER``),
  3. substituting the other provider when the target has no key.
Neither provider credentialed → canned fallback, no network.

Failure of the chosen provider triggers exactly one retry on the alternate
(when it is credentialed); failure of that, too, returns the fallback.
``complete`` never raises for a well-formed request.

Usage:
    router = CompletionRouter(ProviderConfig.from_settings())
    router.set_provider("deepseek")
    text = await router.complete("Hi", history, grounding_text=grounding)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Union

from errors import ProviderUnavailable
from settings import Settings, settings

from .fallback import get_fallback_response
from .prompts import GROUNDING_FRAME, SYSTEM_PROMPT
from .providers import LLMProvider, ProviderName, ProviderSettings, build_provider

logger = logging.getLogger(__name__)

CompletionResult = Union[str, AsyncIterator[str]]


# ═══════════════════════════════════════════════════════════════════════════
#  CONFIGURATION (request scoped)
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProviderConfig:
    """Immutable snapshot of both providers' settings plus the default."""

    providers: Mapping[ProviderName, ProviderSettings] = field(default_factory=dict)
    default: ProviderName = ProviderName.SAMBANOVA

    @classmethod
    def from_settings(cls, s: Settings = settings) -> "ProviderConfig":
        providers = {
            ProviderName.SAMBANOVA: ProviderSettings(
                api_key=s.SAMBANOVA_API_KEY,
                model=s.SAMBANOVA_MODEL,
                base_url=s.SAMBANOVA_BASE_URL,
                max_tokens=s.SAMBANOVA_MAX_TOKENS,
                temperature=s.SAMBANOVA_TEMPERATURE,
                timeout=s.LLM_TIMEOUT_SECONDS,
            ),
            ProviderName.DEEPSEEK: ProviderSettings(
                api_key=s.DEEPSEEK_API_KEY,
                model=s.DEEPSEEK_MODEL,
                base_url=s.DEEPSEEK_BASE_URL,
                max_tokens=s.DEEPSEEK_MAX_TOKENS,
                temperature=s.DEEPSEEK_TEMPERATURE,
                timeout=s.LLM_TIMEOUT_SECONDS,
            ),
        }
        default = ProviderName.parse(s.LLM_PROVIDER)
        if default is None:
            if s.LLM_PROVIDER:
                logger.warning(f"Unknown LLM_PROVIDER '{s.LLM_PROVIDER}', picking automatically")
            default = _auto_default(providers)
        return cls(providers=providers, default=default)

    def settings_for(self, name: ProviderName) -> ProviderSettings:
        return self.providers.get(name) or ProviderSettings()

    def credentialed(self, name: ProviderName) -> bool:
        return self.settings_for(name).credentialed


def _auto_default(providers: Mapping[ProviderName, ProviderSettings]) -> ProviderName:
    for name in (ProviderName.SAMBANOVA, ProviderName.DEEPSEEK):
        spec = providers.get(name)
        if spec is not None and spec.credentialed:
            return name
    return ProviderName.SAMBANOVA


# ═══════════════════════════════════════════════════════════════════════════
#  MESSAGE ASSEMBLY
# ═══════════════════════════════════════════════════════════════════════════

def system_prompt(grounding_text: Optional[str] = None) -> str:
    """Persona prompt, with the grounding block appended when present."""
    if not grounding_text or not grounding_text.strip():
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT}\n\n{GROUNDING_FRAME.format(context=grounding_text)}"


def _history_item(item: Any) -> tuple[str, bool]:
    if isinstance(item, Mapping):
        is_user = item.get("is_user", item.get("isUser", False))
        return str(item.get("content") or ""), bool(is_user)
    return str(getattr(item, "content", "") or ""), bool(getattr(item, "is_user", False))


def build_messages(
    message: str,
    history: Optional[Iterable[Any]] = None,
    grounding_text: Optional[str] = None,
) -> list[dict]:
    """system + prior turns (user/assistant) + the new user message."""
    messages = [{"role": "system", "content": system_prompt(grounding_text)}]
    for item in history or ():
        content, is_user = _history_item(item)
        if not content:
            continue
        messages.append({"role": "user" if is_user else "assistant", "content": content})
    messages.append({"role": "user", "content": message})
    return messages


# ═══════════════════════════════════════════════════════════════════════════
#  ROUTER
# ═══════════════════════════════════════════════════════════════════════════

class CompletionRouter:
    """Routes one request's completion call across the two providers."""

    def __init__(self, config: Optional[ProviderConfig] = None):
        self.config = config or ProviderConfig.from_settings()
        self._default = self.config.default
        self._clients: dict[ProviderName, LLMProvider] = {}

    @property
    def default(self) -> ProviderName:
        return self._default

    def set_provider(self, name: Union[str, ProviderName, None]) -> bool:
        """Change this router's default provider.  Unknown names are ignored."""
        parsed = name if isinstance(name, ProviderName) else ProviderName.parse(name)
        if parsed is None:
            logger.warning(f"Ignoring unknown provider '{name}'")
            return False
        self._default = parsed
        logger.info(f"Provider set to {parsed.value}")
        return True

    def resolve(self, provider_hint: Union[str, ProviderName, None] = None) -> Optional[ProviderName]:
        """Provider to call, or None when neither has credentials."""
        hint = (provider_hint if isinstance(provider_hint, ProviderName)
                else ProviderName.parse(provider_hint))
        if hint is not None and self.config.credentialed(hint):
            return hint

        target = self._default
        if self.config.credentialed(target):
            return target
        if self.config.credentialed(target.alternate):
            logger.info(f"{target.value} has no API key, substituting {target.alternate.value}")
            return target.alternate
        return None

    def _client(self, name: ProviderName) -> LLMProvider:
        if name not in self._clients:
            self._clients[name] = build_provider(name, self.config.settings_for(name))
        return self._clients[name]

    async def _invoke(self, name: ProviderName, messages: list[dict], streaming: bool) -> CompletionResult:
        spec = self.config.settings_for(name)
        try:
            client = self._client(name)
            if streaming:
                return await client.stream_text_deltas(
                    messages, temperature=spec.temperature, max_tokens=spec.max_tokens,
                )
            return await client.complete(
                messages, temperature=spec.temperature, max_tokens=spec.max_tokens,
            )
        except Exception as e:
            raise ProviderUnavailable(f"{name.value}: {e}") from e

    async def complete(
        self,
        message: str,
        history: Optional[Iterable[Any]] = None,
        streaming: bool = False,
        provider_hint: Union[str, ProviderName, None] = None,
        grounding_text: Optional[str] = None,
        *,
        _is_retry: bool = False,
    ) -> CompletionResult:
        """Text (or a delta iterator when ``streaming``) for ``message``."""
        target = self.resolve(provider_hint)
        if target is None:
            logger.warning("No LLM provider has credentials, using fallback responder")
            return get_fallback_response(message)

        history = list(history or ())
        messages = build_messages(message, history, grounding_text)
        logger.info(
            f"Completion via {target.value} (streaming={streaming}, "
            f"history={len(history)}, grounded={bool(grounding_text)}, retry={_is_retry})"
        )

        try:
            return await self._invoke(target, messages, streaming)
        except ProviderUnavailable as e:
            alternate = target.alternate
            if not _is_retry and self.config.credentialed(alternate):
                logger.warning(f"Provider call failed ({e}), retrying on {alternate.value}")
                return await self.complete(
                    message,
                    history,
                    streaming=streaming,
                    provider_hint=alternate,
                    grounding_text=grounding_text,
                    _is_retry=True,
                )
            logger.error(f"Provider call failed ({e}), using fallback responder")
            return get_fallback_response(message)
