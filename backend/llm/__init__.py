"""LLM package: re-exports for convenience.

For new code, import from submodules directly::

    from llm.router import CompletionRouter, ProviderConfig
    from llm.fallback import get_fallback_response
"""

from .fallback import get_fallback_response
from .router import CompletionRouter, ProviderConfig, build_messages

__all__ = [
    "CompletionRouter",
    "ProviderConfig",
    "build_messages",
    "get_fallback_response",
]
