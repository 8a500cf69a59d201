"""Extension hooks: customize pipeline behavior without touching core.

Register hooks using decorators:

    from hooks import Hooks

    @Hooks.after_generation
    def sign_off(response, message):
        return response + "\\n\\nGuidia AI"

    @Hooks.after_commit
    def notify(record):
        print(f"Saved conversation {record.conversation_id}")

``after_generation`` hooks run in registration order on every complete
answer.  For a streamed answer they run once the last delta is out; text a
hook appends is sent as one more delta, and the hooked text is what gets
saved.  Return the (possibly modified) text to pass it to the next hook;
return None to keep the original.

``after_commit`` hooks run once an exchange is durably committed, outside
the transaction.  A failing hook is logged and skipped; it can never undo
the write or stop the hooks after it.

Load your hooks file at startup (e.g. import user_hooks in main.py).
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Hooks:
    """Registry for pipeline extension points."""

    _after_generation: list[Callable] = []
    _after_commit: list[Callable] = []

    # ── Decorators ────────────────────────────────────────────────

    @classmethod
    def after_generation(cls, fn: Callable) -> Callable:
        """Called with (response_text, user_message) after a full answer.

        Signature: fn(response: str, message: str) -> str
        """
        cls._after_generation.append(fn)
        return fn

    @classmethod
    def after_commit(cls, fn: Callable) -> Callable:
        """Called with the ExchangeRecord of a committed exchange.

        Signature: fn(record) -> None
        """
        cls._after_commit.append(fn)
        return fn

    # ── Runners ───────────────────────────────────────────────────

    @classmethod
    def run_after_generation(cls, response: str, message: str) -> str:
        for fn in cls._after_generation:
            try:
                result = fn(response, message)
            except Exception as e:
                logger.error(f"after_generation hook {getattr(fn, '__name__', fn)} failed: {e}")
                continue
            if result is not None:
                response = result
        return response

    @classmethod
    def run_after_commit(cls, record: Any) -> None:
        for fn in cls._after_commit:
            try:
                fn(record)
            except Exception as e:
                logger.error(f"after_commit hook {getattr(fn, '__name__', fn)} failed: {e}")

    # ── Utilities ─────────────────────────────────────────────────

    @classmethod
    def clear(cls) -> None:
        """Remove all registered hooks (useful for testing)."""
        cls._after_generation.clear()
        cls._after_commit.clear()
