"""Fallback responder: canned answers when no provider is usable.

Pure keyword matching, no network.  Always returns a non-empty string.
"""

from __future__ import annotations

import re

from .prompts import FALLBACK_DEFAULT, FALLBACK_RESPONSES

_RULES = [
    (re.compile(rf"\b(?:{'|'.join(keywords)})\b", re.IGNORECASE), reply)
    for keywords, reply in FALLBACK_RESPONSES
]


def get_fallback_response(message: str | None) -> str:
    """First rule whose keyword appears as a whole word wins."""
    text = message or ""
    for pattern, reply in _RULES:
        if pattern.search(text):
            return reply
    return FALLBACK_DEFAULT
