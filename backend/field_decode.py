"""Decode list-valued profile fields stored in inconsistent shapes.

Career pathways and counselor specializations reach us as one of:

    Array       ["Banking", "Finance"]         (JSON column, already parsed)
    JsonString  '["Banking", "Finance"]'
    CsvString   'Banking, Finance'
    Scalar      anything else (number, bare word, bytes …)

``decode_list_field`` is total: it never raises and, for any input that
carries at least one non-blank value, returns at least one element.
Empty containers (``[]``, ``"[]"``, ``""``) decode to an empty list, and so do
containers whose items are all blank (``["", " "]``, ``'[""]'``): a blank
pathway would otherwise become a match-everything job filter.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def _as_text_list(items: Any) -> list[str]:
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def _decode_json(raw: str) -> list[str] | None:
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return None
    if isinstance(parsed, list):
        return _as_text_list(parsed)
    if isinstance(parsed, dict):
        # Some rows store {"0": "Banking", "1": "Finance"}
        return _as_text_list(parsed.values())
    if isinstance(parsed, str):
        return _decode_csv(parsed)
    return [str(parsed)]


def _decode_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def decode_list_field(raw: Any) -> list[str]:
    """Return *raw* as a list of strings, trying each shape in turn.

    Order: already a list → JSON → comma-separated → single element.
    ``None``, blank strings and all-blank arrays decode to an empty list.
    """
    if raw is None:
        return []
    try:
        if isinstance(raw, (list, tuple)):
            return _as_text_list(raw)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return []
            if text[0] in "[{\"":
                items = _decode_json(text)
                if items is not None:
                    return items
            items = _decode_csv(text)
            if items:
                return items
            return [text]
        return [str(raw)]
    except Exception as e:
        logger.warning(f"Could not decode list field ({type(raw).__name__}): {e}")
        try:
            return [str(raw)]
        except Exception:
            return [repr(raw)]
