"""Caller identity seam.

Token verification happens upstream.  An auth middleware that has verified
the caller sets ``request.state.user_id``.  Deployments behind a gateway that
authenticates and then forwards the id in the ``X-User-ID`` header can opt in
with ``TRUST_USER_ID_HEADER``; otherwise the header is ignored, since any
client can send it.  Anything else is anonymous.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from settings import settings

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-ID"


def _positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number if number > 0 else None


def resolve_identity(request) -> Optional[int]:
    """User id for ``request``, or None for an anonymous caller."""
    state_id = _positive_int(getattr(request.state, "user_id", None))
    if state_id is not None:
        return state_id

    raw = request.headers.get(USER_ID_HEADER)
    if raw is None:
        return None
    if not settings.TRUST_USER_ID_HEADER:
        logger.debug(f"Ignoring {USER_ID_HEADER} header: TRUST_USER_ID_HEADER is off")
        return None

    header_id = _positive_int(raw)
    if header_id is None:
        logger.warning(f"Ignoring malformed {USER_ID_HEADER} header")
    return header_id
