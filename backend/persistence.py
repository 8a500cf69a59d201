"""Persistence manager: save one chat exchange atomically.

``save_exchange`` writes, in a single transaction on one pooled
connection:

    (new conversation + back-filled prior history)  or  (owned conversation)
    user message → assistant message → updated_at touch

then commits.  Any failure before the commit rolls everything back and
raises ``PersistenceFailure`` chained to the cause.  After the commit a
verification read is logged and the ``after_commit`` hooks run; neither can
undo the write.

psycopg2 is blocking, so the whole transaction runs on one worker thread
via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import query_db
from errors import IdentityRequired, PersistenceFailure
from hooks import Hooks
from settings import settings

logger = logging.getLogger(__name__)

_ELLIPSIS = "..."


@dataclass(frozen=True)
class ExchangeRecord:
    """What a committed exchange looked like; handed to after_commit hooks."""
    conversation_id: int
    user_id: int
    user_text: str
    assistant_text: str
    created: bool
    backfilled: int = 0


def derive_title(text: str, max_chars: int = settings.TITLE_MAX_CHARS) -> str:
    """First user message, cut to ``max_chars`` with a trailing ellipsis."""
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    return text[: max_chars - len(_ELLIPSIS)] + _ELLIPSIS


def _prior_turns(history: Optional[Iterable[Any]]) -> list[tuple[str, bool]]:
    turns = []
    for item in history or ():
        if isinstance(item, dict):
            content = item.get("content")
            is_user = item.get("is_user", item.get("isUser", False))
        else:
            content = getattr(item, "content", None)
            is_user = getattr(item, "is_user", False)
        if content:
            turns.append((str(content), bool(is_user)))
    return turns


def _save_exchange_sync(
    user_id: int,
    conversation_id_hint: Optional[int],
    user_text: str,
    assistant_text: str,
    prior_history: Optional[Iterable[Any]],
) -> ExchangeRecord:
    conn = None
    try:
        conn = query_db.get_connection()
        cur = conn.cursor()

        conversation_id = None
        if conversation_id_hint is not None:
            conversation_id = query_db.find_owned_conversation(cur, conversation_id_hint, user_id)
            if conversation_id is None:
                logger.warning(
                    f"Conversation {conversation_id_hint} not owned by user {user_id}, starting a new one"
                )

        created = conversation_id is None
        backfilled = 0
        if created:
            conversation_id = query_db.insert_conversation(cur, user_id, derive_title(user_text))
            for content, is_user in _prior_turns(prior_history):
                query_db.insert_message(cur, conversation_id, content, is_user, is_rich_text=False)
                backfilled += 1

        query_db.insert_message(cur, conversation_id, user_text, True, is_rich_text=False)
        query_db.insert_message(cur, conversation_id, assistant_text, False, is_rich_text=True)
        query_db.touch_conversation(cur, conversation_id)

        conn.commit()
        cur.close()
    except Exception as e:
        if conn is not None:
            try:
                conn.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
        logger.error(f"Exchange save rolled back for user {user_id}: {e}")
        raise PersistenceFailure(str(e)) from e
    finally:
        query_db.put_connection(conn)

    logger.info(
        f"Exchange committed: conversation={conversation_id} created={created} backfilled={backfilled}"
    )
    return ExchangeRecord(
        conversation_id=conversation_id,
        user_id=user_id,
        user_text=user_text,
        assistant_text=assistant_text,
        created=created,
        backfilled=backfilled,
    )


def _verify(record: ExchangeRecord) -> None:
    """Read the write back.  Logged only; never raises."""
    try:
        conv = query_db.get_conversation(record.conversation_id)
        count = query_db.count_messages(record.conversation_id)
        if conv is None:
            logger.warning(f"Verification: conversation {record.conversation_id} not readable")
        else:
            logger.info(
                f"Verification: conversation {record.conversation_id} "
                f"'{conv.get('title')}' has {count} messages"
            )
    except Exception as e:
        logger.warning(f"Verification read failed for conversation {record.conversation_id}: {e}")


async def save_exchange(
    identity: Optional[int],
    conversation_id_hint: Optional[int],
    user_text: str,
    assistant_text: str,
    prior_history: Optional[Iterable[Any]] = None,
) -> int:
    """Persist one user/assistant exchange; returns the conversation id.

    Raises ``IdentityRequired`` for anonymous callers and
    ``PersistenceFailure`` when the transaction was rolled back.
    """
    if identity is None:
        raise IdentityRequired("Saving a conversation requires a user identity")

    history = list(prior_history or ())
    record = await asyncio.to_thread(
        _save_exchange_sync, identity, conversation_id_hint, user_text, assistant_text, history,
    )

    await asyncio.to_thread(_verify, record)
    Hooks.run_after_commit(record)
    return record.conversation_id
