"""PostgreSQL persistence layer.

Tables owned by the chat pipeline:
  - ai_chat_conversations : one row per conversation, owned by a user
  - ai_chat_messages      : ordered messages of a conversation

Tables read for grounding (owned by the wider platform, never written here):
  users, students, counselors, companies, jobs, events, news, meetings,
  job_applications

Connection pooling via a psycopg2 ThreadedConnectionPool that blocks when
exhausted; it is created once by init_db() and shared by every request.
DATABASE_URL env var takes priority over individual POSTGRES_* vars.

Error policy
------------
Grounding reads (``get_user`` … ``get_job_applications``) let exceptions
propagate; the context aggregator isolates each one.  Conversation CRUD used
by the history endpoints logs and returns an empty value instead.  The
cursor-level helpers (``find_owned_conversation`` … ``touch_conversation``)
run inside a caller-owned transaction and never commit.
"""
import logging
import threading
from urllib.parse import urlparse

import psycopg2
from psycopg2 import pool

from settings import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Connection config: DATABASE_URL takes priority, falls back to settings.
# ---------------------------------------------------------------------------
if settings.DATABASE_URL:
    _p = urlparse(settings.DATABASE_URL)
    DB_CONFIG = {
        "host": _p.hostname or "localhost",
        "port": _p.port or 5432,
        "database": (_p.path or "/guidia").lstrip("/"),
        "user": _p.username or "root",
        "password": _p.password or "password",
    }
else:
    DB_CONFIG = {
        "host": settings.POSTGRES_HOST,
        "port": settings.POSTGRES_PORT,
        "database": settings.POSTGRES_DB,
        "user": settings.POSTGRES_USER,
        "password": settings.POSTGRES_PASSWORD,
    }


class BlockingConnectionPool(pool.ThreadedConnectionPool):
    """ThreadedConnectionPool that waits for a free connection.

    psycopg2's pools raise PoolError the moment ``maxconn`` connections are
    checked out.  Grounding fans out several reads per request, so under
    concurrent load callers queue on a semaphore instead, for up to
    ``timeout`` seconds.
    """

    def __init__(self, minconn, maxconn, *args, timeout=None, **kwargs):
        super().__init__(minconn, maxconn, *args, **kwargs)
        self._slots = threading.BoundedSemaphore(maxconn)
        self._timeout = timeout

    def getconn(self, key=None):
        if not self._slots.acquire(timeout=self._timeout):
            raise pool.PoolError(f"no free connection after {self._timeout}s")
        try:
            return super().getconn(key)
        except Exception:
            self._slots.release()
            raise

    def putconn(self, conn=None, key=None, close=False):
        super().putconn(conn, key, close)
        self._slots.release()


_pool: BlockingConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> BlockingConnectionPool:
    global _pool
    with _pool_lock:
        if _pool is None or _pool.closed:
            _pool = BlockingConnectionPool(
                settings.DB_POOL_MIN,
                settings.DB_POOL_MAX,
                timeout=settings.DB_POOL_TIMEOUT_SECONDS,
                **DB_CONFIG,
            )
        return _pool


def get_connection():
    """Get a pooled connection. Caller must call put_connection() when done."""
    return _get_pool().getconn()


def put_connection(conn):
    """Return a connection to the pool, rolling back any dirty transaction first."""
    if conn is None:
        return
    try:
        # A failed statement leaves psycopg2 in an aborted-transaction state.
        if conn.status != 1:  # 1 = STATUS_READY (idle, no open transaction)
            conn.rollback()
    except Exception as e:
        logger.warning(f"Rollback on release failed: {e}")
    try:
        _get_pool().putconn(conn)
    except Exception as e:
        logger.warning(f"Could not return connection to pool: {e}")


def close_pool() -> None:
    global _pool
    with _pool_lock:
        if _pool is not None and not _pool.closed:
            _pool.closeall()
            logger.info("Database pool closed")
        _pool = None


def _iso(value):
    return value.isoformat() if value is not None else None


def _fetch_dicts(sql: str, params) -> list[dict]:
    """Run a read query on a pooled connection and return rows as dicts."""
    conn = get_connection()
    try:
        cur = conn.cursor()
        cur.execute(sql, params)
        columns = [c[0] for c in cur.description]
        rows = [dict(zip(columns, r)) for r in cur.fetchall()]
        cur.close()
        conn.commit()
        return rows
    finally:
        put_connection(conn)


def _fetch_one(sql: str, params) -> dict | None:
    rows = _fetch_dicts(sql, params)
    return rows[0] if rows else None


# ═══════════════════════════════════════════════════════════════════
#  SCHEMA
# ═══════════════════════════════════════════════════════════════════

def init_db() -> bool:
    """Create the chat tables if missing.  Returns False when the DB is unreachable."""
    conn = None
    try:
        conn = psycopg2.connect(**DB_CONFIG)
        conn.autocommit = True
        cur = conn.cursor()

        cur.execute("""
            CREATE TABLE IF NOT EXISTS ai_chat_conversations (
                id              SERIAL PRIMARY KEY,
                user_id         INTEGER NOT NULL,
                title           VARCHAR(255),
                created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                is_archived     BOOLEAN DEFAULT FALSE
            );
        """)
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_ai_chat_conversations_user "
            "ON ai_chat_conversations(user_id, updated_at DESC);"
        )

        # clock_timestamp() (not CURRENT_TIMESTAMP) so rows written in one
        # transaction still get strictly increasing timestamps.
        cur.execute("""
            CREATE TABLE IF NOT EXISTS ai_chat_messages (
                id               SERIAL PRIMARY KEY,
                conversation_id  INTEGER NOT NULL
                                 REFERENCES ai_chat_conversations(id) ON DELETE CASCADE,
                content          TEXT NOT NULL,
                is_user_message  BOOLEAN NOT NULL,
                is_rich_text     BOOLEAN DEFAULT FALSE,
                timestamp        TIMESTAMP DEFAULT clock_timestamp()
            );
        """)
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_ai_chat_messages_conversation "
            "ON ai_chat_messages(conversation_id, timestamp);"
        )
        cur.close()
        logger.info("Database initialized – chat history tables ready")
        _get_pool()
        return True
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        return False
    finally:
        if conn is not None:
            conn.close()


# ═══════════════════════════════════════════════════════════════════
#  IDENTITY & PROFILES  (grounding reads)
# ═══════════════════════════════════════════════════════════════════

ROLE_NAMES = {1: "Admin", 2: "Student", 3: "Counselor", 4: "Company"}


def get_user(user_id: int) -> dict | None:
    row = _fetch_one(
        "SELECT user_id, username, email, role_id FROM users WHERE user_id = %s;",
        (user_id,),
    )
    if row is None:
        return None
    row["role"] = ROLE_NAMES.get(row["role_id"], "Unknown")
    return row


def get_student_profile(user_id: int) -> dict | None:
    return _fetch_one("""
        SELECT student_id, student_name, student_title, student_email,
               student_description, student_category, student_level,
               student_career_pathways
        FROM students
        WHERE user_id = %s;
    """, (user_id,))


def get_counselor_profile(user_id: int) -> dict | None:
    return _fetch_one("""
        SELECT counselor_id, counselor_name, counselor_title, counselor_email,
               counselor_description, counselor_specializations
        FROM counselors
        WHERE user_id = %s;
    """, (user_id,))


def get_company_profile(user_id: int) -> dict | None:
    return _fetch_one("""
        SELECT company_id, company_name, company_email, company_phone,
               company_description, company_industry
        FROM companies
        WHERE user_id = %s;
    """, (user_id,))


# ═══════════════════════════════════════════════════════════════════
#  PLATFORM CONTENT  (grounding reads)
# ═══════════════════════════════════════════════════════════════════

_JOB_COLUMNS = """
    j.job_id, j.title, j.description, j.location, j.tags, j.status,
    j.start_date, j.end_date, c.company_name
"""

_ACTIVE_JOB = "j.status = 'active' AND j.end_date >= CURRENT_DATE"


def _like_patterns(terms: list[str]) -> list[str]:
    escaped = (t.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") for t in terms)
    return [f"%{t}%" for t in escaped]


def _match_jobs(terms: list[str], limit: int) -> list[dict]:
    patterns = _like_patterns(terms)
    return _fetch_dicts(f"""
        SELECT {_JOB_COLUMNS}
        FROM jobs j
        JOIN companies c ON j.company_id = c.company_id
        WHERE (j.title ILIKE ANY(%s) OR j.description ILIKE ANY(%s) OR j.tags ILIKE ANY(%s))
          AND {_ACTIVE_JOB}
        ORDER BY j.created_at DESC
        LIMIT %s;
    """, (patterns, patterns, patterns, limit))


def search_jobs_by_keywords(keywords: list[str], limit: int = 5) -> list[dict]:
    """Active postings whose title, description or tags mention any keyword."""
    if not keywords:
        return []
    return _match_jobs(keywords, limit)


def get_jobs_by_interests(interests: list[str], limit: int = 3) -> list[dict]:
    """Active postings matching a student's stored career pathways."""
    if not interests:
        return []
    return _match_jobs(interests, limit)


def get_company_jobs(user_id: int, limit: int = 3) -> list[dict]:
    """A company's own postings, any status."""
    return _fetch_dicts(f"""
        SELECT {_JOB_COLUMNS}
        FROM jobs j
        JOIN companies c ON j.company_id = c.company_id
        WHERE c.user_id = %s
        ORDER BY j.created_at DESC
        LIMIT %s;
    """, (user_id, limit))


def get_recent_jobs(limit: int = 3) -> list[dict]:
    return _fetch_dicts(f"""
        SELECT {_JOB_COLUMNS}
        FROM jobs j
        JOIN companies c ON j.company_id = c.company_id
        WHERE {_ACTIVE_JOB}
        ORDER BY j.created_at DESC
        LIMIT %s;
    """, (limit,))


def get_upcoming_events(limit: int = 2) -> list[dict]:
    return _fetch_dicts("""
        SELECT event_id, title, event_date, image_url
        FROM events
        WHERE event_date >= CURRENT_DATE
        ORDER BY event_date ASC
        LIMIT %s;
    """, (limit,))


def get_latest_news(limit: int = 2) -> list[dict]:
    return _fetch_dicts("""
        SELECT news_id, title, content, news_date, image_urls
        FROM news
        ORDER BY news_date DESC
        LIMIT %s;
    """, (limit,))


def get_upcoming_meetings(user_id: int, limit: int = 2) -> list[dict]:
    """Upcoming meetings where the user is requestor or recipient.

    ``party`` maps every user to a display name; it is joined twice, once
    per side of the meeting, to name the counterpart.
    """
    return _fetch_dicts("""
        WITH party AS (
            SELECT u.user_id AS id,
                   COALESCE(s.student_name, co.counselor_name, cm.company_name, u.username) AS name
            FROM users u
            LEFT JOIN students s    ON s.user_id = u.user_id AND u.role_id = 2
            LEFT JOIN counselors co ON co.user_id = u.user_id AND u.role_id = 3
            LEFT JOIN companies cm  ON cm.user_id = u.user_id AND u.role_id = 4
        )
        SELECT m.meeting_id,
               m.meeting_title,
               m.meeting_description,
               (m.meeting_date + m.start_time) AS starts_at,
               (m.meeting_date + m.end_time)   AS ends_at,
               m.status,
               CASE WHEN m.requestor_id = %(uid)s THEN 'requestor' ELSE 'recipient' END AS role,
               CASE WHEN m.requestor_id = %(uid)s THEN r.name ELSE q.name END AS other_party
        FROM meetings m
        JOIN party q ON q.id = m.requestor_id
        JOIN party r ON r.id = m.recipient_id
        WHERE (m.requestor_id = %(uid)s OR m.recipient_id = %(uid)s)
          AND (m.meeting_date + m.start_time) >= LOCALTIMESTAMP
        ORDER BY m.meeting_date ASC, m.start_time ASC
        LIMIT %(limit)s;
    """, {"uid": user_id, "limit": limit})


def get_job_applications(user_id: int, limit: int = 3) -> list[dict]:
    return _fetch_dicts("""
        SELECT a.application_id, a.submitted_at, a.status,
               j.title AS job_title, c.company_name
        FROM job_applications a
        JOIN students s  ON a.student_id = s.student_id
        JOIN jobs j      ON a.job_id = j.job_id
        JOIN companies c ON j.company_id = c.company_id
        WHERE s.user_id = %s
        ORDER BY a.submitted_at DESC
        LIMIT %s;
    """, (user_id, limit))


def get_recent_conversations(user_id: int, limit: int = 2, per_conversation: int = 5) -> list[dict]:
    """Most recently updated conversations with their last few messages.

    Messages come back oldest-first within each conversation.
    """
    rows = _fetch_dicts("""
        SELECT c.id, c.title, c.updated_at,
               m.id AS message_id, m.content, m.is_user_message, m.timestamp
        FROM (
            SELECT id, title, updated_at
            FROM ai_chat_conversations
            WHERE user_id = %s
            ORDER BY updated_at DESC
            LIMIT %s
        ) c
        LEFT JOIN LATERAL (
            SELECT id, content, is_user_message, timestamp
            FROM ai_chat_messages
            WHERE conversation_id = c.id
            ORDER BY timestamp DESC, id DESC
            LIMIT %s
        ) m ON TRUE
        ORDER BY c.updated_at DESC, c.id, m.timestamp ASC, m.id ASC;
    """, (user_id, limit, per_conversation))

    conversations: list[dict] = []
    by_id: dict = {}
    for r in rows:
        conv = by_id.get(r["id"])
        if conv is None:
            conv = {"id": r["id"], "title": r["title"], "updated_at": r["updated_at"], "messages": []}
            by_id[r["id"]] = conv
            conversations.append(conv)
        if r["message_id"] is not None:
            conv["messages"].append({
                "content": r["content"],
                "is_user_message": r["is_user_message"],
                "timestamp": r["timestamp"],
            })
    return conversations


# ═══════════════════════════════════════════════════════════════════
#  EXCHANGE WRITES  (cursor-level, caller owns the transaction)
# ═══════════════════════════════════════════════════════════════════

def find_owned_conversation(cur, conversation_id: int, user_id: int) -> int | None:
    cur.execute(
        "SELECT id FROM ai_chat_conversations WHERE id = %s AND user_id = %s;",
        (conversation_id, user_id),
    )
    row = cur.fetchone()
    return row[0] if row else None


def insert_conversation(cur, user_id: int, title: str) -> int:
    cur.execute(
        "INSERT INTO ai_chat_conversations (user_id, title) VALUES (%s, %s) RETURNING id;",
        (user_id, title),
    )
    return cur.fetchone()[0]


def insert_message(cur, conversation_id: int, content: str,
                   is_user_message: bool, is_rich_text: bool = False) -> int:
    cur.execute(
        "INSERT INTO ai_chat_messages (conversation_id, content, is_user_message, is_rich_text) "
        "VALUES (%s, %s, %s, %s) RETURNING id;",
        (conversation_id, content, is_user_message, is_rich_text),
    )
    return cur.fetchone()[0]


def touch_conversation(cur, conversation_id: int) -> None:
    cur.execute(
        "UPDATE ai_chat_conversations SET updated_at = clock_timestamp() WHERE id = %s;",
        (conversation_id,),
    )


# ═══════════════════════════════════════════════════════════════════
#  CONVERSATION CRUD  (history endpoints + verification)
# ═══════════════════════════════════════════════════════════════════

def conversation_belongs_to(conversation_id: int, user_id: int) -> bool:
    """True when the conversation exists and is owned by ``user_id``."""
    conn = get_connection()
    try:
        cur = conn.cursor()
        owned = find_owned_conversation(cur, conversation_id, user_id) is not None
        cur.close()
        conn.commit()
        return owned
    finally:
        put_connection(conn)


def count_messages(conversation_id: int) -> int:
    row = _fetch_one(
        "SELECT COUNT(*) AS n FROM ai_chat_messages WHERE conversation_id = %s;",
        (conversation_id,),
    )
    return int(row["n"]) if row else 0


def get_conversation(conversation_id: int, user_id: int | None = None) -> dict | None:
    """Fetch one conversation; scoped to ``user_id`` when given."""
    try:
        sql = "SELECT id, user_id, title, created_at, updated_at FROM ai_chat_conversations WHERE id = %s"
        params: tuple = (conversation_id,)
        if user_id is not None:
            sql += " AND user_id = %s"
            params += (user_id,)
        r = _fetch_one(sql + ";", params)
        if not r:
            return None
        return {"id": r["id"], "userId": r["user_id"], "title": r["title"],
                "createdAt": _iso(r["created_at"]), "updatedAt": _iso(r["updated_at"])}
    except Exception as e:
        logger.error(f"Error getting conversation: {e}")
        return None


def list_conversations(user_id: int, limit: int = 50) -> list[dict]:
    try:
        rows = _fetch_dicts("""
            SELECT c.id, c.title, c.created_at, c.updated_at,
                   (SELECT COUNT(*) FROM ai_chat_messages m WHERE m.conversation_id = c.id) AS message_count
            FROM ai_chat_conversations c
            WHERE c.user_id = %s AND c.is_archived = FALSE
            ORDER BY c.updated_at DESC
            LIMIT %s;
        """, (user_id, limit))
        return [
            {"id": r["id"], "title": r["title"],
             "createdAt": _iso(r["created_at"]), "updatedAt": _iso(r["updated_at"]),
             "messageCount": int(r["message_count"])}
            for r in rows
        ]
    except Exception as e:
        logger.error(f"Error listing conversations: {e}")
        return []


def get_conversation_messages(conversation_id: int) -> list[dict]:
    try:
        rows = _fetch_dicts("""
            SELECT id, content, is_user_message, is_rich_text, timestamp
            FROM ai_chat_messages
            WHERE conversation_id = %s
            ORDER BY timestamp ASC, id ASC;
        """, (conversation_id,))
        return [
            {"id": r["id"], "content": r["content"],
             "isUserMessage": bool(r["is_user_message"]),
             "isRichText": bool(r["is_rich_text"]),
             "timestamp": _iso(r["timestamp"])}
            for r in rows
        ]
    except Exception as e:
        logger.error(f"Error getting messages: {e}")
        return []


def rename_conversation(conversation_id: int, user_id: int, new_title: str) -> dict | None:
    conn = None
    try:
        conn = get_connection()
        cur = conn.cursor()
        cur.execute(
            "UPDATE ai_chat_conversations SET title = %s, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = %s AND user_id = %s RETURNING id, title;",
            (new_title, conversation_id, user_id),
        )
        r = cur.fetchone()
        conn.commit(); cur.close()
        return {"id": r[0], "title": r[1]} if r else None
    except Exception as e:
        logger.error(f"Error renaming conversation: {e}")
        return None
    finally:
        if conn is not None:
            put_connection(conn)


def delete_conversation(conversation_id: int, user_id: int) -> bool:
    """Delete a conversation; its messages go with it (ON DELETE CASCADE)."""
    conn = None
    try:
        conn = get_connection()
        cur = conn.cursor()
        cur.execute(
            "DELETE FROM ai_chat_conversations WHERE id = %s AND user_id = %s;",
            (conversation_id, user_id),
        )
        ok = cur.rowcount > 0
        conn.commit(); cur.close()
        return ok
    except Exception as e:
        logger.error(f"Error deleting conversation: {e}")
        return False
    finally:
        if conn is not None:
            put_connection(conn)
