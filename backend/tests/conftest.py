"""Pytest conftest: ensure backend/ is importable for flat module imports.

Also provides ``fake_db``: an in-memory, transactional stand-in for the
psycopg2 connections handed out by ``query_db.get_connection``.  It speaks
exactly the SQL the exchange transaction and its verification read issue.
"""

import copy
import sys
from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add backend/ to sys.path so `import query_db`, `from llm.router import ...` etc. work
_backend_dir = str(Path(__file__).resolve().parent.parent)
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)


# ═══════════════════════════════════════════════════════════════════════════
#  In-memory database
# ═══════════════════════════════════════════════════════════════════════════

class FakeDatabaseError(Exception):
    """Raised by a statement the test asked to fail."""


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


class FakeDatabase:
    """Committed state plus bookkeeping; one instance per test."""

    def __init__(self):
        self.state = {"conversations": {}, "messages": [], "next_conv": 1, "next_msg": 1}
        self.executed: list[str] = []
        self.commits = 0
        self.rollbacks = 0
        self.released = 0
        self._clock = datetime(2025, 1, 1, 12, 0, 0)
        self._failures: list[list] = []

    # ── Test helpers ──────────────────────────────────────────────

    def tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def fail_when(self, fragment: str, occurrence: int = 1) -> None:
        """Make the ``occurrence``-th statement containing ``fragment`` raise."""
        self._failures.append([fragment, occurrence])

    def add_conversation(self, user_id: int, title: str = "Existing") -> int:
        cid = self.state["next_conv"]
        self.state["next_conv"] += 1
        now = self.tick()
        self.state["conversations"][cid] = {
            "id": cid, "user_id": user_id, "title": title,
            "created_at": now, "updated_at": now, "is_archived": False,
        }
        return cid

    @property
    def conversations(self) -> list[dict]:
        return list(self.state["conversations"].values())

    @property
    def messages(self) -> list[dict]:
        return list(self.state["messages"])

    # ── Connection factory (patched over query_db) ────────────────

    def connect(self):
        return FakeConnection(self)

    def release(self, conn):
        self.released += 1
        if conn is not None and conn.pending is not None:
            conn.rollback()

    def _check_failure(self, sql: str) -> None:
        for failure in self._failures:
            fragment, remaining = failure
            if fragment in sql:
                failure[1] = remaining - 1
                if failure[1] == 0:
                    raise FakeDatabaseError(f"forced failure on: {fragment}")


class FakeConnection:
    status = 1

    def __init__(self, db: FakeDatabase):
        self.db = db
        self.pending = None

    def cursor(self):
        return FakeCursor(self)

    def working_state(self, write: bool = False) -> dict:
        if self.pending is None and write:
            self.pending = copy.deepcopy(self.db.state)
        return self.pending if self.pending is not None else self.db.state

    def commit(self):
        if self.pending is not None:
            self.db.state = self.pending
            self.pending = None
        self.db.commits += 1

    def rollback(self):
        self.pending = None
        self.db.rollbacks += 1


class FakeCursor:
    def __init__(self, conn: FakeConnection):
        self.conn = conn
        self.description = None
        self.rowcount = 0
        self._rows: list[tuple] = []

    def close(self):
        pass

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def _result(self, columns, rows):
        self.description = [(c,) for c in columns]
        self._rows = list(rows)
        self.rowcount = len(self._rows)

    def execute(self, sql, params=()):
        sql = _normalize(sql)
        db = self.conn.db
        db.executed.append(sql)
        db._check_failure(sql)

        if sql.startswith("SELECT id FROM ai_chat_conversations WHERE id = %s AND user_id = %s"):
            state = self.conn.working_state()
            conv = state["conversations"].get(params[0])
            owned = conv is not None and conv["user_id"] == params[1]
            self._result(["id"], [(conv["id"],)] if owned else [])

        elif sql.startswith("INSERT INTO ai_chat_conversations"):
            state = self.conn.working_state(write=True)
            cid = state["next_conv"]
            state["next_conv"] += 1
            now = db.tick()
            state["conversations"][cid] = {
                "id": cid, "user_id": params[0], "title": params[1],
                "created_at": now, "updated_at": now, "is_archived": False,
            }
            self._result(["id"], [(cid,)])

        elif sql.startswith("INSERT INTO ai_chat_messages"):
            state = self.conn.working_state(write=True)
            if params[0] not in state["conversations"]:
                raise FakeDatabaseError("foreign key violation")
            mid = state["next_msg"]
            state["next_msg"] += 1
            state["messages"].append({
                "id": mid, "conversation_id": params[0], "content": params[1],
                "is_user_message": params[2], "is_rich_text": params[3],
                "timestamp": db.tick(),
            })
            self._result(["id"], [(mid,)])

        elif sql.startswith("UPDATE ai_chat_conversations SET updated_at"):
            state = self.conn.working_state(write=True)
            conv = state["conversations"].get(params[0])
            if conv is not None:
                conv["updated_at"] = db.tick()
            self._result([], [])
            self.rowcount = 1 if conv is not None else 0

        elif sql.startswith("SELECT COUNT(*) AS n FROM ai_chat_messages"):
            state = self.conn.working_state()
            n = sum(1 for m in state["messages"] if m["conversation_id"] == params[0])
            self._result(["n"], [(n,)])

        elif sql.startswith("SELECT id, user_id, title, created_at, updated_at FROM ai_chat_conversations"):
            state = self.conn.working_state()
            conv = state["conversations"].get(params[0])
            if conv is not None and len(params) > 1 and conv["user_id"] != params[1]:
                conv = None
            cols = ["id", "user_id", "title", "created_at", "updated_at"]
            self._result(cols, [tuple(conv[c] for c in cols)] if conv else [])

        else:
            raise AssertionError(f"FakeCursor got unexpected SQL: {sql}")


@pytest.fixture
def fake_db(monkeypatch):
    """Route query_db connections to a fresh in-memory database."""
    import query_db

    db = FakeDatabase()
    monkeypatch.setattr(query_db, "get_connection", db.connect)
    monkeypatch.setattr(query_db, "put_connection", db.release)
    return db


# ═══════════════════════════════════════════════════════════════════════════
#  Small real pool over dummy connections
# ═══════════════════════════════════════════════════════════════════════════

class DummyConnection:
    """Just enough of a psycopg2 connection for the pool to manage."""

    status = 1

    def __init__(self):
        self.closed = 0
        self.info = SimpleNamespace(transaction_status=0)  # TRANSACTION_STATUS_IDLE

    def rollback(self):
        pass

    def close(self):
        self.closed = 1


@pytest.fixture
def small_pool(monkeypatch):
    """A two-connection BlockingConnectionPool installed as query_db's pool."""
    import query_db

    monkeypatch.setattr(query_db.psycopg2, "connect", lambda *a, **kw: DummyConnection())
    db_pool = query_db.BlockingConnectionPool(0, 2, timeout=5)
    monkeypatch.setattr(query_db, "_pool", db_pool)
    yield db_pool
    db_pool.closeall()


@pytest.fixture(autouse=True)
def _clear_hooks():
    from hooks import Hooks

    Hooks.clear()
    yield
    Hooks.clear()
