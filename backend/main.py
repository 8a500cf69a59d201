"""FastAPI application: Guidia AI chat pipeline.

Architecture layers:
  1. Settings        (settings.py)           centralized configuration
  2. Identity        (identity.py)           who is calling
  3. Grounding       (context_aggregator.py, grounding.py)
                                             live platform data as prompt text
  4. LLM Package     (llm/)                  providers, router, fallback
  5. Streaming       (streaming.py)          typed SSE frames
  6. Persistence     (persistence.py)        transactional exchange writes
  7. Database        (query_db.py)           psycopg2 pool + queries
  8. Hooks           (hooks.py)              extension points

Pipeline (shared by /chat and /chat/stream):
  1. Resolve identity
  2. Aggregate + render grounding context   (identified callers only)
  3. Verify the caller's conversationID
  4. Build a request-scoped router           (provider override applied)
  5. Complete                               (failover → fallback inside)
  6. Relay as SSE, or return JSON
  7. Persist the exchange                   (identified callers only)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

import query_db
from context_aggregator import build_context
from errors import PipelineError
from grounding import render_prompt
from hooks import Hooks
from identity import resolve_identity
from llm.providers import ProviderName
from llm.router import CompletionRouter, ProviderConfig
from persistence import save_exchange
from settings import settings
from streaming import relay_stream

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# ---------------------------------------------------------------------------
#  Application lifespan
# ---------------------------------------------------------------------------
DB_ENABLED = False


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: D401
    """Run startup logic; yield to serve requests; clean up on shutdown."""
    global DB_ENABLED
    DB_ENABLED = query_db.init_db()
    if DB_ENABLED:
        logger.info("PostgreSQL connected: grounding and persistence active")
    else:
        logger.warning("PostgreSQL not available: answering without grounding or history")

    config = ProviderConfig.from_settings()
    logger.info(
        f"Default provider: {config.default.value} "
        f"(sambanova key: {config.credentialed(ProviderName.SAMBANOVA)}, "
        f"deepseek key: {config.credentialed(ProviderName.DEEPSEEK)})"
    )

    yield  # ← application runs here

    query_db.close_pool()


# ---------------------------------------------------------------------------
#  App
# ---------------------------------------------------------------------------
app = FastAPI(title="Guidia AI Chat", version="1.0.0", lifespan=lifespan)
_raw_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
_allowed_origins = _raw_origins if _raw_origins else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
#  Request / response models
# ---------------------------------------------------------------------------

class HistoryItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = ""
    is_user: bool = Field(False, alias="isUser")


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    history: List[HistoryItem] = Field(default_factory=list)
    stream: bool = False
    provider: Optional[str] = None
    conversation_id: Optional[int] = Field(None, alias="conversationID")


class RenameRequest(BaseModel):
    title: str


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(RequestValidationError)
async def invalid_request_body(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
    return _bad_request("Invalid request body")


# ═══════════════════════════════════════════════════════════════════════════
#  PIPELINE
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ChatTurn:
    """Everything resolved before the completion call."""
    message: str
    history: list
    identity: Optional[int]
    grounding_text: str
    conversation_id: Optional[int]
    router: CompletionRouter

    @property
    def persistent(self) -> bool:
        return self.identity is not None and DB_ENABLED


async def _verified_conversation(conversation_id: Optional[int], identity: int) -> Optional[int]:
    """The caller's conversation id when they own it, else None."""
    if conversation_id is None:
        return None
    try:
        owned = await asyncio.to_thread(query_db.conversation_belongs_to, conversation_id, identity)
    except Exception as e:
        logger.error(f"Ownership check failed for conversation {conversation_id}: {e}")
        return None
    if not owned:
        logger.warning(f"User {identity} does not own conversation {conversation_id}; ignoring it")
        return None
    return conversation_id


async def prepare_turn(req: ChatRequest, request: Request) -> ChatTurn:
    """Steps 1–4: identity, grounding, conversation check, router."""
    identity = resolve_identity(request)
    grounding_text = ""
    conversation_id = None

    if identity is not None and DB_ENABLED:
        try:
            bundle = await build_context(identity, req.message)
            grounding_text = render_prompt(bundle)
        except Exception as e:
            logger.error(f"Grounding failed for user {identity}: {e}")
        conversation_id = await _verified_conversation(req.conversation_id, identity)
    elif identity is not None:
        logger.warning("Database unavailable; skipping grounding and persistence")

    router = CompletionRouter(ProviderConfig.from_settings())
    if req.provider:
        router.set_provider(req.provider)

    return ChatTurn(
        message=req.message,
        history=list(req.history),
        identity=identity,
        grounding_text=grounding_text,
        conversation_id=conversation_id,
        router=router,
    )


async def persist_turn(turn: ChatTurn, response_text: str) -> Optional[int]:
    """Step 7.  Failures are logged; the answer already went out."""
    if not turn.persistent:
        return None
    if not response_text:
        logger.warning("Empty response; nothing to save")
        return None
    try:
        return await save_exchange(
            turn.identity, turn.conversation_id, turn.message, response_text, turn.history,
        )
    except PipelineError as e:
        logger.error(f"Persist error for user {turn.identity}: {e}")
        return None


def _message_or_none(req: ChatRequest) -> Optional[str]:
    if req.message is None or not req.message.strip():
        return None
    return req.message


async def _stream_turn(turn: ChatTurn) -> StreamingResponse:
    source = await turn.router.complete(
        turn.message,
        turn.history,
        streaming=True,
        grounding_text=turn.grounding_text,
    )

    async def on_complete(full_text: str) -> None:
        await persist_turn(turn, full_text)

    def finalize(full_text: str) -> str:
        return Hooks.run_after_generation(full_text, turn.message)

    return StreamingResponse(
        relay_stream(source, on_complete, finalize),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ═══════════════════════════════════════════════════════════════════════════
#  CHAT ENDPOINTS
# ═══════════════════════════════════════════════════════════════════════════

@app.post("/chat")
async def chat(req: ChatRequest, request: Request):
    """Chat: JSON answer, or SSE when ``stream`` is true."""
    if _message_or_none(req) is None:
        return _bad_request("Message is required")

    turn = await prepare_turn(req, request)
    if req.stream:
        return await _stream_turn(turn)

    response = await turn.router.complete(
        turn.message,
        turn.history,
        streaming=False,
        grounding_text=turn.grounding_text,
    )
    response = Hooks.run_after_generation(response, turn.message)
    await persist_turn(turn, response)

    return {"success": True, "data": {"response": response}}


@app.post("/chat/stream")
async def chat_stream(req: ChatRequest, request: Request):
    """Streaming chat over SSE.

    Events emitted::

        data: {"content": "<delta>"}\\n\\n
        data: {"error": "<reason>"}\\n\\n      (upstream failure)
        data: [DONE]\\n\\n
    """
    if _message_or_none(req) is None:
        return _bad_request("Message is required")

    turn = await prepare_turn(req, request)
    return await _stream_turn(turn)


# ═══════════════════════════════════════════════════════════════════════════
#  CONVERSATION HISTORY
# ═══════════════════════════════════════════════════════════════════════════

def _require_owner(request: Request) -> int:
    identity = resolve_identity(request)
    if identity is None:
        raise HTTPException(401, "Authentication required")
    if not DB_ENABLED:
        raise HTTPException(503, "Conversation history is unavailable")
    return identity


@app.get("/chat-history/conversations")
def list_conversations(request: Request, limit: int = 50):
    identity = _require_owner(request)
    return {"success": True, "data": query_db.list_conversations(identity, limit=limit)}


@app.get("/chat-history/conversations/{conversation_id}")
def get_conversation(conversation_id: int, request: Request):
    identity = _require_owner(request)
    conv = query_db.get_conversation(conversation_id, user_id=identity)
    if not conv:
        raise HTTPException(404, "Conversation not found")
    conv["messages"] = query_db.get_conversation_messages(conversation_id)
    return {"success": True, "data": conv}


@app.put("/chat-history/conversations/{conversation_id}")
def rename_conversation(conversation_id: int, req: RenameRequest, request: Request):
    identity = _require_owner(request)
    title = req.title.strip()
    if not title:
        return _bad_request("Title is required")
    result = query_db.rename_conversation(conversation_id, identity, title[: settings.TITLE_MAX_CHARS])
    if not result:
        raise HTTPException(404, "Conversation not found")
    return {"success": True, "data": result}


@app.delete("/chat-history/conversations/{conversation_id}")
def delete_conversation(conversation_id: int, request: Request):
    identity = _require_owner(request)
    if not query_db.delete_conversation(conversation_id, identity):
        raise HTTPException(404, "Conversation not found")
    return {"success": True, "data": {"deleted": True}}


# ═══════════════════════════════════════════════════════════════════════════
#  HEALTH CHECK
# ═══════════════════════════════════════════════════════════════════════════

@app.get("/health")
def health_check():
    """Returns DB status and which providers have credentials."""
    config = ProviderConfig.from_settings()
    return {
        "status": "ok",
        "database": "connected" if DB_ENABLED else "unavailable",
        "default_provider": config.default.value,
        "providers": {name.value: config.credentialed(name) for name in ProviderName},
        "version": app.version,
    }
