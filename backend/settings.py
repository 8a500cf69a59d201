"""Centralized configuration: every tunable in one place.

Environment variables override defaults. Import anywhere:

    from settings import settings

All values are frozen at startup. To change, update .env and restart.
Provider selection for a single request is NOT stored here; see
``llm.router.ProviderConfig``, which is built per request from these values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (one level above backend/)
_project_root = Path(__file__).resolve().parent.parent
load_dotenv(_project_root / ".env")


# ── Helpers ───────────────────────────────────────────────────────────────

def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _env_int(key: str, default: int = 0) -> int:
    return int(os.getenv(key, str(default)))


def _env_float(key: str, default: float = 0.0) -> float:
    return float(os.getenv(key, str(default)))


def _env_bool(key: str, default: bool = False) -> bool:
    return os.getenv(key, str(default)).lower() in ("true", "1", "yes")


# ── Settings ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    """Application settings.  Immutable after creation."""

    # ── LLM Providers ─────────────────────────────────────────────
    # Supported: sambanova, deepseek.  Empty → first provider with a key.
    LLM_PROVIDER: str = _env("LLM_PROVIDER")
    LLM_TIMEOUT_SECONDS: float = _env_float("LLM_TIMEOUT_SECONDS", 60.0)

    SAMBANOVA_API_KEY: str = _env("SAMBANOVA_API_KEY")
    SAMBANOVA_MODEL: str = _env("SAMBANOVA_MODEL", "DeepSeek-V3-0324")
    SAMBANOVA_BASE_URL: str = _env("SAMBANOVA_BASE_URL", "https://api.sambanova.ai/v1")
    SAMBANOVA_MAX_TOKENS: int = _env_int("SAMBANOVA_MAX_TOKENS", 4000)
    SAMBANOVA_TEMPERATURE: float = _env_float("SAMBANOVA_TEMPERATURE", 1.0)

    DEEPSEEK_API_KEY: str = _env("DEEPSEEK_API_KEY")
    DEEPSEEK_MODEL: str = _env("DEEPSEEK_MODEL", "deepseek-chat")
    DEEPSEEK_BASE_URL: str = _env("DEEPSEEK_BASE_URL", "https://api.deepseek.com")
    DEEPSEEK_MAX_TOKENS: int = _env_int("DEEPSEEK_MAX_TOKENS", 4000)
    DEEPSEEK_TEMPERATURE: float = _env_float("DEEPSEEK_TEMPERATURE", 1.0)

    # ── Grounding context (rows per section) ──────────────────────
    CONTEXT_RECENT_CONVERSATIONS: int = _env_int("CONTEXT_RECENT_CONVERSATIONS", 2)
    CONTEXT_MESSAGES_PER_CONVERSATION: int = _env_int("CONTEXT_MESSAGES_PER_CONVERSATION", 5)
    CONTEXT_JOB_SEARCH_LIMIT: int = _env_int("CONTEXT_JOB_SEARCH_LIMIT", 5)
    CONTEXT_JOB_INTEREST_LIMIT: int = _env_int("CONTEXT_JOB_INTEREST_LIMIT", 3)
    CONTEXT_EVENTS_LIMIT: int = _env_int("CONTEXT_EVENTS_LIMIT", 2)
    CONTEXT_NEWS_LIMIT: int = _env_int("CONTEXT_NEWS_LIMIT", 2)
    CONTEXT_MEETINGS_LIMIT: int = _env_int("CONTEXT_MEETINGS_LIMIT", 2)
    CONTEXT_APPLICATIONS_LIMIT: int = _env_int("CONTEXT_APPLICATIONS_LIMIT", 3)

    # ── Persistence ───────────────────────────────────────────────
    # Conversation titles are cut from the first user message.
    TITLE_MAX_CHARS: int = _env_int("TITLE_MAX_CHARS", 50)

    # ── Database (PostgreSQL) ─────────────────────────────────────
    DATABASE_URL: str = _env("DATABASE_URL")
    POSTGRES_HOST: str = _env("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = _env_int("POSTGRES_PORT", 5432)
    POSTGRES_DB: str = _env("POSTGRES_DB", "guidia")
    POSTGRES_USER: str = _env("POSTGRES_USER", "root")
    POSTGRES_PASSWORD: str = _env("POSTGRES_PASSWORD", "password")
    DB_POOL_MIN: int = _env_int("DB_POOL_MIN", 1)
    DB_POOL_MAX: int = _env_int("DB_POOL_MAX", 10)
    # Seconds a request waits for a free pooled connection before failing.
    DB_POOL_TIMEOUT_SECONDS: float = _env_float("DB_POOL_TIMEOUT_SECONDS", 30.0)

    # ── Security ────────────────────────────────────────────────
    # Comma-separated origins allowed by CORS middleware.
    # Use "*" for local dev only; always restrict in production.
    ALLOWED_ORIGINS: str = _env("ALLOWED_ORIGINS", "*")
    # Accept the caller id from the X-User-ID header.  Enable only behind a
    # gateway that strips the header from client traffic and sets it itself.
    TRUST_USER_ID_HEADER: bool = _env_bool("TRUST_USER_ID_HEADER", False)

    # ── Server ────────────────────────────────────────────────────
    HOST: str = _env("HOST", "0.0.0.0")
    PORT: int = _env_int("PORT", 8000)
    DEBUG_MODE: bool = _env_bool("DEBUG_MODE", False)
    LOG_LEVEL: str = _env("LOG_LEVEL", "INFO")


settings = Settings()
