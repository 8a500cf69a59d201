"""Guidia AI CLI: setup, dev server, and pipeline inspection.

Usage:
    python cli.py init                     Create .env from template
    python cli.py init-db                  Create the chat tables
    python cli.py dev                      Start uvicorn with hot-reload
    python cli.py ask "MESSAGE"            One completion through the router
    python cli.py context USER_ID [MSG]    Print the grounding text for a user
    python cli.py history USER_ID          List a user's saved conversations
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shutil
import sys
from pathlib import Path

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("guidia-cli")


def cmd_init(args):
    """Copy .env.example → .env when no .env exists yet."""
    root = Path(__file__).resolve().parent.parent
    env_example = root / ".env.example"
    env_file = root / ".env"
    if not env_file.exists() and env_example.exists():
        shutil.copy(env_example, env_file)
        logger.info("[+] Created .env from .env.example: add your API keys!")
    elif env_file.exists():
        logger.info("[=] .env already exists")
    else:
        logger.warning("[!] No .env.example found")

    logger.info("")
    logger.info("Next steps:")
    logger.info("  1. Set SAMBANOVA_API_KEY and/or DEEPSEEK_API_KEY in .env")
    logger.info("  2. Point DATABASE_URL (or POSTGRES_*) at the platform database")
    logger.info("  3. Run: python cli.py init-db")
    logger.info("  4. Run: python cli.py dev")


def _ensure_db():
    """Initialize DB, exit if unavailable."""
    import query_db
    if not query_db.init_db():
        logger.error("Database connection failed.  Is PostgreSQL running?")
        sys.exit(1)
    return query_db


def cmd_init_db(args):
    _ensure_db()
    logger.info("Chat tables ready")


def cmd_dev(args):
    """Start uvicorn development server with hot-reload."""
    import subprocess

    from settings import settings

    host = args.host or settings.HOST
    port = args.port or settings.PORT

    backend_dir = Path(__file__).resolve().parent
    logger.info(f"Starting dev server at http://{host}:{port}")
    subprocess.run(
        [
            sys.executable, "-m", "uvicorn",
            "main:app",
            "--host", host,
            "--port", str(port),
            "--reload",
        ],
        cwd=str(backend_dir),
        check=False,
    )


async def _ask(message: str, provider: str | None, user_id: int | None) -> str:
    from llm.router import CompletionRouter, ProviderConfig

    grounding_text = ""
    if user_id is not None:
        grounding_text = await _grounding(user_id, message)

    router = CompletionRouter(ProviderConfig.from_settings())
    if provider:
        router.set_provider(provider)
    return await router.complete(message, [], grounding_text=grounding_text)


async def _grounding(user_id: int, message: str) -> str:
    from context_aggregator import build_context
    from grounding import render_prompt

    _ensure_db()
    return render_prompt(await build_context(user_id, message))


def cmd_ask(args):
    """Send one message through the provider router and print the answer."""
    if not args.message.strip():
        logger.error("Usage: python cli.py ask \"your question\"")
        sys.exit(1)
    print(asyncio.run(_ask(args.message, args.provider, args.user)))


def cmd_context(args):
    """Print the grounding block a user's next message would carry."""
    text = asyncio.run(_grounding(args.user_id, args.message or ""))
    if not text:
        logger.info(f"No grounding context for user {args.user_id}")
        return
    print(text)


def cmd_history(args):
    """List a user's saved conversations, newest first."""
    query_db = _ensure_db()
    conversations = query_db.list_conversations(args.user_id, limit=args.limit)
    if not conversations:
        logger.info("No conversations found.")
        return

    print(f"\n─── Conversations for user {args.user_id} {'─' * 36}\n")
    for conv in conversations:
        title = conv.get("title") or "Untitled"
        if len(title) > 50:
            title = title[:47] + "..."
        print(f"  {conv['id']:>6}  {title:<50}  {conv['messageCount']:>3} msgs  {conv['updatedAt']}")
    print(f"\n{'─' * 65}\n")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="guidia",
        description="Guidia AI chat pipeline: CLI tools",
    )
    sub = parser.add_subparsers(dest="command", help="Available commands")

    sub.add_parser("init", help="Create .env from .env.example")
    sub.add_parser("init-db", help="Create the chat tables")

    p_dev = sub.add_parser("dev", help="Start development server")
    p_dev.add_argument("--host", help="Bind host")
    p_dev.add_argument("--port", type=int, help="Bind port")

    p_ask = sub.add_parser("ask", help="One completion through the provider router")
    p_ask.add_argument("message", help="User message")
    p_ask.add_argument("--provider", choices=["sambanova", "deepseek"], help="Preferred provider")
    p_ask.add_argument("--user", type=int, help="Ground the answer in this user's data")

    p_ctx = sub.add_parser("context", help="Print grounding text for a user")
    p_ctx.add_argument("user_id", type=int)
    p_ctx.add_argument("message", nargs="?", help="Message used to pick relevant jobs")

    p_hist = sub.add_parser("history", help="List a user's saved conversations")
    p_hist.add_argument("user_id", type=int)
    p_hist.add_argument("--limit", type=int, default=20, help="Max conversations (default: 20)")

    args = parser.parse_args(argv)

    if args.command == "init":
        cmd_init(args)
    elif args.command == "init-db":
        cmd_init_db(args)
    elif args.command == "dev":
        cmd_dev(args)
    elif args.command == "ask":
        cmd_ask(args)
    elif args.command == "context":
        cmd_context(args)
    elif args.command == "history":
        cmd_history(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
