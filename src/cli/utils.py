"""Shared CLI utilities."""

import sys
from pathlib import Path
from typing import Optional

import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def get_components(config_path: Optional[Path] = None, skip_chat: bool = False) -> dict:
    """Initialize config, store and (optionally) the chat service.

    Args:
        config_path: Explicit config.yaml (None = standard locations)
        skip_chat: If True, skip chat service init (for commands that don't need the LLM)
    """
    from cli.config import load_config_model
    from coach.chat import create_chat_service
    from coach.repository import ResolutionRepository
    from coach.store import StoreError, create_record_store
    from llm import LLMAuthError

    try:
        config = load_config_model(config_path)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    try:
        store = create_record_store(config.store.backend, config.store.url, socket_timeout=config.store.socket_timeout)
    except StoreError as e:
        console.print(f"[red]Store error:[/] {e}")
        sys.exit(1)

    chat = None
    if not skip_chat:
        try:
            chat = create_chat_service(config, store=store)
        except LLMAuthError as e:
            console.print(f"[red]Config error:[/] {e}")
            sys.exit(1)

    return {
        "config": config,
        "store": store,
        "repository": ResolutionRepository(store, conversation_ttl_seconds=config.store.conversation_ttl_seconds),
        "chat": chat,
    }
