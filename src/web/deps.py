"""Dependency injection for FastAPI routes."""

from functools import lru_cache

import structlog

from cli.config import load_config_model
from coach.chat import ChatService, create_chat_service
from coach.repository import ResolutionRepository
from coach.store import RecordStore, create_record_store

logger = structlog.get_logger()

API_VERSION = "1.0.0"


@lru_cache
def get_config():
    """Load shared config from ./config.yaml or ~/.resolution-coach/config.yaml."""
    return load_config_model()


@lru_cache
def get_store() -> RecordStore:
    config = get_config()
    return create_record_store(config.store.backend, config.store.url, socket_timeout=config.store.socket_timeout)


def get_repository() -> ResolutionRepository:
    config = get_config()
    return ResolutionRepository(get_store(), conversation_ttl_seconds=config.store.conversation_ttl_seconds)


@lru_cache
def get_chat_service() -> ChatService:
    """Built on first chat request so a missing API key only fails chat."""
    return create_chat_service(get_config(), store=get_store())


def llm_configured() -> bool:
    config = get_config()
    return bool(config.llm.api_key)


def get_user_name() -> str:
    return get_config().coach.user_name
