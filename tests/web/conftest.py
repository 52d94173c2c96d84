"""Shared fixtures for web API tests."""

import pytest
from fastapi.testclient import TestClient

from coach.chat import ChatService
from coach.orchestrator import ConversationOrchestrator
from coach.tools import ToolRegistry
from web.app import app
from web.deps import get_chat_service, get_repository, get_user_name, llm_configured


@pytest.fixture
def chat_service(repository, mock_llm, no_wait_retry):
    orchestrator = ConversationOrchestrator(mock_llm, ToolRegistry(), "You are a coach.", retry=no_wait_retry)
    return ChatService(repository, orchestrator)


@pytest.fixture
def anthropic_configured():
    return True


@pytest.fixture
def client(repository, chat_service, anthropic_configured):
    """Test client backed by the in-memory store and a mocked LLM."""
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    app.dependency_overrides[llm_configured] = lambda: anthropic_configured
    app.dependency_overrides[get_user_name] = lambda: "Sam"
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
