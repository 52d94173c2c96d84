"""Shared test fixtures for the resolution coach."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cli.retry import llm_retry  # noqa: E402
from coach.models import UserPreferences  # noqa: E402
from coach.repository import ResolutionRepository, ResolutionSet  # noqa: E402
from coach.store import InMemoryRecordStore  # noqa: E402
from factories import NOW, text_response  # noqa: E402
from llm.base import LLMRateLimitError  # noqa: E402
from observability import metrics  # noqa: E402


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def repository(store):
    return ResolutionRepository(store)


@pytest.fixture
def preferences():
    return UserPreferences()


@pytest.fixture
def resolution_set():
    return ResolutionSet()


@pytest.fixture
def mock_llm():
    llm = MagicMock()
    llm.generate_with_tools.return_value = text_response("Sounds good!")
    return llm


@pytest.fixture
def no_wait_retry():
    """Rate-limit retry without sleeping."""
    return llm_retry(max_attempts=3, min_wait=0, max_wait=0, exceptions=(LLMRateLimitError,))
