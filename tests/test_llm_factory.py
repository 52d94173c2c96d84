"""Tests for the LLM provider factory."""

from unittest.mock import MagicMock, patch

import pytest

from llm import LLMAuthError, LLMError, create_llm_provider


class TestCreateProvider:
    def test_explicit_claude_with_client(self):
        mock_client = MagicMock()
        provider = create_llm_provider(provider="claude", client=mock_client)
        assert provider.provider_name == "claude"
        assert provider.client is mock_client

    def test_auto_resolves_to_claude(self):
        provider = create_llm_provider(provider="auto", client=MagicMock())
        assert provider.provider_name == "claude"

    def test_unknown_provider_raises(self):
        with pytest.raises(LLMError, match="Unknown provider"):
            create_llm_provider(provider="llama", client=MagicMock())

    def test_key_from_env(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        with patch("llm.providers.claude.Anthropic") as anthropic_cls:
            provider = create_llm_provider()
        assert provider.provider_name == "claude"
        anthropic_cls.assert_called_once_with(api_key="sk-ant-test")

    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-env")
        with patch("llm.providers.claude.Anthropic") as anthropic_cls:
            create_llm_provider(api_key="sk-ant-explicit")
        anthropic_cls.assert_called_once_with(api_key="sk-ant-explicit")

    def test_missing_key_raises_auth_error(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(LLMAuthError, match="ANTHROPIC_API_KEY is not configured"):
            create_llm_provider()

    def test_custom_model(self):
        provider = create_llm_provider(provider="claude", client=MagicMock(), model="claude-opus-4-20250514")
        assert provider.model == "claude-opus-4-20250514"

    def test_default_model(self):
        assert create_llm_provider(provider="claude", client=MagicMock()).model == "claude-sonnet-4-20250514"
