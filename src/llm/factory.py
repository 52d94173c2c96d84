"""LLM provider factory."""

import os

from .base import LLMAuthError, LLMError, LLMProvider

_PROVIDER_ENV_KEYS = {
    "claude": "ANTHROPIC_API_KEY",
}


def create_llm_provider(
    provider: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
    client=None,
) -> LLMProvider:
    """Create an LLM provider instance.

    Args:
        provider: "claude", "auto", or None (auto = claude)
        api_key: Explicit API key (overrides env var)
        model: Model name (None = provider default)
        client: Pre-built SDK client for testing/DI

    Raises:
        LLMAuthError: no credential configured and no client injected
    """
    resolved = provider or "auto"
    if resolved == "auto":
        resolved = "claude"

    if resolved not in _PROVIDER_ENV_KEYS:
        raise LLMError(f"Unknown provider: {resolved}. Use: claude")

    if not api_key and not client:
        env_var = _PROVIDER_ENV_KEYS[resolved]
        api_key = os.getenv(env_var)
        if not api_key:
            raise LLMAuthError(f"{env_var} is not configured")

    from .providers.claude import ClaudeProvider

    return ClaudeProvider(api_key=api_key, model=model, client=client)
