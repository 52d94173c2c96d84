"""Claude (Anthropic) provider."""

from anthropic import Anthropic, APIError, AuthenticationError, RateLimitError

from ..base import (
    GenerateResponse,
    LLMAuthError,
    LLMError,
    LLMProvider,
    LLMRateLimitError,
    ToolCall,
    ToolDefinition,
)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class ClaudeProvider(LLMProvider):
    """Anthropic Messages API with tool use."""

    provider_name = "claude"

    def __init__(self, api_key: str | None = None, model: str | None = None, client=None):
        self.model = model or DEFAULT_MODEL

        if client:
            self.client = client
            return

        if not api_key:
            raise LLMAuthError("ANTHROPIC_API_KEY is not configured")
        self.client = Anthropic(api_key=api_key)

    def _handle_error(self, e: Exception):
        if isinstance(e, AuthenticationError):
            raise LLMAuthError(f"Claude auth failed: {e}") from e
        if isinstance(e, RateLimitError):
            raise LLMRateLimitError(f"Claude rate limit: {e}") from e
        if isinstance(e, APIError):
            raise LLMError(f"Claude API error: {e}") from e
        raise LLMError(f"Claude error: {e}") from e

    def generate_with_tools(
        self,
        messages: list[dict],
        tools: list[ToolDefinition],
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> GenerateResponse:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": self._convert_messages(messages),
            "tools": [t.to_api() for t in tools],
        }
        if system:
            kwargs["system"] = system

        try:
            response = self.client.messages.create(**kwargs)
        except Exception as e:
            self._handle_error(e)

        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=block.input or {}))

        if response.stop_reason == "tool_use":
            finish = "tool_calls"
        elif response.stop_reason == "max_tokens":
            finish = "max_tokens"
        else:
            finish = "stop"

        return GenerateResponse(
            content="\n".join(text_parts) if text_parts else None,
            tool_calls=tool_calls,
            finish_reason=finish,
        )

    def _convert_messages(self, messages: list[dict]) -> list[dict]:
        """Map generic messages onto Anthropic content blocks.

        - assistant with tool_calls -> assistant message of text + tool_use blocks
        - consecutive role=tool messages -> one user message of tool_result blocks
        """
        api_messages = []
        pending_results: list[dict] = []

        def flush():
            if pending_results:
                api_messages.append({"role": "user", "content": list(pending_results)})
                pending_results.clear()

        for msg in messages:
            role = msg.get("role")
            if role == "tool":
                pending_results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": msg["tool_call_id"],
                        "content": msg["content"],
                        **({"is_error": True} if msg.get("is_error") else {}),
                    }
                )
                continue

            flush()
            if role == "assistant" and msg.get("tool_calls"):
                content = []
                if msg.get("content"):
                    content.append({"type": "text", "text": msg["content"]})
                for tc in msg["tool_calls"]:
                    content.append(
                        {"type": "tool_use", "id": tc["id"], "name": tc["name"], "input": tc["arguments"]}
                    )
                api_messages.append({"role": "assistant", "content": content})
            else:
                api_messages.append({"role": role, "content": msg["content"]})

        flush()
        return api_messages
