"""Base LLM completion contract used by the conversation orchestrator."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class LLMError(Exception):
    """Base LLM error."""


class LLMRateLimitError(LLMError):
    """Rate limit hit."""


class LLMAuthError(LLMError):
    """Missing or rejected credential."""


@dataclass(frozen=True)
class ToolDefinition:
    """Tool definition for LLM tool calling."""

    name: str
    description: str
    input_schema: dict  # JSON Schema

    def to_api(self) -> dict:
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict


@dataclass
class GenerateResponse:
    """One model round-trip: plain text, tool calls, or both."""

    content: str | None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str = "stop"  # "stop" | "tool_calls" | "max_tokens"

    @property
    def wants_tools(self) -> bool:
        return self.finish_reason == "tool_calls" and bool(self.tool_calls)


class LLMProvider(ABC):
    """Abstract LLM provider interface."""

    provider_name: str = "base"

    @abstractmethod
    def generate_with_tools(
        self,
        messages: list[dict],
        tools: list[ToolDefinition],
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> GenerateResponse:
        """Send the conversation plus tool schema and return the model's reply.

        Args:
            messages: Conversation messages. Besides plain role/content dicts,
                accepts {"role": "assistant", "tool_calls": [...]} and
                {"role": "tool", "tool_call_id": ..., "content": ...}.
            tools: Tool schema, supplied verbatim on every call
            system: System prompt
            max_tokens: Max response tokens
        """
        ...
