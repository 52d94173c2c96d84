"""Conversation orchestrator — one chat turn of the LLM tool-calling loop."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional

import structlog

from cli.retry import llm_retry
from llm.base import LLMProvider
from observability import metrics

from .models import UserPreferences
from .nudges import NudgeContext
from .repository import ResolutionSet
from .tools import ToolName, ToolRegistry, ToolResult

logger = structlog.get_logger()

FALLBACK_RESPONSE = "I'm ready to help with your resolutions!"


class TurnState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    TOOL_REQUESTED = "tool_requested"
    DONE = "done"


@dataclass
class TurnResult:
    """What one turn produced, for the chat service to persist and return."""

    text: str
    tools_used: list[str] = field(default_factory=list)
    tool_results: list[tuple[ToolName, ToolResult]] = field(default_factory=list)
    update: Optional[dict] = None  # last result carrying a resolution or preferences
    nudge_delivered: bool = False
    iterations: int = 0


class ConversationOrchestrator:
    """Runs the model/tool loop until the model answers with plain text.

    Tool calls are executed strictly in order against the request's
    ResolutionSet. The loop stops early on an unrecognised tool name or when
    ``max_iterations`` model round-trips have been spent, answering with a
    fixed fallback in both cases.
    """

    def __init__(
        self,
        llm: LLMProvider,
        registry: ToolRegistry,
        system_prompt: str,
        max_iterations: int = 10,
        max_tokens: int = 1024,
        retry: Optional[Callable] = None,
    ):
        self.llm = llm
        self.registry = registry
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.max_tokens = max_tokens
        self._generate = (retry or llm_retry())(self.llm.generate_with_tools)

    def build_system_prompt(self, nudge: Optional[NudgeContext] = None, insights: str = "") -> str:
        """Nudge instructions first, then the base prompt, then any user insights."""
        parts = [nudge.prompt] if nudge is not None else []
        parts.append(self.system_prompt)
        if insights:
            parts.append(insights)
        return "\n\n".join(parts)

    def run(
        self,
        messages: list[dict],
        resolutions: ResolutionSet,
        preferences: Optional[UserPreferences] = None,
        nudge: Optional[NudgeContext] = None,
        insights: str = "",
    ) -> TurnResult:
        """Run one turn. ``messages`` must end with the user's message.

        LLM errors propagate; tool failures are fed back to the model.
        """
        messages = list(messages)
        tools = self.registry.get_definitions()
        system = self.build_system_prompt(nudge, insights)
        result = TurnResult(text=FALLBACK_RESPONSE)
        state = TurnState.AWAITING_MODEL

        while state is TurnState.AWAITING_MODEL:
            if result.iterations >= self.max_iterations:
                logger.warning("orchestrator.max_iterations", max=self.max_iterations)
                metrics.counter("orchestrator.max_iterations")
                break

            with metrics.timer("llm.generate"):
                response = self._generate(
                    messages=list(messages),
                    tools=tools,
                    system=system,
                    max_tokens=self.max_tokens,
                )
            result.iterations += 1
            metrics.counter("llm.round_trips")

            logger.debug(
                "orchestrator.iteration",
                iteration=result.iterations,
                finish_reason=response.finish_reason,
                tool_call_count=len(response.tool_calls),
            )

            if not response.wants_tools:
                result.text = response.content or FALLBACK_RESPONSE
                result.nudge_delivered = nudge is not None and bool(response.content)
                state = TurnState.DONE
                break

            state = TurnState.TOOL_REQUESTED
            calls = []
            for tc in response.tool_calls:
                tool = ToolName.parse(tc.name)
                if tool is None:
                    logger.warning("orchestrator.unknown_tool", tool=tc.name)
                    metrics.counter("tool.unknown")
                    result.tools_used.append(tc.name)
                    break
                calls.append((tc, tool))
            else:
                assistant_msg = {
                    "role": "assistant",
                    "tool_calls": [
                        {"id": tc.id, "name": tc.name, "arguments": tc.arguments} for tc in response.tool_calls
                    ],
                }
                if response.content:
                    assistant_msg["content"] = response.content
                messages.append(assistant_msg)

                for tc, tool in calls:
                    messages.append(self._execute(tc.id, tool, tc.arguments, resolutions, preferences, result))
                state = TurnState.AWAITING_MODEL

        logger.info(
            "orchestrator.turn_complete",
            state=str(state),
            iterations=result.iterations,
            tools_used=result.tools_used,
            nudge_delivered=result.nudge_delivered,
        )
        return result

    def _execute(
        self,
        call_id: str,
        tool: ToolName,
        arguments: dict,
        resolutions: ResolutionSet,
        preferences: Optional[UserPreferences],
        result: TurnResult,
    ) -> dict:
        logger.info("tool_call", tool=str(tool), args=sorted(arguments or {}))
        outcome = self.registry.execute(tool, arguments, resolutions, preferences)
        result.tools_used.append(str(tool))
        result.tool_results.append((tool, outcome))

        payload = outcome.to_dict()
        if outcome.syncs_client:
            result.update = payload

        logger.info("tool_result", tool=str(tool), success=outcome.success)
        return {
            "role": "tool",
            "tool_call_id": call_id,
            "name": str(tool),
            "content": outcome.to_json(),
            "is_error": not outcome.success,
        }
