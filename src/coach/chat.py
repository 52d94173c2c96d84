"""Chat service — one request from user message to persisted reply.

Owns the per-request boundary: load the conversation, resolutions and
preferences, decide on a nudge, run the orchestrator, then write everything
back. Resolution writes are compare-and-set against what was loaded, so a
concurrent request touching the same resolution fails with
StoreConflictError instead of silently overwriting.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from observability import metrics
from shared_types import MessageRole, NudgeStatus, TriggeredBy

from .analytics import (
    MIN_PROMPT_DATA_POINTS,
    build_insights_prompt_section,
    generate_user_insights,
    nudge_response_rate,
)
from .models import Message, NudgeRecord, UserPreferences, new_id, utcnow
from .nudges import (
    MAX_NUDGES_PER_SESSION,
    NudgeContext,
    create_nudge_record,
    generate_nudge_context,
    should_nudge,
    update_resolution_nudge_stats,
)
from .orchestrator import ConversationOrchestrator, TurnResult
from .repository import ResolutionRepository, ResolutionSet
from .store import StoreError
from .tools import ToolName

logger = structlog.get_logger()


@dataclass
class ChatReply:
    response: str
    conversation_id: str
    tools_used: list[str] = field(default_factory=list)
    resolution_update: Optional[dict] = None
    resolutions: list[dict] = field(default_factory=list)
    nudge: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "response": self.response,
            "conversationId": self.conversation_id,
            "toolsUsed": self.tools_used,
            "resolutionUpdate": self.resolution_update,
            "resolutions": self.resolutions,
            "nudge": self.nudge,
        }


class ChatService:
    def __init__(
        self,
        repository: ResolutionRepository,
        orchestrator: ConversationOrchestrator,
        user_name: str = "the user",
        max_nudges_per_session: int = MAX_NUDGES_PER_SESSION,
        nudge_threshold_days: Optional[dict] = None,
    ):
        self.repository = repository
        self.orchestrator = orchestrator
        self.user_name = user_name
        self.max_nudges_per_session = max_nudges_per_session
        self.nudge_threshold_days = nudge_threshold_days

    def handle_message(self, message: str, conversation_id: Optional[str] = None) -> ChatReply:
        """Run one chat turn and persist its effects.

        Raises:
            ValueError: blank message
            StoreError: store unavailable, or a concurrent write conflict
            LLMError: the model call failed
        """
        text = (message or "").strip()
        if not text:
            raise ValueError("Message is required")

        conversation_id = conversation_id or new_id()
        with structlog.contextvars.bound_contextvars(conversation_id=conversation_id):
            return self._handle(text, conversation_id)

    def _handle(self, text: str, conversation_id: str) -> ChatReply:
        metrics.counter("chat.messages")
        conversation = self.repository.load_conversation(conversation_id)
        resolutions = self.repository.load_resolutions()
        preferences = self._load_preferences()
        preferences_before = preferences.model_dump(exclude={"updated_at"}) if preferences else None

        nudge = self._plan_nudge(preferences, resolutions, conversation.nudge_count)

        insights = self._insights_section(resolutions)

        conversation.messages.append(Message(role=MessageRole.USER, content=text))
        turn = self.orchestrator.run(conversation.history(), resolutions, preferences, nudge, insights=insights)

        now = utcnow()
        delivered: Optional[NudgeRecord] = None
        if nudge is not None and turn.nudge_delivered:
            delivered = self._mark_delivered(nudge, resolutions, now)
            conversation.nudge_count += 1

        responded = self._settle_responses(turn, resolutions)

        self.repository.commit(resolutions)
        if delivered is not None:
            self.repository.save_nudge(delivered)
            metrics.counter("nudges.delivered")
        for record in responded:
            self.repository.update_nudge(record)
        if preferences is not None and preferences.model_dump(exclude={"updated_at"}) != preferences_before:
            self.repository.save_preferences(preferences)

        conversation.messages.append(Message(role=MessageRole.ASSISTANT, content=turn.text))
        self.repository.save_conversation(conversation)

        return ChatReply(
            response=turn.text,
            conversation_id=conversation_id,
            tools_used=turn.tools_used,
            resolution_update=turn.update,
            resolutions=[r.to_json_dict() for r in resolutions.active()],
            nudge=_nudge_summary(nudge) if delivered else None,
        )

    def _load_preferences(self) -> Optional[UserPreferences]:
        try:
            return self.repository.load_preferences()
        except StoreError as e:
            logger.warning("chat.preferences_unavailable", error=str(e))
            return None

    def _plan_nudge(
        self, preferences: Optional[UserPreferences], resolutions: ResolutionSet, session_count: int
    ) -> Optional[NudgeContext]:
        if preferences is None:
            return None
        decision = should_nudge(
            preferences,
            resolutions.values(),
            session_nudge_count=session_count,
            max_per_session=self.max_nudges_per_session,
            threshold_days=self.nudge_threshold_days,
        )
        logger.debug("chat.nudge_decision", **decision.to_dict())
        return generate_nudge_context(decision, user_name=self.user_name)

    def _insights_section(self, resolutions: ResolutionSet) -> str:
        items = resolutions.values()
        if len(items) + sum(len(r.updates) for r in items) < MIN_PROMPT_DATA_POINTS:
            return ""
        nudges = [n for r in items for n in self._nudge_history(r.id)]
        insights = generate_user_insights(items, nudges, user_name=self.user_name)
        return build_insights_prompt_section(insights, self.user_name)

    def _mark_delivered(self, nudge: NudgeContext, resolutions: ResolutionSet, now) -> Optional[NudgeRecord]:
        resolution = resolutions.get(nudge.resolution_id)
        if resolution is None:
            # deleted during the turn; nothing left to attribute the nudge to
            return None
        update_resolution_nudge_stats(resolution, now)
        logger.info("chat.nudge_delivered", resolution_id=resolution.id, type=str(nudge.type))
        return create_nudge_record(nudge, now=now)

    def _settle_responses(self, turn: TurnResult, resolutions: ResolutionSet) -> list[NudgeRecord]:
        """Mark nudges answered by nudge-triggered updates and refresh response rates.

        Returns the nudge records to write back.
        """
        histories: dict[str, list[NudgeRecord]] = {}
        responded: dict[str, NudgeRecord] = {}

        for tool, outcome in turn.tool_results:
            if tool is not ToolName.LOG_UPDATE or not outcome.success or outcome.update is None:
                continue
            if outcome.update.triggered_by != TriggeredBy.NUDGE:
                continue
            resolution = resolutions.get(outcome.resolution.id) if outcome.resolution else None
            if resolution is None:
                continue

            if resolution.id not in histories:
                histories[resolution.id] = self._nudge_history(resolution.id)
            history = histories[resolution.id]

            pending = next((n for n in history if n.status == NudgeStatus.DELIVERED), None)
            if pending is not None:
                pending.status = NudgeStatus.RESPONDED
                pending.response_at = outcome.update.created_at
                pending.response_content = outcome.update.content
                pending.response_sentiment = outcome.update.sentiment
                responded[pending.id] = pending

            resolution.update_settings.response_rate = nudge_response_rate(history, resolution.updates)

        return list(responded.values())

    def _nudge_history(self, resolution_id: str) -> list[NudgeRecord]:
        try:
            return self.repository.load_nudges_for_resolution(resolution_id)
        except StoreError as e:
            logger.warning("chat.nudge_history_unavailable", resolution_id=resolution_id, error=str(e))
            return []


def _nudge_summary(nudge: NudgeContext) -> dict:
    return {
        "id": nudge.nudge_id,
        "resolutionId": nudge.resolution_id,
        "resolutionTitle": nudge.resolution_title,
        "type": str(nudge.type),
        "reason": nudge.reason,
    }


def create_chat_service(config, llm=None, store=None) -> ChatService:
    """Wire a ChatService from ResolutionCoachConfig.

    Args:
        config: Loaded ResolutionCoachConfig
        llm: Pre-built LLMProvider (None = build from config.llm)
        store: Pre-built RecordStore (None = build from config.store)
    """
    from cli.retry import retry_from_config
    from llm import create_llm_provider

    from .prompts import PromptTemplates
    from .store import create_record_store
    from .tools import ToolRegistry

    if store is None:
        store = create_record_store(
            config.store.backend, config.store.url, socket_timeout=config.store.socket_timeout
        )
    if llm is None:
        llm = create_llm_provider(config.llm.provider, api_key=config.llm.api_key, model=config.llm.model)

    max_active = config.coach.max_active_resolutions
    orchestrator = ConversationOrchestrator(
        llm=llm,
        registry=ToolRegistry(max_active_resolutions=max_active),
        system_prompt=PromptTemplates.system(config.coach.user_name, max_active),
        max_iterations=config.llm.max_tool_iterations,
        max_tokens=config.llm.max_tokens,
        retry=retry_from_config(config.retry),
    )
    return ChatService(
        ResolutionRepository(store, conversation_ttl_seconds=config.store.conversation_ttl_seconds),
        orchestrator,
        user_name=config.coach.user_name,
        max_nudges_per_session=config.nudges.max_per_session,
        nudge_threshold_days=config.nudges.threshold_days(),
    )
