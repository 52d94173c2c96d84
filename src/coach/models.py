"""Pydantic models for resolutions, updates, preferences and nudges.

All models serialize to camelCase JSON (``measurableCriteria``,
``updateSettings``) and accept either the alias or the field name on input.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared_types import (
    Frequency,
    MessageRole,
    NudgeChannel,
    NudgeStatus,
    NudgeType,
    ResolutionStatus,
    Sentiment,
    TriggeredBy,
    UpdateType,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        """Dump as a JSON-safe dict using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode()


class UpdateSettings(CamelModel):
    """Per-resolution nudge configuration."""

    enabled: bool = True
    last_nudge_at: Optional[datetime] = None
    next_nudge_at: Optional[datetime] = None
    nudge_count: int = 0
    response_rate: float = 0.0


class Update(CamelModel):
    """Append-only log entry against a resolution."""

    id: str = Field(default_factory=new_id)
    type: UpdateType
    content: str
    sentiment: Optional[Sentiment] = None
    progress_delta: Optional[float] = Field(default=None, ge=-100, le=100)
    created_at: datetime = Field(default_factory=utcnow)
    triggered_by: TriggeredBy = TriggeredBy.USER


class Resolution(CamelModel):
    """A user's goal with measurable success criteria."""

    id: str = Field(default_factory=new_id)
    title: str
    measurable_criteria: str
    context: str = ""
    status: ResolutionStatus = ResolutionStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updates: list[Update] = Field(default_factory=list)
    update_settings: UpdateSettings = Field(default_factory=UpdateSettings)

    @property
    def is_active(self) -> bool:
        return self.status == ResolutionStatus.ACTIVE


class InConversationPrefs(CamelModel):
    enabled: bool = True
    frequency: Frequency = Frequency.MODERATE


class QuietHours(CamelModel):
    enabled: bool = True
    start: str = "22:00"
    end: str = "08:00"
    timezone: str = "America/New_York"


class SmsPrefs(CamelModel):
    enabled: bool = False
    phone_number: Optional[str] = None
    verified: bool = False
    quiet_hours: QuietHours = Field(default_factory=QuietHours)


class CadencePrefs(CamelModel):
    check_in_days: list[int] = Field(default_factory=lambda: [1, 3, 5])  # Mon, Wed, Fri
    preferred_time_utc: str = Field(default="14:00", alias="preferredTimeUTC")
    max_nudges_per_day: int = 3


class UserPreferences(CamelModel):
    """Single global preferences record; created with defaults on first read."""

    updates_enabled: bool = True
    in_conversation: InConversationPrefs = Field(default_factory=InConversationPrefs)
    sms: SmsPrefs = Field(default_factory=SmsPrefs)
    default_cadence: CadencePrefs = Field(default_factory=CadencePrefs)
    updated_at: datetime = Field(default_factory=utcnow)


class NudgeRecord(CamelModel):
    """Audit record of a delivered proactive check-in."""

    id: str = Field(default_factory=new_id)
    resolution_id: str
    channel: NudgeChannel = NudgeChannel.IN_CONVERSATION
    type: NudgeType = NudgeType.CHECK_IN
    scheduled_at: datetime = Field(default_factory=utcnow)
    delivered_at: Optional[datetime] = None
    status: NudgeStatus = NudgeStatus.DELIVERED
    message: str = ""
    response_at: Optional[datetime] = None
    response_content: Optional[str] = None
    response_sentiment: Optional[Sentiment] = None
    created_at: datetime = Field(default_factory=utcnow)


class Message(CamelModel):
    role: MessageRole
    content: str


class Conversation(CamelModel):
    """Per-session message log plus the server-side session nudge count."""

    id: str
    messages: list[Message] = Field(default_factory=list)
    nudge_count: int = 0

    def history(self) -> list[dict]:
        """Messages as plain role/content dicts for the LLM."""
        return [{"role": str(m.role), "content": m.content} for m in self.messages]
