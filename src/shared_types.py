"""Shared enums and types for resolution-coach."""

from enum import StrEnum


class ResolutionStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class UpdateType(StrEnum):
    PROGRESS = "progress"
    SETBACK = "setback"
    MILESTONE = "milestone"
    NOTE = "note"


class Sentiment(StrEnum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    STRUGGLING = "struggling"


class TriggeredBy(StrEnum):
    USER = "user"
    NUDGE = "nudge"
    SMS = "sms"


class NudgeChannel(StrEnum):
    IN_CONVERSATION = "in_conversation"
    SMS = "sms"


class NudgeType(StrEnum):
    CHECK_IN = "check_in"
    GENTLE_NUDGE = "gentle_nudge"
    ENCOURAGEMENT = "encouragement"
    STREAK = "streak"
    MILESTONE = "milestone"


class NudgeStatus(StrEnum):
    DELIVERED = "delivered"
    RESPONDED = "responded"


class Frequency(StrEnum):
    GENTLE = "gentle"
    MODERATE = "moderate"
    PERSISTENT = "persistent"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
