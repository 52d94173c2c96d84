"""Nudge policy: when to raise a proactive check-in, about what, and in which tone.

Decisions are pure functions of the preferences, the resolutions and the
clock. Bookkeeping (NudgeRecord, ``update_settings`` stats) is applied by the
chat service only once the model has actually delivered the nudge text.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from shared_types import Frequency, NudgeChannel, NudgeStatus, NudgeType, Sentiment, UpdateType

from .models import NudgeRecord, Resolution, UserPreferences, new_id, utcnow

FREQUENCY_THRESHOLD_DAYS = {
    Frequency.GENTLE: 7,
    Frequency.MODERATE: 3,
    Frequency.PERSISTENT: 1,
}

MAX_NUDGES_PER_SESSION = 1

STREAK_MIN_UPDATES = 3
STREAK_WINDOW = timedelta(days=7)
GENTLE_NUDGE_AFTER_DAYS = 7


@dataclass
class NudgeDecision:
    should_nudge: bool
    reason: str
    resolution_id: Optional[str] = None
    resolution_title: Optional[str] = None
    type: Optional[NudgeType] = None
    days_since_last_nudge: Optional[int] = None  # None when never nudged

    def to_dict(self) -> dict:
        return {
            "shouldNudge": self.should_nudge,
            "reason": self.reason,
            "resolutionId": self.resolution_id,
            "resolutionTitle": self.resolution_title,
            "type": str(self.type) if self.type else None,
            "daysSinceLastNudge": self.days_since_last_nudge,
        }


@dataclass
class NudgeContext:
    """A positive decision turned into a system-prompt prefix."""

    nudge_id: str
    resolution_id: str
    resolution_title: str
    type: NudgeType
    prompt: str
    reason: str


def _no_nudge(reason: str) -> NudgeDecision:
    return NudgeDecision(should_nudge=False, reason=reason)


def classify_nudge(resolution: Resolution, days_since: float, now: datetime) -> NudgeType:
    """Pick the nudge tone for a resolution.

    Priority: streak, encouragement, milestone, gentle nudge, check-in.
    """
    updates = resolution.updates
    recent = [u for u in updates if u.created_at > now - STREAK_WINDOW]
    if len(recent) >= STREAK_MIN_UPDATES:
        return NudgeType.STREAK

    if updates:
        last = updates[-1]
        if last.type == UpdateType.SETBACK or last.sentiment == Sentiment.STRUGGLING:
            return NudgeType.ENCOURAGEMENT

    progress_count = sum(1 for u in updates if u.type in (UpdateType.PROGRESS, UpdateType.MILESTONE))
    if progress_count > 0 and progress_count % 5 == 4:
        return NudgeType.MILESTONE

    if days_since > GENTLE_NUDGE_AFTER_DAYS:
        return NudgeType.GENTLE_NUDGE
    return NudgeType.CHECK_IN


def should_nudge(
    preferences: UserPreferences,
    resolutions: list[Resolution],
    session_nudge_count: int = 0,
    now: Optional[datetime] = None,
    max_per_session: int = MAX_NUDGES_PER_SESSION,
    threshold_days: Optional[dict] = None,
) -> NudgeDecision:
    """Decide whether to weave a check-in into this turn.

    Among active, nudge-enabled resolutions whose last nudge is at least the
    frequency threshold ago, picks the stalest one. Never-nudged resolutions
    count as infinitely stale; equal staleness is broken by id ascending.
    """
    if not preferences.updates_enabled:
        return _no_nudge("Updates disabled globally")
    if not preferences.in_conversation.enabled:
        return _no_nudge("In-conversation nudges disabled")
    if session_nudge_count >= max_per_session:
        return _no_nudge("Session nudge limit reached")

    eligible = [r for r in resolutions if r.is_active and r.update_settings.enabled]
    if not eligible:
        return _no_nudge("No active resolutions with updates enabled")

    now = now or utcnow()
    thresholds = threshold_days or FREQUENCY_THRESHOLD_DAYS
    threshold = timedelta(days=thresholds[preferences.in_conversation.frequency])

    candidates = []
    for r in eligible:
        last = r.update_settings.last_nudge_at
        elapsed = now - last if last else None
        if elapsed is None or elapsed >= threshold:
            candidates.append((r, elapsed))

    if not candidates:
        return _no_nudge("No resolutions due for nudge")

    # None (never nudged) sorts as the stalest
    def staleness(candidate):
        resolution, elapsed = candidate
        seconds = math.inf if elapsed is None else elapsed.total_seconds()
        return (-seconds, resolution.id)

    resolution, elapsed = min(candidates, key=staleness)
    days = None if elapsed is None else elapsed.days
    nudge_type = classify_nudge(resolution, math.inf if days is None else days, now)

    return NudgeDecision(
        should_nudge=True,
        reason="Never checked in on this resolution" if days is None else f"{days} days since last check-in",
        resolution_id=resolution.id,
        resolution_title=resolution.title,
        type=nudge_type,
        days_since_last_nudge=days,
    )


_TEMPLATES = {
    NudgeType.CHECK_IN: (
        "[NUDGE CONTEXT] It's been a few days since {name} updated on \"{title}\". "
        "Naturally weave in a question about their progress. Keep it warm and casual, not pushy. "
        "If they share progress, use log_update with triggered_by \"nudge\" to record it. "
        "Example: \"By the way, how's {title} going lately?\""
    ),
    NudgeType.GENTLE_NUDGE: (
        "[NUDGE CONTEXT] It's been over a week since {name} checked in on \"{title}\". "
        "Gently ask about their progress without being intrusive. "
        "If they share progress, use log_update with triggered_by \"nudge\" to record it. "
        "Example: \"I noticed we haven't talked about {title} in a while - how are things going with that?\""
    ),
    NudgeType.ENCOURAGEMENT: (
        "[NUDGE CONTEXT] {name} was struggling with \"{title}\" last time. "
        "Check in with empathy and support. Focus on what might be blocking them. "
        "Example: \"I remember {title} was tough last time - how are you feeling about it now?\""
    ),
    NudgeType.STREAK: (
        "[NUDGE CONTEXT] {name} has been on a streak with \"{title}\"! "
        "Acknowledge their consistency and ask about their progress. "
        "Example: \"You've been really consistent with {title} lately - that's awesome! How's it feeling?\""
    ),
    NudgeType.MILESTONE: (
        "[NUDGE CONTEXT] {name} might be approaching a milestone with \"{title}\". "
        "Ask about their progress and be ready to celebrate if they've hit it. "
        "Example: \"How's {title} coming along? You've been making great progress!\""
    ),
}


def generate_nudge_context(decision: NudgeDecision, user_name: str = "the user") -> Optional[NudgeContext]:
    """Render the system-prompt prefix for a positive decision; None otherwise."""
    if not decision.should_nudge or not decision.resolution_id:
        return None

    title = decision.resolution_title or "their resolution"
    nudge_type = decision.type or NudgeType.CHECK_IN
    return NudgeContext(
        nudge_id=new_id(),
        resolution_id=decision.resolution_id,
        resolution_title=title,
        type=nudge_type,
        prompt=_TEMPLATES[nudge_type].format(name=user_name, title=title),
        reason=decision.reason,
    )


def create_nudge_record(
    context: NudgeContext,
    channel: NudgeChannel = NudgeChannel.IN_CONVERSATION,
    now: Optional[datetime] = None,
) -> NudgeRecord:
    """Audit record for a nudge the model has delivered."""
    now = now or utcnow()
    return NudgeRecord(
        id=context.nudge_id,
        resolution_id=context.resolution_id,
        channel=channel,
        type=context.type,
        scheduled_at=now,
        delivered_at=now,
        status=NudgeStatus.DELIVERED,
        message=context.prompt,
        created_at=now,
    )


def update_resolution_nudge_stats(resolution: Resolution, now: Optional[datetime] = None) -> None:
    settings = resolution.update_settings
    settings.last_nudge_at = now or utcnow()
    settings.nudge_count += 1
