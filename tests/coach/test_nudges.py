"""Tests for the nudge policy."""

from datetime import timedelta

import pytest

from coach.models import InConversationPrefs, UserPreferences
from coach.nudges import (
    NudgeDecision,
    classify_nudge,
    create_nudge_record,
    generate_nudge_context,
    should_nudge,
    update_resolution_nudge_stats,
)
from factories import NOW, make_resolution, make_update
from shared_types import Frequency, NudgeChannel, NudgeStatus, NudgeType, ResolutionStatus


class TestShouldNudge:
    def test_disabled_globally(self, preferences):
        preferences.updates_enabled = False
        decision = should_nudge(preferences, [make_resolution(last_nudge_days=30)], now=NOW)
        assert not decision.should_nudge
        assert decision.reason == "Updates disabled globally"

    def test_in_conversation_disabled(self, preferences):
        preferences.in_conversation.enabled = False
        decision = should_nudge(preferences, [make_resolution()], now=NOW)
        assert decision.reason == "In-conversation nudges disabled"

    def test_session_limit(self, preferences):
        decision = should_nudge(preferences, [make_resolution()], session_nudge_count=1, now=NOW)
        assert not decision.should_nudge
        assert decision.reason == "Session nudge limit reached"

    def test_custom_session_limit(self, preferences):
        decision = should_nudge(
            preferences, [make_resolution()], session_nudge_count=1, now=NOW, max_per_session=2
        )
        assert decision.should_nudge

    def test_no_eligible_resolutions(self, preferences):
        completed = make_resolution(status=ResolutionStatus.COMPLETED)
        muted = make_resolution()
        muted.update_settings.enabled = False
        decision = should_nudge(preferences, [completed, muted], now=NOW)
        assert decision.reason == "No active resolutions with updates enabled"

    def test_nothing_due(self, preferences):
        decision = should_nudge(preferences, [make_resolution(last_nudge_days=2)], now=NOW)
        assert not decision.should_nudge
        assert decision.reason == "No resolutions due for nudge"

    def test_picks_stalest(self, preferences):
        stale = make_resolution("Read more", last_nudge_days=10)
        recent = make_resolution("Run 5k", last_nudge_days=2)

        decision = should_nudge(preferences, [recent, stale], now=NOW)

        assert decision.should_nudge
        assert decision.resolution_id == stale.id
        assert decision.days_since_last_nudge == 10
        assert decision.reason == "10 days since last check-in"

    def test_never_nudged_beats_everything(self, preferences):
        stale = make_resolution("Read more", last_nudge_days=300)
        fresh = make_resolution("Journal")

        decision = should_nudge(preferences, [stale, fresh], now=NOW)

        assert decision.resolution_id == fresh.id
        assert decision.days_since_last_nudge is None
        assert decision.reason == "Never checked in on this resolution"

    def test_ties_broken_by_id(self, preferences):
        a = make_resolution("A", id="bbb")
        b = make_resolution("B", id="aaa")

        decision = should_nudge(preferences, [a, b], now=NOW)

        assert decision.resolution_id == "aaa"

    @pytest.mark.parametrize(
        "frequency,days,due",
        [
            (Frequency.PERSISTENT, 1, True),
            (Frequency.MODERATE, 2, False),
            (Frequency.MODERATE, 3, True),
            (Frequency.GENTLE, 6, False),
            (Frequency.GENTLE, 7, True),
        ],
    )
    def test_frequency_thresholds(self, frequency, days, due):
        preferences = UserPreferences(in_conversation=InConversationPrefs(frequency=frequency))
        decision = should_nudge(preferences, [make_resolution(last_nudge_days=days)], now=NOW)
        assert decision.should_nudge is due

    def test_threshold_override(self, preferences):
        thresholds = {Frequency.GENTLE: 14, Frequency.MODERATE: 10, Frequency.PERSISTENT: 2}
        decision = should_nudge(
            preferences, [make_resolution(last_nudge_days=5)], now=NOW, threshold_days=thresholds
        )
        assert not decision.should_nudge

    def test_decision_to_dict(self, preferences):
        decision = should_nudge(preferences, [make_resolution(last_nudge_days=10)], now=NOW)
        payload = decision.to_dict()
        assert payload["shouldNudge"] is True
        assert payload["daysSinceLastNudge"] == 10
        assert payload["type"] == "gentle_nudge"


class TestClassify:
    def test_streak_beats_everything(self):
        resolution = make_resolution(
            updates=[make_update(days_ago=d) for d in (1, 2, 3)] + [make_update("setback", days_ago=0.5)]
        )
        assert classify_nudge(resolution, 10, NOW) == NudgeType.STREAK

    def test_setback_gets_encouragement(self):
        resolution = make_resolution(updates=[make_update(days_ago=20), make_update("setback", days_ago=10)])
        assert classify_nudge(resolution, 10, NOW) == NudgeType.ENCOURAGEMENT

    def test_struggling_gets_encouragement(self):
        resolution = make_resolution(updates=[make_update("note", days_ago=10, sentiment="struggling")])
        assert classify_nudge(resolution, 4, NOW) == NudgeType.ENCOURAGEMENT

    def test_fourth_progress_update_is_milestone(self):
        resolution = make_resolution(updates=[make_update(days_ago=d) for d in (40, 30, 20, 10)])
        assert classify_nudge(resolution, 10, NOW) == NudgeType.MILESTONE

    def test_long_silence_is_gentle_nudge(self):
        resolution = make_resolution(updates=[make_update(days_ago=30)])
        assert classify_nudge(resolution, 8, NOW) == NudgeType.GENTLE_NUDGE

    def test_default_check_in(self):
        assert classify_nudge(make_resolution(), 4, NOW) == NudgeType.CHECK_IN


class TestContextAndBookkeeping:
    def test_context_mentions_title_and_name(self):
        decision = NudgeDecision(
            should_nudge=True,
            reason="4 days since last check-in",
            resolution_id="r1",
            resolution_title="Run 5k",
            type=NudgeType.CHECK_IN,
            days_since_last_nudge=4,
        )

        context = generate_nudge_context(decision, user_name="Sam")

        assert context.prompt.startswith("[NUDGE CONTEXT]")
        assert "Run 5k" in context.prompt
        assert "Sam" in context.prompt
        assert context.resolution_id == "r1"
        assert context.nudge_id

    def test_no_context_for_negative_decision(self):
        assert generate_nudge_context(NudgeDecision(should_nudge=False, reason="nope")) is None

    def test_record_from_context(self):
        decision = NudgeDecision(True, "x", "r1", "Run 5k", NudgeType.STREAK, 3)
        context = generate_nudge_context(decision)

        record = create_nudge_record(context, now=NOW)

        assert record.id == context.nudge_id
        assert record.resolution_id == "r1"
        assert record.channel == NudgeChannel.IN_CONVERSATION
        assert record.status == NudgeStatus.DELIVERED
        assert record.delivered_at == NOW
        assert record.message == context.prompt

    def test_update_stats(self):
        resolution = make_resolution(last_nudge_days=10)

        update_resolution_nudge_stats(resolution, now=NOW)
        update_resolution_nudge_stats(resolution, now=NOW + timedelta(days=1))

        assert resolution.update_settings.nudge_count == 2
        assert resolution.update_settings.last_nudge_at == NOW + timedelta(days=1)
