"""Tests for ResolutionRepository persistence."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from coach.models import Conversation, Message, NudgeRecord
from coach.repository import (
    CONVERSATION_KEY_PREFIX,
    PREFERENCES_KEY,
    RESOLUTION_KEY_PREFIX,
    RESOLUTIONS_SET_KEY,
    ResolutionRepository,
)
from coach.store import InMemoryRecordStore, StoreConflictError, StoreUnavailableError
from coach.tools import ToolName, ToolRegistry
from factories import NOW, make_resolution, seed
from shared_types import Frequency, NudgeStatus


class TestResolutions:
    def test_commit_then_load(self, repository):
        seed(repository, make_resolution("Run 5k"), make_resolution("Read more"))

        loaded = repository.load_resolutions()

        assert sorted(r.title for r in loaded) == ["Read more", "Run 5k"]

    def test_commit_only_writes_changes(self, repository, store):
        seed(repository, make_resolution("Run 5k"), make_resolution("Read more"))
        working = repository.load_resolutions()
        assert repository.commit(working) == 0

        working.values()[0].title = "Run 10k"
        assert repository.commit(working) == 1

    def test_delete_removes_from_index(self, repository, store):
        resolution = make_resolution()
        seed(repository, resolution)

        working = repository.load_resolutions()
        working.remove(resolution.id)
        repository.commit(working)

        assert store.members_of(RESOLUTIONS_SET_KEY) == []
        assert store.get(f"{RESOLUTION_KEY_PREFIX}{resolution.id}") is None

    def test_concurrent_edit_conflicts(self, repository):
        resolution = make_resolution()
        seed(repository, resolution)

        first = repository.load_resolutions()
        second = repository.load_resolutions()
        first.get(resolution.id).title = "First writer"
        second.get(resolution.id).title = "Second writer"

        repository.commit(first)
        with pytest.raises(StoreConflictError) as exc:
            repository.commit(second)

        assert exc.value.keys == [resolution.id]
        assert repository.load_resolutions().get(resolution.id).title == "First writer"

    def test_disjoint_edits_both_commit(self, repository):
        a, b = make_resolution("A"), make_resolution("B")
        seed(repository, a, b)

        first = repository.load_resolutions()
        second = repository.load_resolutions()
        first.get(a.id).title = "A2"
        second.get(b.id).title = "B2"
        repository.commit(first)
        repository.commit(second)

        loaded = repository.load_resolutions()
        assert loaded.get(a.id).title == "A2"
        assert loaded.get(b.id).title == "B2"

    def test_conflicting_commit_writes_nothing(self, repository):
        resolution = make_resolution("Run 5k")
        seed(repository, resolution)

        first = repository.load_resolutions()
        second = repository.load_resolutions()
        first.add(make_resolution("New"))
        first.get(resolution.id).title = "First title"
        second.get(resolution.id).title = "Second title"
        repository.commit(second)

        with pytest.raises(StoreConflictError):
            repository.commit(first)

        assert [r.title for r in repository.load_resolutions()] == ["Second title"]

    def test_concurrent_creates_cannot_exceed_active_limit(self, repository):
        seed(repository, *(make_resolution(f"Goal {i}") for i in range(4)))
        registry = ToolRegistry()

        first = repository.load_resolutions()
        second = repository.load_resolutions()
        for working, title in ((first, "Fifth"), (second, "Sixth")):
            created = registry.execute(
                ToolName.CREATE_RESOLUTION, {"title": title, "measurable_criteria": "weekly"}, working
            )
            assert created.success

        repository.commit(first)
        with pytest.raises(StoreConflictError) as exc:
            repository.commit(second)

        assert exc.value.keys == [RESOLUTIONS_SET_KEY]
        assert len(repository.load_resolutions().active()) == 5

    def test_recommit_after_create_uses_new_version(self, repository):
        working = repository.load_resolutions()
        working.add(make_resolution("A"))
        repository.commit(working)
        working.add(make_resolution("B"))
        repository.commit(working)

        assert sorted(r.title for r in repository.load_resolutions()) == ["A", "B"]

    def test_delete_of_concurrently_edited_record_conflicts(self, repository):
        resolution = make_resolution()
        seed(repository, resolution)

        editor = repository.load_resolutions()
        deleter = repository.load_resolutions()
        editor.get(resolution.id).context = "edited"
        repository.commit(editor)
        deleter.remove(resolution.id)

        with pytest.raises(StoreConflictError):
            repository.commit(deleter)

    def test_unparseable_blob_skipped(self, repository, store):
        seed(repository, make_resolution("Good"))
        store.set(f"{RESOLUTION_KEY_PREFIX}bad", b"{not json")
        store.add_to_set(RESOLUTIONS_SET_KEY, "bad")
        store.add_to_set(RESOLUTIONS_SET_KEY, "dangling")

        loaded = repository.load_resolutions()

        assert [r.title for r in loaded] == ["Good"]


class TestPreferences:
    def test_defaults_when_missing(self, repository):
        prefs = repository.load_preferences()
        assert prefs.updates_enabled is True
        assert prefs.in_conversation.frequency == Frequency.MODERATE

    def test_save_round_trip(self, repository, store, preferences):
        preferences.in_conversation.frequency = Frequency.GENTLE
        repository.save_preferences(preferences)

        assert b"inConversation" in store.get(PREFERENCES_KEY)
        assert repository.load_preferences().in_conversation.frequency == Frequency.GENTLE

    def test_corrupt_preferences_fall_back_to_defaults(self, repository, store):
        store.set(PREFERENCES_KEY, b"[]")
        assert repository.load_preferences().updates_enabled is True


class TestConversations:
    def test_new_conversation(self, repository):
        conversation = repository.load_conversation("c1")
        assert conversation.id == "c1"
        assert conversation.messages == []
        assert conversation.nudge_count == 0

    def test_conversation_expires(self):
        clock = MagicMock(return_value=0.0)
        repository = ResolutionRepository(InMemoryRecordStore(clock=clock), conversation_ttl_seconds=60)
        repository.save_conversation(
            Conversation(id="c1", messages=[Message(role="user", content="hi")], nudge_count=1)
        )

        assert repository.load_conversation("c1").nudge_count == 1
        clock.return_value = 61.0
        assert repository.load_conversation("c1").nudge_count == 0

    def test_history(self):
        conversation = Conversation(
            id="c1",
            messages=[Message(role="user", content="hi"), Message(role="assistant", content="hello")],
        )
        assert conversation.history() == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]

    def test_conversation_key(self, repository, store):
        repository.save_conversation(Conversation(id="abc"))
        assert store.get(f"{CONVERSATION_KEY_PREFIX}abc") is not None


class TestNudges:
    def test_newest_first(self, repository):
        old = NudgeRecord(resolution_id="r1", created_at=NOW - timedelta(days=3))
        new = NudgeRecord(resolution_id="r1", created_at=NOW)
        other = NudgeRecord(resolution_id="r2", created_at=NOW)
        for n in (old, new, other):
            repository.save_nudge(n)

        loaded = repository.load_nudges_for_resolution("r1")

        assert [n.id for n in loaded] == [new.id, old.id]

    def test_update_nudge(self, repository):
        nudge = NudgeRecord(resolution_id="r1")
        repository.save_nudge(nudge)
        nudge.status = NudgeStatus.RESPONDED
        nudge.response_at = NOW
        repository.update_nudge(nudge)

        loaded = repository.load_nudges_for_resolution("r1")
        assert loaded[0].status == NudgeStatus.RESPONDED
        assert loaded[0].response_at == NOW


class TestHealth:
    def test_connected(self, repository):
        assert repository.health() == {"connected": True, "latencyMs": 0.0}

    def test_disconnected(self):
        store = MagicMock()
        store.ping.side_effect = StoreUnavailableError("Redis ping failed: timeout")

        health = ResolutionRepository(store).health()

        assert health["connected"] is False
        assert "timeout" in health["error"]
