"""Tests for the resolution tools and ToolRegistry dispatch."""

import json
from datetime import datetime, timezone

import pytest

from coach.repository import ResolutionSet
from coach.tools import (
    TOOL_DEFINITIONS,
    MODEL_RECENT_UPDATES,
    ToolName,
    ToolRegistry,
    ToolResult,
)
from factories import make_resolution, make_update
from shared_types import Frequency, ResolutionStatus, TriggeredBy, UpdateType


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def resolutions():
    return ResolutionSet()


def create(registry, resolutions, title="Run 5k", criteria="sub-25min by Dec", **extra):
    return registry.execute(
        ToolName.CREATE_RESOLUTION,
        {"title": title, "measurable_criteria": criteria, **extra},
        resolutions,
    )


class TestCreate:
    def test_create_then_list_active(self, registry, resolutions):
        result = create(registry, resolutions)
        assert result.success

        listed = registry.execute(ToolName.LIST_RESOLUTIONS, {"status": "active"}, resolutions)
        assert listed.count == 1
        assert listed.resolutions[0].title == "Run 5k"
        assert listed.resolutions[0].status == ResolutionStatus.ACTIVE

    def test_sixth_active_resolution_rejected(self, registry, resolutions):
        for i in range(5):
            assert create(registry, resolutions, title=f"Goal {i}").success

        result = create(registry, resolutions, title="One too many")

        assert not result.success
        assert "limit" in result.error
        assert len(resolutions) == 5
        assert all(r.title != "One too many" for r in resolutions)

    def test_completed_resolutions_do_not_count_toward_limit(self, registry, resolutions):
        for i in range(5):
            create(registry, resolutions, title=f"Goal {i}")
        first = resolutions.values()[0]
        registry.execute(ToolName.COMPLETE_RESOLUTION, {"id": first.id}, resolutions)

        assert create(registry, resolutions, title="Fresh start").success
        assert len(resolutions.active()) == 5

    def test_custom_limit(self, resolutions):
        registry = ToolRegistry(max_active_resolutions=2)
        create(registry, resolutions, title="A")
        create(registry, resolutions, title="B")

        result = create(registry, resolutions, title="C")
        assert not result.success
        assert "2-resolution limit" in result.error

    @pytest.mark.parametrize(
        "title,criteria",
        [("", "sub-25min"), ("Run 5k", ""), ("   ", "sub-25min"), (None, "sub-25min")],
    )
    def test_missing_fields_rejected(self, registry, resolutions, title, criteria):
        result = registry.execute(
            ToolName.CREATE_RESOLUTION, {"title": title, "measurable_criteria": criteria}, resolutions
        )
        assert not result.success
        assert result.error == "Title and measurable_criteria are required"
        assert len(resolutions) == 0

    def test_fields_trimmed(self, registry, resolutions):
        result = create(registry, resolutions, title="  Read more  ", criteria=" 12 books ", context=" fun ")
        assert result.resolution.title == "Read more"
        assert result.resolution.measurable_criteria == "12 books"
        assert result.resolution.context == "fun"
        assert result.resolution.update_settings.enabled is True


class TestEdit:
    def test_no_fields_fails_and_leaves_record_untouched(self, registry, resolutions):
        rid = create(registry, resolutions).resolution.id
        before = resolutions.get(rid).to_json_bytes()

        result = registry.execute(
            ToolName.EDIT_RESOLUTION, {"resolution_id": rid, "title": "  ", "context": ""}, resolutions
        )

        assert not result.success
        assert result.message == "No changes provided"
        assert resolutions.get(rid).to_json_bytes() == before

    def test_edit_title_reports_diff(self, registry, resolutions):
        rid = create(registry, resolutions).resolution.id

        result = registry.execute(
            ToolName.EDIT_RESOLUTION, {"resolution_id": rid, "title": " Run 10k "}, resolutions
        )

        assert result.success
        assert '"Run 5k" → "Run 10k"' in result.message
        assert resolutions.get(rid).title == "Run 10k"
        assert resolutions.get(rid).updated_at is not None

    def test_resending_same_context_is_not_a_change(self, registry, resolutions):
        rid = create(registry, resolutions, context="training for spring").resolution.id
        before = resolutions.get(rid).to_json_bytes()

        result = registry.execute(
            ToolName.EDIT_RESOLUTION, {"resolution_id": rid, "context": " training for spring "}, resolutions
        )

        assert not result.success
        assert result.message == "No changes provided"
        assert resolutions.get(rid).updated_at is None
        assert resolutions.get(rid).to_json_bytes() == before

    def test_changed_context_reported(self, registry, resolutions):
        rid = create(registry, resolutions, context="training for spring").resolution.id

        result = registry.execute(ToolName.EDIT_RESOLUTION, {"resolution_id": rid, "context": "race in May"}, resolutions)

        assert result.success
        assert result.message.endswith("context updated")
        assert resolutions.get(rid).context == "race in May"

    def test_edit_unknown_id(self, registry, resolutions):
        result = registry.execute(ToolName.EDIT_RESOLUTION, {"resolution_id": "nope", "title": "x"}, resolutions)
        assert not result.success
        assert result.message == "Resolution not found"

    def test_edit_requires_id(self, registry, resolutions):
        result = registry.execute(ToolName.EDIT_RESOLUTION, {"title": "x"}, resolutions)
        assert not result.success
        assert "resolution_id" in result.error


class TestListCompleteDelete:
    def test_list_unknown_status_lists_all(self, registry, resolutions):
        create(registry, resolutions, title="A")
        create(registry, resolutions, title="B")
        result = registry.execute(ToolName.LIST_RESOLUTIONS, {"status": "everything"}, resolutions)
        assert result.success
        assert result.count == 2

    def test_complete_is_idempotent_but_restamps(self, registry, resolutions, monkeypatch):
        rid = create(registry, resolutions).resolution.id
        stamps = iter(
            [
                datetime(2025, 1, 1, tzinfo=timezone.utc),
                datetime(2025, 2, 1, tzinfo=timezone.utc),
            ]
        )
        monkeypatch.setattr("coach.tools.utcnow", lambda: next(stamps))

        first = registry.execute(ToolName.COMPLETE_RESOLUTION, {"id": rid}, resolutions)
        second = registry.execute(ToolName.COMPLETE_RESOLUTION, {"id": rid}, resolutions)

        assert first.success and second.success
        resolution = resolutions.get(rid)
        assert resolution.status == ResolutionStatus.COMPLETED
        assert resolution.completed_at == datetime(2025, 2, 1, tzinfo=timezone.utc)

    def test_complete_requires_id(self, registry, resolutions):
        result = registry.execute(ToolName.COMPLETE_RESOLUTION, {}, resolutions)
        assert not result.success
        assert result.error == "ID is required"

    def test_delete_then_list_and_delete_again(self, registry, resolutions):
        rid = create(registry, resolutions).resolution.id

        assert registry.execute(ToolName.DELETE_RESOLUTION, {"id": rid}, resolutions).success
        listed = registry.execute(ToolName.LIST_RESOLUTIONS, {"status": "all"}, resolutions)
        assert all(r.id != rid for r in listed.resolutions)

        again = registry.execute(ToolName.DELETE_RESOLUTION, {"id": rid}, resolutions)
        assert not again.success
        assert again.message == "Resolution not found"

    def test_delete_result_does_not_sync_client(self, registry, resolutions):
        rid = create(registry, resolutions).resolution.id
        result = registry.execute(ToolName.DELETE_RESOLUTION, {"id": rid}, resolutions)
        assert not result.syncs_client


class TestPrioritize:
    @pytest.fixture
    def seeded(self, resolutions):
        resolutions.add(make_resolution("Exercise daily", "30 minutes daily"))
        resolutions.add(make_resolution("Read books", "2 chapters per week"))
        resolutions.add(make_resolution("Learn Spanish", "finish the course by June"))
        return resolutions

    def test_no_active_resolutions(self, registry, resolutions):
        result = registry.execute(ToolName.PRIORITIZE_RESOLUTIONS, {}, resolutions)
        assert not result.success
        assert result.message == "No active resolutions to prioritize"

    def test_tiers_by_effort(self, registry, seeded):
        result = registry.execute(ToolName.PRIORITIZE_RESOLUTIONS, {"timePerWeek": 20}, seeded)

        assert result.success
        strategy = result.strategy
        assert [e["resolution"] for e in strategy["immediate"]] == ["Exercise daily"]
        assert [e["resolution"] for e in strategy["secondary"]] == ["Read books"]
        assert [e["resolution"] for e in strategy["maintenance"]] == ["Learn Spanish"]
        assert strategy["immediate"][0]["suggestedWeeklyHours"] == 12.0
        assert strategy["maintenance"][0]["suggestedMinimalEffort"].endswith("minutes per week")
        assert "## Your Resolution Strategy" in strategy["strategy"]

    def test_dependencies_are_asymmetric(self, registry, seeded):
        strategy = registry.execute(ToolName.PRIORITIZE_RESOLUTIONS, {}, seeded).strategy
        pairs = {(d["primary"], d["dependent"]) for d in strategy["dependencies"]}
        assert ("Exercise daily", "Learn Spanish") in pairs
        assert ("Learn Spanish", "Exercise daily") not in pairs

    def test_health_focus_boosts_exercise(self, registry, seeded):
        strategy = registry.execute(
            ToolName.PRIORITIZE_RESOLUTIONS, {"timePerWeek": 20, "focusArea": "Health"}, seeded
        ).strategy
        exercise = strategy["immediate"][0]
        assert exercise["suggestedWeeklyHours"] == 15.6
        assert exercise["reason"] == "Increased allocation due to health focus area"

    def test_follow_up_questions(self, registry, seeded):
        strategy = registry.execute(ToolName.PRIORITIZE_RESOLUTIONS, {"askFollowUp": True}, seeded).strategy
        assert strategy["questionsForClarification"]
        assert strategy["categories"]["health"] == ["Exercise daily"]

    def test_read_only(self, registry, seeded):
        before = {r.id: r.to_json_bytes() for r in seeded}
        registry.execute(ToolName.PRIORITIZE_RESOLUTIONS, {}, seeded)
        assert {r.id: r.to_json_bytes() for r in seeded} == before


class TestConfigureUpdates:
    def test_status_does_not_mutate(self, registry, resolutions, preferences):
        create(registry, resolutions)
        before = preferences.model_dump()

        result = registry.execute(ToolName.CONFIGURE_UPDATES, {"action": "status"}, resolutions, preferences)

        assert result.success
        assert result.status["globalEnabled"] is True
        assert result.status["resolutions"] == {"total": 1, "withUpdatesEnabled": 1}
        assert preferences.model_dump() == before
        assert not result.syncs_client

    def test_enable_sms_without_phone_fails(self, registry, resolutions, preferences):
        result = registry.execute(
            ToolName.CONFIGURE_UPDATES, {"action": "enable", "channel": "sms"}, resolutions, preferences
        )
        assert not result.success
        assert result.error == "No phone number configured. Please add a phone number in Settings first."
        assert preferences.sms.enabled is False

    def test_enable_sms_with_phone(self, registry, resolutions, preferences):
        preferences.sms.phone_number = "+15551234567"
        result = registry.execute(
            ToolName.CONFIGURE_UPDATES, {"action": "enable", "channel": "sms"}, resolutions, preferences
        )
        assert result.success
        assert preferences.sms.enabled is True
        assert result.preferences is preferences

    def test_disable_all(self, registry, resolutions, preferences):
        result = registry.execute(ToolName.CONFIGURE_UPDATES, {"action": "disable"}, resolutions, preferences)
        assert result.success
        assert preferences.updates_enabled is False

    def test_configure_frequency(self, registry, resolutions, preferences):
        result = registry.execute(
            ToolName.CONFIGURE_UPDATES,
            {"action": "configure", "frequency": "persistent"},
            resolutions,
            preferences,
        )
        assert result.success
        assert preferences.in_conversation.frequency == Frequency.PERSISTENT
        assert "moderate → persistent" in result.message

    def test_invalid_frequency_is_rejected(self, registry, resolutions, preferences):
        result = registry.execute(
            ToolName.CONFIGURE_UPDATES, {"action": "configure", "frequency": "hourly"}, resolutions, preferences
        )
        assert not result.success
        assert "frequency" in result.error

    def test_resolution_scope_toggle(self, registry, resolutions, preferences):
        rid = create(registry, resolutions).resolution.id
        result = registry.execute(
            ToolName.CONFIGURE_UPDATES,
            {"action": "disable", "scope": "resolution", "resolution_id": rid},
            resolutions,
            preferences,
        )
        assert result.success
        assert resolutions.get(rid).update_settings.enabled is False
        assert preferences.updates_enabled is True

    def test_resolution_scope_requires_id(self, registry, resolutions, preferences):
        result = registry.execute(
            ToolName.CONFIGURE_UPDATES, {"action": "enable", "scope": "resolution"}, resolutions, preferences
        )
        assert not result.success
        assert result.message == "Resolution ID required"

    def test_without_preferences(self, registry, resolutions):
        result = registry.execute(ToolName.CONFIGURE_UPDATES, {"action": "disable"}, resolutions, None)
        assert not result.success


class TestLogUpdate:
    def test_progress_logged(self, registry, resolutions):
        rid = create(registry, resolutions).resolution.id

        result = registry.execute(
            ToolName.LOG_UPDATE,
            {"resolution_id": rid, "type": "progress", "content": " ran 3k ", "progress_delta": 10},
            resolutions,
        )

        assert result.success
        assert result.message == 'Progress logged for "Run 5k" (+10%)'
        resolution = resolutions.get(rid)
        assert len(resolution.updates) == 1
        assert resolution.updates[0].content == "ran 3k"
        assert resolution.updates[0].triggered_by == TriggeredBy.USER
        assert resolution.updated_at == resolution.updates[0].created_at

    @pytest.mark.parametrize("delta", [150, -101])
    def test_delta_out_of_range(self, registry, resolutions, delta):
        rid = create(registry, resolutions).resolution.id
        result = registry.execute(
            ToolName.LOG_UPDATE,
            {"resolution_id": rid, "type": "progress", "content": "x", "progress_delta": delta},
            resolutions,
        )
        assert not result.success
        assert resolutions.get(rid).updates == []

    def test_requires_content(self, registry, resolutions):
        rid = create(registry, resolutions).resolution.id
        result = registry.execute(
            ToolName.LOG_UPDATE, {"resolution_id": rid, "type": "note", "content": "  "}, resolutions
        )
        assert not result.success
        assert result.message == "Content required"

    def test_nudge_triggered_update_keeps_response_rate(self, registry, resolutions):
        rid = create(registry, resolutions).resolution.id
        resolutions.get(rid).update_settings.nudge_count = 3

        result = registry.execute(
            ToolName.LOG_UPDATE,
            {"resolution_id": rid, "type": "setback", "content": "missed a week", "triggered_by": "nudge"},
            resolutions,
        )

        assert result.success
        assert result.update.type == UpdateType.SETBACK
        assert result.update.triggered_by == TriggeredBy.NUDGE
        assert resolutions.get(rid).update_settings.response_rate == 0.0


class TestRegistry:
    def test_definitions_cover_every_tool(self, registry):
        names = [d.name for d in registry.get_definitions()]
        assert sorted(names) == sorted(t.value for t in ToolName)
        assert len(TOOL_DEFINITIONS) == 8

    def test_definitions_are_api_ready(self):
        for definition in TOOL_DEFINITIONS:
            api = definition.to_api()
            assert api["input_schema"]["type"] == "object"
            json.dumps(api)

    def test_parse(self):
        assert ToolName.parse("log_update") is ToolName.LOG_UPDATE
        assert ToolName.parse("send_email") is None

    def test_unknown_tool_never_raises(self, registry, resolutions):
        result = registry.execute("send_email", {}, resolutions)
        assert not result.success
        assert result.message == "Unknown tool"

    def test_execute_accepts_plain_name(self, registry, resolutions):
        by_name = registry.execute(
            "create_resolution", {"title": "Run 5k", "measurable_criteria": "weekly"}, resolutions
        )
        by_enum = registry.execute(ToolName.LIST_RESOLUTIONS, {}, resolutions)
        assert by_name.success
        assert by_enum.count == 1

    def test_handler_exception_becomes_failure(self, registry):
        result = registry.execute(ToolName.LIST_RESOLUTIONS, {"status": "all"}, None)
        assert not result.success
        assert result.message == "Failed to run list_resolutions"

    def test_large_list_stays_valid_json(self, registry, resolutions):
        for i in range(5):
            resolutions.add(
                make_resolution(
                    f"Goal {i}",
                    id=f"r{i}",
                    updates=[make_update(days_ago=d, content="Ran three miles " * 20) for d in range(12, 0, -1)],
                )
            )

        result = registry.execute(ToolName.LIST_RESOLUTIONS, {"status": "all"}, resolutions)
        payload = json.loads(result.to_json())

        assert [r["id"] for r in payload["resolutions"]] == [f"r{i}" for i in range(5)]
        for listed in payload["resolutions"]:
            assert listed["updateCount"] == 12
            assert len(listed["updates"]) == MODEL_RECENT_UPDATES
        # newest updates are the ones kept
        newest = resolutions.get("r0").updates[-1].id
        assert payload["resolutions"][0]["updates"][-1]["id"] == newest

    def test_result_dict_is_camel_case(self, registry, resolutions):
        result = create(registry, resolutions)
        payload = result.to_dict()
        assert payload["resolution"]["measurableCriteria"] == "sub-25min by Dec"
        assert "error" not in payload
