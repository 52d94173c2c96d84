"""Tool registry for the resolution coach: eight fixed operations on the working set.

Every tool takes a typed input, the request's ResolutionSet and (optionally)
the user preferences, mutates them in place, and returns a ToolResult. Tools
never raise: validation problems come back as ``success=False`` results so the
model can explain them to the user.
"""

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llm.base import ToolDefinition
from observability import metrics
from shared_types import Frequency, ResolutionStatus, Sentiment, TriggeredBy, UpdateType

from .models import Resolution, Update, UpdateSettings, UserPreferences, utcnow
from .prioritize import build_strategy
from .repository import ResolutionSet

logger = structlog.get_logger()

MAX_ACTIVE_RESOLUTIONS = 5
DEFAULT_HOURS_PER_WEEK = 20
DEFAULT_FOCUS_AREA = "balanced growth"

# Bumped whenever a tool name, description or parameter changes
TOOL_SCHEMA_VERSION = "2025-01-w1"

# Updates per resolution shown to the model; older ones are summarized as updateCount
MODEL_RECENT_UPDATES = 5


class ToolName(StrEnum):
    CREATE_RESOLUTION = "create_resolution"
    EDIT_RESOLUTION = "edit_resolution"
    LIST_RESOLUTIONS = "list_resolutions"
    COMPLETE_RESOLUTION = "complete_resolution"
    DELETE_RESOLUTION = "delete_resolution"
    PRIORITIZE_RESOLUTIONS = "prioritize_resolutions"
    CONFIGURE_UPDATES = "configure_updates"
    LOG_UPDATE = "log_update"

    @classmethod
    def parse(cls, name: str) -> Optional["ToolName"]:
        """Map a model-supplied name onto a tool, or None if unknown."""
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass
class ToolResult:
    success: bool
    message: str
    error: Optional[str] = None
    resolution: Optional[Resolution] = None
    resolutions: Optional[list[Resolution]] = None
    count: Optional[int] = None
    update: Optional[Update] = None
    preferences: Optional[UserPreferences] = None
    strategy: Optional[dict] = None
    status: Optional[dict] = None

    @classmethod
    def fail(cls, message: str, error: str) -> "ToolResult":
        return cls(success=False, message=message, error=error)

    @property
    def syncs_client(self) -> bool:
        """Whether this result carries state the client should re-render."""
        return self.resolution is not None or self.preferences is not None

    def to_dict(self) -> dict:
        out: dict = {"success": self.success, "message": self.message}
        if self.error is not None:
            out["error"] = self.error
        for key in ("resolution", "update", "preferences"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value.to_json_dict()
        if self.resolutions is not None:
            out["resolutions"] = [r.to_json_dict() for r in self.resolutions]
        for key in ("count", "strategy", "status"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out

    def to_json(self) -> str:
        """JSON fed back to the model, with each update log cut to its newest entries."""
        payload = self.to_dict()
        if "resolution" in payload:
            payload["resolution"] = _recent_updates_only(payload["resolution"])
        if "resolutions" in payload:
            payload["resolutions"] = [_recent_updates_only(r) for r in payload["resolutions"]]
        return json.dumps(payload, default=str)


def _recent_updates_only(resolution: dict) -> dict:
    updates = resolution.get("updates") or []
    return {**resolution, "updates": updates[-MODEL_RECENT_UPDATES:], "updateCount": len(updates)}


def _not_found(resolution_id: str) -> ToolResult:
    return ToolResult.fail("Resolution not found", f'Resolution with ID "{resolution_id}" does not exist')


def _clean(value: Optional[str]) -> str:
    return value.strip() if value else ""


# --- Inputs ---


class ToolInput(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CreateResolutionInput(ToolInput):
    title: Optional[str] = None
    measurable_criteria: Optional[str] = None
    context: Optional[str] = None


class EditResolutionInput(ToolInput):
    resolution_id: Optional[str] = None
    title: Optional[str] = None
    measurable_criteria: Optional[str] = None
    context: Optional[str] = None


class ListResolutionsInput(ToolInput):
    status: Optional[str] = "all"


class ResolutionIdInput(ToolInput):
    id: Optional[str] = None


class PrioritizeInput(ToolInput):
    time_per_week: Optional[float] = Field(default=None, alias="timePerWeek")
    focus_area: Optional[str] = Field(default=None, alias="focusArea")
    constraints: Optional[str] = None
    ask_follow_up: bool = Field(default=False, alias="askFollowUp")


class ConfigureUpdatesInput(ToolInput):
    action: Optional[Literal["enable", "disable", "configure", "status"]] = None
    scope: Literal["global", "resolution"] = "global"
    resolution_id: Optional[str] = None
    frequency: Optional[Frequency] = None
    channel: Literal["in_conversation", "sms", "all"] = "all"


class LogUpdateInput(ToolInput):
    resolution_id: Optional[str] = None
    type: Optional[UpdateType] = None
    content: Optional[str] = None
    sentiment: Optional[Sentiment] = None
    progress_delta: Optional[float] = None
    triggered_by: TriggeredBy = TriggeredBy.USER


# --- Tools ---


def create_resolution(
    args: CreateResolutionInput,
    resolutions: ResolutionSet,
    preferences: Optional[UserPreferences] = None,
    max_active: int = MAX_ACTIVE_RESOLUTIONS,
) -> ToolResult:
    if len(resolutions.active()) >= max_active:
        return ToolResult.fail(
            "Resolution limit reached",
            f"You have reached the {max_active}-resolution limit. Complete or delete one first.",
        )

    title = _clean(args.title)
    criteria = _clean(args.measurable_criteria)
    if not title or not criteria:
        return ToolResult.fail("Missing required fields", "Title and measurable_criteria are required")

    resolution = Resolution(
        title=title,
        measurable_criteria=criteria,
        context=_clean(args.context),
        update_settings=UpdateSettings(),
    )
    resolutions.add(resolution)
    logger.info("resolution.created", resolution_id=resolution.id, title=title)
    return ToolResult(success=True, message=f'Created resolution: "{title}"', resolution=resolution)


def edit_resolution(
    args: EditResolutionInput, resolutions: ResolutionSet, preferences: Optional[UserPreferences] = None
) -> ToolResult:
    if not args.resolution_id:
        return ToolResult.fail("Missing resolution ID", "resolution_id is required to edit a resolution")

    resolution = resolutions.get(args.resolution_id)
    if resolution is None:
        return _not_found(args.resolution_id)

    title = _clean(args.title)
    criteria = _clean(args.measurable_criteria)
    # Context may be cleared, so an empty string still counts as provided
    context = args.context.strip() if args.context is not None else None

    changes = []
    if title:
        changes.append(f'title: "{resolution.title}" → "{title}"')
    if criteria:
        changes.append("measurable criteria updated")
    if context is not None and context != resolution.context:
        changes.append("context updated")
    if not changes:
        return ToolResult.fail(
            "No changes provided",
            "At least one field (title, measurable_criteria, or context) must be provided to edit",
        )

    if title:
        resolution.title = title
    if criteria:
        resolution.measurable_criteria = criteria
    if context is not None:
        resolution.context = context
    resolution.updated_at = utcnow()

    summary = ", ".join(changes)
    logger.info("resolution.edited", resolution_id=resolution.id, changes=summary)
    return ToolResult(
        success=True,
        message=f'Updated resolution "{resolution.title}": {summary}',
        resolution=resolution,
    )


def list_resolutions(
    args: ListResolutionsInput, resolutions: ResolutionSet, preferences: Optional[UserPreferences] = None
) -> ToolResult:
    status = args.status if args.status in ("active", "completed") else "all"
    found = resolutions.by_status(status)
    return ToolResult(
        success=True,
        message=f"Found {len(found)} {status} resolutions",
        count=len(found),
        resolutions=found,
    )


def complete_resolution(
    args: ResolutionIdInput, resolutions: ResolutionSet, preferences: Optional[UserPreferences] = None
) -> ToolResult:
    if not args.id:
        return ToolResult.fail("Missing resolution ID", "ID is required")

    resolution = resolutions.get(args.id)
    if resolution is None:
        return _not_found(args.id)

    # Completing twice keeps the status and moves completed_at to now
    resolution.status = ResolutionStatus.COMPLETED
    resolution.completed_at = utcnow()
    logger.info("resolution.completed", resolution_id=resolution.id)
    return ToolResult(success=True, message=f'Completed: "{resolution.title}"', resolution=resolution)


def delete_resolution(
    args: ResolutionIdInput, resolutions: ResolutionSet, preferences: Optional[UserPreferences] = None
) -> ToolResult:
    if not args.id:
        return ToolResult.fail("Missing resolution ID", "ID is required")

    resolution = resolutions.remove(args.id)
    if resolution is None:
        return _not_found(args.id)

    logger.info("resolution.deleted", resolution_id=args.id)
    return ToolResult(success=True, message=f'Deleted resolution: "{resolution.title}"')


def prioritize_resolutions(
    args: PrioritizeInput, resolutions: ResolutionSet, preferences: Optional[UserPreferences] = None
) -> ToolResult:
    active = resolutions.active()
    if not active:
        return ToolResult.fail(
            "No active resolutions to prioritize",
            "Create some resolutions first before prioritizing",
        )

    strategy = build_strategy(
        active,
        time_per_week=args.time_per_week or DEFAULT_HOURS_PER_WEEK,
        focus_area=args.focus_area or DEFAULT_FOCUS_AREA,
        constraints=args.constraints,
        ask_follow_up=args.ask_follow_up,
    )
    logger.info("resolution.prioritized", count=len(active))
    return ToolResult(
        success=True,
        message=f"Created prioritization strategy for {len(active)} resolutions",
        strategy=strategy,
    )


def _update_status(
    resolutions: ResolutionSet, preferences: UserPreferences, resolution_id: Optional[str]
) -> ToolResult:
    if resolution_id:
        resolution = resolutions.get(resolution_id)
        if resolution is None:
            return _not_found(resolution_id)
        settings = resolution.update_settings
        return ToolResult(
            success=True,
            message=f'Update settings for "{resolution.title}"',
            status={
                "resolution": resolution.title,
                "updatesEnabled": settings.enabled,
                "lastNudge": settings.last_nudge_at.isoformat() if settings.last_nudge_at else None,
                "nudgeCount": settings.nudge_count,
                "responseRate": f"{round(settings.response_rate * 100)}%",
            },
        )

    active = resolutions.active()
    return ToolResult(
        success=True,
        message="Current update settings",
        status={
            "globalEnabled": preferences.updates_enabled,
            "inConversation": {
                "enabled": preferences.in_conversation.enabled,
                "frequency": str(preferences.in_conversation.frequency),
            },
            "sms": {
                "enabled": preferences.sms.enabled,
                "configured": bool(preferences.sms.phone_number),
                "verified": preferences.sms.verified,
            },
            "defaultCadence": preferences.default_cadence.to_json_dict(),
            "resolutions": {
                "total": len(active),
                "withUpdatesEnabled": sum(1 for r in active if r.update_settings.enabled),
            },
        },
    )


def _configure_resolution(resolution: Resolution, action: str, frequency: Optional[Frequency]) -> ToolResult:
    settings = resolution.update_settings
    if action in ("enable", "disable"):
        wanted = action == "enable"
        if settings.enabled == wanted:
            return ToolResult(
                success=True,
                message=f'Updates already {action}d for "{resolution.title}"',
                resolution=resolution,
            )
        settings.enabled = wanted
        change = f"updates {action}d"
    elif frequency:
        # Per-resolution cadence overrides are not modelled; the global frequency applies
        change = f"frequency preference noted ({frequency})"
    else:
        return ToolResult(success=True, message="No changes made", resolution=resolution)

    logger.info("resolution.updates_configured", resolution_id=resolution.id, change=change)
    return ToolResult(success=True, message=f'Updated "{resolution.title}": {change}', resolution=resolution)


def _configure_global(
    preferences: UserPreferences, action: str, frequency: Optional[Frequency], channel: str
) -> ToolResult:
    changes = []

    if action == "enable":
        if not preferences.updates_enabled:
            preferences.updates_enabled = True
            changes.append("updates enabled globally")
        if channel in ("in_conversation", "all") and not preferences.in_conversation.enabled:
            preferences.in_conversation.enabled = True
            changes.append("in-conversation nudges enabled")
        if channel in ("sms", "all") and not preferences.sms.enabled:
            if not preferences.sms.phone_number:
                return ToolResult.fail(
                    "Cannot enable SMS",
                    "No phone number configured. Please add a phone number in Settings first.",
                )
            preferences.sms.enabled = True
            changes.append("SMS reminders enabled")
        if not changes:
            return ToolResult(success=True, message="Updates already enabled", preferences=preferences)

    elif action == "disable":
        if channel == "in_conversation":
            if preferences.in_conversation.enabled:
                preferences.in_conversation.enabled = False
                changes.append("in-conversation nudges disabled")
        elif channel == "sms":
            if preferences.sms.enabled:
                preferences.sms.enabled = False
                changes.append("SMS reminders disabled")
        elif preferences.updates_enabled:
            preferences.updates_enabled = False
            changes.append("all updates disabled")
        if not changes:
            return ToolResult(success=True, message="Updates already disabled", preferences=preferences)

    elif action == "configure":
        old = preferences.in_conversation.frequency
        if frequency and frequency != old:
            preferences.in_conversation.frequency = frequency
            changes.append(f"frequency changed: {old} → {frequency}")
        if not changes:
            return ToolResult(success=True, message="No changes made", preferences=preferences)

    logger.info("preferences.configured", changes=changes)
    return ToolResult(success=True, message=", ".join(changes), preferences=preferences)


def configure_updates(
    args: ConfigureUpdatesInput, resolutions: ResolutionSet, preferences: Optional[UserPreferences] = None
) -> ToolResult:
    if not args.action:
        return ToolResult.fail("Action required", "action must be one of: enable, disable, configure, status")
    if preferences is None:
        return ToolResult.fail("Preferences unavailable", "Update preferences could not be loaded")

    if args.action == "status":
        return _update_status(resolutions, preferences, args.resolution_id)

    if args.scope == "resolution":
        if not args.resolution_id:
            return ToolResult.fail(
                "Resolution ID required",
                'When scope is "resolution", resolution_id must be provided',
            )
        resolution = resolutions.get(args.resolution_id)
        if resolution is None:
            return _not_found(args.resolution_id)
        return _configure_resolution(resolution, args.action, args.frequency)

    return _configure_global(preferences, args.action, args.frequency, args.channel)


_UPDATE_MESSAGES = {
    UpdateType.PROGRESS: 'Progress logged for "{title}"',
    UpdateType.SETBACK: 'Setback noted for "{title}"',
    UpdateType.MILESTONE: 'Milestone achieved for "{title}"!',
    UpdateType.NOTE: 'Note added to "{title}"',
}


def log_update(
    args: LogUpdateInput, resolutions: ResolutionSet, preferences: Optional[UserPreferences] = None
) -> ToolResult:
    if not args.resolution_id:
        return ToolResult.fail("Resolution ID required", "resolution_id is required to log an update")
    if args.type is None:
        return ToolResult.fail("Update type required", "type must be one of: progress, setback, milestone, note")
    content = _clean(args.content)
    if not content:
        return ToolResult.fail("Content required", "Update content cannot be empty")

    resolution = resolutions.get(args.resolution_id)
    if resolution is None:
        return _not_found(args.resolution_id)

    delta = args.progress_delta
    if delta is not None and not -100 <= delta <= 100:
        return ToolResult.fail("Invalid progress delta", "progress_delta must be between -100 and 100")

    update = Update(
        type=args.type,
        content=content,
        sentiment=args.sentiment,
        progress_delta=delta,
        triggered_by=args.triggered_by,
    )
    resolution.updates.append(update)
    resolution.updated_at = update.created_at

    message = _UPDATE_MESSAGES[args.type].format(title=resolution.title)
    if args.type == UpdateType.PROGRESS and delta and delta > 0:
        message += f" (+{delta:g}%)"
    elif args.type == UpdateType.SETBACK and delta and delta < 0:
        message += f" ({delta:g}%)"

    logger.info(
        "resolution.update_logged",
        resolution_id=resolution.id,
        type=str(args.type),
        triggered_by=str(args.triggered_by),
    )
    return ToolResult(success=True, message=message, resolution=resolution, update=update)


# --- Schema ---

_ID_PROPERTY = {"type": "string", "description": "The resolution ID"}

TOOL_DEFINITIONS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name=ToolName.CREATE_RESOLUTION,
        description="Create a new active resolution with measurable criteria. "
        "Call this after getting clarity from the user.",
        input_schema={
            "type": "object",
            "properties": {
                "title": {
                    "type": "string",
                    "description": 'The resolution title (e.g., "Exercise 3 times per week")',
                },
                "measurable_criteria": {
                    "type": "string",
                    "description": 'How to measure success (e.g., "3 workouts per week for 52 weeks")',
                },
                "context": {"type": "string", "description": "Brief context about why this matters (optional)"},
            },
            "required": ["title", "measurable_criteria"],
        },
    ),
    ToolDefinition(
        name=ToolName.EDIT_RESOLUTION,
        description="Edit an existing resolution title, measurable criteria, or context",
        input_schema={
            "type": "object",
            "properties": {
                "resolution_id": {"type": "string", "description": "The ID of the resolution to edit"},
                "title": {"type": "string", "description": "New title for the resolution (optional)"},
                "measurable_criteria": {"type": "string", "description": "New measurable criteria (optional)"},
                "context": {"type": "string", "description": "New context statement (optional)"},
            },
            "required": ["resolution_id"],
        },
    ),
    ToolDefinition(
        name=ToolName.LIST_RESOLUTIONS,
        description="Get the current list of resolutions to check status, limits, and duplicates",
        input_schema={
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": ["active", "completed", "all"],
                    "description": "Which resolutions to list",
                },
            },
            "required": ["status"],
        },
    ),
    ToolDefinition(
        name=ToolName.COMPLETE_RESOLUTION,
        description="Mark a resolution as completed",
        input_schema={"type": "object", "properties": {"id": _ID_PROPERTY}, "required": ["id"]},
    ),
    ToolDefinition(
        name=ToolName.DELETE_RESOLUTION,
        description="Permanently delete a resolution",
        input_schema={
            "type": "object",
            "properties": {"id": {"type": "string", "description": "The resolution ID to delete"}},
            "required": ["id"],
        },
    ),
    ToolDefinition(
        name=ToolName.PRIORITIZE_RESOLUTIONS,
        description="Prioritize active resolutions with reasoning about focus, time allocation, "
        "and dependencies.",
        input_schema={
            "type": "object",
            "properties": {
                "timePerWeek": {
                    "type": "number",
                    "description": "Hours available per week for resolutions (default: 20)",
                },
                "focusArea": {
                    "type": "string",
                    "description": 'Current life focus area (e.g., "health", "career", "balanced growth")',
                },
                "constraints": {
                    "type": "string",
                    "description": "Any constraints or challenges affecting prioritization",
                },
                "askFollowUp": {
                    "type": "boolean",
                    "description": "Whether to include clarifying questions to refine the strategy",
                },
            },
            "required": [],
        },
    ),
    ToolDefinition(
        name=ToolName.CONFIGURE_UPDATES,
        description="Enable, disable, configure or inspect proactive check-ins, globally or for "
        "one resolution.",
        input_schema={
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["enable", "disable", "configure", "status"]},
                "scope": {
                    "type": "string",
                    "enum": ["global", "resolution"],
                    "description": "Apply to all updates or a single resolution (default: global)",
                },
                "resolution_id": {"type": "string", "description": "Required when scope is resolution"},
                "frequency": {
                    "type": "string",
                    "enum": ["gentle", "moderate", "persistent"],
                    "description": "gentle = weekly, moderate = every 3 days, persistent = daily",
                },
                "channel": {
                    "type": "string",
                    "enum": ["in_conversation", "sms", "all"],
                    "description": "Which channel to enable/disable (default: all)",
                },
            },
            "required": ["action"],
        },
    ),
    ToolDefinition(
        name=ToolName.LOG_UPDATE,
        description="Log progress, a setback, a milestone or a note against a resolution.",
        input_schema={
            "type": "object",
            "properties": {
                "resolution_id": _ID_PROPERTY,
                "type": {"type": "string", "enum": ["progress", "setback", "milestone", "note"]},
                "content": {"type": "string", "description": "What happened, in the user's words"},
                "sentiment": {"type": "string", "enum": ["positive", "neutral", "struggling"]},
                "progress_delta": {
                    "type": "number",
                    "description": "Estimated progress change from -100 to 100 (optional)",
                },
                "triggered_by": {
                    "type": "string",
                    "enum": ["user", "nudge", "sms"],
                    "description": "Use nudge when answering a check-in you raised",
                },
            },
            "required": ["resolution_id", "type", "content"],
        },
    ),
)

ToolHandler = Callable[..., ToolResult]

_HANDLERS: dict[ToolName, tuple[type[ToolInput], ToolHandler]] = {
    ToolName.CREATE_RESOLUTION: (CreateResolutionInput, create_resolution),
    ToolName.EDIT_RESOLUTION: (EditResolutionInput, edit_resolution),
    ToolName.LIST_RESOLUTIONS: (ListResolutionsInput, list_resolutions),
    ToolName.COMPLETE_RESOLUTION: (ResolutionIdInput, complete_resolution),
    ToolName.DELETE_RESOLUTION: (ResolutionIdInput, delete_resolution),
    ToolName.PRIORITIZE_RESOLUTIONS: (PrioritizeInput, prioritize_resolutions),
    ToolName.CONFIGURE_UPDATES: (ConfigureUpdatesInput, configure_updates),
    ToolName.LOG_UPDATE: (LogUpdateInput, log_update),
}


class ToolRegistry:
    """Dispatches model tool calls to the resolution tools."""

    def __init__(self, max_active_resolutions: int = MAX_ACTIVE_RESOLUTIONS):
        self.max_active_resolutions = max_active_resolutions

    def get_definitions(self) -> list[ToolDefinition]:
        return list(TOOL_DEFINITIONS)

    def execute(
        self,
        name: str | ToolName,
        arguments: dict,
        resolutions: ResolutionSet,
        preferences: Optional[UserPreferences] = None,
    ) -> ToolResult:
        """Run one tool by name. Never raises; unknown names come back as failures."""
        tool = ToolName.parse(name)
        if tool is None:
            return ToolResult.fail("Unknown tool", f"No tool named {name!r}")
        input_model, handler = _HANDLERS[tool]
        metrics.counter(f"tool.{tool}")

        try:
            args = input_model.model_validate(arguments or {})
        except ValidationError as e:
            metrics.counter("tool.invalid_input")
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            return ToolResult.fail("Invalid input", f"Invalid value for: {fields}")

        try:
            if tool is ToolName.CREATE_RESOLUTION:
                result = handler(args, resolutions, preferences, max_active=self.max_active_resolutions)
            else:
                result = handler(args, resolutions, preferences)
        except Exception as e:
            logger.error("tool_execution_failed", tool=str(tool), error=str(e))
            metrics.counter("tool.failed")
            return ToolResult.fail(f"Failed to run {tool}", str(e))

        if not result.success:
            metrics.counter("tool.rejected")
        return result
