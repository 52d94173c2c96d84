"""Pydantic request/response schemas for the web API."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# --- Chat ---


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., max_length=10_000)
    conversation_id: Optional[str] = Field(default=None, alias="conversationId", max_length=128)


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    conversation_id: str = Field(alias="conversationId")
    tools_used: list[str] = Field(default_factory=list, alias="toolsUsed")
    resolution_update: Optional[dict] = Field(default=None, alias="resolutionUpdate")
    resolutions: list[dict] = Field(default_factory=list)
    nudge: Optional[dict] = None


class InsightsResponse(BaseModel):
    insights: dict
    summary: dict


# --- Resolutions ---

ResolutionFilter = Literal["active", "completed", "all"]


class ResolutionList(BaseModel):
    resolutions: list[dict]
    count: int


class NudgeHistory(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resolution_id: str = Field(alias="resolutionId")
    nudges: list[dict]
    effectiveness: dict


# --- Preferences ---


class PreferencesResponse(BaseModel):
    preferences: dict
    success: bool = True
    message: Optional[str] = None
