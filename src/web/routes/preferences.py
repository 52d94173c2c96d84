"""Nudge preferences routes."""

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from cli.config import deep_merge
from coach.models import UserPreferences
from coach.repository import ResolutionRepository
from web.deps import get_repository
from web.models import PreferencesResponse

router = APIRouter(prefix="/api/preferences", tags=["preferences"])


@router.get("", response_model=PreferencesResponse)
async def get_preferences(repository: ResolutionRepository = Depends(get_repository)):
    return {"preferences": repository.load_preferences().to_json_dict()}


@router.put("", response_model=PreferencesResponse)
async def update_preferences(
    updates: dict = Body(...),
    repository: ResolutionRepository = Depends(get_repository),
):
    """Deep-merge a partial camelCase preferences object into the stored one."""
    current = repository.load_preferences().to_json_dict()
    updates.pop("updatedAt", None)
    try:
        merged = UserPreferences.model_validate(deep_merge(current, updates))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    repository.save_preferences(merged)
    return {"preferences": merged.to_json_dict(), "message": "Preferences updated"}
