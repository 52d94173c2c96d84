"""Read-only resolution routes for the dashboard."""

from fastapi import APIRouter, Depends, HTTPException

from coach.analytics import nudge_effectiveness
from coach.repository import ResolutionRepository
from web.deps import get_repository
from web.models import NudgeHistory, ResolutionFilter, ResolutionList

router = APIRouter(prefix="/api/resolutions", tags=["resolutions"])


@router.get("", response_model=ResolutionList)
async def list_resolutions(
    status: ResolutionFilter = "all",
    repository: ResolutionRepository = Depends(get_repository),
):
    found = repository.load_resolutions().by_status(status)
    found.sort(key=lambda r: r.created_at)
    return {"resolutions": [r.to_json_dict() for r in found], "count": len(found)}


@router.get("/{resolution_id}/nudges", response_model=NudgeHistory, response_model_by_alias=True)
async def nudge_history(resolution_id: str, repository: ResolutionRepository = Depends(get_repository)):
    resolution = repository.load_resolutions().get(resolution_id)
    if resolution is None:
        raise HTTPException(status_code=404, detail="Resolution not found")

    nudges = repository.load_nudges_for_resolution(resolution_id)
    return {
        "resolutionId": resolution_id,
        "nudges": [n.to_json_dict() for n in nudges],
        "effectiveness": nudge_effectiveness(nudges, [resolution]),
    }
