"""Health check — store connectivity and LLM configuration."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from coach.models import utcnow
from coach.repository import ResolutionRepository
from web.deps import API_VERSION, get_repository, llm_configured

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health(
    repository: ResolutionRepository = Depends(get_repository),
    anthropic_configured: bool = Depends(llm_configured),
):
    store = repository.health()

    if not store["connected"]:
        status = "unhealthy"
    elif not anthropic_configured:
        status = "degraded"
    else:
        status = "healthy"

    body = {
        "status": status,
        "timestamp": utcnow().isoformat(),
        "version": API_VERSION,
        "checks": {
            "database": {"status": "connected" if store["connected"] else "disconnected", **store},
            "anthropic": {"configured": anthropic_configured},
        },
    }
    return JSONResponse(status_code=503 if status == "unhealthy" else 200, content=body)
