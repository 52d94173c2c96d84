"""Chat route and the coaching insights behind it."""

import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException

from coach.analytics import generate_user_insights
from coach.chat import ChatService
from coach.repository import ResolutionRepository
from web.deps import get_chat_service, get_repository, get_user_name
from web.models import ChatRequest, ChatResponse, InsightsResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("", response_model=ChatResponse, response_model_by_alias=True)
async def chat(body: ChatRequest, service: ChatService = Depends(get_chat_service)):
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    reply = await asyncio.to_thread(service.handle_message, body.message, body.conversation_id)
    return reply.to_dict()


def _insights(repository: ResolutionRepository, user_name: str) -> dict:
    resolutions = repository.load_resolutions().values()
    nudges = [n for r in resolutions for n in repository.load_nudges_for_resolution(r.id)]
    insights = generate_user_insights(resolutions, nudges, user_name=user_name)
    logger.info("insights.generated", resolutions=len(resolutions), nudges=len(nudges))
    return insights


@router.get("/analytics/insights", response_model=InsightsResponse)
async def insights(
    repository: ResolutionRepository = Depends(get_repository),
    user_name: str = Depends(get_user_name),
):
    data = await asyncio.to_thread(_insights, repository, user_name)
    return {
        "insights": data,
        "summary": {
            "totalDataPoints": data["dataPoints"],
            "insightsGenerated": len(data["promptInsights"]),
            "promptInsights": data["promptInsights"],
        },
    }
