"""FastAPI application entry point."""

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cli.logging_config import setup_logging
from coach.store import StoreConflictError, StoreUnavailableError
from llm.base import LLMAuthError, LLMError
from observability import log_run_summary
from web.deps import API_VERSION, get_config
from web.routes import chat, health, preferences, resolutions

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        setup_logging(json_mode=True, level=get_config().logging.level)
    except ValueError:
        setup_logging(json_mode=True)
    logger.info("web.startup")
    yield
    log_run_summary()
    logger.info("web.shutdown")


app = FastAPI(
    title="Resolution Coach",
    version=API_VERSION,
    lifespan=lifespan,
)

# FRONTEND_ORIGIN is comma-separated; default any
origins = [o.strip() for o in os.getenv("FRONTEND_ORIGIN", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials="*" not in origins,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(StoreUnavailableError)
async def _store_unavailable(request: Request, exc: StoreUnavailableError):
    logger.error("web.store_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"error": "Database unavailable", "details": str(exc)})


@app.exception_handler(StoreConflictError)
async def _store_conflict(request: Request, exc: StoreConflictError):
    logger.warning("web.store_conflict", path=request.url.path, keys=exc.keys)
    return JSONResponse(
        status_code=409,
        content={"error": "Resolutions were changed by another request; please retry", "keys": exc.keys},
    )


@app.exception_handler(LLMError)
async def _llm_error(request: Request, exc: LLMError):
    logger.error("web.llm_error", path=request.url.path, error=str(exc))
    if isinstance(exc, LLMAuthError):
        return JSONResponse(status_code=500, content={"error": "AI service is not configured"})
    return JSONResponse(status_code=502, content={"error": "AI service error"})


# Mount routes
app.include_router(chat.router)
app.include_router(resolutions.router)
app.include_router(preferences.router)
app.include_router(health.router)
