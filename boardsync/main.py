"""FastAPI application entry point for the reference task endpoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from boardsync.api.v1 import tasks
from boardsync.config import settings
from boardsync.core.exceptions import BoardSyncError, NetworkError, NotFoundError
from boardsync.core.logging import setup_logging
from boardsync.dependencies import WorkspaceRegistry
from boardsync.localization.helpers import get_locale_from_request, get_translation
from boardsync.middleware.metrics import setup_metrics

setup_logging(settings)
logger = logging.getLogger(__name__)

# Translated defaults for errors raised without a specific detail
_DEFAULT_DETAIL_KEYS = {
    NotFoundError: "errors.resource_not_found",
    NetworkError: "errors.endpoint_unavailable",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("%s %s starting", settings.APP_NAME, settings.APP_VERSION)
    yield
    # Shutdown
    logger.info("Dropping %d in-memory workspaces", len(app.state.workspaces))
    app.state.workspaces.clear()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)
app.state.workspaces = WorkspaceRegistry()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware and /metrics
setup_metrics(app)


@app.exception_handler(BoardSyncError)
async def board_sync_error_handler(request: Request, exc: BoardSyncError):
    """Render task errors as {"detail": ...} with their HTTP status."""
    detail = exc.detail
    key = _DEFAULT_DETAIL_KEYS.get(type(exc))
    if key and detail == exc.default_detail:
        detail = get_translation(key, get_locale_from_request(request, settings.DEFAULT_LOCALE))
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})


app.include_router(
    tasks.router,
    prefix=f"{settings.API_V1_PREFIX}/workspaces/{{workspace_id}}/tasks",
    tags=["tasks"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "workspaces": len(app.state.workspaces),
    }
