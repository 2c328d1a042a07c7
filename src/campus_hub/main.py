"""Main entry point for the Campus Hub backend."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from campus_hub.api.v1 import (
    auth_router,
    comments_router,
    communities_router,
    interactions_router,
    messages_router,
    moderation_router,
    notifications_router,
    posts_router,
    profiles_router,
    realtime_router,
    rpc_router,
    storage_public_router,
    storage_router,
)
from campus_hub.core.errors import CampusError, ContentRejectedError, LimitExceededError
from campus_hub.core.logging_config import configure_logging
from campus_hub.core.settings import settings
from campus_hub.db.session import create_tables

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=f"{settings.app_name} API",
    description="Campus social network: posts, communities, messages and realtime changes",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(posts_router, prefix="/api/v1")
app.include_router(interactions_router, prefix="/api/v1")
app.include_router(comments_router, prefix="/api/v1")
app.include_router(communities_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(rpc_router, prefix="/api/v1")
app.include_router(profiles_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")
app.include_router(moderation_router, prefix="/api/v1")
app.include_router(storage_router, prefix="/api/v1")
app.include_router(storage_public_router)


@app.exception_handler(CampusError)
async def campus_error_handler(_request: Request, exc: CampusError) -> JSONResponse:
    """Translate domain errors raised by the service layer into JSON responses."""
    body: dict[str, object] = {"detail": exc.message}
    if isinstance(exc, ContentRejectedError):
        body["matches"] = exc.matches
    elif isinstance(exc, LimitExceededError):
        body["limit"] = exc.limit
        body["current"] = exc.current
    if exc.status_code >= 500:
        logger.warning("%s: %s", type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    create_tables()
    logger.info("%s %s started", settings.app_name, settings.app_version)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": f"{settings.app_name} API",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("campus_hub.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
