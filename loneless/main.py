"""
Loneless Backend - Main Application
===================================

FastAPI application entry point for the Loneless chat backend.

This module sets up:
- FastAPI application with CORS
- Route registration
- Middleware (logging, error handling)
- Lifespan management (random message scheduler, HTTP transport)

Usage:
    # Development
    uvicorn loneless.main:app --reload --host 0.0.0.0 --port 8000

    # Production
    uvicorn loneless.main:app --host 0.0.0.0 --port 8000
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from loneless import __version__
from loneless.api.dependencies import get_rotation, get_scheduler, get_transport
from loneless.api.routes import conversations_router, health_router, media_router
from loneless.config import get_settings
from loneless.utils.logger import get_logger, setup_logging

# Setup logging
settings = get_settings()
setup_logging(
    level=settings.server.log_level,
    json_logs=not settings.server.debug,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Starts the random message scheduler (when enabled) and closes the
    provider HTTP session on shutdown.
    """
    # Startup
    logger.info(
        "Starting Loneless backend",
        version=__version__,
        environment=settings.server.environment,
        provider=settings.provider.get_provider_kind().value,
        api_keys=get_rotation().total_keys,
    )

    scheduler = get_scheduler() if settings.chat.random_messages_enabled else None
    if scheduler is not None:
        scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down Loneless backend")
    if scheduler is not None:
        await scheduler.stop()
    await get_transport().close()


# Create FastAPI application
app = FastAPI(
    title="Loneless Backend",
    description=(
        "Companion chat backend. Routes conversational turns, images and "
        "voice messages to OpenAI-compatible or Gemini APIs with key/model "
        "rotation on quota errors."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.server.debug else None,
    redoc_url="/redoc" if settings.server.debug else None,
    openapi_url="/openapi.json" if settings.server.debug else None,
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing."""
    start_time = time.perf_counter()
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    logger.info(
        "Request started",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        client=request.client.host if request.client else "unknown",
    )

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Request completed",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    return response


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.server.debug else "An unexpected error occurred",
        },
    )


# Register routers
app.include_router(health_router)
app.include_router(conversations_router)
app.include_router(media_router)


# Root endpoint
@app.get("/", include_in_schema=False)
async def root() -> dict[str, Any]:
    """Root endpoint with service information."""
    return {
        "service": "Loneless Backend",
        "version": __version__,
        "docs": "/docs" if settings.server.debug else None,
        "health": "/health",
    }


# Run directly (for development)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "loneless.main:app",
        host=settings.server.server_host,
        port=settings.server.server_port,
        reload=settings.server.debug,
        log_level=settings.server.log_level.lower(),
    )
