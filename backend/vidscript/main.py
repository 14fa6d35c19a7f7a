"""
FastAPI application for the video-to-script pipeline.

Provides HTTP API for video processing with SSE progress updates.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vidscript.api import pool_routes, routes, script_routes
from vidscript.config import get_settings
from vidscript.container import ServiceContainer
from vidscript.logging_config import setup_logging

# Configure logging before anything else
settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Builds the shared services on startup and releases them on shutdown.
    """
    logger.info("Starting Video Script API")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Config directory: {settings.config_dir}")

    container = ServiceContainer.from_settings(settings)
    app.state.container = container

    if not len(container.credential_pool):
        logger.warning("No Gemini API keys configured, processing is disabled until a key is added")

    yield

    logger.info("Shutting down Video Script API")
    await container.close()


app = FastAPI(
    title="Video Script API",
    description="API for turning YouTube videos into narrated scripts",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(routes.router)
app.include_router(script_routes.router)
app.include_router(pool_routes.router)


@app.get("/health")
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        Basic health status
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vidscript.main:app",
        host="0.0.0.0",
        port=8801,
        reload=True,
    )
