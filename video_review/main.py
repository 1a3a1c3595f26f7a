"""Video Review Service - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from video_review.config import settings
from video_review.api.v1.router import v1_router
from video_review.api.v1.health import router as health_root_router
from video_review.observability.logger import configure_logging
from video_review.services import Services, build_services

logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the application. `services` replaces the settings-built components (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        if services is None:
            configure_logging(settings.log_level)
        active = services or build_services(settings)

        logger.info(f"Starting Video Review Service on port {settings.service_port}")
        logger.info(f"Result store: {type(active.result_store).__name__}")
        logger.info(f"Video storage: {active.video_storage.name}")

        await active.dispatcher.start()
        app.state.services = active
        logger.info("Analysis dispatcher started")

        yield

        logger.info("Shutting down Video Review Service")
        await active.dispatcher.stop()
        active.result_store.cleanup_expired()

    app = FastAPI(
        title="Video Review Service",
        description="Asynchronous AI review and scoring of uploaded product videos",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS: allow frontend dev server and any configured origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount routers
    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /api/v1/* endpoints
    return app


app = create_app()
