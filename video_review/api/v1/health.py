"""Health check endpoint."""

from fastapi import APIRouter, Depends
import platform
import sys

from video_review.api.deps import get_services
from video_review.services import Services

router = APIRouter()


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Service health, running analyses and configured backends."""
    return {
        "status": "healthy",
        "active_jobs": services.dispatcher.active_jobs,
        "result_store": type(services.result_store).__name__,
        "video_storage": services.video_storage.name,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
