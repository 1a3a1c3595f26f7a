"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from video_review.api.v1.health import router as health_router
from video_review.api.v1.analysis import router as analysis_router
from video_review.api.v1.jobs import router as jobs_router
from video_review.api.v1.upload import router as upload_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(analysis_router, tags=["analysis"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(upload_router, tags=["upload"])
