"""Analysis status API: poll a job's lifecycle state and result."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from typing import Optional

from video_review.api.deps import get_services
from video_review.exceptions import PersistenceError
from video_review.jobs.models import JobRecord, JobStatus
from video_review.services import Services

router = APIRouter()


@router.get("/analysis-status")
async def get_analysis_status(
    analysis_id: Optional[str] = Query(None, alias="id"),
    services: Services = Depends(get_services),
):
    """Get the current status of an analysis, and its result once completed."""
    if not analysis_id:
        return JSONResponse(
            status_code=400,
            content={"status": "error", "error": "No analysis ID provided"},
        )
    return await _status_response(analysis_id, services)


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, services: Services = Depends(get_services)):
    """Path-style alias of /analysis-status."""
    return await _status_response(job_id, services)


async def _status_response(job_id: str, services: Services):
    try:
        job = await services.dispatcher.get_status(job_id)
    except PersistenceError as e:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": e.message},
        )
    if job is None:
        return JSONResponse(
            status_code=404,
            content={"status": "error", "error": "Analysis not found"},
        )
    return job_payload(job)


def job_payload(job: JobRecord) -> dict:
    response = {
        "id": job.id,
        "status": job.status.value,
        "createdAt": job.created_at.isoformat(),
        "startedAt": job.started_at.isoformat() if job.started_at else None,
        "completedAt": job.completed_at.isoformat() if job.completed_at else None,
    }

    if job.status == JobStatus.COMPLETED and job.result:
        response["result"] = job.result.model_dump(mode="json", by_alias=True)

    if job.status == JobStatus.ERROR:
        response["error"] = job.error or "Analysis failed"
        response["errorKind"] = job.error_kind.value if job.error_kind else None

    return response
