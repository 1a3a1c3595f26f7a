"""Video analysis submission endpoint."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field
from typing import List, Optional

from video_review.analysis.schemas import ProductContext, RequestConfig
from video_review.api.deps import get_services
from video_review.exceptions import ErrorKind, VideoReviewError
from video_review.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_KIND = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.JOB_CONFLICT: 409,
    ErrorKind.PERSISTENCE_FAILED: 503,
}


class AnalyzeRequest(BaseModel):
    video_ref: Optional[str] = Field(
        None, validation_alias=AliasChoices("videoRef", "gcsUri", "video_ref")
    )
    analysis_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("analysisId", "analysis_id")
    )
    category_list: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("categoryList", "category_list")
    )
    product_context: Optional[ProductContext] = Field(
        None, validation_alias=AliasChoices("productContext", "product_context")
    )


@router.post("/analyze", status_code=202)
async def submit_analysis(request: AnalyzeRequest, services: Services = Depends(get_services)):
    """Start a background analysis for an uploaded video.

    Returns 202 immediately; poll GET /api/v1/analysis-status?id=... for the result.
    Missing videoRef/analysisId -> 400, reused analysisId -> 409.
    """
    config = RequestConfig(
        category_list=request.category_list or [],
        product_context=request.product_context,
    )
    try:
        job = await services.dispatcher.submit(request.analysis_id, request.video_ref, config)
    except VideoReviewError as e:
        logger.warning(f"{__name__}:submit_analysis - rejected kind={e.kind.value}: {e.message}")
        return JSONResponse(
            status_code=_STATUS_BY_KIND.get(e.kind, 500),
            content={"success": False, "error": e.message, "kind": e.kind.value},
        )
    return {
        "success": True,
        "message": "Analysis started successfully.",
        "analysisId": job.id,
    }
