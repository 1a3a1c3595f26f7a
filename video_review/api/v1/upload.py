"""Video upload and upload-progress API.

  POST /upload                   - receive a video file, store it, return its reference
  GET  /upload/progress?uploadId - server-sent events with {"progress": int}

Progress is published to the ProgressChannel after every stored chunk:
0..99 while bytes flow, 100 once stored, -1 on failure.
"""

import json
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse

from video_review.api.deps import get_services
from video_review.progress.channel import COMPLETE, FAILED
from video_review.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()

_CHUNK_BYTES = 1024 * 1024


# ---------------------------------------------------------------------------
# POST /upload
# ---------------------------------------------------------------------------

@router.post("/upload")
async def upload_video(
    file: UploadFile = File(...),
    upload_id: Optional[str] = Form(None, alias="uploadId"),
    services: Services = Depends(get_services),
):
    """Accept a browser video upload and store it.

    Returns:
        {success, videoRef, uploadId}
    """
    if file.content_type not in services.allowed_video_types:
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Please upload MP4, WebM, or MOV file.",
        )

    max_bytes = services.max_upload_bytes
    max_mb = max_bytes // (1024 * 1024)
    total = file.size
    if total is not None and total > max_bytes:
        raise HTTPException(status_code=413, detail=f"File too large. Maximum size is {max_mb}MB.")

    upload_id = upload_id or str(uuid.uuid4())
    progress = services.progress
    progress.update(upload_id, 0)

    writer = services.video_storage.open_writer(file.filename, file.content_type)
    written = 0
    try:
        while True:
            chunk = await file.read(_CHUNK_BYTES)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                await writer.abort()
                progress.update(upload_id, FAILED)
                raise HTTPException(status_code=413, detail=f"File too large. Maximum size is {max_mb}MB.")
            await writer.write(chunk)
            if total:
                progress.update(upload_id, min(99, written * 100 // total))
        video_ref = await writer.commit()
    except HTTPException:
        raise
    except Exception as exc:
        logger.error(f"{__name__}:upload_video - upload_id={upload_id} failed: {exc}", exc_info=True)
        await writer.abort()
        progress.update(upload_id, FAILED)
        raise HTTPException(status_code=500, detail=f"Failed to save upload: {exc}")

    progress.update(upload_id, COMPLETE)
    logger.info(f"{__name__}:upload_video - upload_id={upload_id} bytes={written} ref={video_ref}")
    return {"success": True, "videoRef": video_ref, "uploadId": upload_id}


# ---------------------------------------------------------------------------
# GET /upload/progress
# ---------------------------------------------------------------------------

@router.get("/upload/progress")
async def upload_progress(
    upload_id: Optional[str] = Query(None, alias="uploadId"),
    services: Services = Depends(get_services),
):
    """Stream upload progress as SSE until it reaches 100 or -1."""
    if not upload_id:
        raise HTTPException(status_code=400, detail="Upload ID is required")

    async def event_stream():
        async for value in services.progress.subscribe(upload_id):
            yield f"data: {json.dumps({'progress': value})}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
