"""FastAPI dependencies resolving the components wired in during lifespan."""

from fastapi import HTTPException, Request

from video_review.services import Services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service components not initialized")
    return services
