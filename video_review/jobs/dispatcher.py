"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Optional

from video_review.analysis.schemas import RequestConfig
from video_review.jobs.models import JobRecord


class JobDispatcher(ABC):
    """Abstract interface for analysis job dispatching."""

    @abstractmethod
    async def submit(self, job_id: str, video_ref: str, config: Optional[RequestConfig] = None) -> JobRecord:
        """Accept a job and start it in the background. Returns the pending record."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        """Get current status of a job, or None if it is unknown."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start housekeeping loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
