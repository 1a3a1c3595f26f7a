"""Job record data model for async analysis."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, Field

from video_review.analysis.schemas import AnalysisResult, RequestConfig
from video_review.exceptions import ErrorKind


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


# Forward-only lifecycle: pending -> processing -> {completed | error}
ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.ERROR}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.ERROR: frozenset(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRecord(BaseModel):
    """Tracks the lifecycle of one analysis run."""
    id: str
    video_ref: str = ""
    request_config: RequestConfig = Field(default_factory=RequestConfig)
    status: JobStatus = JobStatus.PENDING
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def can_transition(self, status: JobStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]
