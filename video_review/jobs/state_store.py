"""In-memory job state store.

A lock-guarded map from job id to JobRecord. Readers always get a deep copy,
so a poller never observes a record while it is being mutated. Terminal jobs
are evicted once they are older than the configured TTL; the result store
remains the durable copy after that.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Callable, Dict, Optional

from video_review.analysis.schemas import AnalysisResult
from video_review.exceptions import ErrorKind
from video_review.jobs.models import JobRecord, JobStatus, utcnow

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """A status change that would move a job backwards or skip a state."""


class JobStateStore:
    def __init__(self, ttl_seconds: float = 3600.0, clock: Callable = utcnow):
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    async def create(self, job: JobRecord) -> bool:
        """Insert `job` if its id is not tracked yet. Returns False if it already is."""
        async with self._lock:
            self._evict_expired_locked()
            if job.id in self._jobs:
                return False
            self._jobs[job.id] = job.model_copy(deep=True)
            logger.info(f"{__name__}:create - job_id={job.id} status={job.status.value}")
            return True

    async def get(self, job_id: str) -> Optional[JobRecord]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def mark_processing(self, job_id: str) -> JobRecord:
        return await self._transition(job_id, JobStatus.PROCESSING)

    async def mark_completed(self, job_id: str, result: AnalysisResult) -> JobRecord:
        return await self._transition(job_id, JobStatus.COMPLETED, result=result)

    async def mark_error(self, job_id: str, error: str, kind: ErrorKind) -> JobRecord:
        """Move a job to `error`, passing through `processing` if it never started."""
        async with self._lock:
            job = self._require(job_id)
            if job.status == JobStatus.PENDING:
                self._apply(job, JobStatus.PROCESSING)
            return self._apply(job, JobStatus.ERROR, error=error, error_kind=kind)

    async def evict_expired(self) -> int:
        async with self._lock:
            return self._evict_expired_locked()

    async def count_active(self) -> int:
        async with self._lock:
            return sum(1 for job in self._jobs.values() if not job.status.is_terminal)

    async def _transition(self, job_id: str, status: JobStatus, **changes) -> JobRecord:
        async with self._lock:
            job = self._require(job_id)
            return self._apply(job, status, **changes)

    def _require(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(f"Job {job_id} is not tracked")
        return job

    def _apply(self, job: JobRecord, status: JobStatus, **changes) -> JobRecord:
        if not job.can_transition(status):
            raise InvalidTransitionError(
                f"Job {job.id} cannot move from {job.status.value} to {status.value}"
            )
        job.status = status
        now = self._clock()
        if status == JobStatus.PROCESSING:
            job.started_at = now
        else:
            job.completed_at = now
        for name, value in changes.items():
            setattr(job, name, value)
        logger.info(f"{__name__}:transition - job_id={job.id} status={status.value}")
        return job.model_copy(deep=True)

    def _evict_expired_locked(self) -> int:
        cutoff = self._clock() - self._ttl
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.status.is_terminal and job.completed_at and job.completed_at < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info(f"{__name__}:evict_expired - removed {len(expired)} job(s)")
        return len(expired)
