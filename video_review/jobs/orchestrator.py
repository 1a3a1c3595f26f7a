"""Analysis job orchestrator.

Each accepted submission runs as its own asyncio task:

    processing -> build request -> analyzer -> validate -> aggregate
               -> result store -> completed

Any failure on that path ends the job in `error` with a readable message.
The orchestrator keeps a handle to every task it starts, so the outcome of
each one is recorded even when the service shuts down mid-analysis.
"""

import asyncio
import logging
import re
from functools import partial
from typing import Callable, Dict, Optional

from video_review.ai.analyzer import Analyzer
from video_review.analysis.request_builder import build_request
from video_review.analysis.schemas import AnalysisResult, RequestConfig
from video_review.analysis.scorer import aggregate_scores, derive_recommendations, format_video_length
from video_review.analysis.validator import validate_response
from video_review.exceptions import (
    ErrorKind,
    ExternalCallError,
    IncompleteRecordError,
    InvalidRequestError,
    JobConflictError,
    VideoReviewError,
)
from video_review.jobs.dispatcher import JobDispatcher
from video_review.jobs.models import JobRecord, JobStatus, utcnow
from video_review.jobs.state_store import InvalidTransitionError, JobStateStore
from video_review.storage.result_store import ResultStore

logger = logging.getLogger(__name__)

JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class AnalysisOrchestrator(JobDispatcher):
    """Creates analysis jobs, runs them in the background and answers status queries."""

    def __init__(
        self,
        analyzer: Analyzer,
        state_store: JobStateStore,
        result_store: ResultStore,
        timeout_seconds: float = 300.0,
        context_max_chars: int = 500,
        shutdown_grace_seconds: float = 10.0,
        sweep_interval_seconds: float = 60.0,
        clock: Callable = utcnow,
    ):
        self._analyzer = analyzer
        self._state_store = state_store
        self._result_store = result_store
        self._timeout = timeout_seconds
        self._context_max_chars = context_max_chars
        self._grace = shutdown_grace_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._tasks: Dict[str, asyncio.Task] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def submit(self, job_id: str, video_ref: str, config: Optional[RequestConfig] = None) -> JobRecord:
        job_id = (job_id or "").strip()
        video_ref = (video_ref or "").strip()
        if not job_id:
            raise InvalidRequestError("No analysis ID provided", field="analysisId")
        if not JOB_ID_PATTERN.match(job_id):
            raise InvalidRequestError(
                "Analysis ID may only contain letters, digits, '.', '_' and '-'",
                field="analysisId",
            )
        if not video_ref:
            raise InvalidRequestError("No video URI provided", field="videoRef")

        job = JobRecord(id=job_id, video_ref=video_ref, request_config=config or RequestConfig())
        if await self._result_store.exists(job_id) or not await self._state_store.create(job):
            raise JobConflictError(job_id)

        task = asyncio.create_task(
            self._run(job_id, video_ref, job.request_config),
            name=f"analysis:{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(partial(self._on_task_done, job_id))
        logger.info(f"{__name__}:submit - job_id={job_id} video_ref={video_ref} accepted")
        return job

    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        """In-memory state first, then the result store.

        A stored record that is still being written reads as `processing`;
        a completed job is never built from a partial record.
        """
        if not job_id or not JOB_ID_PATTERN.match(job_id):
            return None

        job = await self._state_store.get(job_id)
        if job is not None:
            return job

        try:
            result = await self._result_store.load(job_id)
        except IncompleteRecordError as e:
            logger.warning(f"{__name__}:get_status - job_id={job_id} record incomplete: {e}")
            return JobRecord(id=job_id, status=JobStatus.PROCESSING)
        if result is None:
            return None
        return JobRecord(
            id=job_id,
            video_ref=result.video_ref,
            request_config=result.request_config,
            status=JobStatus.COMPLETED,
            result=result,
        )

    async def start(self) -> None:
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Give running analyses a grace period, then cancel and record the rest."""
        self._running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass

        running = dict(self._tasks)
        if not running:
            return
        logger.info(f"{__name__}:stop - waiting for {len(running)} running analysis job(s)")
        _, still_running = await asyncio.wait(running.values(), timeout=self._grace)
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)

        # A task cancelled before its first step never recorded anything itself
        for job_id in running:
            job = await self._state_store.get(job_id)
            if job is not None and not job.status.is_terminal:
                await self._record_failure(
                    job_id, "Analysis was interrupted by a service shutdown", ErrorKind.EXTERNAL_CALL_FAILED
                )

    async def drain(self) -> None:
        """Wait until every currently running analysis has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def _run(self, job_id: str, video_ref: str, config: RequestConfig) -> None:
        try:
            await self._state_store.mark_processing(job_id)
            result = await self._analyze(job_id, video_ref, config)
            await self._result_store.save(result)
            await self._state_store.mark_completed(job_id, result)
            logger.info(
                f"{__name__}:_run - job_id={job_id} completed overall_score={result.overall_score}"
            )
        except asyncio.CancelledError:
            await self._record_failure(
                job_id, "Analysis was interrupted by a service shutdown", ErrorKind.EXTERNAL_CALL_FAILED
            )
            raise
        except VideoReviewError as e:
            logger.warning(f"{__name__}:_run - job_id={job_id} failed kind={e.kind.value}: {e}")
            await self._record_failure(job_id, e.message, e.kind)
        except Exception as e:
            logger.error(f"{__name__}:_run - job_id={job_id} {type(e).__name__}: {e}", exc_info=True)
            await self._record_failure(job_id, f"Analysis failed: {e}", ErrorKind.EXTERNAL_CALL_FAILED)

    async def _analyze(self, job_id: str, video_ref: str, config: RequestConfig) -> AnalysisResult:
        request = build_request(video_ref, config, max_context_chars=self._context_max_chars)
        try:
            raw_text = await asyncio.wait_for(
                self._analyzer.analyze(video_ref, request),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalCallError(f"Analysis timed out after {self._timeout:g} seconds") from e
        except VideoReviewError:
            raise
        except Exception as e:
            raise ExternalCallError(f"Failed to analyze video: {e}") from e

        normalized, diagnostics = validate_response(raw_text, request.categories)
        overall_score, score_error = aggregate_scores(normalized.categories)
        recommendations = list(normalized.recommendations) or derive_recommendations(normalized.categories)

        return AnalysisResult(
            id=job_id,
            video_ref=video_ref,
            categories=list(normalized.categories),
            overall_score=overall_score,
            score_error=score_error,
            summary=normalized.summary,
            transcript=normalized.transcript,
            video_length=format_video_length(normalized.duration_seconds),
            analysis_date=self._clock().isoformat(),
            recommendations=recommendations,
            request_config=request.effective_config(),
            diagnostics=diagnostics,
        )

    async def _record_failure(self, job_id: str, message: str, kind: ErrorKind) -> None:
        try:
            await self._state_store.mark_error(job_id, message, kind)
        except (KeyError, InvalidTransitionError) as e:
            logger.error(f"{__name__}:_record_failure - job_id={job_id} could not be marked failed: {e}")

    def _on_task_done(self, job_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            logger.warning(f"{__name__}:_on_task_done - job_id={job_id} task cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{__name__}:_on_task_done - job_id={job_id} task crashed", exc_info=exc)

    async def _sweep_loop(self) -> None:
        """Evict old terminal jobs from memory on a fixed interval."""
        while self._running:
            try:
                await asyncio.sleep(self._sweep_interval)
                await self._state_store.evict_expired()
            except asyncio.CancelledError:
                break
