"""Builds the service components from settings.

The components are created once per application (in the FastAPI lifespan)
and shared through `app.state`. Tests build their own with fakes.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from video_review.ai.analyzer import Analyzer
from video_review.config import Settings
from video_review.jobs.orchestrator import AnalysisOrchestrator
from video_review.jobs.state_store import JobStateStore
from video_review.progress.channel import ProgressChannel
from video_review.storage.result_store import FileResultStore, ResultStore
from video_review.storage.video_storage import GcsVideoStorage, LocalVideoStorage, VideoStorage


@dataclass
class Services:
    dispatcher: AnalysisOrchestrator
    result_store: ResultStore
    progress: ProgressChannel
    video_storage: VideoStorage
    max_upload_bytes: int = 100 * 1024 * 1024
    allowed_video_types: Tuple[str, ...] = field(
        default=("video/mp4", "video/webm", "video/quicktime")
    )


def build_result_store(settings: Settings) -> ResultStore:
    if settings.result_store_backend == "supabase":
        from video_review.storage.supabase_results import SupabaseResultStore

        return SupabaseResultStore(
            url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            table=settings.supabase_results_table,
            ttl_hours=settings.result_ttl_hours,
        )
    if settings.result_store_backend != "file":
        raise ValueError(f"Unknown RESULT_STORE_BACKEND '{settings.result_store_backend}'")
    return FileResultStore(base_dir=settings.results_dir, ttl_hours=settings.result_ttl_hours)


def build_video_storage(settings: Settings) -> VideoStorage:
    if settings.storage_backend == "gcs":
        return GcsVideoStorage(settings.gcs_bucket or "", project=settings.gcp_project_id)
    if settings.storage_backend != "local":
        raise ValueError(f"Unknown STORAGE_BACKEND '{settings.storage_backend}'")
    return LocalVideoStorage(settings.upload_dir)


def build_analyzer(settings: Settings, video_storage: Optional[VideoStorage] = None) -> Analyzer:
    from video_review.ai.gemini_analyzer import GeminiAnalyzer

    # Local uploads are read back from disk; anything outside the upload directory is refused
    local_resolver = video_storage.resolve if isinstance(video_storage, LocalVideoStorage) else None
    return GeminiAnalyzer(
        model=settings.gemini_model,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
        max_attempts=settings.analysis_max_attempts,
        project=settings.gcp_project_id,
        location=settings.gcp_location,
        local_resolver=local_resolver,
    )


def build_services(settings: Settings, analyzer: Optional[Analyzer] = None) -> Services:
    result_store = build_result_store(settings)
    video_storage = build_video_storage(settings)
    dispatcher = AnalysisOrchestrator(
        analyzer=analyzer or build_analyzer(settings, video_storage),
        state_store=JobStateStore(ttl_seconds=settings.job_state_ttl_hours * 3600),
        result_store=result_store,
        timeout_seconds=settings.analysis_timeout_seconds,
        context_max_chars=settings.context_max_chars,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )
    return Services(
        dispatcher=dispatcher,
        result_store=result_store,
        progress=ProgressChannel(
            heartbeat_seconds=settings.progress_heartbeat_seconds,
            max_age_seconds=settings.progress_max_age_minutes * 60,
        ),
        video_storage=video_storage,
        max_upload_bytes=settings.max_upload_bytes,
        allowed_video_types=tuple(settings.allowed_video_types),
    )
