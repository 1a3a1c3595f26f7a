"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # Service
    service_port: int = 8001
    log_level: str = "INFO"

    # Result persistence
    result_store_backend: str = "file"  # "file" or "supabase"
    results_dir: str = "./data/results"
    result_ttl_hours: int = 0  # 0 keeps results forever

    # Supabase (only when result_store_backend=supabase)
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_results_table: str = "analysis_results"

    # Video storage
    storage_backend: str = "local"  # "local" or "gcs"
    upload_dir: str = "./data/uploads"
    gcs_bucket: Optional[str] = None
    max_upload_bytes: int = 100 * 1024 * 1024
    allowed_video_types: List[str] = ["video/mp4", "video/webm", "video/quicktime"]

    # Analysis model
    gcp_project_id: Optional[str] = None
    gcp_location: str = "us-central1"
    gemini_model: str = "gemini-2.0-flash-001"
    gemini_temperature: float = 0.4
    gemini_max_output_tokens: int = 2048

    # Job processing
    analysis_timeout_seconds: float = 300.0
    analysis_max_attempts: int = 3
    job_state_ttl_hours: int = 1
    shutdown_grace_seconds: float = 10.0
    context_max_chars: int = 500

    # Upload progress streaming
    progress_heartbeat_seconds: float = 1.0
    progress_max_age_minutes: int = 30

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
