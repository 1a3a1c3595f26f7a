import logging
import os

import pytest

from video_review.config import Settings
from video_review.exceptions import InvalidRequestError
from video_review.observability.logger import configure_logging
from video_review.services import build_analyzer, build_result_store, build_services, build_video_storage
from video_review.storage.result_store import FileResultStore
from video_review.storage.video_storage import LocalVideoStorage

from conftest import FakeAnalyzer


@pytest.fixture
def settings(tmp_path):
    return Settings(
        results_dir=str(tmp_path / "results"),
        upload_dir=str(tmp_path / "uploads"),
        max_upload_bytes=2048,
        result_ttl_hours=2,
        progress_max_age_minutes=5,
    )


def test_default_backends(settings):
    store = build_result_store(settings)
    assert isinstance(store, FileResultStore)
    assert store.base_dir == settings.results_dir
    assert isinstance(build_video_storage(settings), LocalVideoStorage)


def test_unknown_backends_are_rejected(settings):
    with pytest.raises(ValueError):
        build_result_store(settings.model_copy(update={"result_store_backend": "redis"}))
    with pytest.raises(ValueError):
        build_video_storage(settings.model_copy(update={"storage_backend": "s3"}))


def test_supabase_backend_needs_credentials(settings):
    with pytest.raises(RuntimeError):
        build_result_store(settings.model_copy(update={"result_store_backend": "supabase"}))


def test_gcs_backend_needs_bucket(settings):
    with pytest.raises(RuntimeError):
        build_video_storage(settings.model_copy(update={"storage_backend": "gcs", "gcs_bucket": None}))


def test_build_services_wires_settings(settings):
    services = build_services(settings, analyzer=FakeAnalyzer())
    assert services.max_upload_bytes == 2048
    assert services.allowed_video_types == ("video/mp4", "video/webm", "video/quicktime")
    assert services.dispatcher.active_jobs == 0


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("ANALYSIS_TIMEOUT_SECONDS", "42")
    monkeypatch.setenv("GEMINI_MODEL", "gemini-test")
    configured = Settings()
    assert configured.analysis_timeout_seconds == 42
    assert configured.gemini_model == "gemini-test"


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_configure_logging_sets_level_and_single_handler(restore_root_logger):
    configure_logging("debug")
    configure_logging("WARNING")
    assert restore_root_logger.level == logging.WARNING
    assert len(restore_root_logger.handlers) == 1
    assert logging.getLogger("httpx").level == logging.WARNING


async def test_analyzer_reads_only_from_upload_dir(settings, tmp_path):
    storage = build_video_storage(settings)
    analyzer = build_analyzer(settings, storage)
    outside = tmp_path / "secrets.env"
    outside.write_text("DB_PASSWORD=x")
    with pytest.raises(InvalidRequestError):
        await analyzer._video_part(str(outside))

    upload = os.path.join(settings.upload_dir, "1-clip.mp4")
    with open(upload, "wb") as f:
        f.write(b"video")
    part = await analyzer._video_part(upload)
    assert part.inline_data.data == b"video"
