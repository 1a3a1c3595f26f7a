"""
Shared test fixtures and configuration for the test suite.

Provides: fake analyzer, stores backed by tmp_path, orchestrator factory,
sample model responses
"""

import asyncio
import json
from typing import Optional

import pytest

from video_review.ai.analyzer import Analyzer
from video_review.jobs.orchestrator import AnalysisOrchestrator
from video_review.jobs.state_store import JobStateStore
from video_review.storage.result_store import FileResultStore


class FakeAnalyzer(Analyzer):
    """Returns a canned response, raises a canned error, or waits on a gate."""

    def __init__(
        self,
        response: str = "",
        error: Optional[BaseException] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.response = response
        self.error = error
        self.gate = gate
        self.calls = []

    async def analyze(self, video_ref, request):
        self.calls.append((video_ref, request))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response


def model_text(payload: dict, prose: str = "Here is my review of the video.") -> str:
    """Model-style output: prose wrapped around a JSON object."""
    return f"{prose}\n```json\n{json.dumps(payload, indent=2)}\n```\nLet me know if you need more."


@pytest.fixture
def good_payload():
    return {
        "summary": "Clear, well-lit review with decent audio.",
        "transcript": "Hi everyone, today we unbox the X100.",
        "durationSeconds": 154,
        "categories": [
            {"name": "product_relevance", "score": 8, "feedback": "Features are front and centre."},
            {"name": "visual_quality", "score": 6, "feedback": "Some scenes are dark."},
            {"name": "audio_quality", "score": 10, "feedback": "Crisp voice."},
            {"name": "content_engagement", "score": 7, "feedback": "Good hook."},
        ],
        "recommendations": ["Brighten the kitchen scenes"],
    }


@pytest.fixture
def result_store(tmp_path):
    return FileResultStore(base_dir=str(tmp_path / "results"))


@pytest.fixture
def state_store():
    return JobStateStore(ttl_seconds=3600)


@pytest.fixture
def make_orchestrator(state_store, result_store):
    """Factory: make_orchestrator(analyzer, **kwargs) with shared stores."""

    def _make(analyzer: Analyzer, **kwargs) -> AnalysisOrchestrator:
        kwargs.setdefault("timeout_seconds", 5.0)
        kwargs.setdefault("shutdown_grace_seconds", 0.05)
        return AnalysisOrchestrator(
            analyzer=analyzer,
            state_store=kwargs.pop("state_store", state_store),
            result_store=kwargs.pop("result_store", result_store),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_client(tmp_path):
    """Factory: make_client(analyzer, **service_overrides) -> (TestClient, Services).

    Use the client as a context manager so the app lifespan starts and stops
    the dispatcher.
    """
    from fastapi.testclient import TestClient

    from video_review.main import create_app
    from video_review.progress.channel import ProgressChannel
    from video_review.services import Services
    from video_review.storage.video_storage import LocalVideoStorage

    def _make(analyzer: Analyzer, **overrides):
        store = FileResultStore(base_dir=str(tmp_path / "results"))
        services = Services(
            dispatcher=AnalysisOrchestrator(
                analyzer=analyzer,
                state_store=JobStateStore(),
                result_store=store,
                timeout_seconds=5.0,
                shutdown_grace_seconds=0.1,
            ),
            result_store=store,
            progress=ProgressChannel(heartbeat_seconds=0.05),
            video_storage=LocalVideoStorage(str(tmp_path / "uploads")),
            **overrides,
        )
        return TestClient(create_app(services)), services

    return _make
