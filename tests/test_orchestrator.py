import asyncio

import pytest

from video_review.ai.analyzer import Analyzer
from video_review.analysis.categories import DEFAULT_CATEGORIES, tip_for
from video_review.analysis.schemas import ProductContext, RequestConfig
from video_review.analysis.scorer import NO_VALID_SCORES
from video_review.exceptions import (
    ContentBlockedError,
    ErrorKind,
    ExternalCallError,
    InvalidRequestError,
    JobConflictError,
    PersistenceError,
)
from video_review.jobs.models import JobStatus
from video_review.jobs.state_store import JobStateStore
from video_review.storage.result_store import FileResultStore

from conftest import FakeAnalyzer, model_text


class FailingResultStore(FileResultStore):
    async def save(self, result):
        raise PersistenceError("Failed to persist analysis result: disk full")


class RoutingAnalyzer(Analyzer):
    """Delegates to a different fake per video reference."""

    def __init__(self, routes):
        self.routes = routes

    async def analyze(self, video_ref, request):
        return await self.routes[video_ref].analyze(video_ref, request)


async def _finished(orchestrator, job_id):
    await orchestrator.drain()
    return await orchestrator.get_status(job_id)


class TestSubmit:
    @pytest.mark.parametrize(
        "job_id,video_ref,message",
        [
            ("", "gs://b/v.mp4", "No analysis ID provided"),
            ("   ", "gs://b/v.mp4", "No analysis ID provided"),
            ("job-1", "", "No video URI provided"),
            ("job-1", None, "No video URI provided"),
        ],
    )
    async def test_missing_input_is_rejected_without_creating_a_job(
        self, make_orchestrator, job_id, video_ref, message
    ):
        analyzer = FakeAnalyzer()
        orchestrator = make_orchestrator(analyzer)
        with pytest.raises(InvalidRequestError) as exc_info:
            await orchestrator.submit(job_id, video_ref)
        assert exc_info.value.message == message
        assert exc_info.value.kind == ErrorKind.INVALID_REQUEST
        assert orchestrator.active_jobs == 0
        assert analyzer.calls == []

    async def test_unsafe_job_id_is_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAnalyzer())
        with pytest.raises(InvalidRequestError):
            await orchestrator.submit("../etc/passwd", "gs://b/v.mp4")

    async def test_returns_pending_before_analysis_runs(self, make_orchestrator, good_payload):
        gate = asyncio.Event()
        orchestrator = make_orchestrator(FakeAnalyzer(model_text(good_payload), gate=gate))

        job = await orchestrator.submit("job-1", "gs://b/v.mp4")
        assert job.status == JobStatus.PENDING
        assert (await orchestrator.get_status("job-1")).status == JobStatus.PENDING

        await asyncio.sleep(0)
        assert (await orchestrator.get_status("job-1")).status == JobStatus.PROCESSING

        gate.set()
        assert (await _finished(orchestrator, "job-1")).status == JobStatus.COMPLETED

    async def test_reused_id_conflicts_while_tracked(self, make_orchestrator, good_payload):
        orchestrator = make_orchestrator(FakeAnalyzer(model_text(good_payload)))
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        with pytest.raises(JobConflictError):
            await orchestrator.submit("job-1", "gs://b/other.mp4")
        await orchestrator.drain()

    async def test_reused_id_conflicts_with_stored_result(self, make_orchestrator, result_store, good_payload):
        first = make_orchestrator(FakeAnalyzer(model_text(good_payload)))
        await first.submit("job-1", "gs://b/v.mp4")
        await first.drain()

        # Fresh in-memory state, same durable store (e.g. after a restart)
        second = make_orchestrator(FakeAnalyzer(model_text(good_payload)), state_store=JobStateStore())
        with pytest.raises(JobConflictError):
            await second.submit("job-1", "gs://b/v.mp4")


class TestRun:
    async def test_successful_analysis(self, make_orchestrator, result_store, good_payload):
        analyzer = FakeAnalyzer(model_text(good_payload))
        orchestrator = make_orchestrator(analyzer)
        config = RequestConfig(product_context=ProductContext(description="X100 blender"))

        await orchestrator.submit("job-1", "gs://b/v.mp4", config)
        job = await _finished(orchestrator, "job-1")

        assert job.status == JobStatus.COMPLETED
        assert job.error is None
        result = job.result
        assert result.id == "job-1"
        assert result.video_ref == "gs://b/v.mp4"
        assert [c.name for c in result.categories] == list(DEFAULT_CATEGORIES)
        assert result.overall_score == 8  # mean of 8, 6, 10, 7 = 7.75
        assert result.score_error is None
        assert result.video_length == "2:34"
        assert result.recommendations == ["Brighten the kitchen scenes"]
        assert result.request_config.category_list == list(DEFAULT_CATEGORIES)
        assert result.request_config.product_context.description == "X100 blender"

        assert await result_store.load("job-1") == result
        video_ref, request = analyzer.calls[0]
        assert video_ref == "gs://b/v.mp4"
        assert "X100 blender" in request.prompt

    async def test_out_of_range_score_still_completes(self, make_orchestrator):
        payload = {
            "summary": "Nice.",
            "transcript": "",
            "categories": [{"name": "visual_quality", "score": 15, "feedback": "Great lighting"}],
        }
        orchestrator = make_orchestrator(FakeAnalyzer(model_text(payload)))
        await orchestrator.submit("job-1", "gs://b/v.mp4", RequestConfig(category_list=["visual_quality"]))
        job = await _finished(orchestrator, "job-1")

        assert job.status == JobStatus.COMPLETED
        category = job.result.categories[0]
        assert category.score is None
        assert "15" in category.feedback
        assert job.result.overall_score is None
        assert job.result.score_error == NO_VALID_SCORES
        assert job.result.diagnostics

    async def test_missing_recommendations_are_derived_from_low_scores(self, make_orchestrator):
        payload = {
            "summary": "Rough audio.",
            "categories": [
                {"name": "audio_quality", "score": 3, "feedback": "Wind noise"},
                {"name": "visual_quality", "score": 8, "feedback": "Sharp"},
            ],
        }
        orchestrator = make_orchestrator(FakeAnalyzer(model_text(payload)))
        config = RequestConfig(category_list=["audio_quality", "visual_quality"])
        await orchestrator.submit("job-1", "gs://b/v.mp4", config)
        job = await _finished(orchestrator, "job-1")
        assert job.result.recommendations == [tip_for("audio_quality")]
        assert job.result.video_length == "N/A"

    @pytest.mark.parametrize(
        "response,kind",
        [
            ("Sorry, I can't help with that.", ErrorKind.NO_STRUCTURED_DATA),
            ('{"transcript": "no summary here"}', ErrorKind.MISSING_FIELD),
        ],
    )
    async def test_unusable_response_fails_job(self, make_orchestrator, result_store, response, kind):
        orchestrator = make_orchestrator(FakeAnalyzer(response))
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        job = await _finished(orchestrator, "job-1")
        assert job.status == JobStatus.ERROR
        assert job.error_kind == kind
        assert job.error.startswith("Failed to parse analysis response")
        assert not await result_store.exists("job-1")

    async def test_external_call_failure(self, make_orchestrator):
        error = ExternalCallError("Failed to analyze video: 503 Service Unavailable")
        orchestrator = make_orchestrator(FakeAnalyzer(error=error))
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        job = await _finished(orchestrator, "job-1")
        assert job.status == JobStatus.ERROR
        assert job.error_kind == ErrorKind.EXTERNAL_CALL_FAILED
        assert job.error == "Failed to analyze video: 503 Service Unavailable"

    async def test_content_blocked_is_reported_distinctly(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAnalyzer(error=ContentBlockedError("SAFETY")))
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        job = await _finished(orchestrator, "job-1")
        assert job.error_kind == ErrorKind.CONTENT_BLOCKED
        assert "content policy" in job.error
        assert "SAFETY" in job.error

    async def test_unexpected_analyzer_exception_becomes_external_failure(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAnalyzer(error=ConnectionResetError("peer reset")))
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        job = await _finished(orchestrator, "job-1")
        assert job.error_kind == ErrorKind.EXTERNAL_CALL_FAILED
        assert job.error == "Failed to analyze video: peer reset"

    async def test_analysis_timeout(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAnalyzer(gate=asyncio.Event()), timeout_seconds=0.05)
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        job = await _finished(orchestrator, "job-1")
        assert job.status == JobStatus.ERROR
        assert job.error_kind == ErrorKind.EXTERNAL_CALL_FAILED
        assert "timed out" in job.error

    async def test_persistence_failure_never_reports_completed(self, make_orchestrator, tmp_path, good_payload):
        store = FailingResultStore(base_dir=str(tmp_path / "failing"))
        orchestrator = make_orchestrator(FakeAnalyzer(model_text(good_payload)), result_store=store)
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        job = await _finished(orchestrator, "job-1")
        assert job.status == JobStatus.ERROR
        assert job.error_kind == ErrorKind.PERSISTENCE_FAILED
        assert job.result is None

    async def test_jobs_run_independently(self, make_orchestrator, good_payload):
        slow_gate = asyncio.Event()
        analyzer = RoutingAnalyzer({
            "gs://b/slow.mp4": FakeAnalyzer(model_text(good_payload), gate=slow_gate),
            "gs://b/fast.mp4": FakeAnalyzer(error=ExternalCallError("boom")),
        })
        orchestrator = make_orchestrator(analyzer)
        await orchestrator.submit("slow", "gs://b/slow.mp4")
        await orchestrator.submit("fast", "gs://b/fast.mp4")
        await asyncio.sleep(0.01)

        assert (await orchestrator.get_status("fast")).status == JobStatus.ERROR
        assert (await orchestrator.get_status("slow")).status == JobStatus.PROCESSING
        slow_gate.set()
        assert (await _finished(orchestrator, "slow")).status == JobStatus.COMPLETED


class TestStatus:
    async def test_unknown_id_is_not_found(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAnalyzer())
        assert await orchestrator.get_status("never-submitted") is None
        assert await orchestrator.get_status("") is None
        assert await orchestrator.get_status("../x") is None

    async def test_falls_back_to_result_store(self, make_orchestrator, result_store, good_payload):
        first = make_orchestrator(FakeAnalyzer(model_text(good_payload)))
        await first.submit("job-1", "gs://b/v.mp4")
        await first.drain()
        stored = await result_store.load("job-1")

        restarted = make_orchestrator(FakeAnalyzer(), state_store=JobStateStore())
        job = await restarted.get_status("job-1")
        assert job.status == JobStatus.COMPLETED
        assert job.result == stored

    async def test_partial_record_reads_as_processing(self, make_orchestrator, result_store):
        with open(result_store._partial_path("job-9"), "w") as f:
            f.write('{"id": "job-9"')
        orchestrator = make_orchestrator(FakeAnalyzer())
        job = await orchestrator.get_status("job-9")
        assert job.status == JobStatus.PROCESSING
        assert job.result is None

    async def test_pollers_only_see_forward_progress(self, make_orchestrator, good_payload):
        gate = asyncio.Event()
        orchestrator = make_orchestrator(FakeAnalyzer(model_text(good_payload), gate=gate))
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        order = [JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.COMPLETED]

        async def poll():
            seen = []
            while True:
                job = await orchestrator.get_status("job-1")
                seen.append(job.status)
                if job.status.is_terminal:
                    return seen
                await asyncio.sleep(0)

        async def release():
            await asyncio.sleep(0.01)
            gate.set()

        results = await asyncio.gather(poll(), poll(), poll(), release())
        for seen in results[:3]:
            positions = [order.index(status) for status in seen]
            assert positions == sorted(positions)
            assert seen[-1] == JobStatus.COMPLETED


class TestLifecycle:
    async def test_stop_records_interrupted_jobs(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeAnalyzer(gate=asyncio.Event()), shutdown_grace_seconds=0.01)
        await orchestrator.start()
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        await asyncio.sleep(0)

        await orchestrator.stop()

        job = await orchestrator.get_status("job-1")
        assert job.status == JobStatus.ERROR
        assert "interrupted" in job.error
        assert orchestrator.active_jobs == 0

    async def test_stop_lets_finishing_jobs_complete(self, make_orchestrator, good_payload):
        orchestrator = make_orchestrator(FakeAnalyzer(model_text(good_payload)), shutdown_grace_seconds=1)
        await orchestrator.start()
        await orchestrator.submit("job-1", "gs://b/v.mp4")
        await orchestrator.stop()
        assert (await orchestrator.get_status("job-1")).status == JobStatus.COMPLETED
