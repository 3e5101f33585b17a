"""Tests for the pipeline orchestrator."""

import asyncio

import httpx

from whiteboard_summarize.inference import Caption, Stage, Summary
from whiteboard_summarize.pipeline import (
    EventKind,
    PipelineOrchestrator,
    PipelineState,
    Rejection,
    RejectionReason,
)
from whiteboard_summarize.rasterizer import Rasterizer, ViewTransform


class BlockingClient:
    """Holds the describe stage open until released."""

    has_credential = True

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.summaries = 0

    async def describe(self, image_bytes):
        self.entered.set()
        await self.release.wait()
        return Caption("a red circle")

    async def summarize(self, caption):
        self.summaries += 1
        return Summary("Circle drawn in red.")


def collect(orchestrator):
    events = []
    orchestrator.subscribe(events.append)
    return events


def test_successful_run_emits_one_event_per_transition(store, make_router):
    router = make_router()
    orchestrator = PipelineOrchestrator(store, router.client())
    events = collect(orchestrator)

    request = asyncio.run(orchestrator.run())

    assert request.state is PipelineState.DONE
    assert request.caption == "a red circle"
    assert request.final_text == "Circle drawn in red."
    assert not request.degraded
    assert [event.state for event in events] == [
        PipelineState.CAPTURING,
        PipelineState.DESCRIBING,
        PipelineState.SUMMARIZING,
        PipelineState.DONE,
    ]
    assert events[-1].kind is EventKind.RESULT
    assert events[-1].text == "Circle drawn in red."
    assert {event.request_id for event in events} == {request.id}
    assert orchestrator.state is PipelineState.IDLE
    assert orchestrator.last_request is request


def test_describe_503_fails_run_without_summarizing(store, make_router):
    router = make_router(vision=lambda request: httpx.Response(503, json={"error": "loading"}))
    orchestrator = PipelineOrchestrator(store, router.client())
    events = collect(orchestrator)

    request = asyncio.run(orchestrator.run())

    assert request.state is PipelineState.FAILED
    assert request.failure.stage is Stage.DESCRIBE
    assert request.failure.retryable
    assert router.summary_requests == []
    assert [event.state for event in events] == [
        PipelineState.CAPTURING,
        PipelineState.DESCRIBING,
        PipelineState.FAILED,
    ]
    assert events[-1].kind is EventKind.FAILURE
    assert "model loading" in events[-1].message.lower()
    assert orchestrator.state is PipelineState.IDLE


def test_summarize_failure_still_reaches_done(store, make_router):
    router = make_router(summary=lambda request: httpx.Response(500, json={"error": "boom"}))
    orchestrator = PipelineOrchestrator(store, router.client())
    events = collect(orchestrator)

    request = asyncio.run(orchestrator.run())

    assert request.state is PipelineState.DONE
    assert request.final_text == "Whiteboard shows: a red circle"
    assert request.degraded
    assert events[-1].text == "Whiteboard shows: a red circle"


def test_captured_png_is_sent_to_vision_stage(store, make_router):
    router = make_router()
    orchestrator = PipelineOrchestrator(store, router.client(), width=64, height=48)

    asyncio.run(orchestrator.run())

    payload = router.vision_requests[0].content.decode("utf-8")
    expected = Rasterizer().capture(store, 64, 48).data_uri()
    assert expected in payload


def test_concurrent_run_is_rejected_as_busy(store):
    async def scenario():
        client = BlockingClient()
        orchestrator = PipelineOrchestrator(store, client)
        events = collect(orchestrator)

        first = asyncio.create_task(orchestrator.run())
        await client.entered.wait()
        assert orchestrator.state is PipelineState.DESCRIBING
        second = await orchestrator.run()
        client.release.set()
        return await first, second, events, client

    first, second, events, client = asyncio.run(scenario())

    assert isinstance(second, Rejection)
    assert second.reason is RejectionReason.BUSY
    assert first.state is PipelineState.DONE
    assert first.final_text == "Circle drawn in red."
    assert client.summaries == 1
    rejected = [event for event in events if event.kind is EventKind.REJECTED]
    assert len(rejected) == 1
    assert rejected[0].request_id is None


def test_new_run_allowed_after_terminal_state(store, make_router):
    router = make_router()
    orchestrator = PipelineOrchestrator(store, router.client())

    first = asyncio.run(orchestrator.run())
    second = asyncio.run(orchestrator.run())

    assert (first.id, second.id) == (1, 2)
    assert second.state is PipelineState.DONE


def test_missing_credential_rejects_before_capture(store, make_router):
    router = make_router()
    orchestrator = PipelineOrchestrator(store, router.client(token=None))
    events = collect(orchestrator)

    outcome = asyncio.run(orchestrator.run())

    assert isinstance(outcome, Rejection)
    assert outcome.reason is RejectionReason.CREDENTIAL_MISSING
    assert [event.kind for event in events] == [EventKind.REJECTED]
    assert router.vision_requests == []
    assert orchestrator.last_request is None


def test_capture_error_fails_run(store, make_router):
    router = make_router()
    orchestrator = PipelineOrchestrator(store, router.client(), width=0)

    request = asyncio.run(orchestrator.run())

    assert request.state is PipelineState.FAILED
    assert request.failure.stage is Stage.CAPTURE
    assert router.vision_requests == []
    assert not orchestrator.busy


def test_view_provider_error_fails_run(store, make_router):
    def lost_view():
        raise RuntimeError("camera gone")

    router = make_router()
    orchestrator = PipelineOrchestrator(store, router.client(), view_provider=lost_view)
    events = collect(orchestrator)

    request = asyncio.run(orchestrator.run())

    assert request.state is PipelineState.FAILED
    assert request.failure.stage is Stage.CAPTURE
    assert request.failure.message == "Capture error: camera gone"
    assert [event.state for event in events] == [PipelineState.CAPTURING, PipelineState.FAILED]
    assert events[-1].kind is EventKind.FAILURE
    assert router.vision_requests == []
    assert not orchestrator.busy
    assert orchestrator.state is PipelineState.IDLE


def test_unexpected_rasterizer_error_fails_run(store, make_router):
    class BrokenRasterizer(Rasterizer):
        def capture(self, *args, **kwargs):
            raise OSError()

    router = make_router()
    orchestrator = PipelineOrchestrator(store, router.client(), BrokenRasterizer())

    request = asyncio.run(orchestrator.run())

    assert request.state is PipelineState.FAILED
    assert request.failure.reason == "OSError"
    assert router.vision_requests == []
    assert not orchestrator.busy


def test_listener_errors_do_not_break_the_run(store, make_router):
    router = make_router()
    orchestrator = PipelineOrchestrator(store, router.client())

    def broken(event):
        raise RuntimeError("ui went away")

    orchestrator.subscribe(broken)
    events = collect(orchestrator)

    request = asyncio.run(orchestrator.run())

    assert request.state is PipelineState.DONE
    assert len(events) == 4


def test_unsubscribe_stops_notifications(store, make_router):
    orchestrator = PipelineOrchestrator(store, make_router().client())
    events = []
    unsubscribe = orchestrator.subscribe(events.append)
    unsubscribe()

    asyncio.run(orchestrator.run())
    assert events == []


def test_view_provider_frames_capture(store, make_router):
    seen = []

    class RecordingRasterizer(Rasterizer):
        def capture(self, store, width=1024, height=768, view=None):
            seen.append(view)
            return super().capture(store, width, height, view)

    provided = ViewTransform(field_of_view=40.0)
    explicit = ViewTransform(field_of_view=80.0)
    orchestrator = PipelineOrchestrator(
        store,
        make_router().client(),
        RecordingRasterizer(),
        view_provider=lambda: provided,
    )

    asyncio.run(orchestrator.run())
    asyncio.run(orchestrator.run(view=explicit))

    assert seen == [provided, explicit]
