"""Single-flight orchestration of capture, describe and summarize."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Mapping, Optional, Union

from .inference import Failure, InferenceClient, Stage, Summary
from .rasterizer import DEFAULT_CAPTURE_HEIGHT, DEFAULT_CAPTURE_WIDTH, Rasterizer, ViewTransform
from .strokes import StrokeStore


class PipelineState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    DESCRIBING = "describing"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.DONE, PipelineState.FAILED)


class EventKind(str, Enum):
    PHASE = "phase"
    RESULT = "result"
    FAILURE = "failure"
    REJECTED = "rejected"


class RejectionReason(str, Enum):
    BUSY = "busy"
    CREDENTIAL_MISSING = "credential_missing"


@dataclass(frozen=True)
class StatusEvent:
    """Pushed to subscribers on every request transition and on rejections.

    Releasing the in-flight slot after DONE or FAILED is silent: the request
    keeps its terminal state and only :attr:`PipelineOrchestrator.state`
    reads IDLE again.
    """

    kind: EventKind
    message: str
    request_id: Optional[int] = None
    state: Optional[PipelineState] = None
    text: Optional[str] = None


@dataclass(frozen=True)
class Rejection:
    """Returned by :meth:`PipelineOrchestrator.run` when a run cannot start."""

    reason: RejectionReason
    message: str


@dataclass
class PipelineRequest:
    """One logical invocation of the pipeline."""

    id: int
    state: PipelineState = PipelineState.IDLE
    caption: Optional[str] = None
    summary: Optional[str] = None
    failure: Optional[Failure] = None
    degraded: bool = False

    @property
    def final_text(self) -> Optional[str]:
        if self.state is PipelineState.DONE:
            return self.summary
        if self.failure is not None:
            return self.failure.message
        return None


StatusListener = Callable[[StatusEvent], None]

_BUSY_MESSAGE = "Already processing, please wait..."
_CREDENTIAL_MESSAGE = "ERROR: No Hugging Face API token configured"
_PHASE_MESSAGES: Mapping[PipelineState, str] = {
    PipelineState.CAPTURING: "Capturing whiteboard...",
    PipelineState.DESCRIBING: "Stage 1/2: Describing drawing...",
    PipelineState.SUMMARIZING: "Stage 2/2: Generating AI summary...",
}


class PipelineOrchestrator:
    """Public facade used by UI layers and the CLI.

    At most one request is in flight; the slot is taken with a lock-guarded
    compare-and-set and released once the request reaches DONE or FAILED.
    """

    def __init__(
        self,
        store: StrokeStore,
        client: InferenceClient,
        rasterizer: Optional[Rasterizer] = None,
        *,
        width: int = DEFAULT_CAPTURE_WIDTH,
        height: int = DEFAULT_CAPTURE_HEIGHT,
        view_provider: Optional[Callable[[], ViewTransform]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.rasterizer = rasterizer or Rasterizer()
        self.width = width
        self.height = height
        self._view_provider = view_provider
        self._logger = logger or logging.getLogger(__name__)
        self._listeners: List[StatusListener] = []
        self._slot_lock = threading.Lock()
        self._active: Optional[PipelineRequest] = None
        self._last: Optional[PipelineRequest] = None
        self._next_id = 0

    @property
    def state(self) -> PipelineState:
        active = self._active
        return active.state if active is not None else PipelineState.IDLE

    @property
    def busy(self) -> bool:
        return self._active is not None

    @property
    def last_request(self) -> Optional[PipelineRequest]:
        return self._last

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register ``listener`` for status events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def run(self, *, view: Optional[ViewTransform] = None) -> Union[PipelineRequest, Rejection]:
        """Capture the board, caption it, then summarize the caption."""

        if self.busy:
            return self._reject(RejectionReason.BUSY, _BUSY_MESSAGE)
        if not self.client.has_credential:
            return self._reject(RejectionReason.CREDENTIAL_MISSING, _CREDENTIAL_MESSAGE)

        request = self._try_acquire()
        if request is None:
            return self._reject(RejectionReason.BUSY, _BUSY_MESSAGE)

        try:
            await self._execute(request, view)
        finally:
            self._release(request)
        return request

    async def _execute(self, request: PipelineRequest, view: Optional[ViewTransform]) -> None:
        self._transition(request, PipelineState.CAPTURING)
        try:
            frame = view or (self._view_provider() if self._view_provider else None)
            capture = self.rasterizer.capture(self.store, self.width, self.height, frame)
        except Exception as exc:
            self._logger.warning("[pipeline %d] capture failed: %s", request.id, exc, exc_info=True)
            self._fail(request, Failure(stage=Stage.CAPTURE, reason=str(exc) or type(exc).__name__))
            return

        self._transition(request, PipelineState.DESCRIBING)
        described = await self.client.describe(capture.png_bytes)
        if isinstance(described, Failure):
            self._fail(request, described)
            return
        request.caption = described.text
        self._logger.info("[pipeline %d] caption: %s", request.id, described.text)

        self._transition(request, PipelineState.SUMMARIZING)
        summary: Summary = await self.client.summarize(described.text)
        request.summary = summary.text
        request.degraded = summary.degraded
        self._transition(
            request,
            PipelineState.DONE,
            kind=EventKind.RESULT,
            message=summary.text,
            text=summary.text,
        )

    def _try_acquire(self) -> Optional[PipelineRequest]:
        with self._slot_lock:
            if self._active is not None:
                return None
            self._next_id += 1
            request = PipelineRequest(id=self._next_id)
            self._active = request
            return request

    def _release(self, request: PipelineRequest) -> None:
        with self._slot_lock:
            if self._active is request:
                self._active = None
                self._last = request

    def _fail(self, request: PipelineRequest, failure: Failure) -> None:
        request.failure = failure
        self._transition(
            request,
            PipelineState.FAILED,
            kind=EventKind.FAILURE,
            message=failure.message,
        )

    def _transition(
        self,
        request: PipelineRequest,
        state: PipelineState,
        *,
        kind: EventKind = EventKind.PHASE,
        message: Optional[str] = None,
        text: Optional[str] = None,
    ) -> None:
        request.state = state
        self._log_debug("transition", request)
        self._emit(
            StatusEvent(
                kind=kind,
                message=message if message is not None else _PHASE_MESSAGES.get(state, state.value),
                request_id=request.id,
                state=state,
                text=text,
            )
        )

    def _reject(self, reason: RejectionReason, message: str) -> Rejection:
        self._logger.info("pipeline rejected: %s", reason.value)
        self._emit(StatusEvent(kind=EventKind.REJECTED, message=message))
        return Rejection(reason=reason, message=message)

    def _emit(self, event: StatusEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self._logger.exception("status listener failed for %s event", event.kind.value)

    def _log_debug(self, event: str, request: PipelineRequest) -> None:
        payload = {
            "event": event,
            "request_id": request.id,
            "state": request.state.value,
        }
        self._logger.debug("pipeline", extra={"pipeline": payload})
