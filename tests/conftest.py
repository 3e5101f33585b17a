"""Shared test fixtures."""

from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from whiteboard_summarize.inference import InferenceClient
from whiteboard_summarize.inference.client import HF_SUMMARY_URL, HF_VISION_URL
from whiteboard_summarize.strokes import StrokeStore

TEST_TOKEN = "hf_test_token"


def chat_response(content: str) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
    }


def summary_response(text: str) -> list:
    return [{"summary_text": text}]


class RecordingRouter:
    """Routes mocked requests by URL and remembers what was sent."""

    def __init__(self, vision: Callable[[httpx.Request], httpx.Response], summary: Callable[[httpx.Request], httpx.Response]):
        self._vision = vision
        self._summary = summary
        self.vision_requests: List[httpx.Request] = []
        self.summary_requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == HF_VISION_URL:
            self.vision_requests.append(request)
            return self._vision(request)
        if url == HF_SUMMARY_URL:
            self.summary_requests.append(request)
            return self._summary(request)
        return httpx.Response(404, json={"error": f"unexpected url {url}"})

    def client(self, token: str = TEST_TOKEN, **kwargs) -> InferenceClient:
        return InferenceClient(token, transport=httpx.MockTransport(self), **kwargs)


def request_json(request: httpx.Request):
    return json.loads(request.content.decode("utf-8"))


@pytest.fixture
def store() -> StrokeStore:
    board = StrokeStore()
    board.begin_stroke()
    for x in (-0.5, -0.25, 0.0, 0.25, 0.5):
        board.append_point((x, 0.0, 2.0))
    board.end_stroke()
    return board


@pytest.fixture
def make_router():
    def _make(vision=None, summary=None) -> RecordingRouter:
        return RecordingRouter(
            vision or (lambda request: httpx.Response(200, json=chat_response("a red circle"))),
            summary or (lambda request: httpx.Response(200, json=summary_response("Circle drawn in red."))),
        )

    return _make
