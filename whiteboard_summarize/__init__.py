"""Capture whiteboard strokes and summarize them with hosted inference models."""
from __future__ import annotations

from .inference import Caption, Failure, InferenceClient, Stage, Summary
from .pipeline import (
    EventKind,
    PipelineOrchestrator,
    PipelineRequest,
    PipelineState,
    Rejection,
    RejectionReason,
    StatusEvent,
)
from .rasterizer import CaptureResult, Rasterizer, ViewTransform
from .strokes import Point, Stroke, StrokeStore


__all__ = [
    "Point",
    "Stroke",
    "StrokeStore",
    "Rasterizer",
    "ViewTransform",
    "CaptureResult",
    "InferenceClient",
    "Caption",
    "Summary",
    "Failure",
    "Stage",
    "PipelineOrchestrator",
    "PipelineRequest",
    "PipelineState",
    "StatusEvent",
    "EventKind",
    "Rejection",
    "RejectionReason",
]
