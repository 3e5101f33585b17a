"""Render a stroke snapshot to a PNG framed by an explicit camera transform."""
from __future__ import annotations

import base64
import io
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageDraw

from .strokes import Stroke, StrokeStore

DEFAULT_CAPTURE_WIDTH = 1024
DEFAULT_CAPTURE_HEIGHT = 768
BACKGROUND_COLOR = (255, 255, 255)
DEFAULT_INK_COLOR = (0, 0, 255)
DEFAULT_INK_WIDTH = 4

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewTransform:
    """Camera framing used for a capture.

    Camera space follows the usual game-engine convention: +Z looks forward,
    +Y is up, +X is right. ``rotation`` is a unit quaternion ``(x, y, z, w)``
    and ``field_of_view`` the vertical angle in degrees.
    """

    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    field_of_view: float = 60.0
    near_clip: float = 0.01
    orthographic: bool = False
    orthographic_size: float = 1.0

    def __post_init__(self) -> None:
        if len(self.position) != 3:
            raise ValueError("position needs 3 components")
        if len(self.rotation) != 4:
            raise ValueError("rotation needs 4 quaternion components (x, y, z, w)")
        if not math.isfinite(math.fsum(c * c for c in self.rotation)) or not any(self.rotation):
            raise ValueError("rotation quaternion must be non-zero")
        if not 0.0 < self.field_of_view < 180.0:
            raise ValueError("field_of_view must be between 0 and 180 degrees")
        if self.near_clip <= 0:
            raise ValueError("near_clip must be positive")
        if self.orthographic_size <= 0:
            raise ValueError("orthographic_size must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ViewTransform":
        kwargs: dict[str, Any] = {}
        if "position" in data:
            kwargs["position"] = tuple(float(c) for c in data["position"])
        if "rotation" in data:
            kwargs["rotation"] = tuple(float(c) for c in data["rotation"])
        for key in ("field_of_view", "near_clip", "orthographic_size"):
            if key in data:
                kwargs[key] = float(data[key])
        if "orthographic" in data:
            kwargs["orthographic"] = bool(data["orthographic"])
        return cls(**kwargs)

    def to_mapping(self) -> dict[str, Any]:
        return {
            "position": list(self.position),
            "rotation": list(self.rotation),
            "field_of_view": self.field_of_view,
            "near_clip": self.near_clip,
            "orthographic": self.orthographic,
            "orthographic_size": self.orthographic_size,
        }

    def rotation_matrix(self) -> NDArray[np.float64]:
        x, y, z, w = self.rotation
        norm = math.sqrt(x * x + y * y + z * z + w * w)
        x, y, z, w = x / norm, y / norm, z / norm, w / norm
        return np.array(
            [
                [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
                [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
                [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
            ],
            dtype=np.float64,
        )


@dataclass(frozen=True)
class CaptureResult:
    """Encoded PNG handed to the caller for the duration of one pipeline run."""

    png_bytes: bytes = field(repr=False)
    width: int
    height: int

    def base64(self) -> str:
        return base64.b64encode(self.png_bytes).decode("ascii")

    def data_uri(self) -> str:
        return f"data:image/png;base64,{self.base64()}"


class Rasterizer:
    """Draws strokes as polylines on a white canvas and encodes the result as PNG."""

    def __init__(
        self,
        *,
        ink_color: Tuple[int, int, int] = DEFAULT_INK_COLOR,
        ink_width: int = DEFAULT_INK_WIDTH,
        include_in_progress: bool = True,
    ) -> None:
        if ink_width < 1:
            raise ValueError("ink_width must be at least 1 pixel")
        self.ink_color = ink_color
        self.ink_width = ink_width
        self.include_in_progress = include_in_progress

    def capture(
        self,
        store: StrokeStore,
        width: int = DEFAULT_CAPTURE_WIDTH,
        height: int = DEFAULT_CAPTURE_HEIGHT,
        view: Optional[ViewTransform] = None,
    ) -> CaptureResult:
        if width <= 0 or height <= 0:
            raise ValueError(f"Capture size must be positive, got {width}x{height}")
        view = view or ViewTransform()
        strokes = store.snapshot(include_in_progress=self.include_in_progress)

        image = Image.new("RGB", (width, height), BACKGROUND_COLOR)
        try:
            draw = ImageDraw.Draw(image)
            segments = 0
            for stroke in strokes:
                for run in self._visible_runs(stroke, view, width, height):
                    draw.line(run, fill=self.ink_color, width=self.ink_width, joint="curve")
                    segments += len(run) - 1
            buffer = io.BytesIO()
            image.save(buffer, format="PNG")
        finally:
            image.close()

        logger.debug(
            "capture",
            extra={"capture": {"strokes": len(strokes), "segments": segments, "width": width, "height": height}},
        )
        return CaptureResult(png_bytes=buffer.getvalue(), width=width, height=height)

    def capture_base64(
        self,
        store: StrokeStore,
        width: int = DEFAULT_CAPTURE_WIDTH,
        height: int = DEFAULT_CAPTURE_HEIGHT,
        view: Optional[ViewTransform] = None,
    ) -> str:
        return self.capture(store, width, height, view).base64()

    def _visible_runs(
        self,
        stroke: Stroke,
        view: ViewTransform,
        width: int,
        height: int,
    ) -> Iterable[List[Tuple[float, float]]]:
        if len(stroke) < 2:
            return []
        pixels, visible = project_points(stroke, view, width, height)
        runs: List[List[Tuple[float, float]]] = []
        current: List[Tuple[float, float]] = []
        for (px, py), is_visible in zip(pixels.tolist(), visible.tolist()):
            if is_visible:
                current.append((px, py))
                continue
            if len(current) > 1:
                runs.append(current)
            current = []
        if len(current) > 1:
            runs.append(current)
        return runs


def project_points(
    points: Sequence[Sequence[float]],
    view: ViewTransform,
    width: int,
    height: int,
) -> Tuple[NDArray[np.float64], NDArray[np.bool_]]:
    """Project world points to pixel coordinates (origin top-left).

    Returns the Nx2 pixel array and a mask of points in front of the near
    plane; orthographic views keep every point.
    """
    world = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    offset = world - np.asarray(view.position, dtype=np.float64)
    # Row vectors: v @ R applies the inverse (transpose) rotation.
    camera = offset @ view.rotation_matrix()
    aspect = width / height

    if view.orthographic:
        half_h = view.orthographic_size
        ndc_x = camera[:, 0] / (half_h * aspect)
        ndc_y = camera[:, 1] / half_h
        visible = np.ones(len(camera), dtype=bool)
    else:
        depth = camera[:, 2]
        visible = depth > view.near_clip
        safe_depth = np.where(visible, depth, 1.0)
        tan_half = math.tan(math.radians(view.field_of_view) / 2.0)
        ndc_x = camera[:, 0] / (safe_depth * tan_half * aspect)
        ndc_y = camera[:, 1] / (safe_depth * tan_half)

    pixel_x = (ndc_x + 1.0) * 0.5 * width
    pixel_y = (1.0 - ndc_y) * 0.5 * height
    return np.column_stack((pixel_x, pixel_y)), visible
