"""In-memory store for freehand strokes captured from the drawing input."""
from __future__ import annotations

import logging
import math
import threading
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

DEFAULT_MIN_POINT_DISTANCE = 0.002
MIN_STROKE_POINTS = 2


class Point(NamedTuple):
    """A recorded pen position; 2D input is stored with ``z == 0``."""

    x: float
    y: float
    z: float = 0.0

    @classmethod
    def coerce(cls, value: "Point | Sequence[float]") -> "Point":
        if isinstance(value, Point):
            return value
        coords = [float(component) for component in value]
        if len(coords) == 2:
            return cls(coords[0], coords[1])
        if len(coords) == 3:
            return cls(coords[0], coords[1], coords[2])
        raise ValueError(f"Point needs 2 or 3 coordinates, got {len(coords)}")

    def distance_to(self, other: "Point") -> float:
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )


Stroke = Tuple[Point, ...]


class StrokeStore:
    """Ordered collection of finalized strokes plus at most one in-progress stroke.

    The drawing input is the only writer. Reads go through :meth:`snapshot`,
    which never observes a half-applied mutation.
    """

    def __init__(
        self,
        min_distance: float = DEFAULT_MIN_POINT_DISTANCE,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if min_distance < 0:
            raise ValueError("min_distance must be non-negative")
        self.min_distance = min_distance
        self._strokes: List[Stroke] = []
        self._current: Optional[List[Point]] = None
        self._lock = threading.Lock()
        self._clear_listeners: List[Callable[[], None]] = []
        self._logger = logger or logging.getLogger(__name__)

    @property
    def is_drawing(self) -> bool:
        return self._current is not None

    @property
    def strokes(self) -> Tuple[Stroke, ...]:
        """Finalized strokes in insertion order."""
        with self._lock:
            return tuple(self._strokes)

    @property
    def current_stroke(self) -> Optional[Stroke]:
        with self._lock:
            return tuple(self._current) if self._current is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._strokes)

    def begin_stroke(self) -> bool:
        with self._lock:
            if self._current is not None:
                return False
            self._current = []
            return True

    def append_point(self, point: "Point | Sequence[float]") -> bool:
        """Record ``point`` unless it sits within ``min_distance`` of the last one."""
        candidate = Point.coerce(point)
        with self._lock:
            if self._current is None:
                return False
            if self._current and self._current[-1].distance_to(candidate) < self.min_distance:
                return False
            self._current.append(candidate)
            return True

    def end_stroke(self) -> Optional[Stroke]:
        with self._lock:
            current, self._current = self._current, None
            if current is None or len(current) < MIN_STROKE_POINTS:
                return None
            stroke = tuple(current)
            self._strokes.append(stroke)
        self._logger.debug(
            "stroke-finalized", extra={"stroke": {"points": len(stroke), "index": len(self._strokes) - 1}}
        )
        return stroke

    def clear_all(self) -> None:
        with self._lock:
            self._strokes.clear()
            self._current = None
            listeners = list(self._clear_listeners)
        for listener in listeners:
            listener()

    def on_clear(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a renderer hook run after :meth:`clear_all`; returns an unsubscribe callable."""
        with self._lock:
            self._clear_listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._clear_listeners:
                    self._clear_listeners.remove(listener)

        return _remove

    def snapshot(self, include_in_progress: bool = True) -> Tuple[Stroke, ...]:
        """Return an immutable point-in-time view of the strokes to render."""
        with self._lock:
            strokes = list(self._strokes)
            if include_in_progress and self._current:
                strokes.append(tuple(self._current))
            return tuple(strokes)
