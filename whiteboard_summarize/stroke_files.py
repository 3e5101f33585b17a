"""Shared helpers for reading and writing JSON Lines stroke recordings."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Optional

from .rasterizer import ViewTransform
from .strokes import StrokeStore


def iter_jsonl(path: Path) -> Iterable[dict]:
    """Yield JSON objects from a JSON Lines file, skipping malformed rows."""
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(obj, dict):
                yield obj


def extract_points_from_obj(obj: Any) -> Optional[list]:
    if not isinstance(obj, dict) or obj.get("type") != "stroke":
        return None
    points = obj.get("points")
    if not isinstance(points, list):
        return None
    return [p for p in points if isinstance(p, (list, tuple)) and len(p) in (2, 3)]


def load_strokes(path: Path, store: StrokeStore) -> int:
    """Replay strokes from ``path`` into ``store``; return how many were kept."""
    kept = 0
    for obj in iter_jsonl(path):
        points = extract_points_from_obj(obj)
        if points is None:
            continue
        store.begin_stroke()
        for point in points:
            try:
                store.append_point(point)
            except (TypeError, ValueError):
                continue
        if store.end_stroke() is not None:
            kept += 1
    return kept


def load_view(path: Path) -> Optional[ViewTransform]:
    """Return the first ``{"type": "view"}`` row of ``path`` as a transform."""
    for obj in iter_jsonl(path):
        if obj.get("type") == "view":
            return ViewTransform.from_mapping(obj)
    return None


def write_strokes(store: StrokeStore, target: Path, view: Optional[ViewTransform] = None) -> int:
    """Write finalized strokes (and ``view`` if given) to ``target``; return the stroke count."""
    target.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with target.open("w", encoding="utf-8") as handle:
        if view is not None:
            handle.write(json.dumps({"type": "view", **view.to_mapping()}) + "\n")
        for stroke in store.strokes:
            row = {"type": "stroke", "points": [list(point) for point in stroke]}
            handle.write(json.dumps(row) + "\n")
            count += 1
    return count
