"""Persist pipeline results as Markdown with YAML front matter."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from .pipeline import PipelineRequest

_FRONT_MATTER_DELIMITER = "---"


@dataclass
class SummaryRecord:
    """Normalized representation of a stored summary and its metadata."""

    body: str
    path: Path
    metadata: Dict[str, object] = field(default_factory=dict)


def request_metadata(request: PipelineRequest, **extra: object) -> Dict[str, object]:
    metadata: Dict[str, object] = {
        "request_id": request.id,
        "state": request.state.value,
        "degraded": request.degraded,
    }
    if request.caption is not None:
        metadata["caption"] = request.caption
    if request.failure is not None:
        metadata["failure"] = {
            "stage": request.failure.stage.value,
            "reason": request.failure.reason,
            "http_status": request.failure.http_status,
            "retryable": request.failure.retryable,
        }
    metadata.update(extra)
    return metadata


def load_summary(markdown_path: Path) -> SummaryRecord:
    """Read a summary markdown file and return a normalized record."""
    markdown_path = Path(markdown_path)
    raw_text = markdown_path.read_text(encoding="utf-8")
    metadata, body = _split_front_matter(raw_text)
    return SummaryRecord(body=body, path=markdown_path, metadata=metadata)


def write_summary(markdown_path: Path, body: str, metadata: Optional[Dict[str, object]] = None) -> SummaryRecord:
    """Persist summary markdown with YAML front matter and return the record."""
    markdown_path = Path(markdown_path)
    markdown_path.parent.mkdir(parents=True, exist_ok=True)
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise TypeError("metadata must be a mapping")
    serialized_metadata = dict(metadata)
    sections = []
    if serialized_metadata:
        front_matter = yaml.safe_dump(serialized_metadata, sort_keys=True, allow_unicode=True).strip()
        sections.append(f"{_FRONT_MATTER_DELIMITER}\n{front_matter}\n{_FRONT_MATTER_DELIMITER}")
        sections.append("")
    body = body if body.endswith("\n") else f"{body}\n"
    sections.append(body)
    markdown_path.write_text("\n".join(sections), encoding="utf-8")
    return SummaryRecord(body=body, path=markdown_path, metadata=serialized_metadata)


def _split_front_matter(content: str) -> Tuple[Dict[str, object], str]:
    lines = content.splitlines()
    if not lines or lines[0].strip() != _FRONT_MATTER_DELIMITER:
        return {}, content if not content or content.endswith("\n") else f"{content}\n"

    for idx in range(1, len(lines)):
        if lines[idx].strip() == _FRONT_MATTER_DELIMITER:
            front_matter_text = "\n".join(lines[1:idx]).strip()
            metadata = yaml.safe_load(front_matter_text) if front_matter_text else {}
            if metadata is None:
                metadata = {}
            if not isinstance(metadata, dict):
                raise ValueError("Summary front matter must deserialize to a mapping")
            body = "\n".join(lines[idx + 1 :]).lstrip("\n")
            if body and not body.endswith("\n"):
                body = f"{body}\n"
            return metadata, body

    # No closing delimiter; keep the whole file as body.
    return {}, content if content.endswith("\n") else f"{content}\n"
