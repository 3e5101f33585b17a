"""Result values returned by the inference client."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class Stage(str, Enum):
    CAPTURE = "capture"
    DESCRIBE = "describe"
    SUMMARIZE = "summarize"

    @property
    def label(self) -> str:
        return _STAGE_LABELS[self]


_STAGE_LABELS = {
    Stage.CAPTURE: "Capture",
    Stage.DESCRIBE: "Vision",
    Stage.SUMMARIZE: "Summary",
}


@dataclass(frozen=True)
class Caption:
    """Text produced by the vision model for a captured image."""

    text: str


@dataclass(frozen=True)
class Summary:
    """Final text of a run; ``degraded`` marks a fallback built from the caption."""

    text: str
    degraded: bool = False


@dataclass(frozen=True)
class Failure:
    """A stage failure carried as a value rather than raised."""

    stage: Stage
    reason: str
    http_status: Optional[int] = None
    retryable: bool = False
    hint: Optional[str] = None

    @property
    def message(self) -> str:
        if self.hint:
            return f"{self.stage.label}: {self.reason}. {self.hint}"
        if self.retryable and self.http_status == 503:
            return f"{self.stage.label}: {self.reason}"
        return f"{self.stage.label} error: {self.reason}"


InferenceResponse = Union[Caption, Summary, Failure]
