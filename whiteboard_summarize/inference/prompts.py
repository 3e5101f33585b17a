"""Prompt text for the vision and summarization stages."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

VISION_INSTRUCTION = (
    "Describe what is written or drawn on this whiteboard. Be specific and concise."
)
SUMMARY_TEMPLATE = (
    "Whiteboard content: {{caption}}. "
    "This whiteboard shows notes or diagrams. "
    "Summarize the key points clearly and concisely."
)
FALLBACK_PREFIX = "Whiteboard shows: "
CAPTION_PLACEHOLDER = "{{caption}}"


class PromptValidationError(ValueError):
    """Raised when a prompt template fails validation checks."""


@dataclass(frozen=True)
class PromptTemplate:
    """A summarization prompt with a ``{{caption}}`` placeholder."""

    content: str
    path: Optional[Path] = None

    def render(self, caption: str) -> str:
        return self.content.replace(CAPTION_PLACEHOLDER, caption)


DEFAULT_SUMMARY_PROMPT = PromptTemplate(SUMMARY_TEMPLATE)


def fallback_summary(caption: str) -> str:
    return f"{FALLBACK_PREFIX}{caption}"


def load_prompt(path: Path) -> PromptTemplate:
    """Read a custom summarization prompt from ``path`` and validate it."""
    path = Path(path).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"Prompt file '{path}' was not found.")
    content = path.read_text(encoding="utf-8").strip()
    validate_prompt(content, path)
    return PromptTemplate(content=content, path=path)


def validate_prompt(content: str, path: Optional[Path] = None) -> None:
    label = f"Prompt '{path}'" if path else "Prompt"
    open_tokens = content.count("{{")
    close_tokens = content.count("}}")
    if open_tokens != close_tokens:
        raise PromptValidationError(
            f"{label} has mismatched template braces: {open_tokens} '{{{{' vs {close_tokens} '}}}}'."
        )
    if CAPTION_PLACEHOLDER not in content:
        raise PromptValidationError(
            f"{label} does not include the '{CAPTION_PLACEHOLDER}' placeholder."
        )
