"""Shared exports for the two-stage inference client."""
from __future__ import annotations

from .client import (
    AuthenticationError,
    CredentialMissingError,
    InferenceClient,
    InferenceError,
    ModelLoadingError,
    RateLimitError,
    ResponseFormatError,
    TransientError,
)
from .extraction import extract_field, scan_field
from .prompts import PromptTemplate, PromptValidationError, load_prompt
from .types import Caption, Failure, InferenceResponse, Stage, Summary


__all__ = [
    "InferenceClient",
    "InferenceError",
    "CredentialMissingError",
    "AuthenticationError",
    "RateLimitError",
    "TransientError",
    "ModelLoadingError",
    "ResponseFormatError",
    "extract_field",
    "scan_field",
    "PromptTemplate",
    "PromptValidationError",
    "load_prompt",
    "Caption",
    "Summary",
    "Failure",
    "InferenceResponse",
    "Stage",
]
