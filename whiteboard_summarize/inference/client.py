"""Thin Hugging Face router wrapper for the describe and summarize stages."""
from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Mapping, Optional, Union

import httpx

from .extraction import extract_field
from .prompts import DEFAULT_SUMMARY_PROMPT, VISION_INSTRUCTION, PromptTemplate, fallback_summary
from .types import Caption, Failure, Stage, Summary

HF_VISION_URL = "https://router.huggingface.co/v1/chat/completions"
HF_VISION_MODEL = "Qwen/Qwen2.5-VL-7B-Instruct"
HF_SUMMARY_URL = "https://router.huggingface.co/hf-inference/models/facebook/bart-large-cnn"


class InferenceError(RuntimeError):
    """Base error raised for inference API failures."""

    retryable = False

    def __init__(self, message: str, *, http_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class CredentialMissingError(InferenceError):
    """Raised before any network call when no API token is configured."""


class AuthenticationError(InferenceError):
    """Raised when the API token is rejected."""


class RateLimitError(InferenceError):
    """Raised when the API returns HTTP 429."""

    retryable = True


class TransientError(InferenceError):
    """Raised for timeouts, transport failures and HTTP 5xx responses."""

    retryable = True


class ModelLoadingError(TransientError):
    """Raised for HTTP 503 while the hosted model is still cold-starting."""


class ResponseFormatError(InferenceError):
    """Raised when a success response carries no body to read."""


class InferenceClient:
    """Issues the two chained inference calls.

    No HTTP connection outlives a single call. Failures in the describe
    stage come back as :class:`Failure` values; the summarize stage always
    produces usable text and only logs what went wrong.
    """

    _DEFAULT_TIMEOUT = 30.0
    _DEFAULT_VISION_MAX_TOKENS = 200
    _DEFAULT_SUMMARY_MIN_LENGTH = 30
    _DEFAULT_SUMMARY_MAX_LENGTH = 120

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        vision_url: str = HF_VISION_URL,
        vision_model: str = HF_VISION_MODEL,
        summary_url: str = HF_SUMMARY_URL,
        vision_max_tokens: int = _DEFAULT_VISION_MAX_TOKENS,
        summary_min_length: int = _DEFAULT_SUMMARY_MIN_LENGTH,
        summary_max_length: int = _DEFAULT_SUMMARY_MAX_LENGTH,
        summary_prompt: PromptTemplate = DEFAULT_SUMMARY_PROMPT,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if summary_min_length > summary_max_length:
            raise ValueError("summary_min_length cannot exceed summary_max_length")
        self.token = token.strip() if token else None
        self.vision_url = vision_url
        self.vision_model = vision_model
        self.summary_url = summary_url
        self.vision_max_tokens = vision_max_tokens
        self.summary_min_length = summary_min_length
        self.summary_max_length = summary_max_length
        self.summary_prompt = summary_prompt
        self.timeout = timeout
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)

    @property
    def has_credential(self) -> bool:
        return bool(self.token)

    # ------------------------------
    # Stage 1: describe
    # ------------------------------
    async def describe(self, image_bytes: bytes, *, token: Optional[str] = None) -> Union[Caption, Failure]:
        """Caption a PNG with the vision model."""

        api_token = self._require_token(token)
        payload = self.build_vision_payload(image_bytes)
        try:
            body = await self._post(self.vision_url, payload, api_token)
        except InferenceError as exc:
            self._logger.warning("[%s] %s", Stage.DESCRIBE.label, exc)
            return Failure(
                stage=Stage.DESCRIBE,
                reason=str(exc),
                http_status=exc.http_status,
                retryable=exc.retryable,
            )

        caption = (extract_field(body, "content") or "").strip()
        if not caption:
            return Failure(stage=Stage.DESCRIBE, reason="no caption returned", hint="Try drawing more.")
        self._log_debug("caption", {"chars": len(caption), "model": self.vision_model})
        return Caption(caption)

    def build_vision_payload(self, image_bytes: bytes) -> Dict[str, Any]:
        data_uri = "data:image/png;base64," + base64.b64encode(image_bytes).decode("ascii")
        return {
            "model": self.vision_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": data_uri}},
                        {"type": "text", "text": VISION_INSTRUCTION},
                    ],
                }
            ],
            "max_tokens": self.vision_max_tokens,
        }

    # ------------------------------
    # Stage 2: summarize
    # ------------------------------
    async def summarize(self, caption: str, *, token: Optional[str] = None) -> Summary:
        """Condense ``caption``; falls back to caption-derived text on any failure."""

        api_token = self._require_token(token)
        payload = self.build_summary_payload(caption)
        try:
            body = await self._post(self.summary_url, payload, api_token)
        except InferenceError as exc:
            self._logger.warning(
                "[%s] %s. Falling back to raw caption.", Stage.SUMMARIZE.label, exc
            )
            return Summary(fallback_summary(caption), degraded=True)

        summary = (extract_field(body, "summary_text") or "").strip()
        if not summary:
            self._logger.warning("[%s] empty summary_text; using caption", Stage.SUMMARIZE.label)
            return Summary(caption, degraded=True)
        self._log_debug("summary", {"chars": len(summary), "url": self.summary_url})
        return Summary(summary)

    def build_summary_payload(self, caption: str) -> Dict[str, Any]:
        # The JSON encoder escapes backslashes, quotes and newlines in the prompt.
        return {
            "inputs": self.summary_prompt.render(caption),
            "parameters": {
                "max_length": self.summary_max_length,
                "min_length": self.summary_min_length,
            },
        }

    # ------------------------------
    # HTTP helpers
    # ------------------------------
    def _require_token(self, token: Optional[str]) -> str:
        api_token = (token or "").strip() or self.token
        if not api_token:
            raise CredentialMissingError("No Hugging Face API token configured")
        return api_token

    async def _post(self, url: str, payload: Mapping[str, Any], token: str) -> str:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(
            headers=headers, timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(url, json=payload)
            except httpx.TimeoutException as exc:
                raise TransientError(f"request timed out after {self.timeout:g}s") from exc
            except httpx.HTTPError as exc:  # network issues
                raise TransientError(f"transport error: {exc}") from exc
            except httpx.InvalidURL as exc:
                raise InferenceError(f"invalid endpoint URL {url!r}: {exc}") from exc

        self._raise_for_status(response)
        if not response.content:
            raise ResponseFormatError("empty response body", http_status=response.status_code)
        return response.text

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        detail = _error_detail(response)
        if status == 401:
            raise AuthenticationError("API token was rejected (401)", http_status=status)
        if status == 403:
            raise AuthenticationError("API token lacks access to this model (403)", http_status=status)
        if status == 429:
            raise RateLimitError(detail or "rate limit exceeded (429)", http_status=status)
        if status == 503:
            raise ModelLoadingError("Model loading (cold start). Wait 20s and retry.", http_status=status)
        if status >= 500:
            raise TransientError(detail or f"server error ({status})", http_status=status)
        raise InferenceError(detail or f"request failed ({status})", http_status=status)

    def _log_debug(self, event: str, extra: Mapping[str, object]) -> None:
        payload: Dict[str, object] = {"event": event}
        payload.update(dict(extra))
        self._logger.debug("inference-client", extra={"inference": payload})


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return f"{text[:200]} ({response.status_code})" if text else None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        error = error.get("message")
    if isinstance(error, str) and error.strip():
        return f"{error.strip()} ({response.status_code})"
    return None
