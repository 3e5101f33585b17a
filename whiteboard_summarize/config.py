"""Token and settings loading for front ends embedding the pipeline."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

from .inference.client import HF_SUMMARY_URL, HF_VISION_MODEL, HF_VISION_URL
from .rasterizer import DEFAULT_CAPTURE_HEIGHT, DEFAULT_CAPTURE_WIDTH

TOKEN_ENV_VAR = "HF_API_TOKEN"


def get_default_env_file() -> Path:
    return Path.cwd() / ".env"


def get_hf_token_path() -> Path:
    return Path("~/.cache/huggingface/token").expanduser()


def read_env_file(path: Path, key: str) -> Optional[str]:
    """Return ``key`` from a dotenv file without touching ``os.environ``."""
    if not path.is_file():
        return None
    value = dotenv_values(path).get(key)
    if not value or not value.strip():
        return None
    return value.strip()


def load_hf_token(env_file: Optional[Path] = None) -> Optional[str]:
    env_token = os.getenv(TOKEN_ENV_VAR)
    if env_token and env_token.strip():
        return env_token.strip()

    dotenv_token = read_env_file(env_file or get_default_env_file(), TOKEN_ENV_VAR)
    if dotenv_token:
        return dotenv_token

    try:
        contents = get_hf_token_path().read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return contents or None


@dataclass(frozen=True)
class WhiteboardSettings:
    """Endpoint, timeout and capture settings resolved from the environment."""

    vision_url: str = HF_VISION_URL
    vision_model: str = HF_VISION_MODEL
    summary_url: str = HF_SUMMARY_URL
    timeout: float = 30.0
    capture_width: int = DEFAULT_CAPTURE_WIDTH
    capture_height: int = DEFAULT_CAPTURE_HEIGHT

    @classmethod
    def from_env(cls) -> "WhiteboardSettings":
        return cls(
            vision_url=os.getenv("WHITEBOARD_VISION_URL", HF_VISION_URL),
            vision_model=os.getenv("WHITEBOARD_VISION_MODEL", HF_VISION_MODEL),
            summary_url=os.getenv("WHITEBOARD_SUMMARY_URL", HF_SUMMARY_URL),
            timeout=_float_env("WHITEBOARD_HTTP_TIMEOUT", 30.0),
            capture_width=_int_env("WHITEBOARD_CAPTURE_WIDTH", DEFAULT_CAPTURE_WIDTH),
            capture_height=_int_env("WHITEBOARD_CAPTURE_HEIGHT", DEFAULT_CAPTURE_HEIGHT),
        )


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
