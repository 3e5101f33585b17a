from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import WhiteboardSettings, load_hf_token
from .inference import InferenceClient, PromptValidationError, load_prompt
from .inference.prompts import DEFAULT_SUMMARY_PROMPT
from .pipeline import EventKind, PipelineOrchestrator, PipelineRequest, PipelineState, Rejection, StatusEvent
from .rasterizer import Rasterizer
from .storage import request_metadata, write_summary
from .stroke_files import load_strokes, load_view
from .strokes import StrokeStore


def resolve_strokes_path(candidate: str) -> Path:
    path = Path(candidate).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"Stroke file not found: {candidate}")
    return path


def load_store(path: Path, min_distance: float) -> tuple[StrokeStore, int]:
    store = StrokeStore(min_distance=min_distance)
    kept = load_strokes(path, store)
    return store, kept


def default_png_path(strokes_path: Path) -> Path:
    return Path.cwd() / (strokes_path.with_suffix("").name + ".png")


def resolve_size(args: argparse.Namespace, settings: WhiteboardSettings, parser: argparse.ArgumentParser) -> tuple[int, int]:
    width = args.width if args.width is not None else settings.capture_width
    height = args.height if args.height is not None else settings.capture_height
    if width <= 0 or height <= 0:
        parser.error(f"Capture size must be positive, got {width}x{height}")
    return width, height


def print_status(event: StatusEvent) -> None:
    if event.kind is EventKind.RESULT:
        return
    prefix = f"[{event.request_id}] " if event.request_id is not None else ""
    print(f"{prefix}{event.message}", file=sys.stderr)


def handle_capture(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    try:
        settings = WhiteboardSettings.from_env()
        strokes_path = resolve_strokes_path(args.strokes)
        store, kept = load_store(strokes_path, args.min_distance)
        view = load_view(strokes_path)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))
        return 2
    width, height = resolve_size(args, settings, parser)

    rasterizer = Rasterizer(ink_width=args.ink_width)
    try:
        result = rasterizer.capture(
            store,
            width,
            height,
            view,
        )
    except ValueError as exc:
        parser.error(str(exc))
        return 2

    out_path = args.output or default_png_path(strokes_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(result.png_bytes)
    print(f"Wrote {result.width}x{result.height} capture of {kept} strokes to {out_path}")
    return 0


def handle_summarize(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    try:
        settings = WhiteboardSettings.from_env()
        strokes_path = resolve_strokes_path(args.strokes)
        store, _ = load_store(strokes_path, args.min_distance)
        view = load_view(strokes_path)
        summary_prompt = load_prompt(args.prompt) if args.prompt else DEFAULT_SUMMARY_PROMPT
    except (FileNotFoundError, PromptValidationError, ValueError) as exc:
        parser.error(str(exc))
        return 2
    width, height = resolve_size(args, settings, parser)

    token = load_hf_token(args.env_file)
    if not token:
        parser.error(
            "Hugging Face API token not found. Set HF_API_TOKEN, add it to .env, "
            "or log in with `huggingface-cli login`."
        )
        return 2

    client = InferenceClient(
        token,
        vision_url=settings.vision_url,
        vision_model=args.vision_model or settings.vision_model,
        summary_url=settings.summary_url,
        summary_prompt=summary_prompt,
        timeout=args.timeout if args.timeout is not None else settings.timeout,
    )
    orchestrator = PipelineOrchestrator(
        store,
        client,
        Rasterizer(ink_width=args.ink_width),
        width=width,
        height=height,
    )
    orchestrator.subscribe(print_status)

    outcome = asyncio.run(orchestrator.run(view=view))
    if isinstance(outcome, Rejection):
        print(outcome.message, file=sys.stderr)
        return 2

    return report_outcome(outcome, args, strokes_path)


def report_outcome(request: PipelineRequest, args: argparse.Namespace, strokes_path: Path) -> int:
    if request.state is not PipelineState.DONE:
        return 1

    body = request.summary or ""
    if args.output:
        metadata = request_metadata(request, source_path=str(strokes_path))
        record = write_summary(args.output, body, metadata)
        status = "degraded" if request.degraded else "generated"
        print(f"[{status}] {strokes_path} -> {record.path}")
        return 0

    sys.stdout.write(body)
    if not body.endswith("\n"):
        sys.stdout.write("\n")
    return 0


def add_capture_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("strokes", help="Path of a JSON Lines stroke recording")
    p.add_argument("--width", type=int, help="Capture width in pixels (default: 1024)")
    p.add_argument("--height", type=int, help="Capture height in pixels (default: 768)")
    p.add_argument("--ink-width", type=int, default=4, help="Stroke width in pixels (default: 4)")
    p.add_argument(
        "--min-distance",
        type=float,
        default=0.002,
        help="Drop points closer than this to the previous point (default: 0.002)",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="whiteboard-summarize",
        description="Rasterize recorded whiteboard strokes and summarize them with hosted vision and text models.",
    )
    p.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for diagnostics on stderr (default: WARNING)",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    p_capture = sub.add_parser("capture", help="Render a stroke recording to PNG")
    add_capture_options(p_capture)
    p_capture.add_argument("-o", "--output", type=Path, help="PNG output path (default: <cwd>/<strokes-basename>.png)")

    p_summarize = sub.add_parser("summarize", help="Capture, describe and summarize a stroke recording")
    add_capture_options(p_summarize)
    p_summarize.add_argument("-o", "--output", type=Path, help="Write the summary as Markdown with YAML front matter instead of printing it to stdout")
    p_summarize.add_argument("--vision-model", help="Vision model identifier (default: Qwen/Qwen2.5-VL-7B-Instruct)")
    p_summarize.add_argument("--prompt", type=Path, help="Summarization prompt file containing {{caption}}")
    p_summarize.add_argument("--timeout", type=float, help="HTTP timeout in seconds per call (default: 30)")
    p_summarize.add_argument("--env-file", type=Path, help="dotenv file holding HF_API_TOKEN (default: ./.env)")

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if args.cmd == "capture":
        return handle_capture(args, parser)

    if args.cmd == "summarize":
        return handle_summarize(args, parser)

    parser.error("Unknown command")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
