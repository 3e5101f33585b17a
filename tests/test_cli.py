"""Tests for the command-line front end."""

import io
import json

import httpx
import pytest
from PIL import Image

from whiteboard_summarize import cli, config
from whiteboard_summarize.storage import load_summary

from .conftest import RecordingRouter, chat_response, summary_response


@pytest.fixture
def strokes_file(tmp_path):
    path = tmp_path / "board.jsonl"
    rows = [
        {"type": "view", "position": [0, 0, 0], "field_of_view": 60},
        {"type": "stroke", "points": [[-0.5, 0, 2], [0.5, 0, 2]]},
    ]
    path.write_text("\n".join(json.dumps(row) for row in rows) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def router(monkeypatch, tmp_path):
    mock = RecordingRouter(
        lambda request: httpx.Response(200, json=chat_response("a red circle")),
        lambda request: httpx.Response(200, json=summary_response("Circle drawn in red.")),
    )
    real_client = cli.InferenceClient

    def build(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(mock), **kwargs)

    monkeypatch.setattr(cli, "InferenceClient", build)
    monkeypatch.setattr(config, "get_hf_token_path", lambda: tmp_path / "missing-token")
    monkeypatch.chdir(tmp_path)
    return mock


def test_capture_writes_png(strokes_file, tmp_path, capsys):
    out = tmp_path / "board.png"

    exit_code = cli.main(["capture", str(strokes_file), "-o", str(out), "--width", "200", "--height", "100"])

    assert exit_code == 0
    image = Image.open(io.BytesIO(out.read_bytes()))
    assert image.size == (200, 100)
    assert "1 strokes" in capsys.readouterr().out


def test_capture_missing_file_is_usage_error(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["capture", str(tmp_path / "nope.jsonl")])
    assert excinfo.value.code == 2


@pytest.mark.parametrize("size_args", [["--width", "0"], ["--height", "-5"]])
def test_capture_rejects_non_positive_size(strokes_file, tmp_path, size_args):
    out = tmp_path / "board.png"

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["capture", str(strokes_file), "-o", str(out), *size_args])
    assert excinfo.value.code == 2
    assert not out.exists()


def test_summarize_prints_summary(strokes_file, router, monkeypatch, capsys):
    monkeypatch.setenv("HF_API_TOKEN", "hf_cli")

    exit_code = cli.main(["summarize", str(strokes_file)])

    captured = capsys.readouterr()
    assert exit_code == 0
    assert captured.out == "Circle drawn in red.\n"
    assert "Capturing whiteboard..." in captured.err
    assert router.vision_requests[0].headers["Authorization"] == "Bearer hf_cli"


def test_summarize_writes_markdown(strokes_file, router, monkeypatch, tmp_path):
    monkeypatch.setenv("HF_API_TOKEN", "hf_cli")
    out = tmp_path / "summary.md"

    exit_code = cli.main(["summarize", str(strokes_file), "--output", str(out)])

    assert exit_code == 0
    record = load_summary(out)
    assert record.body == "Circle drawn in red.\n"
    assert record.metadata["caption"] == "a red circle"
    assert record.metadata["source_path"] == str(strokes_file)


def test_summarize_failure_exit_code(strokes_file, router, monkeypatch, capsys):
    monkeypatch.setenv("HF_API_TOKEN", "hf_cli")
    router._vision = lambda request: httpx.Response(503, json={"error": "loading"})

    exit_code = cli.main(["summarize", str(strokes_file)])

    assert exit_code == 1
    assert "Model loading" in capsys.readouterr().err


def test_summarize_without_token_is_usage_error(strokes_file, router, monkeypatch):
    monkeypatch.delenv("HF_API_TOKEN", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["summarize", str(strokes_file)])
    assert excinfo.value.code == 2
    assert router.vision_requests == []


def test_summarize_rejects_zero_width(strokes_file, router, monkeypatch):
    monkeypatch.setenv("HF_API_TOKEN", "hf_cli")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["summarize", str(strokes_file), "--width", "0"])
    assert excinfo.value.code == 2
    assert router.vision_requests == []


def test_summarize_custom_prompt(strokes_file, router, monkeypatch, tmp_path):
    monkeypatch.setenv("HF_API_TOKEN", "hf_cli")
    prompt = tmp_path / "prompt.md"
    prompt.write_text("Summarise these meeting notes: {{caption}}", encoding="utf-8")

    assert cli.main(["summarize", str(strokes_file), "--prompt", str(prompt)]) == 0

    body = json.loads(router.summary_requests[0].content)
    assert body["inputs"] == "Summarise these meeting notes: a red circle"


def test_summarize_rejects_prompt_without_placeholder(strokes_file, router, monkeypatch, tmp_path):
    monkeypatch.setenv("HF_API_TOKEN", "hf_cli")
    prompt = tmp_path / "prompt.md"
    prompt.write_text("No placeholder here", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["summarize", str(strokes_file), "--prompt", str(prompt)])
    assert excinfo.value.code == 2
