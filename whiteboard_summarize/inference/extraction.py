"""Tolerant lookup of a named text field in provider response bodies.

Providers wrap results differently: chat completions answer with an object
(``{"choices": [{"message": {"content": "..."}}]}``) while the hf-inference
task endpoints answer with a list (``[{"summary_text": "..."}]``). The lookup
accepts a direct object or the first element of an array and returns the
first string stored under the requested key, walking the document in order.
Bodies that are not valid JSON fall back to a lexical scan for the field.
"""
from __future__ import annotations

import json
from typing import Any, Iterator, Optional, Union

_ESCAPES = {"n": "\n", '"': '"', "\\": "\\"}


def extract_field(body: Union[str, bytes, Any], field: str) -> Optional[str]:
    """Return the first string value stored under ``field`` or ``None``."""
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            document = json.loads(body)
        except ValueError:
            return scan_field(body, field)
    else:
        document = body

    for candidate in _response_shapes(document):
        value = _first_string(candidate, field)
        if value is not None:
            return value
    return None


def scan_field(text: str, field: str) -> Optional[str]:
    """Read ``"field":"..."`` from raw text, honouring backslash escapes."""
    marker = f'"{field}"'
    search_from = 0
    while True:
        start = text.find(marker, search_from)
        if start < 0:
            return None
        cursor = _skip_whitespace(text, start + len(marker))
        if cursor < len(text) and text[cursor] == ":":
            cursor = _skip_whitespace(text, cursor + 1)
            if cursor < len(text) and text[cursor] == '"':
                return _read_string(text, cursor + 1)
        search_from = start + len(marker)


def _response_shapes(document: Any) -> Iterator[Any]:
    if isinstance(document, dict):
        yield document
    elif isinstance(document, list) and document:
        yield document[0]


def _first_string(node: Any, field: str) -> Optional[str]:
    if isinstance(node, dict):
        for key, value in node.items():
            if key == field and isinstance(value, str):
                return value
            found = _first_string(value, field)
            if found is not None:
                return found
    elif isinstance(node, list):
        for item in node:
            found = _first_string(item, field)
            if found is not None:
                return found
    return None


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index] in " \t\r\n":
        index += 1
    return index


def _read_string(text: str, index: int) -> Optional[str]:
    chars: list[str] = []
    while index < len(text):
        char = text[index]
        if char == '"':
            return "".join(chars)
        if char == "\\" and index + 1 < len(text):
            escaped = text[index + 1]
            chars.append(_ESCAPES.get(escaped, "\\" + escaped))
            index += 2
            continue
        chars.append(char)
        index += 1
    # Unterminated string literal.
    return None
