from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Recover a JSON value from model output that may be wrapped in prose or markdown fences.
"""

import json
import re
from typing import Any

from .errors import InvalidJSONError
from .utils import clamp_str

_BOM = "\ufeff"
_FENCE_RE = re.compile(
    r"(?P<fence>```|~~~)[ \t]*[A-Za-z0-9_+-]*[ \t]*\r?\n(?P<body>.*?)(?:(?P=fence)|\Z)",
    re.DOTALL,
)


def normalize_text(text: str) -> str:
    return (text or "").lstrip(_BOM).strip()


def strip_code_fence(text: str) -> str | None:
    """
    Return the body of the first fenced block (``` or ~~~, optional language tag),
    or None when the text has no fence.
    """
    match = _FENCE_RE.search(text)
    if match is None:
        return None
    return match.group("body").strip()


# bounds the parse attempts when prose is full of bracketed non-JSON
_MAX_FRAGMENT_CANDIDATES = 64


def _balanced_spans(text: str) -> list[tuple[int, int]]:
    """
    One left-to-right pass returning the (start, end) of every object/array that
    closes properly, ordered by start. A mismatched closer discards whatever is
    still open; quotes outside any container are ordinary prose.
    """
    closer_for = {"{": "}", "[": "]"}
    open_stack: list[tuple[str, int]] = []
    spans: list[tuple[int, int]] = []
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch in closer_for:
            open_stack.append((closer_for[ch], i))
        elif not open_stack:
            continue
        elif ch == '"':
            in_string = True
        elif ch in "}]":
            expected, start = open_stack.pop()
            if ch != expected:
                open_stack.clear()
                continue
            spans.append((start, i + 1))

    spans.sort()
    return spans


def find_json_fragment(text: str) -> Any:
    """
    Parse the earliest-starting balanced JSON object/array found in `text`.
    Raises ValueError when no candidate parses.

    Runs in a single pass, so output cut off mid-structure fails quickly.
    """
    for start, end in _balanced_spans(text)[:_MAX_FRAGMENT_CANDIDATES]:
        try:
            return json.loads(text[start:end])
        except json.JSONDecodeError:
            continue
    raise ValueError("no JSON object or array found")


class ResponseExtractor:
    """Turns raw model text into a JSON value or raises InvalidJSONError."""

    def extract(self, raw_text: str) -> Any:
        text = normalize_text(raw_text)
        if not text:
            raise InvalidJSONError("Empty response; expected JSON", text=raw_text or "")

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        candidates = []
        fenced = strip_code_fence(text)
        if fenced:
            candidates.append(fenced)
        candidates.append(text)

        for candidate in candidates:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                pass
            try:
                return find_json_fragment(candidate)
            except ValueError:
                continue

        raise InvalidJSONError(
            f"Response is not valid JSON: {clamp_str(text, 200)}", text=raw_text
        )
