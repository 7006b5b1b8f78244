from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Utility functions shared by the client: backoff, sync bridging, text clamping and model-name matching.
"""
import asyncio
import inspect
import random
import re
from typing import Any, Iterable


def clamp_str(s: str, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + "…"


def backoff_delay(attempt: int, base: float, jitter_s: float = 0.0) -> float:
    """
    Exponential backoff with optional jitter.
    attempt=0 => 1s, attempt=1 => base, attempt=2 => base**2, etc.
    """
    exp = base**attempt
    jitter = random.uniform(0.0, jitter_s) if jitter_s > 0 else 0.0
    return exp + jitter


def run_sync(coro):
    """
    Run an async coroutine from sync context.
    If already inside a running event loop, raise a clear error.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    if inspect.iscoroutine(coro):
        coro.close()
    raise RuntimeError(
        "Cannot use *_sync methods inside a running event loop. Use async methods instead."
    )


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


_NAME_PARTS = re.compile(r"[:._-]")


def find_similar_models(
    requested: str, available: Iterable[str], limit: int = 5
) -> list[str]:
    """
    Suggest installed model names close to `requested`.

    Substring matches in either direction win; otherwise fall back to matching
    on name parts split at ':', '.', '_' and '-'.
    """
    names = [name for name in available if name]
    if not names or not requested:
        return []

    wanted = requested.lower()
    matches = [n for n in names if wanted in n.lower() or n.lower() in wanted]

    if not matches:
        wanted_parts = [p for p in _NAME_PARTS.split(wanted) if p]
        for name in names:
            parts = [p for p in _NAME_PARTS.split(name.lower()) if p]
            if any(wp in mp or mp in wp for wp in wanted_parts for mp in parts):
                matches.append(name)

    return matches[:limit]
