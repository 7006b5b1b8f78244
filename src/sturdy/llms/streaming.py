from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Decodes newline-delimited JSON streams and fans the deltas out to an observer.
Observers are a side channel: their failures are logged and never change control flow.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from .classifier import classify_stream_payload
from .normalization import ToolCallNormalizer
from .types import (
    StreamEvent,
    StreamObserver,
    TokenEvent,
    ToolCall,
    ToolCallDetectedEvent,
    ToolCallDiagnostic,
)
from .utils import maybe_await

logger = logging.getLogger(__name__)


async def notify(observer: StreamObserver | None, event: StreamEvent) -> None:
    if observer is None:
        return
    try:
        await maybe_await(observer(event))
    except Exception:
        logger.debug("stream observer failed on %s event", event.type, exc_info=True)


@dataclass(slots=True)
class StreamResult:
    text: str = ""
    thinking: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_diagnostics: list[ToolCallDiagnostic] = field(default_factory=list)
    final_chunk: dict[str, Any] = field(default_factory=dict)
    done: bool = False
    chunks: int = 0
    skipped_lines: int = 0


class StreamingDispatcher:
    """
    One dispatcher per attempt. Feed it raw lines; call `finish()` once the stream ends.

    generate chunks carry the delta in `response`; chat chunks in `message.content`
    (plus `message.thinking`). Tool calls in any dialect the normalizer
    knows are collected from each chat chunk. A chunk with an `error`
    field raises StreamError and nothing further is emitted.
    """

    def __init__(
        self,
        observer: StreamObserver | None = None,
        *,
        endpoint: Literal["generate", "chat"] = "generate",
        normalizer: ToolCallNormalizer | None = None,
    ) -> None:
        self.observer = observer
        self.endpoint = endpoint
        self._normalizer = normalizer or ToolCallNormalizer()
        self._text: list[str] = []
        self._thinking: list[str] = []
        self.result = StreamResult()

    def finish(self) -> StreamResult:
        self.result.text = "".join(self._text)
        self.result.thinking = "".join(self._thinking)
        return self.result

    async def feed_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            chunk = json.loads(line)
        except json.JSONDecodeError:
            self.result.skipped_lines += 1
            logger.debug("skipping malformed stream line: %r", line[:200])
            return
        if not isinstance(chunk, dict):
            self.result.skipped_lines += 1
            return
        await self.feed_chunk(chunk)

    async def feed_chunk(self, chunk: dict[str, Any]) -> None:
        stream_error = classify_stream_payload(chunk)
        if stream_error is not None:
            raise stream_error

        self.result.chunks += 1
        if self.endpoint == "chat":
            await self._handle_chat(chunk)
        else:
            await self._handle_generate(chunk)

        if chunk.get("done"):
            self.result.done = True
            self.result.final_chunk = chunk

    async def _handle_generate(self, chunk: dict[str, Any]) -> None:
        thinking = chunk.get("thinking")
        if isinstance(thinking, str) and thinking:
            self._thinking.append(thinking)

        token = chunk.get("response")
        if isinstance(token, str) and token:
            await self._token(token)

    async def _handle_chat(self, chunk: dict[str, Any]) -> None:
        message = chunk.get("message")
        if not isinstance(message, dict):
            return

        thinking = message.get("thinking")
        if isinstance(thinking, str) and thinking:
            self._thinking.append(thinking)

        content = message.get("content")
        if isinstance(content, str) and content:
            await self._token(content)

        calls, diagnostics = self._normalizer.normalize_with_diagnostics(message)
        self.result.tool_call_diagnostics.extend(diagnostics)
        for call in calls:
            self.result.tool_calls.append(call)
            await notify(
                self.observer,
                ToolCallDetectedEvent(
                    name=call.tool_name,
                    data={"id": call.id, "arguments": dict(call.arguments)},
                ),
            )

    async def _token(self, text: str) -> None:
        self._text.append(text)
        await notify(self.observer, TokenEvent(text=text))
