from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Name-indexed tool registry with bounded, timed, recorded execution.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from .base import Tool, ToolContext, ToolResult, ToolSpec
from .errors import ToolAlreadyRegisteredError, ToolNotFoundError
from .export import toolspec_to_definition

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolCallRecord:
    tool_name: str
    started_at_s: float
    ended_at_s: float
    ok: bool
    error: Optional[str] = None
    tool_call_id: Optional[str] = None


class ToolRegistry:
    """
    The set of tools offered to the model during a conversation.

    Calls share one semaphore, and the most recent `max_records` outcomes are kept
    for inspection. `to_tool_definitions` renders the chat payload's `tools` list.
    """

    def __init__(
        self,
        tools: Iterable[Tool[Any, Any] | Callable[..., Any]] = (),
        *,
        max_concurrency: int = 32,
        default_timeout: float | None = None,
        max_records: int = 1000,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self._tools: Dict[str, Tool[Any, Any]] = {}
        self._sem = asyncio.Semaphore(max_concurrency)
        self._default_timeout = default_timeout
        self._records: Deque[ToolCallRecord] = deque(maxlen=max_records)

        self.register_many(tools)

    # ''''''''''''''''''''''''''''''''''''''
    # Registration
    # ''''''''''''''''''''''''''''''''''''''

    def register(
        self, tool: Tool[Any, Any] | Callable[..., Any], *, overwrite: bool = False
    ) -> Tool[Any, Any]:
        """Register a Tool, or wrap and register a plain function."""
        if not isinstance(tool, Tool):
            tool = Tool.from_function(tool)
        name = tool.spec.name
        if not overwrite and name in self._tools:
            raise ToolAlreadyRegisteredError(f"Tool already registered: {name}")
        self._tools[name] = tool
        return tool

    def register_many(
        self, tools: Iterable[Tool[Any, Any] | Callable[..., Any]], *, overwrite: bool = False
    ) -> None:
        for t in tools:
            self.register(t, overwrite=overwrite)

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool[Any, Any]:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(f"Unknown tool: {name}") from None

    def list(self) -> List[Tool[Any, Any]]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def has(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    # ''''''''''''''''''''''''''''''''''''''
    # Execution
    # ''''''''''''''''''''''''''''''''''''''

    def _timeout_for(self, tool: Tool[Any, Any], override: float | None) -> float | None:
        # per-call override, then the tool's own default, then the registry's
        for candidate in (override, tool.default_timeout, self._default_timeout):
            if candidate is not None:
                return candidate
        return None

    async def call(
        self,
        name: str,
        raw_args: Dict[str, Any],
        *,
        ctx: ToolContext | None = None,
        timeout: float | None = None,
        tool_call_id: str | None = None,
    ) -> ToolResult[Any]:
        """
        Run the named tool. A name the model invented is reported the same way a
        failing tool is: as ToolResult(success=False), and it is recorded.
        """
        started = time.time()
        tool = self._tools.get(name)

        if tool is None:
            message = str(ToolNotFoundError(f"Unknown tool: {name}"))
            logger.info("model requested unknown tool %r", name)
            self._record(name, started, ok=False, error=message, tool_call_id=tool_call_id)
            return ToolResult(success=False, error_message=message, tool_name=name, tool_call_id=tool_call_id)

        try:
            async with self._sem:
                result = await tool.call(
                    raw_args,
                    ctx=ctx,
                    timeout=self._timeout_for(tool, timeout),
                    tool_call_id=tool_call_id,
                )
        except Exception as e:
            # raise_on_error tools
            self._record(name, started, ok=False, error=str(e), tool_call_id=tool_call_id)
            raise

        if not result.success:
            logger.info("tool %s failed: %s", name, result.error_message)
        self._record(name, started, ok=result.success, error=result.error_message, tool_call_id=tool_call_id)
        return result

    def _record(
        self,
        name: str,
        started: float,
        *,
        ok: bool,
        error: str | None,
        tool_call_id: str | None,
    ) -> None:
        self._records.append(
            ToolCallRecord(name, started, time.time(), ok, error=error, tool_call_id=tool_call_id)
        )

    def recent_calls(self, limit: int = 100) -> List[ToolCallRecord]:
        return list(self._records)[-limit:]

    # ''''''''''''''''''''''''''''''''''''''
    # Export / specs
    # ''''''''''''''''''''''''''''''''''''''

    def specs(self) -> List[ToolSpec]:
        return [t.spec for t in self._tools.values()]

    def to_tool_definitions(self) -> List[Dict[str, Any]]:
        return [toolspec_to_definition(t.spec) for t in self._tools.values()]
