"""
Types for the tool-calling conversation loop.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal

from ..llms.types import JSONValue, Usage


class ConversationPhase(str, enum.Enum):
    PLANNING = "planning"
    TOOL_DISPATCH = "tool_dispatch"
    DONE = "done"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (ConversationPhase.DONE, ConversationPhase.ABORTED)


StopReason = Literal["completed", "max_steps"]


@dataclass(frozen=True, slots=True)
class UsageAggregate:
    """
    Aggregated token usage across the backend calls of a run.

    Attributes:
        input_tokens: Sum of prompt/input tokens.
        output_tokens: Sum of completion/output tokens.
        total_tokens: Sum of total token counts.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def add_usage(self, usage: Usage) -> "UsageAggregate":
        return UsageAggregate(
            input_tokens=self.input_tokens + (usage.input_tokens or 0),
            output_tokens=self.output_tokens + (usage.output_tokens or 0),
            total_tokens=self.total_tokens + (usage.total_tokens or 0),
        )


@dataclass(frozen=True, slots=True)
class ToolExecutionRecord:
    """
    Normalized record for one tool execution.

    Attributes:
        step: Conversation step that requested the call.
        tool_name: Executed tool name.
        tool_call_id: Tool-call identifier from the model, when available.
        success: Whether tool execution succeeded.
        output: JSON-safe tool output payload.
        error: Error message when execution failed.
        latency_ms: Execution latency in milliseconds.
    """

    step: int
    tool_name: str
    tool_call_id: str | None
    success: bool
    output: JSONValue | None = None
    error: str | None = None
    latency_ms: float | None = None


@dataclass(slots=True)
class ConversationState:
    """
    Mutable state of one run. Owned by the run that created it; the message
    list is append-only.
    """

    messages: list[dict[str, Any]] = field(default_factory=list)
    step: int = 0
    phase: ConversationPhase = ConversationPhase.PLANNING
    last_content: str = ""
    tool_executions: list[ToolExecutionRecord] = field(default_factory=list)
    usage: UsageAggregate = field(default_factory=UsageAggregate)

    @property
    def terminal(self) -> bool:
        return self.phase.terminal

    def append(self, message: dict[str, Any]) -> None:
        self.messages.append(message)


@dataclass(frozen=True, slots=True)
class ConversationResult:
    final_text: str
    phase: ConversationPhase
    stop_reason: StopReason
    steps: int
    messages: tuple[dict[str, Any], ...] = ()
    tool_executions: tuple[ToolExecutionRecord, ...] = ()
    usage: UsageAggregate = field(default_factory=UsageAggregate)

    @property
    def completed(self) -> bool:
        return self.phase is ConversationPhase.DONE
