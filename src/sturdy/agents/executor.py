"""
Stateful tool-calling conversation loop.

Each step is one chat round-trip through the resilient client. Tool calls from the
model are executed in order and their results (or errors) are appended as `tool`
messages before the next step. The loop ends when the model answers without tool
calls, or when the step bound is reached.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..llms.errors import LLMError
from ..llms.normalization import to_jsonable
from ..llms.options import ModelOptions
from ..llms.streaming import notify
from ..llms.types import FinalEvent, StateEvent, StreamEvent, StreamObserver, ToolCall
from ..llms.utils import run_sync
from ..tools import Tool, ToolContext, ToolRegistry, ToolResult
from .errors import AgentConfigurationError
from .messages import dropped_call_message, system_message, tool_result_message, user_message
from .types import (
    ConversationPhase,
    ConversationResult,
    ConversationState,
    StopReason,
    ToolExecutionRecord,
)

if TYPE_CHECKING:
    from ..llms.client import Client

logger = logging.getLogger(__name__)


def as_registry(tools: Any) -> ToolRegistry:
    """Accept a ToolRegistry, a Tool, a callable, or an iterable of Tools/callables."""
    if tools is None:
        return ToolRegistry()
    if isinstance(tools, ToolRegistry):
        return tools
    if isinstance(tools, Tool) or callable(tools):
        return ToolRegistry([tools])
    if isinstance(tools, Mapping):
        raise AgentConfigurationError(
            "tool definitions without an implementation cannot be executed; pass Tool objects or callables"
        )
    if isinstance(tools, Iterable):
        items = list(tools)
        for item in items:
            if not (isinstance(item, Tool) or callable(item)):
                raise AgentConfigurationError(
                    f"unsupported tool {item!r}; expected a Tool or a callable"
                )
        return ToolRegistry(items)
    raise AgentConfigurationError(f"unsupported tools argument: {type(tools).__name__}")


class ConversationExecutor:
    """
    Runs one bounded conversation. A fresh ConversationState is created per `run`,
    so one executor can be reused sequentially but holds no history between runs.
    """

    def __init__(
        self,
        client: "Client",
        *,
        tools: Any = None,
        max_steps: int = 8,
        model: str | None = None,
        options: ModelOptions | Mapping[str, Any] | None = None,
        on_event: StreamObserver | None = None,
        tool_timeout: float | None = None,
    ) -> None:
        if max_steps < 1:
            raise AgentConfigurationError("max_steps must be >= 1")
        self.client = client
        self.registry = as_registry(tools)
        self.max_steps = max_steps
        self.model = model
        self.options = options
        self.on_event = on_event
        self.tool_timeout = tool_timeout

    async def _emit(self, event: StreamEvent) -> None:
        await notify(self.on_event, event)

    async def _forward(self, event: StreamEvent) -> None:
        # one final event per run, emitted by `run`
        if event.type == "final":
            return
        await self._emit(event)

    async def run(self, system: str, user: str) -> ConversationResult:
        state = ConversationState(messages=[system_message(system), user_message(user)])
        definitions = self.registry.to_tool_definitions()
        stop_reason: StopReason = "completed"

        while not state.terminal:
            if state.step >= self.max_steps:
                state.phase = ConversationPhase.ABORTED
                stop_reason = "max_steps"
                logger.warning(
                    "conversation stopped after %d steps without a final answer", state.step
                )
                break

            state.step += 1
            state.phase = ConversationPhase.PLANNING
            await self._emit(StateEvent(state="assistant_streaming", data={"step": state.step}))

            try:
                response = await self.client.chat(
                    list(state.messages),
                    tools=definitions or None,
                    model=self.model,
                    options=self.options,
                    on_event=self._forward if self.on_event is not None else None,
                )
            except LLMError:
                state.phase = ConversationPhase.ABORTED
                logger.warning("conversation aborted at step %d", state.step, exc_info=True)
                raise

            state.usage = state.usage.add_usage(response.usage)
            if response.text:
                state.last_content = response.text
            state.append(response.message)

            if not response.tool_calls and not response.tool_call_diagnostics:
                state.phase = ConversationPhase.DONE
                stop_reason = "completed"
                break

            state.phase = ConversationPhase.TOOL_DISPATCH
            for diagnostic in response.tool_call_diagnostics:
                state.append(dropped_call_message(diagnostic))
                state.tool_executions.append(
                    ToolExecutionRecord(
                        step=state.step,
                        tool_name=diagnostic.tool_name or "unknown",
                        tool_call_id=diagnostic.tool_call_id,
                        success=False,
                        error=diagnostic.reason,
                    )
                )
            for call in response.tool_calls:
                await self._dispatch(state, call)

        await self._emit(
            FinalEvent(
                text=state.last_content,
                data={"stop_reason": stop_reason, "steps": state.step},
            )
        )
        return ConversationResult(
            final_text=state.last_content,
            phase=state.phase,
            stop_reason=stop_reason,
            steps=state.step,
            messages=tuple(state.messages),
            tool_executions=tuple(state.tool_executions),
            usage=state.usage,
        )

    def run_sync(self, system: str, user: str) -> ConversationResult:
        return run_sync(self.run(system, user))

    async def _dispatch(self, state: ConversationState, call: ToolCall) -> None:
        await self._emit(
            StateEvent(
                state="tool_executing",
                data={"step": state.step, "tool": call.tool_name, "tool_call_id": call.id},
            )
        )

        started = time.perf_counter()
        try:
            result = await self.registry.call(
                call.tool_name,
                dict(call.arguments),
                ctx=ToolContext(step=state.step),
                timeout=self.tool_timeout,
                tool_call_id=call.id,
            )
        except Exception as e:
            result = ToolResult(
                output=None,
                success=False,
                error_message=str(e) or type(e).__name__,
                tool_name=call.tool_name,
                tool_call_id=call.id,
            )
        latency_ms = (time.perf_counter() - started) * 1000.0

        state.append(tool_result_message(result, call))
        state.tool_executions.append(
            ToolExecutionRecord(
                step=state.step,
                tool_name=call.tool_name,
                tool_call_id=call.id,
                success=result.success,
                output=to_jsonable(result.output) if result.success else None,
                error=result.error_message,
                latency_ms=latency_ms,
            )
        )
        await self._emit(
            StateEvent(
                state="tool_result_injected",
                data={"step": state.step, "tool": call.tool_name, "success": result.success},
            )
        )
