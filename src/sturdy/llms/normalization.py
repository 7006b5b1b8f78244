from __future__ import annotations

"""
Normalization of backend payloads: plain-dict coercion, usage counters, message text,
and the tool-call dialects a model may answer with.
"""

import json
import logging
from dataclasses import asdict, is_dataclass
from typing import Any

from .types import ToolCall, ToolCallDiagnostic, Usage

logger = logging.getLogger(__name__)


def to_plain_dict(value: Any) -> dict[str, Any]:
    """Best-effort conversion of SDK/pydantic/dataclass objects into plain dictionaries."""
    if isinstance(value, dict):
        return value

    dumped: Any = None
    if hasattr(value, "model_dump"):
        dumped = value.model_dump()
    elif is_dataclass(value) and not isinstance(value, type):
        dumped = asdict(value)
    elif hasattr(value, "__dict__"):
        dumped = dict(vars(value))

    return dumped if isinstance(dumped, dict) else {}


def to_jsonable(value: Any) -> Any:
    """Recursively coerce values into JSON-serializable primitives/containers."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]

    as_dict = to_plain_dict(value)
    if as_dict:
        return to_jsonable(as_dict)
    return repr(value)


def extract_usage(raw: dict[str, Any]) -> Usage:
    """Token counters from an Ollama envelope (or an OpenAI-style `usage` block)."""
    input_tokens = raw.get("prompt_eval_count")
    output_tokens = raw.get("eval_count")

    usage = raw.get("usage")
    if isinstance(usage, dict):
        if input_tokens is None:
            input_tokens = usage.get("prompt_tokens", usage.get("input_tokens"))
        if output_tokens is None:
            output_tokens = usage.get("completion_tokens", usage.get("output_tokens"))

    input_tokens = input_tokens if isinstance(input_tokens, int) else None
    output_tokens = output_tokens if isinstance(output_tokens, int) else None
    total = (
        input_tokens + output_tokens
        if input_tokens is not None and output_tokens is not None
        else None
    )
    return Usage(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total)


class _Dropped(Exception):
    pass


def _coerce_arguments(raw_args: Any) -> dict[str, Any]:
    if raw_args is None:
        return {}
    if isinstance(raw_args, str):
        if not raw_args.strip():
            return {}
        try:
            raw_args = json.loads(raw_args)
        except json.JSONDecodeError as e:
            raise _Dropped(f"arguments are not valid JSON: {e.msg}") from e
    if isinstance(raw_args, dict):
        return raw_args
    raise _Dropped(f"arguments must be a JSON object, got {type(raw_args).__name__}")


class ToolCallNormalizer:
    """
    Converts the tool-call dialects a model may emit into `ToolCall` values.

    Recognized:
      - message["tool_calls"]: [{id?, function: {name, arguments}}] or [{id?, name, arguments}]
      - content blocks: {"type": "tool_use", "id", "name", "input"}
      - legacy message["function_call"]: {name, arguments}

    Calls whose arguments cannot become a mapping, or that have no name, are dropped
    and reported as diagnostics.
    """

    def normalize(self, raw_message: Any) -> list[ToolCall]:
        calls, _ = self.normalize_with_diagnostics(raw_message)
        return calls

    def normalize_with_diagnostics(
        self, raw_message: Any
    ) -> tuple[list[ToolCall], list[ToolCallDiagnostic]]:
        message = to_plain_dict(raw_message)
        if not message:
            return [], []

        candidates = list(self._candidates(message))
        calls: list[ToolCall] = []
        diagnostics: list[ToolCallDiagnostic] = []

        for index, (call_id, name, raw_args, raw) in enumerate(candidates):
            try:
                if not isinstance(name, str) or not name.strip():
                    raise _Dropped("missing tool name")
                arguments = _coerce_arguments(raw_args)
            except _Dropped as e:
                logger.info("dropping tool call #%d (%s): %s", index, name, e)
                diagnostics.append(
                    ToolCallDiagnostic(
                        index=index,
                        reason=str(e),
                        tool_name=name if isinstance(name, str) and name else None,
                        tool_call_id=call_id,
                        raw=raw,
                    )
                )
                continue
            calls.append(ToolCall(id=call_id, tool_name=name.strip(), arguments=arguments))

        return calls, diagnostics

    @staticmethod
    def _candidates(message: dict[str, Any]):
        raw_calls = message.get("tool_calls")
        if isinstance(raw_calls, list):
            for item in raw_calls:
                tc = to_plain_dict(item)
                function = tc.get("function")
                if isinstance(function, dict):
                    yield _str_or_none(tc.get("id")), function.get("name"), function.get("arguments"), item
                else:
                    yield _str_or_none(tc.get("id")), tc.get("name"), tc.get("arguments"), item

        content = message.get("content")
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "tool_use":
                    yield _str_or_none(block.get("id")), block.get("name"), block.get("input"), block

        legacy = message.get("function_call")
        if isinstance(legacy, dict):
            yield None, legacy.get("name"), legacy.get("arguments"), legacy


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None
