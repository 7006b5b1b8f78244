"""
Builders for the chat messages the conversation loop appends to history.
"""

from __future__ import annotations

import json
from typing import Any

from ..llms.normalization import to_jsonable
from ..llms.types import ToolCall, ToolCallDiagnostic
from ..tools import ToolResult


def system_message(content: str) -> dict[str, Any]:
    return {"role": "system", "content": content}


def user_message(content: str) -> dict[str, Any]:
    return {"role": "user", "content": content}


def encode_tool_output(output: Any) -> str:
    """Strings pass through; everything else is JSON-encoded."""
    if isinstance(output, str):
        return output
    return json.dumps(to_jsonable(output), ensure_ascii=False)


def _tool_message(content: str, tool_name: str, tool_call_id: str | None) -> dict[str, Any]:
    msg: dict[str, Any] = {"role": "tool", "content": content, "tool_name": tool_name}
    if tool_call_id:
        msg["tool_call_id"] = tool_call_id
    return msg


def tool_result_message(result: ToolResult[Any], call: ToolCall) -> dict[str, Any]:
    if result.success:
        content = encode_tool_output(result.output)
    else:
        content = json.dumps({"error": result.error_message or "tool failed"}, ensure_ascii=False)
    return _tool_message(content, call.tool_name, call.id)


def dropped_call_message(diagnostic: ToolCallDiagnostic) -> dict[str, Any]:
    content = json.dumps(
        {"error": f"Tool call could not be executed: {diagnostic.reason}"},
        ensure_ascii=False,
    )
    return _tool_message(content, diagnostic.tool_name or "unknown", diagnostic.tool_call_id)
