from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

sturdy tools public API.

This package exposes:
- Core tool types (Tool, ToolSpec, ToolContext, ToolResult)
- The @tool decorator
- ToolRegistry
- Export helpers for function-tool definitions
"""

from .base import (
    Tool,
    ToolContext,
    ToolFn,
    ToolResult,
    ToolSpec,
    as_async,
    model_from_signature,
)
from .decorator import tool
from .errors import (
    ToolAlreadyRegisteredError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolTimeoutError,
    ToolValidationError,
)
from .export import (
    normalize_json_schema,
    to_tool_definition,
    to_tool_definitions,
    toolspec_to_definition,
)
from .registry import ToolCallRecord, ToolRegistry

__all__ = [
    # core
    "Tool",
    "ToolSpec",
    "ToolContext",
    "ToolResult",
    "ToolFn",
    "as_async",
    "model_from_signature",
    # decorators
    "tool",
    # registry
    "ToolRegistry",
    "ToolCallRecord",
    # export
    "normalize_json_schema",
    "to_tool_definition",
    "to_tool_definitions",
    "toolspec_to_definition",
    # errors
    "ToolError",
    "ToolAlreadyRegisteredError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolTimeoutError",
    "ToolValidationError",
]
