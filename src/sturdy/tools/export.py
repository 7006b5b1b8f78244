from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Tool export utilities.

The backend expects function-tool definitions:
  {
    "type": "function",
    "function": {
      "name": "...",
      "description": "...",
      "parameters": { ...JSON Schema... }
    }
  }
Callers may also hand over already-built definitions or flat
{name, description, parameters} dicts; both are passed through.
"""

from typing import Any, Dict, Iterable, List, Mapping

from .base import Tool, ToolSpec
from .errors import ToolValidationError


def normalize_json_schema(schema: Dict[str, Any] | None) -> Dict[str, Any]:
    """Ensure the parameters schema is at least an object schema with `properties`."""
    if not isinstance(schema, dict):
        return {"type": "object", "properties": {}}

    out = dict(schema)
    out.setdefault("type", "object")
    out.setdefault("properties", {})
    return out


def toolspec_to_definition(spec: ToolSpec) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": normalize_json_schema(spec.parameters_schema),
        },
    }


def _dict_to_definition(raw: Mapping[str, Any]) -> Dict[str, Any]:
    function = raw.get("function")
    if isinstance(function, Mapping):
        if not function.get("name"):
            raise ToolValidationError("Tool definition is missing function.name")
        return {"type": raw.get("type", "function"), "function": dict(function)}

    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ToolValidationError(f"Tool definition is missing a name: {dict(raw)!r}")
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": str(raw.get("description") or ""),
            "parameters": normalize_json_schema(raw.get("parameters")),
        },
    }


def to_tool_definition(item: Any) -> Dict[str, Any]:
    if isinstance(item, Tool):
        return toolspec_to_definition(item.spec)
    if isinstance(item, ToolSpec):
        return toolspec_to_definition(item)
    if isinstance(item, Mapping):
        return _dict_to_definition(item)
    raise ToolValidationError(f"Unsupported tool definition type: {type(item).__name__}")


def to_tool_definitions(tools: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Export tools for the chat payload. Accepts Tool, ToolSpec, dict definitions,
    or anything exposing `specs()` (e.g. a ToolRegistry).
    """
    if hasattr(tools, "specs"):
        return [toolspec_to_definition(s) for s in tools.specs()]
    return [to_tool_definition(t) for t in tools]
