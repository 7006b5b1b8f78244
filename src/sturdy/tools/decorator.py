from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module provides the @tool decorator for defining tools in a concise way.
"""

from typing import Any, Callable, Optional, Type, TypeVar, overload

from pydantic import BaseModel

from .base import Tool, ToolFn, ToolSpec, default_description


ArgsT = TypeVar("ArgsT", bound=BaseModel)
ReturnT = TypeVar("ReturnT")


@overload
def tool(fn: ToolFn) -> Tool[Any, Any]: ...


@overload
def tool(
    fn: None = None,
    *,
    args_model: Optional[Type[ArgsT]] = None,
    name: str | None = None,
    description: str | None = None,
    timeout: float | None = None,
    raise_on_error: bool = False,
) -> Callable[[ToolFn], Tool[Any, Any]]: ...


def tool(
    fn: ToolFn | None = None,
    *,
    args_model: Optional[Type[ArgsT]] = None,
    name: str | None = None,
    description: str | None = None,
    timeout: float | None = None,
    raise_on_error: bool = False,
):
    """
    Create a Tool from a sync/async function.

    With a Pydantic v2 `args_model` the function uses one of:
      def/async def fn(args: ArgsModel) -> Any
      def/async def fn(args: ArgsModel, ctx: ToolContext) -> Any
      def/async def fn(ctx: ToolContext, args: ArgsModel) -> Any

    Without one, the function's own parameters define the schema and arguments
    arrive as keywords:
      @tool
      def get_weather(city: str, unit: str = "c") -> dict: ...

    raise_on_error:
      - False (default): Tool.call returns ToolResult(success=False) on failure
      - True: raises ToolExecutionError/ToolTimeoutError/ToolValidationError
    """

    def decorator(f: ToolFn) -> Tool[Any, Any]:
        if args_model is None:
            return Tool.from_function(
                f,
                name=name,
                description=description,
                timeout=timeout,
                raise_on_error=raise_on_error,
            )

        tool_name = name or getattr(f, "__name__", "tool")
        spec = ToolSpec(
            name=tool_name,
            description=description or default_description(f, tool_name),
            parameters_schema=args_model.model_json_schema(),
        )
        return Tool(
            spec=spec,
            fn=f,
            args_model=args_model,
            default_timeout=timeout,
            raise_on_error=raise_on_error,
        )

    if fn is not None:
        return decorator(fn)
    return decorator
