from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the tool capability used by the conversation loop: a name, a
parameters schema, and an async `call` that always reports through a ToolResult.
"""

import asyncio
import functools
import inspect
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Optional,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ValidationError, create_model

from .errors import ToolExecutionError, ToolTimeoutError, ToolValidationError


ArgsT = TypeVar("ArgsT", bound=BaseModel)
ReturnT = TypeVar("ReturnT")

AsyncToolFn = Callable[..., Awaitable[Any]]
SyncToolFn = Callable[..., Any]
ToolFn = Union[AsyncToolFn, SyncToolFn]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """
    What the model sees of a tool: its name, a one-line description and an args schema.
    """

    name: str
    description: str
    parameters_schema: Dict[str, Any]


@dataclass(frozen=True, slots=True)
class ToolContext:
    """
    Per-call context handed to tools that ask for it (by a `ctx` parameter).
    """

    request_id: str | None = None
    step: int | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResult(Generic[ReturnT]):
    """
    Outcome of one tool invocation. Failures are values here, not exceptions,
    so the conversation loop can feed them back to the model.
    """

    output: Optional[ReturnT] = None
    success: bool = True
    error_message: Optional[str] = None
    tool_name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tool_call_id: Optional[str] = None


def as_async(fn: ToolFn) -> AsyncToolFn:
    """Sync tools run in a worker thread so they never block the event loop."""
    if inspect.iscoroutinefunction(fn):
        return fn  # type: ignore[return-value]

    async def _wrapped(*args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(functools.partial(fn, *args, **kwargs))

    return _wrapped


def _is_ctx_param(p: inspect.Parameter) -> bool:
    return p.annotation is ToolContext or p.annotation == "ToolContext" or p.name == "ctx"


def _infer_call_style(fn: Callable[..., Any], *, has_args_model: bool) -> str:
    """
    Decide how a tool function is invoked.

    With an args model:
      (args) | (args, ctx) | (ctx, args)
    Without one, arguments are passed as keywords and `ctx` is optional:
      (a, b, ...) | (ctx, a, b, ...) | (a, b, ..., ctx)
    """
    name = getattr(fn, "__name__", "unknown")
    sig = inspect.signature(fn, eval_str=True)
    params = list(sig.parameters.values())

    if any(p.kind in (p.VAR_KEYWORD, p.VAR_POSITIONAL) for p in params):
        raise ToolValidationError(f"Tool function '{name}' cannot have *args or **kwargs.")

    if not has_args_model:
        return "kwargs_ctx" if any(_is_ctx_param(p) for p in params) else "kwargs"

    if len(params) == 1:
        return "args"
    if len(params) == 2:
        if _is_ctx_param(params[0]):
            return "ctx_args"
        if _is_ctx_param(params[1]):
            return "args_ctx"
        raise ToolValidationError(
            f"Tool function '{name}' must take ToolContext as 'ctx' (by name or annotation). Signature: {sig}"
        )
    raise ToolValidationError(
        f"Tool function '{name}' has invalid signature. "
        f"Expected (args) or (args, ctx) or (ctx, args). Got {sig}."
    )


def model_from_signature(fn: Callable[..., Any], *, model_name: str | None = None) -> Type[BaseModel]:
    """
    Build a Pydantic args model from a plain function signature.
    Unannotated parameters accept any JSON value; a `ctx` parameter is skipped.
    """
    fields: Dict[str, Any] = {}
    for p in inspect.signature(fn, eval_str=True).parameters.values():
        if _is_ctx_param(p):
            continue
        annotation = Any if p.annotation is inspect.Parameter.empty else p.annotation
        default = ... if p.default is inspect.Parameter.empty else p.default
        fields[p.name] = (annotation, default)

    name = model_name or f"{getattr(fn, '__name__', 'tool')}_args"
    return create_model(name, **fields)


def default_description(fn: Callable[..., Any], fallback: str) -> str:
    doc = inspect.getdoc(fn) or ""
    first_line = doc.splitlines()[0].strip() if doc else ""
    return first_line or fallback


class Tool(Generic[ArgsT, ReturnT]):
    """
    A callable capability exposed to the model.

    IMPORTANT: Tool.call reports validation errors, exceptions and timeouts in the
    returned ToolResult. Only tools built with `raise_on_error=True` raise them.
    """

    def __init__(
        self,
        *,
        spec: ToolSpec,
        fn: ToolFn,
        args_model: Type[ArgsT],
        default_timeout: Optional[float] = None,
        raise_on_error: bool = False,
        call_style: str | None = None,
    ) -> None:
        self.spec = spec
        self.fn = as_async(fn)
        self.args_model = args_model
        self.default_timeout = default_timeout
        self.raise_on_error = raise_on_error
        self._call_style = call_style or _infer_call_style(fn, has_args_model=True)
        self._ctx_param = next(
            (p.name for p in inspect.signature(fn, eval_str=True).parameters.values() if _is_ctx_param(p)),
            None,
        )

    @property
    def name(self) -> str:
        return self.spec.name

    @classmethod
    def from_function(
        cls,
        fn: ToolFn,
        *,
        name: str | None = None,
        description: str | None = None,
        timeout: float | None = None,
        raise_on_error: bool = False,
    ) -> "Tool[BaseModel, Any]":
        """Wrap a plain function; its parameters become the tool's JSON schema."""
        tool_name = name or getattr(fn, "__name__", "tool")
        call_style = _infer_call_style(fn, has_args_model=False)
        args_model = model_from_signature(fn)
        return cls(
            spec=ToolSpec(
                name=tool_name,
                description=description or default_description(fn, tool_name),
                parameters_schema=args_model.model_json_schema(),
            ),
            fn=fn,
            args_model=args_model,
            default_timeout=timeout,
            raise_on_error=raise_on_error,
            call_style=call_style,
        )

    def validate(self, raw_args: Dict[str, Any]) -> ArgsT:
        try:
            return self.args_model.model_validate(raw_args)
        except ValidationError as e:
            raise ToolValidationError(f"Invalid arguments for tool '{self.name}': {e}") from e

    async def _invoke(self, args: ArgsT, ctx: ToolContext) -> Any:
        if self._call_style == "args":
            return await self.fn(args)
        if self._call_style == "args_ctx":
            return await self.fn(args, ctx)
        if self._call_style == "ctx_args":
            return await self.fn(ctx, args)

        kwargs = {field_name: getattr(args, field_name) for field_name in type(args).model_fields}
        if self._call_style == "kwargs_ctx" and self._ctx_param:
            kwargs[self._ctx_param] = ctx
        return await self.fn(**kwargs)

    async def _execute(self, raw_args: Dict[str, Any], ctx: ToolContext, timeout: Optional[float]) -> Any:
        args = self.validate(raw_args)
        if timeout is None:
            return await self._invoke(args, ctx)
        try:
            return await asyncio.wait_for(self._invoke(args, ctx), timeout=timeout)
        except asyncio.TimeoutError:
            raise ToolTimeoutError(
                f"Tool '{self.name}' execution exceeded timeout of {timeout} seconds."
            ) from None

    async def call(
        self,
        raw_args: Dict[str, Any],
        *,
        ctx: Optional[ToolContext] = None,
        timeout: Optional[float] = None,
        tool_call_id: Optional[str] = None,
    ) -> ToolResult[ReturnT]:
        effective_timeout = timeout if timeout is not None else self.default_timeout
        try:
            output = await self._execute(raw_args, ctx or ToolContext(), effective_timeout)
        except (ToolValidationError, ToolTimeoutError) as e:
            if self.raise_on_error:
                raise
            error = str(e)
        except Exception as e:
            if self.raise_on_error:
                raise ToolExecutionError(f"Error executing tool '{self.name}': {e}") from e
            error = f"Error executing tool '{self.name}': {e}"
        else:
            return ToolResult(output=output, tool_name=self.name, tool_call_id=tool_call_id)

        return ToolResult(
            output=None,
            success=False,
            error_message=error,
            tool_name=self.name,
            tool_call_id=tool_call_id,
        )
