from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the value types shared by the client, the retry engine and the agent loop.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Mapping, TypeAlias

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONSchema: TypeAlias = dict[str, JSONValue]

Role = Literal["user", "assistant", "system", "tool"]
Endpoint = Literal["generate", "chat", "embed"]


@dataclass(frozen=True, slots=True)
class ToolCall:
    """
    Data-only representation of a model-returned tool call.
    `arguments` is always a mapping; the normalizer drops calls it cannot coerce.
    """

    id: str | None = None
    tool_name: str = ""
    arguments: JSONObject = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "function": {"name": self.tool_name, "arguments": dict(self.arguments)}
        }
        if self.id:
            out["id"] = self.id
        return out


@dataclass(frozen=True, slots=True)
class ToolCallDiagnostic:
    """Why a backend tool call was dropped during normalization."""

    index: int
    reason: str
    tool_name: str | None = None
    tool_call_id: str | None = None
    raw: Any = None


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: str = ""
    name: str | None = None
    tool_name: str | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    images: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name:
            out["name"] = self.name
        if self.tool_name:
            out["tool_name"] = self.tool_name
        if self.tool_call_id:
            out["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            out["tool_calls"] = [call.to_payload() for call in self.tool_calls]
        if self.images:
            out["images"] = list(self.images)
        return out


MessageLike: TypeAlias = Message | Mapping[str, Any]


def message_to_payload(message: MessageLike) -> dict[str, Any]:
    if isinstance(message, Message):
        return message.to_payload()
    return dict(message)


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """One entry in the per-call attempt log."""

    index: int
    latency_ms: float
    kind: str
    error_class: str | None = None
    error_message: str | None = None
    status_code: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.error_class is None


@dataclass(frozen=True, slots=True)
class ResultMeta:
    endpoint: Endpoint
    model: str
    attempts: int
    latency_ms: float
    repairs: int = 0
    provisioned: bool = False
    attempt_records: tuple[AttemptRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class LLMRequest:
    """
    Immutable description of one backend call.
    Repair attempts derive a new request with `dataclasses.replace` instead of mutating this one.
    """

    endpoint: Endpoint
    model: str
    prompt: str | None = None
    system: str | None = None
    messages: tuple[dict[str, Any], ...] = ()
    schema: JSONSchema | None = None
    format: JSONSchema | Literal["json"] | None = None
    tools: tuple[dict[str, Any], ...] = ()
    options: dict[str, Any] = field(default_factory=dict)
    images: tuple[str, ...] = ()
    think: bool | None = None
    keep_alive: str | float | None = None
    stream: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model, "stream": self.stream}
        if self.endpoint == "generate":
            payload["prompt"] = self.prompt or ""
            if self.system:
                payload["system"] = self.system
            if self.images:
                payload["images"] = list(self.images)
        else:
            payload["messages"] = [dict(m) for m in self.messages]
            if self.tools:
                payload["tools"] = [dict(t) for t in self.tools]
        fmt = self.format if self.format is not None else self.schema
        if fmt is not None:
            payload["format"] = fmt
        if self.options:
            payload["options"] = dict(self.options)
        if self.think is not None:
            payload["think"] = self.think
        if self.keep_alive is not None:
            payload["keep_alive"] = self.keep_alive
        return payload


@dataclass(frozen=True, slots=True)
class ValidatedResult:
    """
    Result of `generate`. When a schema was supplied `data` satisfies it;
    otherwise `data` is the raw text.
    """

    data: Any
    text: str
    meta: ResultMeta
    thinking: str | None = None
    usage: Usage = field(default_factory=Usage)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ChatResponse:
    text: str
    message: dict[str, Any]
    meta: ResultMeta
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_diagnostics: list[ToolCallDiagnostic] = field(default_factory=list)
    structured: Any = None
    thinking: str | None = None
    done_reason: str | None = None
    usage: Usage = field(default_factory=Usage)
    model: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class EmbeddingResponse:
    embeddings: list[list[float]]
    meta: ResultMeta
    model: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ModelInfo:
    name: str
    size: int | None = None
    digest: str | None = None
    modified_at: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TokenEvent:
    text: str
    type: Literal["token"] = "token"


@dataclass(frozen=True, slots=True)
class ToolCallDetectedEvent:
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    type: Literal["tool_call_detected"] = "tool_call_detected"


@dataclass(frozen=True, slots=True)
class StateEvent:
    state: str
    data: dict[str, Any] = field(default_factory=dict)
    type: Literal["state"] = "state"


@dataclass(frozen=True, slots=True)
class FinalEvent:
    text: str
    data: dict[str, Any] = field(default_factory=dict)
    type: Literal["final"] = "final"


StreamEvent: TypeAlias = TokenEvent | ToolCallDetectedEvent | StateEvent | FinalEvent
StreamObserver: TypeAlias = Callable[[StreamEvent], None | Awaitable[None]]
