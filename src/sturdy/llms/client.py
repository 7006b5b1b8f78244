from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

The public client. Every backend operation runs as a chain of attempts under the
RetryExecutor; structured output is extracted, validated and repaired inside the
attempt so repair retries share the same budget as network retries.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Literal, Mapping, Sequence, TypeVar

import httpx

from .classifier import Classification, classify_stream_payload
from .config import LLMConfig, get_default_config
from .errors import InvalidRequestError, LLMError, LLMInvalidResponseError, ModelMissingError
from .normalization import ToolCallNormalizer, extract_usage
from .observability import LLMObserverCallback
from .options import ModelOptions, merge_options
from .retry import ExecutionOutcome, RetryExecutor, SleepFn, exponential_backoff
from .schema import SchemaValidator
from .streaming import StreamingDispatcher, notify
from .structured import (
    SchemaLike,
    append_repair_instruction,
    enhance_prompt_for_json,
    extract_and_validate,
    make_repair_instruction,
    resolve_schema,
)
from .transport import HTTPTransport
from .types import (
    ChatResponse,
    EmbeddingResponse,
    Endpoint,
    FinalEvent,
    LLMRequest,
    MessageLike,
    ModelInfo,
    ResultMeta,
    StateEvent,
    StreamObserver,
    ToolCall,
    ToolCallDiagnostic,
    ValidatedResult,
    message_to_payload,
)
from .utils import find_similar_models, run_sync

if TYPE_CHECKING:
    from ..agents.types import ConversationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PATHS: dict[Endpoint, str] = {
    "generate": "/api/generate",
    "chat": "/api/chat",
    "embed": "/api/embed",
}
_ROLES = {"system", "user", "assistant", "tool"}


@dataclass(slots=True)
class _Reply:
    text: str
    envelope: dict[str, Any]
    thinking: str | None = None
    tool_calls: list[ToolCall] | None = None
    diagnostics: list[ToolCallDiagnostic] = field(default_factory=list)


class Client:
    """
    Resilient client for an Ollama-style inference server.

    All operations are coroutines; each has a `*_sync` twin for scripts.
    Pass `transport=httpx.MockTransport(...)` to run against a fake backend.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
        observers: Iterable[LLMObserverCallback] = (),
        sleep: SleepFn | None = None,
    ) -> None:
        self.config = config or get_default_config()
        self._http = HTTPTransport(
            self.config.base_url,
            timeout_s=self.config.timeout_s,
            transport=transport,
            headers=headers,
        )
        self._executor = RetryExecutor(sleep=sleep, observers=observers)
        self._normalizer = ToolCallNormalizer()

    # ------------------------------------------------------------------ #
    # generate
    # ------------------------------------------------------------------ #

    async def generate(
        self,
        prompt: str,
        *,
        schema: SchemaLike | None = None,
        model: str | None = None,
        system: str | None = None,
        options: ModelOptions | Mapping[str, Any] | None = None,
        on_event: StreamObserver | None = None,
        images: Sequence[str] | None = None,
        think: bool | None = None,
        keep_alive: str | float | None = None,
    ) -> ValidatedResult:
        """
        Single-turn completion.

        With `schema` the returned `data` is guaranteed to satisfy it (a Pydantic model
        class yields a model instance); otherwise `data` is the raw text.
        """
        if not isinstance(prompt, str) or not prompt.strip():
            raise InvalidRequestError("prompt must be a non-empty string")

        model = self._resolve_model(model)
        json_schema = resolve_schema(schema)
        validator = SchemaValidator(json_schema) if json_schema is not None else None

        request = LLMRequest(
            endpoint="generate",
            model=model,
            prompt=enhance_prompt_for_json(prompt, json_schema),
            system=system,
            schema=json_schema,
            options=merge_options(self.config.default_options(), options),
            images=tuple(images or ()),
            think=think,
            keep_alive=keep_alive,
            stream=on_event is not None,
        )

        async def attempt(index: int) -> tuple[_Reply, Any]:
            nonlocal request
            reply = await self._send(request, on_event)
            if schema is None:
                return reply, reply.text
            try:
                data = extract_and_validate(reply.text, schema, validator=validator)
            except LLMInvalidResponseError as e:
                request = replace(
                    request, prompt=append_repair_instruction(request.prompt or "", e)
                )
                raise
            return reply, data

        outcome = await self._execute(attempt, endpoint="generate", model=model, on_event=on_event)
        reply, data = outcome.value
        await notify(on_event, FinalEvent(text=reply.text))
        return ValidatedResult(
            data=data,
            text=reply.text,
            meta=self._meta("generate", model, outcome),
            thinking=reply.thinking,
            usage=extract_usage(reply.envelope),
            raw=reply.envelope,
        )

    def generate_sync(self, prompt: str, **kwargs: Any) -> ValidatedResult:
        return run_sync(self.generate(prompt, **kwargs))

    # ------------------------------------------------------------------ #
    # chat
    # ------------------------------------------------------------------ #

    async def chat(
        self,
        messages: Sequence[MessageLike],
        *,
        tools: Iterable[Any] | None = None,
        format: SchemaLike | Literal["json"] | None = None,
        model: str | None = None,
        options: ModelOptions | Mapping[str, Any] | None = None,
        on_event: StreamObserver | None = None,
        think: bool | None = None,
        keep_alive: str | float | None = None,
    ) -> ChatResponse:
        """
        One assistant turn over a message history.

        Tool calls in the reply are normalized; calls that could not be coerced are
        listed in `tool_call_diagnostics`. With `format` the assistant content is
        extracted (and validated, for a schema) into `structured`.
        """
        from ..tools.export import to_tool_definitions

        payload_messages = self._validate_messages(messages)
        model = self._resolve_model(model)

        schema: SchemaLike | None = None
        wire_format: Any = None
        validator: SchemaValidator | None = None
        if format == "json":
            wire_format = "json"
        elif format is not None:
            schema = format
            wire_format = resolve_schema(format)
            validator = SchemaValidator(wire_format)

        request = LLMRequest(
            endpoint="chat",
            model=model,
            messages=tuple(payload_messages),
            format=wire_format,
            tools=tuple(to_tool_definitions(tools or ())),
            options=merge_options(self.config.default_options(), options),
            think=think,
            keep_alive=keep_alive,
            stream=on_event is not None,
        )

        async def attempt(index: int) -> tuple[_Reply, list[ToolCall], list[ToolCallDiagnostic], Any]:
            nonlocal request
            reply = await self._send(request, on_event)
            if reply.tool_calls is None:
                calls, diagnostics = self._normalizer.normalize_with_diagnostics(
                    reply.envelope.get("message")
                )
            else:
                calls, diagnostics = reply.tool_calls, reply.diagnostics

            structured = None
            if format is not None and not calls:
                try:
                    structured = extract_and_validate(reply.text, schema, validator=validator)
                except LLMInvalidResponseError as e:
                    request = replace(
                        request,
                        messages=request.messages
                        + (
                            {"role": "assistant", "content": reply.text},
                            {"role": "user", "content": make_repair_instruction(e)},
                        ),
                    )
                    raise
            return reply, calls, diagnostics, structured

        outcome = await self._execute(attempt, endpoint="chat", model=model, on_event=on_event)
        reply, calls, diagnostics, structured = outcome.value
        await notify(on_event, FinalEvent(text=reply.text))

        message: dict[str, Any] = {"role": "assistant", "content": reply.text}
        if calls:
            message["tool_calls"] = [call.to_payload() for call in calls]
        if reply.thinking:
            message["thinking"] = reply.thinking

        return ChatResponse(
            text=reply.text,
            message=message,
            meta=self._meta("chat", model, outcome),
            tool_calls=list(calls),
            tool_call_diagnostics=list(diagnostics),
            structured=structured,
            thinking=reply.thinking,
            done_reason=reply.envelope.get("done_reason"),
            usage=extract_usage(reply.envelope),
            model=reply.envelope.get("model") or model,
            raw=reply.envelope,
        )

    def chat_sync(self, messages: Sequence[MessageLike], **kwargs: Any) -> ChatResponse:
        return run_sync(self.chat(messages, **kwargs))

    # ------------------------------------------------------------------ #
    # conversation loop
    # ------------------------------------------------------------------ #

    async def run_conversation(
        self,
        system: str,
        user: str,
        *,
        tools: Any = None,
        max_steps: int = 8,
        on_event: StreamObserver | None = None,
        model: str | None = None,
        options: ModelOptions | Mapping[str, Any] | None = None,
    ) -> "ConversationResult":
        from ..agents.executor import ConversationExecutor

        executor = ConversationExecutor(
            self,
            tools=tools,
            max_steps=max_steps,
            model=model,
            options=options,
            on_event=on_event,
        )
        return await executor.run(system, user)

    def run_conversation_sync(self, system: str, user: str, **kwargs: Any) -> "ConversationResult":
        return run_sync(self.run_conversation(system, user, **kwargs))

    # ------------------------------------------------------------------ #
    # embeddings + model management
    # ------------------------------------------------------------------ #

    async def embed(
        self,
        input: str | Sequence[str],
        *,
        model: str | None = None,
        options: ModelOptions | Mapping[str, Any] | None = None,
        truncate: bool | None = None,
        keep_alive: str | float | None = None,
    ) -> EmbeddingResponse:
        if isinstance(input, str):
            inputs: str | list[str] = input
            empty = not input.strip()
        else:
            inputs = list(input)
            empty = not inputs or any(not isinstance(i, str) for i in inputs)
        if empty:
            raise InvalidRequestError("embedding input must be a non-empty string or list of strings")

        model = self._resolve_model(model or self.config.embedding_model)
        payload: dict[str, Any] = {"model": model, "input": inputs}
        if options is not None:
            payload["options"] = merge_options({}, options)
        if truncate is not None:
            payload["truncate"] = truncate
        if keep_alive is not None:
            payload["keep_alive"] = keep_alive

        async def attempt(index: int) -> dict[str, Any]:
            envelope = await self._http.post_json(
                _PATHS["embed"], payload, requested_model=model
            )
            embeddings = envelope.get("embeddings")
            if not isinstance(embeddings, list) or not embeddings:
                raise LLMInvalidResponseError(
                    "Embedding response did not contain any embeddings"
                )
            return envelope

        outcome = await self._execute(attempt, endpoint="embed", model=model)
        envelope = outcome.value
        return EmbeddingResponse(
            embeddings=[[float(x) for x in vector] for vector in envelope["embeddings"]],
            meta=self._meta("embed", model, outcome),
            model=envelope.get("model") or model,
            raw=envelope,
        )

    def embed_sync(self, input: str | Sequence[str], **kwargs: Any) -> EmbeddingResponse:
        return run_sync(self.embed(input, **kwargs))

    async def list_models(self) -> list[ModelInfo]:
        async def attempt(index: int) -> dict[str, Any]:
            return await self._http.get_json("/api/tags")

        outcome = await self._executor.execute(
            attempt,
            max_attempts=self.config.max_attempts,
            backoff_fn=self._backoff(),
            endpoint="tags",
        )
        models = outcome.value.get("models") or []
        return [
            ModelInfo(
                name=str(m.get("name") or m.get("model") or ""),
                size=m.get("size"),
                digest=m.get("digest"),
                modified_at=m.get("modified_at"),
                details=dict(m.get("details") or {}),
            )
            for m in models
            if isinstance(m, dict)
        ]

    def list_models_sync(self) -> list[ModelInfo]:
        return run_sync(self.list_models())

    async def list_model_names(self) -> list[str]:
        return [m.name for m in await self.list_models() if m.name]

    def list_model_names_sync(self) -> list[str]:
        return run_sync(self.list_model_names())

    async def pull(self, model: str | None = None, *, insecure: bool = False) -> dict[str, Any]:
        """Download a model onto the backend. One attempt, with the extended pull timeout."""
        model = self._resolve_model(model)
        logger.info("pulling model %s", model)
        payload: dict[str, Any] = {"model": model, "stream": False}
        if insecure:
            payload["insecure"] = True
        result = await self._http.post_json(
            "/api/pull", payload, timeout_s=self.config.pull_timeout_s
        )
        stream_error = classify_stream_payload(result)
        if stream_error is not None:
            raise stream_error
        return result

    def pull_sync(self, model: str | None = None, **kwargs: Any) -> dict[str, Any]:
        return run_sync(self.pull(model, **kwargs))

    async def version(self) -> str:
        data = await self._http.get_json("/api/version")
        return str(data.get("version") or "")

    def version_sync(self) -> str:
        return run_sync(self.version())

    async def health(self) -> bool:
        """True when the backend answers `/api/version`; never raises for backend failures."""
        try:
            await self.version()
        except LLMError as e:
            logger.info("health check failed: %s", e)
            return False
        return True

    def health_sync(self) -> bool:
        return run_sync(self.health())

    # ------------------------------------------------------------------ #
    # internals
    # ------------------------------------------------------------------ #

    def _resolve_model(self, model: str | None) -> str:
        resolved = model or self.config.model
        if not isinstance(resolved, str) or not resolved.strip():
            raise InvalidRequestError("model must be a non-empty string")
        return resolved

    def _backoff(self) -> Callable[[int], float]:
        return exponential_backoff(self.config.backoff_base, self.config.backoff_jitter_s)

    @staticmethod
    def _validate_messages(messages: Sequence[MessageLike]) -> list[dict[str, Any]]:
        if isinstance(messages, (str, bytes)) or not messages:
            raise InvalidRequestError("messages must be a non-empty list")
        out: list[dict[str, Any]] = []
        for i, message in enumerate(messages):
            payload = message_to_payload(message)
            if payload.get("role") not in _ROLES:
                raise InvalidRequestError(
                    f"messages[{i}] has invalid role {payload.get('role')!r}"
                )
            content = payload.get("content")
            if content is None:
                payload["content"] = ""
            elif not isinstance(content, str):
                raise InvalidRequestError(f"messages[{i}].content must be a string")
            out.append(payload)
        return out

    async def _execute(
        self,
        attempt: Callable[[int], Awaitable[T]],
        *,
        endpoint: Endpoint,
        model: str,
        on_event: StreamObserver | None = None,
    ) -> ExecutionOutcome[T]:
        async def on_retry(failed_attempts: int, classification: Classification) -> None:
            await notify(
                on_event,
                StateEvent(
                    state="retry",
                    data={
                        "next_attempt": failed_attempts + 1,
                        "reason": classification.kind.value,
                    },
                ),
            )

        async def provision() -> None:
            await self.pull(model)

        try:
            return await self._executor.execute(
                attempt,
                max_attempts=self.config.max_attempts,
                backoff_fn=self._backoff(),
                provision=provision if self.config.auto_pull else None,
                on_retry=on_retry,
                endpoint=endpoint,
                model=model,
            )
        except ModelMissingError as e:
            await self._attach_suggestions(e)
            raise

    async def _attach_suggestions(self, error: ModelMissingError) -> None:
        if not error.requested_model:
            return
        try:
            data = await self._http.get_json("/api/tags")
        except LLMError:
            logger.debug("could not list models for suggestions", exc_info=True)
            return
        names = [
            str(m.get("name") or "")
            for m in data.get("models") or []
            if isinstance(m, dict)
        ]
        error.suggestions = find_similar_models(error.requested_model, names)

    async def _send(self, request: LLMRequest, on_event: StreamObserver | None) -> _Reply:
        path = _PATHS[request.endpoint]
        payload = request.to_payload()

        if request.stream:
            dispatcher = StreamingDispatcher(
                on_event,
                endpoint="chat" if request.endpoint == "chat" else "generate",
                normalizer=self._normalizer,
            )
            await self._http.stream_lines(
                path, payload, dispatcher.feed_line, requested_model=request.model
            )
            result = dispatcher.finish()
            return _Reply(
                text=result.text,
                envelope=dict(result.final_chunk),
                thinking=result.thinking or None,
                tool_calls=list(result.tool_calls) if request.endpoint == "chat" else None,
                diagnostics=list(result.tool_call_diagnostics),
            )

        envelope = await self._http.post_json(path, payload, requested_model=request.model)
        stream_error = classify_stream_payload(envelope)
        if stream_error is not None:
            raise stream_error

        if request.endpoint == "chat":
            message = envelope.get("message")
            message = message if isinstance(message, dict) else {}
            content = message.get("content")
            thinking = message.get("thinking")
        else:
            content = envelope.get("response")
            thinking = envelope.get("thinking")
        return _Reply(
            text=content if isinstance(content, str) else "",
            envelope=envelope,
            thinking=thinking if isinstance(thinking, str) and thinking else None,
        )

    @staticmethod
    def _meta(endpoint: Endpoint, model: str, outcome: ExecutionOutcome[Any]) -> ResultMeta:
        return ResultMeta(
            endpoint=endpoint,
            model=model,
            attempts=outcome.attempts,
            latency_ms=outcome.latency_ms,
            repairs=outcome.repairs,
            provisioned=outcome.provisioned,
            attempt_records=outcome.attempt_records,
        )
