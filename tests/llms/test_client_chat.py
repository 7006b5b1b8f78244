from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from sturdy.llms.client import Client
from sturdy.llms.config import LLMConfig
from sturdy.llms.errors import (
    InvalidRequestError,
    LLMInvalidResponseError,
    RetryExhaustedError,
    StreamError,
)
from sturdy.llms.types import Message
from sturdy.tools import tool


def run_async(coro):
    return asyncio.run(coro)


class ChatBackend:
    def __init__(self, *messages: dict, path: str = "/api/chat") -> None:
        self.messages = list(messages)
        self.path = path
        self.bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path == self.path
        self.bodies.append(json.loads(request.content))
        reply = self.messages.pop(0) if len(self.messages) > 1 else self.messages[0]
        return httpx.Response(200, json=reply)


def assistant(content: str = "", **message_extra) -> dict:
    return {
        "model": "llama3.1:8b",
        "message": {"role": "assistant", "content": content, **message_extra},
        "done": True,
        "done_reason": "stop",
    }


def make_client(backend) -> Client:
    async def no_sleep(delay: float) -> None:
        return None

    return Client(LLMConfig(), transport=httpx.MockTransport(backend), sleep=no_sleep)


USER = [{"role": "user", "content": "hello"}]


def test_plain_chat_returns_assistant_message():
    backend = ChatBackend(assistant("hi!", thinking="greet back"))
    client = make_client(backend)

    response = run_async(client.chat(USER))

    assert response.text == "hi!"
    assert response.message == {"role": "assistant", "content": "hi!", "thinking": "greet back"}
    assert response.tool_calls == []
    assert response.structured is None
    assert response.done_reason == "stop"
    assert backend.bodies[0]["messages"] == USER
    assert "tools" not in backend.bodies[0]


def test_message_objects_are_accepted():
    backend = ChatBackend(assistant("ok"))
    client = make_client(backend)

    run_async(client.chat([Message(role="system", content="be nice"), Message(role="user", content="hi")]))

    assert backend.bodies[0]["messages"] == [
        {"role": "system", "content": "be nice"},
        {"role": "user", "content": "hi"},
    ]


def test_tool_calls_are_normalized_across_shapes():
    backend = ChatBackend(
        assistant(
            "",
            tool_calls=[
                {"id": "a", "function": {"name": "add", "arguments": '{"x": 1, "y": 2}'}},
                {"name": "now", "arguments": None},
                {"function": {"name": "echo", "arguments": ""}},
            ],
        )
    )
    client = make_client(backend)

    response = run_async(client.chat(USER))

    assert [(c.id, c.tool_name, c.arguments) for c in response.tool_calls] == [
        ("a", "add", {"x": 1, "y": 2}),
        (None, "now", {}),
        (None, "echo", {}),
    ]
    assert response.message["tool_calls"][0] == {
        "function": {"name": "add", "arguments": {"x": 1, "y": 2}},
        "id": "a",
    }
    assert response.tool_call_diagnostics == []


def test_uncoercible_tool_calls_are_reported_not_raised():
    backend = ChatBackend(
        assistant(
            "",
            tool_calls=[
                {"id": "bad", "function": {"name": "add", "arguments": "{not json"}},
                {"function": {"name": "add", "arguments": [1, 2]}},
                {"function": {"arguments": {}}},
                {"function": {"name": "ok", "arguments": {}}},
            ],
        )
    )
    client = make_client(backend)

    response = run_async(client.chat(USER))

    assert [c.tool_name for c in response.tool_calls] == ["ok"]
    reasons = [d.reason for d in response.tool_call_diagnostics]
    assert len(reasons) == 3
    assert reasons[0].startswith("arguments are not valid JSON")
    assert "got list" in reasons[1]
    assert reasons[2] == "missing tool name"
    assert response.tool_call_diagnostics[0].tool_call_id == "bad"


def test_tools_are_sent_as_function_definitions():
    @tool
    def add(x: int, y: int) -> int:
        """Add two integers."""
        return x + y

    backend = ChatBackend(assistant("3"))
    client = make_client(backend)

    run_async(client.chat(USER, tools=[add]))

    (definition,) = backend.bodies[0]["tools"]
    assert definition["type"] == "function"
    assert definition["function"]["name"] == "add"
    assert definition["function"]["description"] == "Add two integers."
    assert definition["function"]["parameters"]["required"] == ["x", "y"]


def test_format_schema_is_repaired_through_conversation():
    schema = {"type": "object", "required": ["city"], "properties": {"city": {"type": "string"}}}
    backend = ChatBackend(assistant("Oslo, I think"), assistant('{"city": "Oslo"}'))
    client = make_client(backend)

    response = run_async(client.chat(USER, format=schema))

    assert response.structured == {"city": "Oslo"}
    assert response.meta.attempts == 2
    assert response.meta.repairs == 1

    first, second = backend.bodies
    assert first["format"] == schema
    assert second["messages"][:1] == USER
    assert second["messages"][1] == {"role": "assistant", "content": "Oslo, I think"}
    assert second["messages"][2]["role"] == "user"
    assert second["messages"][2]["content"].startswith("CRITICAL FIX")


def test_format_json_mode_parses_any_value():
    backend = ChatBackend(assistant("[1, 2, 3]"))
    client = make_client(backend)

    response = run_async(client.chat(USER, format="json"))

    assert response.structured == [1, 2, 3]
    assert backend.bodies[0]["format"] == "json"


def test_format_is_not_enforced_when_model_calls_tools():
    schema = {"type": "object", "required": ["city"], "properties": {"city": {"type": "string"}}}
    backend = ChatBackend(
        assistant("", tool_calls=[{"function": {"name": "lookup", "arguments": {}}}])
    )
    client = make_client(backend)

    response = run_async(client.chat(USER, format=schema))

    assert response.structured is None
    assert response.meta.attempts == 1


def test_format_repairs_exhaust_budget():
    schema = {"type": "object", "required": ["city"], "properties": {"city": {"type": "string"}}}
    backend = ChatBackend(assistant("nope"))
    client = make_client(backend)

    with pytest.raises(RetryExhaustedError) as exc_info:
        run_async(client.chat(USER, format=schema))

    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, LLMInvalidResponseError)
    # the history grows by one assistant/user pair per repair
    assert [len(b["messages"]) for b in backend.bodies] == [1, 3, 5]


def test_error_envelope_raises_stream_error():
    backend = ChatBackend({"error": "out of memory"})
    client = make_client(backend)

    with pytest.raises(StreamError):
        run_async(client.chat(USER))


@pytest.mark.parametrize(
    "messages",
    [
        [],
        [{"role": "robot", "content": "beep"}],
        [{"role": "user", "content": {"nested": True}}],
    ],
)
def test_invalid_messages_are_rejected(messages):
    backend = ChatBackend(assistant("unused"))
    client = make_client(backend)

    with pytest.raises(InvalidRequestError):
        run_async(client.chat(messages))

    assert backend.bodies == []


def test_embed_returns_vectors():
    backend = ChatBackend({"model": "nomic-embed-text", "embeddings": [[0.1, 0.2], [0.3, 0.4]]}, path="/api/embed")
    client = make_client(backend)

    response = run_async(client.embed(["a", "b"], model="nomic-embed-text"))

    assert response.embeddings == [[0.1, 0.2], [0.3, 0.4]]
    assert response.model == "nomic-embed-text"
    assert backend.bodies[0] == {"model": "nomic-embed-text", "input": ["a", "b"]}


def test_embed_rejects_empty_input():
    client = make_client(ChatBackend({"embeddings": [[1.0]]}, path="/api/embed"))
    with pytest.raises(InvalidRequestError):
        run_async(client.embed([]))


def test_model_management_endpoints():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/tags":
            return httpx.Response(
                200, json={"models": [{"name": "llama3.1:8b", "size": 42}, {"name": "qwen2.5:7b"}]}
            )
        if request.url.path == "/api/version":
            return httpx.Response(200, json={"version": "0.5.1"})
        return httpx.Response(404, json={"error": "not found"})

    client = make_client(handler)

    models = run_async(client.list_models())
    assert models[0].name == "llama3.1:8b"
    assert models[0].size == 42
    assert run_async(client.list_model_names()) == ["llama3.1:8b", "qwen2.5:7b"]
    assert run_async(client.version()) == "0.5.1"
    assert run_async(client.health()) is True


def test_health_is_false_when_backend_is_down():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)

    assert client.health_sync() is False
