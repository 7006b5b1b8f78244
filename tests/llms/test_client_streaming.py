from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from sturdy.llms.client import Client
from sturdy.llms.config import LLMConfig
from sturdy.llms.errors import LLMTimeoutError, RetryExhaustedError, StreamError
from sturdy.llms.streaming import StreamingDispatcher


def run_async(coro):
    return asyncio.run(coro)


def ndjson(*chunks: dict) -> httpx.Response:
    body = "\n".join(json.dumps(c) for c in chunks) + "\n"
    return httpx.Response(200, content=body.encode("utf-8"))


class StreamBackend:
    def __init__(self, *replies: httpx.Response) -> None:
        self.replies = list(replies)
        self.bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        return self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]


def make_client(backend: StreamBackend) -> Client:
    async def no_sleep(delay: float) -> None:
        return None

    return Client(
        LLMConfig(max_retries=2), transport=httpx.MockTransport(backend), sleep=no_sleep
    )


def test_tokens_concatenate_to_final_text():
    backend = StreamBackend(
        ndjson(
            {"response": "Hel", "done": False},
            {"response": "lo ", "done": False},
            {"response": "world", "done": True, "eval_count": 3, "prompt_eval_count": 2},
        )
    )
    events = []
    client = make_client(backend)

    result = run_async(client.generate("hi", on_event=events.append))

    tokens = [e.text for e in events if e.type == "token"]
    finals = [e for e in events if e.type == "final"]
    assert "".join(tokens) == "Hello world"
    assert len(finals) == 1
    assert events[-1] is finals[0]
    assert finals[0].text == result.text == "Hello world"
    assert result.usage.total_tokens == 5
    assert backend.bodies[0]["stream"] is True


def test_malformed_lines_are_skipped():
    body = b'{"response": "a"}\nnot json at all\n\n{"response": "b", "done": true}\n'
    backend = StreamBackend(httpx.Response(200, content=body))
    client = make_client(backend)

    result = run_async(client.generate("hi", on_event=lambda e: None))

    assert result.text == "ab"


def test_error_chunk_raises_stream_error():
    backend = StreamBackend(
        ndjson({"response": "partial", "done": False}, {"error": "model crashed"})
    )
    events = []
    client = make_client(backend)

    with pytest.raises(StreamError) as exc_info:
        run_async(client.generate("hi", on_event=events.append))

    assert "model crashed" in str(exc_info.value)
    assert len(backend.bodies) == 1
    assert not any(e.type == "final" for e in events)


def test_retry_restarts_stream_and_final_comes_after_validation():
    schema = {"type": "object", "required": ["ok"], "properties": {"ok": {"type": "boolean"}}}
    backend = StreamBackend(
        ndjson({"response": "not ", "done": False}, {"response": "json", "done": True}),
        ndjson({"response": '{"ok": ', "done": False}, {"response": "true}", "done": True}),
    )
    events = []
    client = make_client(backend)

    result = run_async(client.generate("hi", schema=schema, on_event=events.append))

    assert result.data == {"ok": True}
    kinds = [e.type for e in events]
    assert kinds.count("final") == 1
    assert kinds[-1] == "final"

    retry = next(e for e in events if e.type == "state")
    assert retry.state == "retry"
    assert retry.data == {"next_attempt": 2, "reason": "invalid_json"}

    after_retry = events[events.index(retry) + 1 : -1]
    assert "".join(e.text for e in after_retry if e.type == "token") == result.text


def test_observer_exceptions_do_not_break_the_call():
    backend = StreamBackend(ndjson({"response": "fine", "done": True}))

    def exploding(event):
        raise RuntimeError("observer bug")

    client = make_client(backend)
    result = run_async(client.generate("hi", on_event=exploding))

    assert result.text == "fine"


def test_async_observers_are_awaited():
    backend = StreamBackend(ndjson({"response": "a", "done": False}, {"response": "b", "done": True}))
    seen = []

    async def observer(event):
        await asyncio.sleep(0)
        seen.append(event.type)

    client = make_client(backend)
    run_async(client.generate("hi", on_event=observer))

    assert seen == ["token", "token", "final"]


def test_chat_stream_collects_tool_calls_and_thinking():
    backend = StreamBackend(
        ndjson(
            {"message": {"role": "assistant", "content": "", "thinking": "need weather"}},
            {
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {"id": "c1", "function": {"name": "weather", "arguments": {"city": "Oslo"}}}
                    ],
                },
                "done": True,
                "done_reason": "stop",
            },
        )
    )
    events = []
    client = make_client(backend)

    response = run_async(
        client.chat([{"role": "user", "content": "weather in Oslo?"}], on_event=events.append)
    )

    assert response.thinking == "need weather"
    assert response.tool_calls[0].tool_name == "weather"
    assert response.tool_calls[0].arguments == {"city": "Oslo"}
    assert response.done_reason == "stop"
    detected = [e for e in events if e.type == "tool_call_detected"]
    assert detected[0].name == "weather"
    assert detected[0].data == {"id": "c1", "arguments": {"city": "Oslo"}}


def test_dispatcher_can_be_driven_directly():
    tokens = []
    dispatcher = StreamingDispatcher(lambda e: tokens.append(e.text), endpoint="generate")

    async def feed():
        await dispatcher.feed_line('{"response": "x"}')
        await dispatcher.feed_line("[1, 2]")
        await dispatcher.feed_line('{"response": "y", "done": true}')

    run_async(feed())
    result = dispatcher.finish()

    assert tokens == ["x", "y"]
    assert result.text == "xy"
    assert result.done
    assert result.chunks == 2
    assert result.skipped_lines == 1


@pytest.mark.parametrize(
    "message",
    [
        {"role": "assistant", "content": [{"type": "tool_use", "id": "c1", "name": "lookup", "input": {"q": "x"}}]},
        {"role": "assistant", "content": "", "function_call": {"name": "lookup", "arguments": '{"q": "x"}'}},
        {"role": "assistant", "content": "", "tool_calls": [{"id": "c1", "name": "lookup", "arguments": {"q": "x"}}]},
    ],
    ids=["tool_use", "function_call", "flat_tool_calls"],
)
def test_streamed_chat_finds_the_same_tool_calls_as_plain_chat(message):
    envelope = {"model": "llama3.1:8b", "message": message, "done": True}
    plain = make_client(StreamBackend(httpx.Response(200, json=envelope)))
    streamed = make_client(StreamBackend(ndjson(envelope)))
    user = [{"role": "user", "content": "look x up"}]

    expected = run_async(plain.chat(user)).tool_calls
    events = []
    got = run_async(streamed.chat(user, on_event=events.append)).tool_calls

    assert [(c.tool_name, c.arguments) for c in expected] == [("lookup", {"q": "x"})]
    assert got == expected
    assert [e.name for e in events if e.type == "tool_call_detected"] == ["lookup"]


def test_slow_dripping_stream_is_bounded_by_total_timeout():
    async def drip():
        while True:
            yield b'{"response": "a", "done": false}\n'
            await asyncio.sleep(0.01)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=drip())

    client = Client(LLMConfig(timeout_s=0.1, max_retries=0), transport=httpx.MockTransport(handler))
    events = []

    with pytest.raises(RetryExhaustedError) as exc_info:
        run_async(client.generate("hi", on_event=events.append))

    assert isinstance(exc_info.value.last_error, LLMTimeoutError)
    assert exc_info.value.attempt_records[0].kind == "timeout"
    assert any(e.type == "token" for e in events)
    assert not any(e.type == "final" for e in events)
