from __future__ import annotations

import asyncio

import httpx
import pytest

from sturdy.llms.classifier import (
    ErrorKind,
    classify,
    classify_status,
    classify_stream_payload,
    is_retryable,
)
from sturdy.llms.errors import (
    HTTPStatusError,
    InvalidJSONError,
    LLMTimeoutError,
    ModelMissingError,
    RetryExhaustedError,
    SchemaViolationError,
    StreamError,
    UnreachableError,
)
from sturdy.llms.retry import RetryExecutor, exponential_backoff
from sturdy.llms.utils import backoff_delay, find_similar_models, run_sync


def run_async(coro):
    return asyncio.run(coro)


class Script:
    """Attempt function that raises or returns the scripted outcomes in order."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[int] = []

    async def __call__(self, index: int):
        self.calls.append(index)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def make_executor(sleeps: list[float]) -> RetryExecutor:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return RetryExecutor(sleep=fake_sleep)


@pytest.mark.parametrize(
    ("kind", "status", "expected"),
    [
        (ErrorKind.TIMEOUT, None, True),
        (ErrorKind.INVALID_JSON, None, True),
        (ErrorKind.SCHEMA_VIOLATION, None, True),
        (ErrorKind.HTTP_STATUS, 408, True),
        (ErrorKind.HTTP_STATUS, 429, True),
        (ErrorKind.HTTP_STATUS, 500, True),
        (ErrorKind.HTTP_STATUS, 503, True),
        (ErrorKind.HTTP_STATUS, 400, False),
        (ErrorKind.HTTP_STATUS, 502, False),
        (ErrorKind.UNREACHABLE, None, False),
        (ErrorKind.STREAM_ERROR, None, False),
        (ErrorKind.MODEL_MISSING, 404, False),
        (ErrorKind.UNKNOWN, None, False),
    ],
)
def test_retryability_table(kind, status, expected):
    assert is_retryable(kind, status) is expected


def test_classify_maps_errors_to_kinds():
    request = httpx.Request("POST", "http://localhost:11434/api/generate")

    assert classify(None).kind is ErrorKind.SUCCESS
    assert classify(httpx.ReadTimeout("slow", request=request)).kind is ErrorKind.TIMEOUT
    assert classify(httpx.ConnectError("refused", request=request)).kind is ErrorKind.UNREACHABLE
    assert classify(ConnectionRefusedError()).kind is ErrorKind.UNREACHABLE
    assert classify(LLMTimeoutError("t")).kind is ErrorKind.TIMEOUT
    assert classify(UnreachableError("u")).kind is ErrorKind.UNREACHABLE
    assert classify(StreamError("s")).kind is ErrorKind.STREAM_ERROR
    assert classify(InvalidJSONError("j")).kind is ErrorKind.INVALID_JSON
    assert classify(SchemaViolationError("v")).kind is ErrorKind.SCHEMA_VIOLATION
    assert classify(ValueError("?")).kind is ErrorKind.UNKNOWN

    status = classify(HTTPStatusError("HTTP 503", status_code=503))
    assert status.kind is ErrorKind.HTTP_STATUS
    assert status.status_code == 503
    assert status.retryable


def test_classify_status_recognizes_missing_models():
    missing = classify_status(404, "model not found", requested_model="phi3")
    assert isinstance(missing, ModelMissingError)
    assert missing.requested_model == "phi3"

    plain = classify_status(404, "no route")
    assert type(plain) is HTTPStatusError
    assert classify(missing).kind is ErrorKind.MODEL_MISSING


def test_classify_stream_payload():
    assert classify_stream_payload({"response": "ok"}) is None
    assert "boom" in str(classify_stream_payload({"error": "boom"}))
    assert "nested" in str(classify_stream_payload({"error": {"message": "nested"}}))


def test_backoff_delay_is_exponential_with_bounded_jitter():
    assert [backoff_delay(n, 2.0) for n in (0, 1, 2, 3)] == [1.0, 2.0, 4.0, 8.0]
    for _ in range(20):
        assert 4.0 <= backoff_delay(2, 2.0, jitter_s=0.5) <= 4.5


def test_executor_returns_first_success_with_records():
    script = Script("ok")
    outcome = run_async(
        make_executor([]).execute(script, max_attempts=3, backoff_fn=exponential_backoff(2.0))
    )

    assert outcome.value == "ok"
    assert outcome.attempts == 1
    assert outcome.attempt_records[0].kind == "success"
    assert script.calls == [0]


def test_executor_backs_off_between_transient_failures():
    sleeps: list[float] = []
    script = Script(LLMTimeoutError("t1"), HTTPStatusError("busy", status_code=503), "ok")

    outcome = run_async(
        make_executor(sleeps).execute(script, max_attempts=3, backoff_fn=exponential_backoff(3.0))
    )

    assert outcome.value == "ok"
    assert sleeps == [3.0, 9.0]
    assert script.calls == [0, 1, 2]
    assert [r.kind for r in outcome.attempt_records] == ["timeout", "http_status", "success"]


def test_executor_repairs_without_sleeping():
    sleeps: list[float] = []
    script = Script(InvalidJSONError("j"), SchemaViolationError("v"), "ok")

    outcome = run_async(
        make_executor(sleeps).execute(script, max_attempts=3, backoff_fn=exponential_backoff(2.0))
    )

    assert outcome.repairs == 2
    assert sleeps == []


def test_executor_exhaustion_keeps_last_error():
    script = Script(*(LLMTimeoutError(f"t{i}") for i in range(2)))

    with pytest.raises(RetryExhaustedError) as exc_info:
        run_async(
            make_executor([]).execute(script, max_attempts=2, backoff_fn=exponential_backoff(2.0))
        )

    err = exc_info.value
    assert str(err) == "Failed after 2 attempts: t1"
    assert isinstance(err.last_error, LLMTimeoutError)
    assert len(err.attempt_records) == 2


def test_executor_raises_non_retryable_immediately():
    script = Script(StreamError("model crashed"), "never")

    with pytest.raises(StreamError) as exc_info:
        run_async(
            make_executor([]).execute(script, max_attempts=5, backoff_fn=exponential_backoff(2.0))
        )

    assert exc_info.value.attempts == 1
    assert script.calls == [0]


def test_executor_provisions_once_with_a_bonus_attempt():
    pulls = []

    async def provision():
        pulls.append(True)

    script = Script(ModelMissingError("missing"), LLMTimeoutError("t"), "ok")
    outcome = run_async(
        make_executor([]).execute(
            script,
            max_attempts=2,
            backoff_fn=exponential_backoff(2.0),
            provision=provision,
        )
    )

    # the pull attempt does not count: 1 budgeted failure + bonus + 1 retry
    assert outcome.value == "ok"
    assert outcome.provisioned
    assert outcome.attempts == 3
    assert pulls == [True]


def test_executor_second_missing_model_is_terminal():
    async def provision():
        raise RuntimeError("pull failed")

    script = Script(ModelMissingError("missing"), ModelMissingError("still missing"))

    with pytest.raises(ModelMissingError) as exc_info:
        run_async(
            make_executor([]).execute(
                script, max_attempts=3, backoff_fn=exponential_backoff(2.0), provision=provision
            )
        )

    assert exc_info.value.attempts == 2


def test_executor_on_retry_hook_sees_next_attempt():
    seen = []
    script = Script(LLMTimeoutError("t"), "ok")

    run_async(
        make_executor([]).execute(
            script,
            max_attempts=2,
            backoff_fn=exponential_backoff(2.0),
            on_retry=lambda failed, c: seen.append((failed, c.kind)),
        )
    )

    assert seen == [(1, ErrorKind.TIMEOUT)]


def test_executor_rejects_empty_budget():
    with pytest.raises(ValueError):
        run_async(make_executor([]).execute(Script("ok"), max_attempts=0, backoff_fn=lambda n: 0))


def test_find_similar_models():
    installed = ["llama3.1:8b", "llama3.2:3b", "qwen2.5:7b", "nomic-embed-text"]

    assert find_similar_models("llama3.1", installed) == ["llama3.1:8b"]
    assert find_similar_models("qwen", installed) == ["qwen2.5:7b"]
    assert find_similar_models("mistral", installed) == []
    assert find_similar_models("", installed) == []


def test_run_sync_refuses_inside_running_loop():
    async def inner():
        return 1

    async def outer():
        with pytest.raises(RuntimeError):
            run_sync(inner())

    run_async(outer())
    assert run_sync(inner()) == 1
