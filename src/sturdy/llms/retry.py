from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Retry engine used by every client operation.

One call is a sequential chain of attempts:
  - success returns immediately with the attempt log
  - a missing model triggers one provisioning pull and one extra attempt that
    does not count against the budget
  - retryable failures back off and try again until the budget is spent
  - repair failures (invalid JSON, schema violations) retry without sleeping
  - anything else is raised as classified
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from .classifier import Classification, ErrorKind, classify
from .errors import LLMError, RetryExhaustedError
from .observability import LLMLifecycleEvent, LLMObserverCallback, emit_lifecycle_event
from .types import AttemptRecord
from .utils import backoff_delay, maybe_await

logger = logging.getLogger(__name__)

T = TypeVar("T")

AttemptFn = Callable[[int], Awaitable[T]]
BackoffFn = Callable[[int], float]
ProvisionFn = Callable[[], Awaitable[Any]]
RetryHook = Callable[[int, Classification], Any]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class ExecutionOutcome(Generic[T]):
    value: T
    attempts: int
    attempt_records: tuple[AttemptRecord, ...]
    latency_ms: float
    repairs: int = 0
    provisioned: bool = False


def exponential_backoff(base: float, jitter_s: float = 0.0) -> BackoffFn:
    def _delay(retry_number: int) -> float:
        return backoff_delay(retry_number, base, jitter_s)

    return _delay


def _error_text(err: BaseException) -> str:
    if isinstance(err, LLMError):
        return err.message
    return str(err) or type(err).__name__


class RetryExecutor:
    """
    Drives an attempt function under a retry budget.

    `sleep` is injectable so tests can observe backoff without waiting.
    """

    def __init__(
        self,
        *,
        sleep: SleepFn | None = None,
        observers: Iterable[LLMObserverCallback] = (),
    ) -> None:
        self._sleep = sleep or asyncio.sleep
        self._observers = list(observers)

    async def execute(
        self,
        attempt_fn: AttemptFn[T],
        *,
        max_attempts: int,
        backoff_fn: BackoffFn,
        provision: ProvisionFn | None = None,
        on_retry: RetryHook | None = None,
        endpoint: str = "generate",
        model: str | None = None,
    ) -> ExecutionOutcome[T]:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        request_id = uuid.uuid4().hex
        records: list[AttemptRecord] = []
        used = 0
        repairs = 0
        provisioned = False
        bonus_pending = False
        index = 0
        call_started = time.perf_counter()

        await self._emit("request_start", request_id, endpoint, model)

        while True:
            if bonus_pending:
                bonus_pending = False
            else:
                used += 1

            started = time.perf_counter()
            try:
                value = await attempt_fn(index)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                latency_ms = (time.perf_counter() - started) * 1000.0
                classification = classify(exc)
                err = classification.error or exc
                records.append(
                    AttemptRecord(
                        index=index,
                        latency_ms=latency_ms,
                        kind=classification.kind.value,
                        error_class=type(err).__name__,
                        error_message=_error_text(err),
                        status_code=classification.status_code,
                    )
                )
                logger.info(
                    "%s attempt %d for model %s failed (%s): %s",
                    endpoint,
                    index + 1,
                    model,
                    classification.kind.value,
                    _error_text(err),
                )

                if (
                    classification.kind is ErrorKind.MODEL_MISSING
                    and provision is not None
                    and not provisioned
                ):
                    provisioned = True
                    bonus_pending = True
                    logger.warning("model %s missing; pulling before one more attempt", model)
                    await self._emit(
                        "provision", request_id, endpoint, model, attempt=index + 1
                    )
                    try:
                        await provision()
                    except Exception as pull_exc:
                        logger.warning("pull of model %s failed: %s", model, pull_exc)
                    index += 1
                    continue

                if not classification.retryable:
                    await self._emit_error(request_id, endpoint, model, index, err)
                    if isinstance(err, LLMError):
                        raise err.with_attempts(len(records), records)
                    raise err

                if used >= max_attempts:
                    await self._emit_error(request_id, endpoint, model, index, err)
                    raise RetryExhaustedError(
                        f"Failed after {len(records)} attempts: {_error_text(err)}",
                        last_error=err,
                        attempts=len(records),
                        attempt_records=records,
                    ) from err

                if on_retry is not None:
                    await maybe_await(on_retry(index + 1, classification))

                if classification.is_repairable:
                    repairs += 1
                    await self._emit(
                        "repair",
                        request_id,
                        endpoint,
                        model,
                        attempt=index + 1,
                        error=err,
                    )
                else:
                    delay = backoff_fn(used)
                    logger.warning(
                        "retrying %s for model %s in %.2fs (attempt %d/%d): %s",
                        endpoint,
                        model,
                        delay,
                        used + 1,
                        max_attempts,
                        _error_text(err),
                    )
                    await self._emit(
                        "retry",
                        request_id,
                        endpoint,
                        model,
                        attempt=index + 1,
                        delay_s=delay,
                        error=err,
                    )
                    await self._sleep(delay)

                index += 1
                continue

            latency_ms = (time.perf_counter() - started) * 1000.0
            records.append(
                AttemptRecord(index=index, latency_ms=latency_ms, kind=ErrorKind.SUCCESS.value)
            )
            total_ms = (time.perf_counter() - call_started) * 1000.0
            await self._emit(
                "request_success",
                request_id,
                endpoint,
                model,
                attempt=index + 1,
                latency_ms=total_ms,
            )
            return ExecutionOutcome(
                value=value,
                attempts=len(records),
                attempt_records=tuple(records),
                latency_ms=total_ms,
                repairs=repairs,
                provisioned=provisioned,
            )

    async def _emit_error(
        self,
        request_id: str,
        endpoint: str,
        model: str | None,
        index: int,
        err: BaseException,
    ) -> None:
        await self._emit(
            "request_error", request_id, endpoint, model, attempt=index + 1, error=err
        )

    async def _emit(
        self,
        event_type: Any,
        request_id: str,
        endpoint: str,
        model: str | None,
        *,
        attempt: int | None = None,
        latency_ms: float | None = None,
        delay_s: float | None = None,
        error: BaseException | None = None,
    ) -> None:
        if not self._observers:
            return
        await emit_lifecycle_event(
            self._observers,
            LLMLifecycleEvent(
                event_type=event_type,
                request_id=request_id,
                endpoint=endpoint,
                model=model,
                attempt=attempt,
                latency_ms=latency_ms,
                delay_s=delay_s,
                error_class=type(error).__name__ if error is not None else None,
                error_message=_error_text(error) if error is not None else None,
            ),
        )
