from __future__ import annotations

"""
Typed observability primitives for request lifecycle events.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Literal, Protocol

from .utils import maybe_await

logger = logging.getLogger(__name__)


LLMLifecycleEventType = Literal[
    "request_start",
    "retry",
    "repair",
    "provision",
    "request_success",
    "request_error",
]


@dataclass(frozen=True, slots=True)
class LLMLifecycleEvent:
    """
    One normalized lifecycle event emitted by the retry engine.

    Observer callbacks are best-effort only; their failures are logged and dropped.
    """

    event_type: LLMLifecycleEventType
    request_id: str
    endpoint: str
    model: str | None = None
    attempt: int | None = None
    latency_ms: float | None = None
    delay_s: float | None = None
    error_class: str | None = None
    error_message: str | None = None


class LLMObserver(Protocol):
    def __call__(self, event: LLMLifecycleEvent) -> None | Awaitable[None]:
        ...


LLMObserverCallback = Callable[[LLMLifecycleEvent], None | Awaitable[None]]


async def emit_lifecycle_event(
    observers: Iterable[LLMObserverCallback], event: LLMLifecycleEvent
) -> None:
    for observer in observers:
        try:
            await maybe_await(observer(event))
        except Exception:
            logger.debug(
                "lifecycle observer %r failed on %s", observer, event.event_type, exc_info=True
            )
