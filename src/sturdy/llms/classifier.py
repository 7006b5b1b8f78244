from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Maps transport outcomes onto a closed set of error kinds. Retryability is a pure
function of the kind (and, for HTTP statuses, of the code).
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from .errors import (
    RETRYABLE_STATUS_CODES,
    HTTPStatusError,
    InvalidJSONError,
    LLMError,
    LLMTimeoutError,
    ModelMissingError,
    SchemaViolationError,
    StreamError,
    UnreachableError,
)


class ErrorKind(str, enum.Enum):
    SUCCESS = "success"
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    MODEL_MISSING = "model_missing"
    STREAM_ERROR = "stream_error"
    INVALID_JSON = "invalid_json"
    SCHEMA_VIOLATION = "schema_violation"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Classification:
    kind: ErrorKind
    error: BaseException | None = None
    status_code: int | None = None

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind, self.status_code)

    @property
    def is_repairable(self) -> bool:
        return self.kind in (ErrorKind.INVALID_JSON, ErrorKind.SCHEMA_VIOLATION)


def is_retryable(kind: ErrorKind, status_code: int | None = None) -> bool:
    if kind is ErrorKind.TIMEOUT:
        return True
    if kind in (ErrorKind.INVALID_JSON, ErrorKind.SCHEMA_VIOLATION):
        return True
    if kind is ErrorKind.HTTP_STATUS:
        return status_code in RETRYABLE_STATUS_CODES
    # UNREACHABLE, STREAM_ERROR, MODEL_MISSING (handled by provisioning), UNKNOWN
    return False


def classify_status(
    status_code: int,
    detail: str = "",
    *,
    requested_model: str | None = None,
    body: Any = None,
) -> HTTPStatusError:
    """Build the typed error for a non-2xx response."""
    if status_code == 404 and requested_model is not None:
        return ModelMissingError(
            f"Model '{requested_model}' not found on the server"
            + (f": {detail}" if detail else ""),
            requested_model=requested_model,
            body=body,
        )
    return HTTPStatusError(
        f"HTTP {status_code}" + (f": {detail}" if detail else ""),
        status_code=status_code,
        body=body,
    )


def classify_transport_exception(exc: BaseException) -> LLMError:
    """Translate an httpx/OS level failure into the sturdy taxonomy."""
    if isinstance(exc, LLMError):
        return exc
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        err: LLMError = LLMTimeoutError(f"Request timed out: {exc or type(exc).__name__}")
    elif isinstance(exc, (httpx.TransportError, OSError)):
        err = UnreachableError(f"Cannot reach backend: {exc or type(exc).__name__}")
    else:
        err = LLMError(f"Unexpected transport failure: {exc}")
    err.__cause__ = exc
    return err


def classify_stream_payload(obj: Mapping[str, Any]) -> StreamError | None:
    """Return a StreamError if a decoded stream chunk carries an `error` field."""
    error = obj.get("error")
    if not error:
        return None
    if isinstance(error, Mapping):
        error = error.get("message") or error
    return StreamError(f"Stream error from backend: {error}")


def classify(outcome: BaseException | None) -> Classification:
    if outcome is None:
        return Classification(kind=ErrorKind.SUCCESS)

    if not isinstance(outcome, LLMError) and isinstance(
        outcome, (httpx.HTTPError, OSError, asyncio.TimeoutError, TimeoutError)
    ):
        outcome = classify_transport_exception(outcome)

    if isinstance(outcome, ModelMissingError):
        return Classification(ErrorKind.MODEL_MISSING, outcome, outcome.status_code)
    if isinstance(outcome, HTTPStatusError):
        return Classification(ErrorKind.HTTP_STATUS, outcome, outcome.status_code)
    if isinstance(outcome, LLMTimeoutError):
        return Classification(ErrorKind.TIMEOUT, outcome)
    if isinstance(outcome, UnreachableError):
        return Classification(ErrorKind.UNREACHABLE, outcome)
    if isinstance(outcome, StreamError):
        return Classification(ErrorKind.STREAM_ERROR, outcome)
    if isinstance(outcome, SchemaViolationError):
        return Classification(ErrorKind.SCHEMA_VIOLATION, outcome)
    if isinstance(outcome, InvalidJSONError):
        return Classification(ErrorKind.INVALID_JSON, outcome)
    return Classification(ErrorKind.UNKNOWN, outcome)
