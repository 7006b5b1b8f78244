from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the error taxonomy raised by the sturdy client.
Every error carries how many attempts were spent and the per-attempt records.
"""

from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from .types import AttemptRecord


RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 503})


class LLMError(Exception):
    """Base exception for all sturdy LLM-related errors."""

    def __init__(
        self,
        message: str = "",
        *,
        attempts: int = 0,
        attempt_records: Sequence["AttemptRecord"] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.attempts = attempts
        self.attempt_records: tuple["AttemptRecord", ...] = tuple(attempt_records or ())

    def with_attempts(
        self, attempts: int, attempt_records: Sequence["AttemptRecord"]
    ) -> "LLMError":
        """Attach retry bookkeeping; returns self so it can be raised inline."""
        self.attempts = attempts
        self.attempt_records = tuple(attempt_records)
        return self

    def __str__(self) -> str:
        if self.attempts:
            noun = "attempt" if self.attempts == 1 else "attempts"
            return f"{self.message} (after {self.attempts} {noun})"
        return self.message


class UnreachableError(LLMError):
    """The backend host refused or dropped the connection."""

    pass


class LLMTimeoutError(LLMError):
    pass


class HTTPStatusError(LLMError):
    """
    The backend answered with a non-2xx status.
    Only 408, 429, 500 and 503 are considered transient.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES


class ModelMissingError(HTTPStatusError):
    """The requested model is not installed on the backend (HTTP 404)."""

    def __init__(
        self,
        message: str,
        *,
        requested_model: str | None = None,
        suggestions: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("status_code", 404)
        super().__init__(message, **kwargs)
        self.requested_model = requested_model
        self.suggestions: list[str] = list(suggestions or [])

    def __str__(self) -> str:
        base = super().__str__()
        if self.suggestions:
            return f"{base}. Did you mean: {', '.join(self.suggestions)}?"
        return base


class LLMInvalidResponseError(LLMError):
    """
    The model returned output we could not parse or validate.
    These are retried through the repair path.
    """

    pass


class InvalidJSONError(LLMInvalidResponseError):
    def __init__(self, message: str, *, text: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.text = text


class SchemaViolationError(LLMInvalidResponseError):
    """Parsed output does not satisfy the caller's schema."""

    def __init__(
        self,
        message: str,
        *,
        constraint: str | None = None,
        path: str = "$",
        detail: str = "",
        instance: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.constraint = constraint
        self.path = path
        self.detail = detail
        self.instance = instance


class StreamError(LLMError):
    """The backend embedded an error object inside a streamed response."""

    pass


class RetryExhaustedError(LLMError):
    """Every attempt in the retry budget failed with a retryable error."""

    def __init__(
        self, message: str, *, last_error: BaseException | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        self.last_error = last_error

    def __str__(self) -> str:
        return self.message


class InvalidRequestError(LLMError):
    """Caller input was rejected before any request was sent."""

    pass


class LLMConfigurationError(LLMError):
    pass
