from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Thin httpx layer over the backend HTTP API. It performs exactly one request per
call and translates failures into the sturdy error taxonomy; retries live elsewhere.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from .classifier import classify_status, classify_transport_exception
from .errors import InvalidJSONError

logger = logging.getLogger(__name__)

LineHandler = Callable[[str], Awaitable[None]]


def _error_detail(response: httpx.Response) -> tuple[str, Any]:
    try:
        body = response.json()
    except ValueError:
        text = response.text
        return text.strip()[:500], text
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"]), body
    return response.reason_phrase or "", body


class HTTPTransport:
    """
    One short-lived `httpx.AsyncClient` per request; no pooling across calls.

    `timeout_s` bounds each request as a whole. httpx applies it per phase (connect,
    read, write), and the surrounding `asyncio.timeout` caps the total, so a stream
    that keeps dripping bytes still ends with LLMTimeoutError.

    `transport` lets callers (and tests) plug in any `httpx.AsyncBaseTransport`,
    e.g. `httpx.MockTransport`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport
        self._headers = dict(headers or {})

    def _deadline(self, timeout_s: float | None) -> float:
        return timeout_s if timeout_s is not None else self.timeout_s

    def _client(self, timeout_s: float | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._deadline(timeout_s),
            headers=self._headers or None,
            transport=self._transport,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response, requested_model: str | None) -> None:
        if response.status_code < 400:
            return
        detail, body = _error_detail(response)
        raise classify_status(
            response.status_code, detail, requested_model=requested_model, body=body
        )

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidJSONError(
                f"Malformed response envelope from {response.request.url.path}: {e}",
                text=response.text[:500],
            ) from e
        if not isinstance(data, dict):
            raise InvalidJSONError(
                f"Expected a JSON object from {response.request.url.path}, got {type(data).__name__}",
                text=response.text[:500],
            )
        return data

    async def request_json(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        *,
        timeout_s: float | None = None,
        requested_model: str | None = None,
    ) -> dict[str, Any]:
        logger.debug("%s %s%s", method, self.base_url, path)
        try:
            async with asyncio.timeout(self._deadline(timeout_s)):
                async with self._client(timeout_s) as client:
                    response = await client.request(method, path, json=payload)
        except (httpx.HTTPError, OSError) as exc:
            raise classify_transport_exception(exc) from exc

        self._raise_for_status(response, requested_model)
        return self._decode(response)

    async def post_json(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        timeout_s: float | None = None,
        requested_model: str | None = None,
    ) -> dict[str, Any]:
        return await self.request_json(
            "POST", path, payload, timeout_s=timeout_s, requested_model=requested_model
        )

    async def get_json(self, path: str, *, timeout_s: float | None = None) -> dict[str, Any]:
        return await self.request_json("GET", path, timeout_s=timeout_s)

    async def stream_lines(
        self,
        path: str,
        payload: dict[str, Any],
        on_line: LineHandler,
        *,
        timeout_s: float | None = None,
        requested_model: str | None = None,
    ) -> None:
        """POST `payload` and hand every newline-delimited chunk to `on_line` as it arrives."""
        logger.debug("POST %s%s (stream)", self.base_url, path)
        try:
            async with asyncio.timeout(self._deadline(timeout_s)):
                async with self._client(timeout_s) as client:
                    async with client.stream("POST", path, json=payload) as response:
                        if response.status_code >= 400:
                            await response.aread()
                            self._raise_for_status(response, requested_model)
                        async for line in response.aiter_lines():
                            await on_line(line)
        except (httpx.HTTPError, OSError) as exc:
            raise classify_transport_exception(exc) from exc
