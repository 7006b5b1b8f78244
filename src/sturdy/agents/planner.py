"""
Stateless planner: one structured `generate` call per request.

Intended for planning, classification and routing decisions where the answer is
a JSON value rather than a conversation.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Mapping

from ..llms.normalization import to_jsonable
from ..llms.structured import SchemaLike
from ..llms.types import ValidatedResult

if TYPE_CHECKING:
    from ..llms.client import Client


ANY_JSON_SCHEMA: dict[str, Any] = {
    "anyOf": [
        {"type": "object", "additionalProperties": True},
        {"type": "array"},
        {"type": "string"},
        {"type": "number"},
        {"type": "integer"},
        {"type": "boolean"},
        {"type": "null"},
    ]
}


class Planner:
    def __init__(self, client: "Client", *, system_prompt: str | None = None) -> None:
        self.client = client
        self.system_prompt = system_prompt

    def build_prompt(
        self,
        prompt: str,
        *,
        context: Mapping[str, Any] | None = None,
        system_prompt: str | None = None,
    ) -> str:
        system = system_prompt or self.system_prompt
        full = str(prompt)
        if system:
            full = f"{system}\n\n{full}"
        if context:
            rendered = json.dumps(to_jsonable(dict(context)), indent=2, ensure_ascii=False)
            full = f"{full}\n\nContext (JSON):\n{rendered}"
        return full

    async def run_with_meta(
        self,
        prompt: str,
        *,
        context: Mapping[str, Any] | None = None,
        schema: SchemaLike | None = None,
        system_prompt: str | None = None,
        model: str | None = None,
    ) -> ValidatedResult:
        return await self.client.generate(
            self.build_prompt(prompt, context=context, system_prompt=system_prompt),
            schema=schema if schema is not None else ANY_JSON_SCHEMA,
            model=model,
        )

    async def run(
        self,
        prompt: str,
        *,
        context: Mapping[str, Any] | None = None,
        schema: SchemaLike | None = None,
        system_prompt: str | None = None,
        model: str | None = None,
    ) -> Any:
        """Return the parsed JSON value (object, array or scalar)."""
        result = await self.run_with_meta(
            prompt, context=context, schema=schema, system_prompt=system_prompt, model=model
        )
        return result.data
