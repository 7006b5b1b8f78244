from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Structured output helpers: schema resolution, prompt enhancement, extract + validate,
and the correction instruction used by the repair loop.
"""
import json
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError

from .errors import LLMInvalidResponseError, SchemaViolationError
from .extraction import ResponseExtractor
from .schema import SchemaValidator
from .types import JSONSchema
from .utils import clamp_str

SchemaLike = Mapping[str, Any] | type[BaseModel]

_PLACEHOLDERS: dict[str, Any] = {
    "string": "string_value",
    "number": 0,
    "integer": 0,
    "boolean": True,
    "array": [],
}


def resolve_schema(schema: SchemaLike | None) -> JSONSchema | None:
    """Accept a JSON schema mapping or a Pydantic model class."""
    if schema is None:
        return None
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_json_schema()
    return dict(schema)


def summarize_schema(schema: Mapping[str, Any] | None) -> str:
    if not isinstance(schema, Mapping):
        return "object"

    required = list(schema.get("required") or [])
    properties = schema.get("properties") or {}
    if not required and not properties:
        return "object"

    example: dict[str, Any] = {}
    for key in required:
        prop = properties.get(key) or {}
        example[key] = _PLACEHOLDERS.get(prop.get("type"), {})

    required_list = ", ".join(f'"{k}"' for k in required)
    return f"Required fields: [{required_list}]. Example structure:\n{json.dumps(example, indent=2)}"


def enhance_prompt_for_json(prompt: str, schema: Mapping[str, Any] | None) -> str:
    """
    Append an explicit JSON-only instruction unless the prompt already talks about JSON.
    """
    if schema is None or "json" in prompt.lower():
        return prompt
    instruction = (
        "CRITICAL: Respond with ONLY valid JSON (no markdown code blocks, no explanations). "
        f"The JSON must include these exact required fields: {summarize_schema(schema)}"
    )
    return f"{prompt}\n\n{instruction}"


def make_repair_instruction(error: LLMInvalidResponseError) -> str:
    """Correction text naming the concrete failure of the previous attempt."""
    if isinstance(error, SchemaViolationError):
        reason = error.detail or error.message
        where = f" at {error.path}" if error.path and error.path != "$" else ""
        cause = f"{reason}{where} (violated '{error.constraint}')"
    else:
        cause = error.message
    return (
        "CRITICAL FIX: Your last response was invalid or violated the schema. "
        f"Error: {clamp_str(cause, 500)}. Return ONLY valid JSON."
    )


def append_repair_instruction(prompt: str, error: LLMInvalidResponseError) -> str:
    return f"{prompt}\n\n{make_repair_instruction(error)}"


def extract_and_validate(
    raw_text: str,
    schema: SchemaLike | None,
    *,
    validator: SchemaValidator | None = None,
) -> Any:
    """
    Recover JSON from `raw_text` and validate it.

    Raises InvalidJSONError when nothing parses and SchemaViolationError when the
    parsed value does not conform. A Pydantic model class yields a model instance.
    """
    value = ResponseExtractor().extract(raw_text)
    if schema is None:
        return value

    validator = validator or SchemaValidator(resolve_schema(schema) or {})
    validator.validate(value)

    if isinstance(schema, type) and issubclass(schema, BaseModel):
        try:
            return schema.model_validate(value)
        except ValidationError as e:
            raise SchemaViolationError(
                f"Response does not satisfy {schema.__name__}: {e}",
                constraint="model",
                detail=str(e),
                instance=value,
            ) from e
    return value
