from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

JSON-Schema enforcement for structured responses.

Caller schemas are closed before validation: every object subschema that does not
say otherwise gets `additionalProperties: false`, so undeclared keys are violations.
"""

import logging
from copy import deepcopy
from typing import Any, Mapping

from jsonschema import Draft202012Validator, exceptions as jsonschema_exceptions

from .errors import InvalidRequestError, SchemaViolationError
from .types import JSONSchema

logger = logging.getLogger(__name__)

_SUBSCHEMA_LISTS = ("anyOf", "oneOf", "allOf", "prefixItems")
_SUBSCHEMA_MAPS = ("properties", "patternProperties", "$defs", "definitions", "dependentSchemas")
_SUBSCHEMA_SINGLE = ("not", "if", "then", "else", "contains", "propertyNames", "unevaluatedItems")


def _is_object_node(node: Mapping[str, Any]) -> bool:
    declared = node.get("type")
    if declared == "object":
        return True
    if isinstance(declared, list) and "object" in declared:
        return True
    return declared is None and "properties" in node


def _close(node: Any) -> None:
    if isinstance(node, list):
        for item in node:
            _close(item)
        return
    if not isinstance(node, dict):
        return

    if _is_object_node(node) and "additionalProperties" not in node:
        node["additionalProperties"] = False

    for key in _SUBSCHEMA_MAPS:
        children = node.get(key)
        if isinstance(children, dict):
            for child in children.values():
                _close(child)
    for key in _SUBSCHEMA_LISTS:
        _close(node.get(key))
    for key in _SUBSCHEMA_SINGLE:
        _close(node.get(key))

    # `items` may be a single schema or (draft-07 style) a tuple of schemas
    _close(node.get("items"))

    extra = node.get("additionalProperties")
    if isinstance(extra, dict):
        _close(extra)


def close_object_schemas(schema: Mapping[str, Any]) -> JSONSchema:
    """Return a deep copy of `schema` with open object nodes closed."""
    closed = deepcopy(dict(schema))
    _close(closed)
    return closed


def check_schema(schema: Mapping[str, Any]) -> None:
    if not isinstance(schema, Mapping):
        raise InvalidRequestError(f"Schema must be a JSON object, got {type(schema).__name__}")
    try:
        Draft202012Validator.check_schema(dict(schema))
    except jsonschema_exceptions.SchemaError as exc:
        logger.error("Rejected caller schema: %s", exc.message)
        raise InvalidRequestError(f"Invalid JSON schema: {exc.message}") from exc


def _json_path(error: jsonschema_exceptions.ValidationError) -> str:
    path = "$"
    for part in error.absolute_path:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


class SchemaValidator:
    """Validates parsed values against a caller schema (Draft 2020-12)."""

    def __init__(self, schema: Mapping[str, Any], *, close_objects: bool = True) -> None:
        check_schema(schema)
        self.schema: JSONSchema = (
            close_object_schemas(schema) if close_objects else deepcopy(dict(schema))
        )
        self._validator = Draft202012Validator(self.schema)

    def validate(self, value: Any) -> Any:
        error = jsonschema_exceptions.best_match(self._validator.iter_errors(value))
        if error is None:
            return value

        path = _json_path(error)
        raise SchemaViolationError(
            f"Schema violation at {path}: {error.message}",
            constraint=str(error.validator),
            path=path,
            detail=error.message,
            instance=error.instance,
        )

    def is_valid(self, value: Any) -> bool:
        return self._validator.is_valid(value)
