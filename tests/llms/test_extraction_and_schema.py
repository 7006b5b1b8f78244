from __future__ import annotations

import time

import pytest

from sturdy.llms.errors import InvalidJSONError, InvalidRequestError, SchemaViolationError
from sturdy.llms.extraction import ResponseExtractor, find_json_fragment, strip_code_fence
from sturdy.llms.schema import SchemaValidator, close_object_schemas
from sturdy.llms.structured import (
    enhance_prompt_for_json,
    extract_and_validate,
    make_repair_instruction,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"a": 1}', {"a": 1}),
        ('\ufeff  {"a": 1}\n', {"a": 1}),
        ("```json\n{\"a\": 1}\n```", {"a": 1}),
        ("~~~\n[1, 2]\n~~~", [1, 2]),
        ("Here you go: {\"a\": {\"b\": \"}\"}} hope it helps", {"a": {"b": "}"}}),
        ("```json\n{\"a\": 1}", {"a": 1}),
        ("42", 42),
        ("prefix [broken {\"ok\": true} suffix", {"ok": True}),
    ],
)
def test_extractor_recovers_json(raw, expected):
    assert ResponseExtractor().extract(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "{unterminated"])
def test_extractor_rejects_text_without_json(raw):
    with pytest.raises(InvalidJSONError):
        ResponseExtractor().extract(raw)


def test_strip_code_fence_returns_none_without_fence():
    assert strip_code_fence("plain text") is None
    assert strip_code_fence("```python\nx = 1\n```") == "x = 1"


def test_find_json_fragment_respects_string_escapes():
    assert find_json_fragment('say {"q": "a \\"quoted\\" }"} end') == {"q": 'a "quoted" }'}
    with pytest.raises(ValueError):
        find_json_fragment("nothing")


def test_find_json_fragment_prefers_earliest_parseable_container():
    assert find_json_fragment('see [note {"ok": true}] and {"later": 1}') == {"ok": True}
    assert find_json_fragment('oops ] then [1, 2} {"b": 2}') == {"b": 2}
    assert find_json_fragment('"quoted prose" {"a": "b"}') == {"a": "b"}


def test_truncated_output_fails_fast():
    truncated = "Here you go: " + '{"a": [' * 4000

    started = time.perf_counter()
    with pytest.raises(InvalidJSONError):
        ResponseExtractor().extract(truncated)

    assert time.perf_counter() - started < 1.0


def test_close_object_schemas_is_deep_and_non_destructive():
    schema = {
        "type": "object",
        "properties": {
            "inner": {"type": "object", "properties": {"x": {"type": "integer"}}},
            "items": {"type": "array", "items": {"type": "object", "properties": {}}},
            "open": {"type": "object", "additionalProperties": True},
        },
        "$defs": {"Ref": {"properties": {"y": {"type": "string"}}}},
        "anyOf": [{"type": "object"}],
    }

    closed = close_object_schemas(schema)

    assert closed["additionalProperties"] is False
    assert closed["properties"]["inner"]["additionalProperties"] is False
    assert closed["properties"]["items"]["items"]["additionalProperties"] is False
    assert closed["properties"]["open"]["additionalProperties"] is True
    assert closed["$defs"]["Ref"]["additionalProperties"] is False
    assert closed["anyOf"][0]["additionalProperties"] is False
    assert "additionalProperties" not in schema


def test_validator_reports_constraint_and_path():
    validator = SchemaValidator(
        {
            "type": "object",
            "required": ["items"],
            "properties": {
                "items": {"type": "array", "items": {"type": "integer", "minimum": 0}}
            },
        }
    )

    assert validator.is_valid({"items": [1, 2]})

    with pytest.raises(SchemaViolationError) as exc_info:
        validator.validate({"items": [1, -5]})
    err = exc_info.value
    assert err.constraint == "minimum"
    assert err.path == "$.items[1]"
    assert err.instance == -5

    with pytest.raises(SchemaViolationError) as exc_info:
        validator.validate({"items": [], "extra": 1})
    assert exc_info.value.constraint == "additionalProperties"


def test_invalid_schema_is_an_invalid_request():
    with pytest.raises(InvalidRequestError):
        SchemaValidator({"type": 12})


def test_repair_instruction_names_the_failure():
    violation = SchemaViolationError(
        "bad", constraint="required", path="$.user", detail="'age' is a required property"
    )
    text = make_repair_instruction(violation)

    assert text.startswith("CRITICAL FIX: Your last response was invalid or violated the schema.")
    assert "'age' is a required property at $.user (violated 'required')" in text
    assert text.endswith("Return ONLY valid JSON.")

    invalid = InvalidJSONError("Response is not valid JSON: hello")
    assert "Response is not valid JSON: hello" in make_repair_instruction(invalid)


def test_prompt_enhancement_lists_required_fields():
    schema = {
        "type": "object",
        "required": ["name", "tags"],
        "properties": {"name": {"type": "string"}, "tags": {"type": "array"}},
    }

    enhanced = enhance_prompt_for_json("Describe the item", schema)

    assert enhanced.startswith("Describe the item\n\nCRITICAL: Respond with ONLY valid JSON")
    assert 'Required fields: ["name", "tags"]' in enhanced
    assert '"name": "string_value"' in enhanced
    assert enhance_prompt_for_json("Describe the item", None) == "Describe the item"


def test_extract_and_validate_without_schema_returns_parsed_value():
    assert extract_and_validate("```\n{\"a\": [1]}\n```", None) == {"a": [1]}
