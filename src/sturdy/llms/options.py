from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Runtime sampling options accepted by the backend, validated before a request is sent.
"""

from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidRequestError


class ModelOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    top_k: int | None = Field(default=None, ge=1)
    num_ctx: int | None = Field(default=None, ge=1)
    repeat_penalty: float | None = Field(default=None, ge=0.0, le=2.0)
    seed: int | None = None
    num_predict: int | None = None
    stop: list[str] | None = None
    tfs_z: float | None = Field(default=None, ge=0.0)
    mirostat: Literal[0, 1, 2] | None = None
    mirostat_tau: float | None = Field(default=None, ge=0.0)
    mirostat_eta: float | None = Field(default=None, ge=0.0)
    num_gpu: int | None = Field(default=None, ge=0)
    num_thread: int | None = Field(default=None, ge=1)
    num_keep: int | None = None
    typical_p: float | None = Field(default=None, ge=0.0, le=1.0)
    presence_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    frequency_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def coerce_options(
    options: ModelOptions | Mapping[str, Any] | None,
) -> ModelOptions | None:
    if options is None or isinstance(options, ModelOptions):
        return options
    try:
        return ModelOptions.model_validate(dict(options))
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid model options: {e}") from e


def merge_options(
    defaults: Mapping[str, Any],
    options: ModelOptions | Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Overlay validated caller options on top of config defaults."""
    merged = dict(defaults)
    validated = coerce_options(options)
    if validated is not None:
        merged.update(validated.to_payload())
    return merged
