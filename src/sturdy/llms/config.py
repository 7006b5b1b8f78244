from __future__ import annotations
import json
import os
from pathlib import Path

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Client configuration: defaults, environment variables and JSON config files.
"""
from dataclasses import dataclass, fields, replace
from typing import Any

from .errors import LLMConfigurationError


@dataclass(frozen=True, slots=True)
class LLMConfig:
    # Backend
    base_url: str = "http://localhost:11434"
    model: str = "llama3.1:8b"
    embedding_model: str | None = None

    # Reliability
    timeout_s: float = 30.0
    max_retries: int = 2
    backoff_base: float = 2.0
    backoff_jitter_s: float = 0.0

    # Remediation for missing models
    auto_pull: bool = True
    pull_timeout_s: float = 300.0

    # Default sampling options sent with every request
    temperature: float = 0.2
    top_p: float = 0.9
    num_ctx: int = 8192

    def __post_init__(self) -> None:
        if not self.base_url:
            raise LLMConfigurationError("base_url must not be empty")
        if self.timeout_s <= 0:
            raise LLMConfigurationError("timeout_s must be positive")
        if self.max_retries < 0:
            raise LLMConfigurationError("max_retries must be >= 0")
        if self.backoff_base < 0 or self.backoff_jitter_s < 0:
            raise LLMConfigurationError("backoff settings must be >= 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def default_options(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "num_ctx": self.num_ctx,
        }

    def with_overrides(self, **overrides: Any) -> "LLMConfig":
        return replace(self, **overrides)

    @staticmethod
    def from_env() -> "LLMConfig":
        return LLMConfig(
            base_url=os.getenv("STURDY_BASE_URL", "http://localhost:11434"),
            model=os.getenv("STURDY_MODEL", "llama3.1:8b"),
            embedding_model=os.getenv("STURDY_EMBED_MODEL"),
            timeout_s=float(os.getenv("STURDY_TIMEOUT_S", "30")),
            max_retries=int(os.getenv("STURDY_MAX_RETRIES", "2")),
            backoff_base=float(os.getenv("STURDY_BACKOFF_BASE", "2")),
            backoff_jitter_s=float(os.getenv("STURDY_BACKOFF_JITTER_S", "0")),
            auto_pull=os.getenv("STURDY_AUTO_PULL", "true").strip().lower()
            not in ("0", "false", "no", "off"),
            pull_timeout_s=float(os.getenv("STURDY_PULL_TIMEOUT_S", "300")),
            temperature=float(os.getenv("STURDY_TEMPERATURE", "0.2")),
            top_p=float(os.getenv("STURDY_TOP_P", "0.9")),
            num_ctx=int(os.getenv("STURDY_NUM_CTX", "8192")),
        )

    @staticmethod
    def from_json_file(path: str | os.PathLike[str]) -> "LLMConfig":
        """
        Load configuration from a JSON object file.
        Keys not listed are left at their defaults; unknown keys are an error.
        """
        p = Path(path)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise LLMConfigurationError(f"Config file not found: {p}") from e
        except json.JSONDecodeError as e:
            raise LLMConfigurationError(f"Failed to parse config JSON {p}: {e}") from e

        if not isinstance(data, dict):
            raise LLMConfigurationError(f"Config file {p} must contain a JSON object")

        known = {f.name for f in fields(LLMConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise LLMConfigurationError(
                f"Unknown config keys in {p}: {', '.join(unknown)}"
            )
        try:
            return LLMConfig(**data)
        except TypeError as e:
            raise LLMConfigurationError(f"Invalid config in {p}: {e}") from e


_default_config: LLMConfig | None = None


def get_default_config() -> LLMConfig:
    """
    Return the process-wide default config, building it from the environment on first use.

    Swapping the default with `set_default_config` while clients are being built on other
    threads is not synchronized. Clients copy the reference when constructed.
    """
    global _default_config
    if _default_config is None:
        _default_config = LLMConfig.from_env()
    return _default_config


def set_default_config(config: LLMConfig | None) -> None:
    global _default_config
    _default_config = config
