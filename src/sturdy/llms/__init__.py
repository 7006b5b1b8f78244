from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Resilient client for Ollama-style inference servers.
"""

from .client import Client
from .config import LLMConfig, get_default_config, set_default_config
from .errors import (
    HTTPStatusError,
    InvalidJSONError,
    InvalidRequestError,
    LLMConfigurationError,
    LLMError,
    LLMInvalidResponseError,
    LLMTimeoutError,
    ModelMissingError,
    RetryExhaustedError,
    SchemaViolationError,
    StreamError,
    UnreachableError,
)
from .observability import LLMLifecycleEvent, LLMObserver
from .options import ModelOptions
from .types import (
    AttemptRecord,
    ChatResponse,
    EmbeddingResponse,
    FinalEvent,
    Message,
    ModelInfo,
    ResultMeta,
    StateEvent,
    StreamEvent,
    TokenEvent,
    ToolCall,
    ToolCallDetectedEvent,
    ToolCallDiagnostic,
    Usage,
    ValidatedResult,
)

__all__ = [
    "AttemptRecord",
    "ChatResponse",
    "Client",
    "EmbeddingResponse",
    "FinalEvent",
    "HTTPStatusError",
    "InvalidJSONError",
    "InvalidRequestError",
    "LLMConfig",
    "LLMConfigurationError",
    "LLMError",
    "LLMInvalidResponseError",
    "LLMLifecycleEvent",
    "LLMObserver",
    "LLMTimeoutError",
    "Message",
    "ModelInfo",
    "ModelMissingError",
    "ModelOptions",
    "ResultMeta",
    "RetryExhaustedError",
    "SchemaViolationError",
    "StateEvent",
    "StreamError",
    "StreamEvent",
    "TokenEvent",
    "ToolCall",
    "ToolCallDetectedEvent",
    "ToolCallDiagnostic",
    "UnreachableError",
    "Usage",
    "ValidatedResult",
    "get_default_config",
    "set_default_config",
]
