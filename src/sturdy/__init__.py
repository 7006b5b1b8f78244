"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

sturdy: resilient structured output and tool-calling conversations against
Ollama-style inference servers.
"""

from __future__ import annotations

from .agents import ConversationExecutor, ConversationPhase, ConversationResult, Planner
from .llms import (
    ChatResponse,
    Client,
    LLMConfig,
    LLMError,
    ModelMissingError,
    RetryExhaustedError,
    StreamError,
    ValidatedResult,
)
from .tools import Tool, ToolRegistry, tool

__version__ = "0.1.0"

__all__ = [
    "ChatResponse",
    "Client",
    "ConversationExecutor",
    "ConversationPhase",
    "ConversationResult",
    "LLMConfig",
    "LLMError",
    "ModelMissingError",
    "Planner",
    "RetryExhaustedError",
    "StreamError",
    "Tool",
    "ToolRegistry",
    "ValidatedResult",
    "tool",
]
