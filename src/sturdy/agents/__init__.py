"""
Conversation loop and planner built on the resilient client.
"""

from __future__ import annotations

from .errors import AgentConfigurationError, AgentError
from .executor import ConversationExecutor, as_registry
from .planner import ANY_JSON_SCHEMA, Planner
from .types import (
    ConversationPhase,
    ConversationResult,
    ConversationState,
    ToolExecutionRecord,
    UsageAggregate,
)

__all__ = [
    "ANY_JSON_SCHEMA",
    "AgentConfigurationError",
    "AgentError",
    "ConversationExecutor",
    "ConversationPhase",
    "ConversationResult",
    "ConversationState",
    "Planner",
    "ToolExecutionRecord",
    "UsageAggregate",
    "as_registry",
]
