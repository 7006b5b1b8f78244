"""
Agent-layer error taxonomy.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base exception for conversation-loop failures."""
    pass


class AgentConfigurationError(AgentError):
    """
    Raised when the conversation loop is configured incorrectly.

    Typical cases:
    - max_steps below 1
    - tools that are neither Tool objects, a ToolRegistry, nor callables
    """
    pass
