"""Error taxonomy surfaced by the agent runtime."""

from __future__ import annotations

__all__ = [
    "AgentError",
    "ConfigurationError",
    "ParseError",
    "RepeatedFailure",
    "StorageError",
    "ToolInvocationError",
]


class AgentError(RuntimeError):
    """Base error raised for agent run failures."""


class ConfigurationError(AgentError):
    """Raised when a required capability, connection, or input is missing."""


class ParseError(AgentError):
    """Raised when model output cannot be interpreted; always recovered locally."""


class ToolInvocationError(AgentError):
    """Raised when the tool collaborator cannot execute a call."""

    def __init__(self, tool_name: str, reason: str = "") -> None:
        self.tool_name = tool_name
        self.reason = reason
        message = f"Failed to execute tool {tool_name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class RepeatedFailure(AgentError):
    """Raised when the same tool error repeats past the configured threshold."""

    def __init__(self, signature: str, count: int) -> None:
        self.signature = signature
        self.count = count
        super().__init__(f"Stopping after {count} consecutive identical errors")


class StorageError(AgentError):
    """Raised when inserting rows or managing a transaction fails."""
