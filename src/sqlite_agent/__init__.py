"""Goal-driven tool-calling agent that can persist its findings into SQLite."""

__version__ = "0.1.0"

from .errors import (  # noqa: E402
    AgentError,
    ConfigurationError,
    ParseError,
    RepeatedFailure,
    StorageError,
    ToolInvocationError,
)
from .runner import Goal, GoalRunner, agent_version, run  # noqa: E402

__all__ = [
    "AgentError",
    "ConfigurationError",
    "Goal",
    "GoalRunner",
    "ParseError",
    "RepeatedFailure",
    "StorageError",
    "ToolInvocationError",
    "__version__",
    "agent_version",
    "run",
]
