"""Tool executor interface and the bundled registry."""

from autonomy.tools.registry import (
    ATTEMPT_COMPLETION_DEFINITION,
    COMPLETION_TOOL,
    ToolExecutionError,
    ToolExecutor,
    ToolNotFoundError,
    ToolRegistry,
)

__all__ = [
    "ATTEMPT_COMPLETION_DEFINITION",
    "COMPLETION_TOOL",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolNotFoundError",
    "ToolRegistry",
]
