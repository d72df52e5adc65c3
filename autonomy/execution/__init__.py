"""Task execution: the session turn loop and reflection."""

from autonomy.execution.reflection import ReflectionEngine, ReflectionParseError, ReflectionResult
from autonomy.execution.session import StopReason, TaskFailedError, TaskOutcome, TaskSession

__all__ = [
    "ReflectionEngine",
    "ReflectionParseError",
    "ReflectionResult",
    "StopReason",
    "TaskFailedError",
    "TaskOutcome",
    "TaskSession",
]
