#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tool registry and execution for autonomy.

The session only knows tools through the :class:`ToolExecutor` protocol.
:class:`ToolRegistry` is the bundled implementation: concrete file, shell and
search tools are registered by the embedding application, and only the
``attempt_completion`` signal tool is available out of the box.
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Protocol

from autonomy.debug_logger import get_logger
from autonomy.models.conversation import ToolDefinition

COMPLETION_TOOL = "attempt_completion"

ToolFunction = Callable[[Dict[str, Any]], str]


class ToolNotFoundError(KeyError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown tool: {self.name}"


class ToolExecutionError(RuntimeError):
    """A tool ran and failed; ``output`` carries whatever it produced first."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


class ToolExecutor(Protocol):
    def execute(self, name: str, args: Dict[str, Any]) -> str:
        ...


ATTEMPT_COMPLETION_DEFINITION = ToolDefinition(
    name=COMPLETION_TOOL,
    description=(
        "Mark the task as finished and give the final summary of what was "
        "accomplished in the result field"
    ),
    input_schema={
        "type": "object",
        "properties": {
            "result": {
                "type": "string",
                "description": "What was accomplished",
            },
        },
        "required": ["result"],
    },
)


def _unwrap_arguments(args: Any) -> Dict[str, Any]:
    # Some models wrap tool args one level deep, e.g. {"arguments": {...}}.
    while isinstance(args, dict) and len(args) == 1 and isinstance(args.get("arguments"), dict):
        args = args["arguments"]
    if isinstance(args, dict):
        return dict(args)
    if args is None:
        return {}
    return {"raw_arguments": args}


class ToolRegistry:
    """Name -> (definition, function) dispatch table."""

    def __init__(self, include_completion: bool = True):
        self._tools: Dict[str, ToolFunction] = {}
        self._definitions: Dict[str, ToolDefinition] = {}
        self._last_succeeded = True
        self._call_seq = 0
        self._state_lock = threading.Lock()
        if include_completion:
            self.register(ATTEMPT_COMPLETION_DEFINITION, self._attempt_completion)

    def register(self, definition: ToolDefinition, func: ToolFunction, replace: bool = False) -> None:
        """Register ``func(args) -> str`` under ``definition.name``."""
        if definition.name in self._tools and not replace:
            raise ValueError(f"Tool '{definition.name}' is already registered")
        self._tools[definition.name] = func
        self._definitions[definition.name] = definition

    def unregister(self, name: str) -> None:
        if name not in self._tools:
            raise ToolNotFoundError(name)
        del self._tools[name]
        del self._definitions[name]

    def definitions(self) -> List[ToolDefinition]:
        return list(self._definitions.values())

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def last_succeeded(self) -> bool:
        return self._last_succeeded

    def record_failure(self, name: str) -> None:
        """Mark the latest call as failed, e.g. after the caller gave up on it.

        A call still running in an abandoned thread can no longer change the
        outcome seen by ``attempt_completion``.
        """
        with self._state_lock:
            self._call_seq += 1
            self._last_succeeded = False
        get_logger().log("tools", "TOOL_FAILURE_RECORDED", {"tool": name}, "DEBUG")

    def _begin_call(self) -> int:
        with self._state_lock:
            self._call_seq += 1
            return self._call_seq

    def _finish_call(self, seq: int, succeeded: bool) -> None:
        # Only the most recent call may update the flag.
        with self._state_lock:
            if seq == self._call_seq:
                self._last_succeeded = succeeded

    def execute(self, name: str, args: Optional[Dict[str, Any]] = None) -> str:
        """Execute a tool and return its output.

        Raises:
            ToolNotFoundError: no such tool
            ToolExecutionError: the tool failed
        """
        debug_logger = get_logger()
        seq = self._begin_call()
        handler = self._tools.get(name)
        if handler is None:
            self._finish_call(seq, False)
            debug_logger.log_tool_execution(name, {}, error=f"Unknown tool: {name}")
            raise ToolNotFoundError(name)

        args = _unwrap_arguments(args)
        start_time = time.time()
        try:
            result = handler(args)
        except ToolExecutionError as e:
            self._finish_call(seq, False)
            debug_logger.log_tool_execution(name, args, error=str(e))
            raise
        except Exception as e:
            self._finish_call(seq, False)
            error_msg = f"{type(e).__name__}: {e}"
            debug_logger.log_tool_execution(name, args, error=error_msg)
            raise ToolExecutionError(error_msg) from e

        self._finish_call(seq, True)
        result = "" if result is None else str(result)
        duration = (time.time() - start_time) * 1000
        debug_logger.log("tools", "TOOL_DURATION", {"tool": name, "duration_ms": round(duration, 1)}, "DEBUG")
        debug_logger.log_tool_execution(name, args, result)
        return result

    def _attempt_completion(self, args: Dict[str, Any]) -> str:
        # Only the previous call is checked.
        if not self._last_succeeded:
            raise ToolExecutionError("cannot complete task: last operation failed")
        result = str(args.get("result") or "").strip()
        if result:
            return f"Task completed:\n\n{result}"
        return "Task completed!"
