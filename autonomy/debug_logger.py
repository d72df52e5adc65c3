#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Centralized debug logging for autonomy.

Debug logging is off by default and is switched on with ``--debug`` or
``AUTONOMY_DEBUG=1``. Events are written as structured, JSON-annotated lines
to ``.autonomy/logs/autonomy_debug_<timestamp>.log`` so a run can be replayed
step by step: every LLM request/response, retry, tool execution, plan step and
reflection verdict.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from autonomy import config


def prune_old_logs(log_dir: Path, keep: int) -> None:
    """Remove old log files beyond the configured retention limit."""

    if keep < 1 or not log_dir.exists():
        return

    log_files = sorted(
        [path for path in log_dir.glob("*.log") if path.is_file()],
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )

    for stale_file in log_files[keep:]:
        try:
            stale_file.unlink()
        except OSError:
            continue


def _preview(value: Any, limit: int = 500) -> str:
    text = str(value) if value is not None else ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class DebugLogger:
    """Process-wide debug logger with component-specific child loggers."""

    _instance: Optional['DebugLogger'] = None
    _enabled: bool = False
    _log_file: Optional[Path] = None
    _loggers: Dict[str, logging.Logger] = {}

    def __init__(self, enabled: bool = False, log_dir: Optional[Path] = None):
        """Initialize the debug logger.

        Args:
            enabled: Whether debug logging is enabled
            log_dir: Directory to store log files (defaults to .autonomy/logs/)
        """
        self._enabled = enabled

        if enabled:
            if log_dir is None:
                log_dir = config.LOGS_DIR
            log_dir.mkdir(exist_ok=True, parents=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self._log_file = log_dir / f"autonomy_debug_{timestamp}.log"

            self._setup_logging()

            prune_old_logs(log_dir, config.LOG_RETENTION_LIMIT)

            self.log("system", "DEBUG_SESSION_START", {
                "timestamp": datetime.now().isoformat(),
                "log_file": str(self._log_file),
                "cwd": str(Path.cwd()),
            })

    @classmethod
    def initialize(cls, enabled: bool = False, log_dir: Optional[Path] = None) -> 'DebugLogger':
        """Initialize the global debug logger instance."""
        if cls._instance is None:
            cls._instance = cls(enabled, log_dir)
        return cls._instance

    @classmethod
    def get_instance(cls) -> 'DebugLogger':
        """Get the global debug logger instance."""
        if cls._instance is None:
            cls._instance = cls(enabled=False)
        return cls._instance

    def _setup_logging(self):
        formatter = logging.Formatter(
            '%(asctime)s | %(name)-22s | %(levelname)-8s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler = logging.FileHandler(self._log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)

        root_logger = logging.getLogger('autonomy')
        root_logger.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)
        root_logger.propagate = False

    def get_logger(self, component: str) -> logging.Logger:
        """Get or create a logger for a component ('llm', 'session', 'reflection', 'tools')."""
        if component not in self._loggers:
            self._loggers[component] = logging.getLogger(f'autonomy.{component}')
        return self._loggers[component]

    def log(self, component: str, event: str, data: Optional[Dict[str, Any]] = None, level: str = "INFO"):
        """Log a structured event.

        Args:
            component: Component name (e.g., 'llm', 'session')
            event: Event type/name
            data: Optional dictionary of event data
            level: Log level (DEBUG, INFO, WARNING, ERROR)
        """
        if not self._enabled:
            return

        logger = self.get_logger(component)

        message = f"[{event}]"
        if data:
            message += f" {json.dumps(data, indent=2, default=str, ensure_ascii=False)}"

        log_level = getattr(logging, level.upper(), logging.INFO)
        logger.log(log_level, message)

    def log_llm_request(self, provider: str, model: str, messages: List[Any], tools: Optional[List[Any]] = None,
                        tool_choice: Optional[str] = None):
        """Log an outgoing LLM request (neutral messages, not the wire payload)."""
        if not self._enabled:
            return

        data: Dict[str, Any] = {
            "provider": provider,
            "model": model,
            "message_count": len(messages),
            "messages": [
                {
                    "role": getattr(msg, "role", None),
                    "content": _preview(getattr(msg, "content", "")),
                    "tool_calls": [tc.name for tc in getattr(msg, "tool_calls", ())],
                }
                for msg in messages
            ],
        }
        if tools:
            data["tools"] = [getattr(tool, "name", str(tool)) for tool in tools]
        if tool_choice:
            data["tool_choice"] = tool_choice

        self.log("llm", "LLM_REQUEST", data, "DEBUG")

    def log_llm_response(self, provider: str, model: str, response: Any, fallback: bool = False):
        """Log a normalized LLM response."""
        if not self._enabled:
            return

        data: Dict[str, Any] = {
            "provider": provider,
            "model": model,
            "fallback": fallback,
            "content_preview": _preview(getattr(response, "content", "")),
            "tool_calls": [
                {"name": tc.name, "args_preview": _preview(tc.arguments, 200)}
                for tc in getattr(response, "tool_calls", ())
            ],
        }
        usage = getattr(response, "usage", None)
        if usage:
            data["usage"] = usage

        self.log("llm", "LLM_RESPONSE", data, "DEBUG")

    def log_retry(self, provider: str, attempt: int, delay: float, error: Any):
        """Log a backoff before retrying a provider call."""
        if not self._enabled:
            return

        self.log("llm", "RETRY", {
            "provider": provider,
            "attempt": attempt,
            "delay": delay,
            "error_class": getattr(getattr(error, "error_class", None), "value", None),
            "error": str(error),
        }, "WARNING")

    def log_tool_execution(self, tool_name: str, arguments: Dict[str, Any], result: Any = None,
                           error: Optional[str] = None):
        """Log a tool execution."""
        if not self._enabled:
            return

        data: Dict[str, Any] = {
            "tool": tool_name,
            "arguments": {k: _preview(v, 200) for k, v in arguments.items()},
        }

        if error:
            data["error"] = str(error)
            level = "ERROR"
        else:
            data["result_preview"] = _preview(result) if result is not None else None
            level = "DEBUG"

        self.log("tools", "TOOL_EXECUTION", data, level)

    def log_step(self, step_id: str, tool_name: str, status: str, error: Optional[str] = None):
        """Log a plan step transition."""
        if not self._enabled:
            return

        data = {"step_id": step_id, "tool": tool_name, "status": status}
        if error:
            data["error"] = error

        self.log("session", "STEP_STATUS_CHANGE", data, "INFO")

    def log_reflection(self, result: Any, source: str, success_rate: Optional[float] = None):
        """Log a reflection verdict and whether it came from the model or the rules."""
        if not self._enabled:
            return

        self.log("reflection", "REFLECTION_RESULT", {
            "source": source,
            "task_completed": getattr(result, "task_completed", None),
            "should_retry": getattr(result, "should_retry", None),
            "reason": getattr(result, "reason", None),
            "success_rate": success_rate,
        }, "INFO")

    def log_error(self, component: str, error: BaseException, context: Optional[Dict[str, Any]] = None):
        """Log an error with context."""
        if not self._enabled:
            return

        data: Dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        if context:
            data["context"] = context

        self.log(component, "ERROR", data, "ERROR")

    def _log_plain(self, level: str, msg: str, *args: Any, **kwargs: Any) -> None:
        """Forward standard logging-style calls when debug logging is enabled."""
        if not self._enabled:
            return

        logger = self.get_logger("general")
        log_level = getattr(logging, level.upper(), logging.INFO)
        logger.log(log_level, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_plain("INFO", msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_plain("WARNING", msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_plain("ERROR", msg, *args, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_plain("DEBUG", msg, *args, **kwargs)

    @property
    def enabled(self) -> bool:
        """Check if debug logging is enabled."""
        return self._enabled

    @property
    def log_file_path(self) -> Optional[Path]:
        """Get the path to the current log file."""
        return self._log_file

    def close(self):
        """Close the logger and write session end marker."""
        if self._enabled:
            self.log("system", "DEBUG_SESSION_END", {
                "timestamp": datetime.now().isoformat()
            })

            for logger in self._loggers.values():
                for handler in logger.handlers[:]:
                    handler.close()
                    logger.removeHandler(handler)

            root_logger = logging.getLogger('autonomy')
            for handler in root_logger.handlers[:]:
                handler.close()
                root_logger.removeHandler(handler)


def get_logger() -> DebugLogger:
    """Get the global debug logger instance."""
    return DebugLogger.get_instance()


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled."""
    return get_logger().enabled
