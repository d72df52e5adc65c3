#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Task session: the turn loop that drives one task to completion.

A session owns one conversation. Each attempt asks the provider for the next
turn, dispatches the requested tool calls to the executor, records every call
as a plan step and feeds the results back. When the loop stops, reflection
judges the plan and decides whether another attempt is worth making.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from autonomy.config import SessionConfig
from autonomy.core.cancellation import CancelContext, CancelledError, run_interruptible
from autonomy.debug_logger import get_logger
from autonomy.execution.prompts import (
    build_force_tools_message,
    build_system_prompt,
    format_continuation,
    format_tool_error,
    format_tool_result,
)
from autonomy.execution.reflection import ReflectionEngine, ReflectionResult
from autonomy.llm.providers.base import ErrorClass, LLMProvider, ProviderError
from autonomy.llm.tool_choice import ToolChoiceMode
from autonomy.models.conversation import (
    ROLE_TOOL,
    AIResponse,
    Message,
    PromptData,
    ToolCall,
    ToolDefinition,
)
from autonomy.models.plan import ExecutionPlan
from autonomy.tools.registry import ATTEMPT_COMPLETION_DEFINITION, ToolExecutionError, ToolExecutor

# Provider replies that are handled as a turn without tool calls.
_EMPTY_TURN_ERRORS = (ErrorClass.EMPTY_RESPONSE, ErrorClass.MALFORMED_RESPONSE)


class StopReason(Enum):
    """Why an attempt's turn loop ended."""
    COMPLETION = "completion"
    ANSWERED = "answered"
    NO_TOOLS = "no_tools"
    TURN_LIMIT = "turn_limit"


class TaskFailedError(Exception):
    """The task was aborted by a provider failure."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, fatal: bool = False):
        super().__init__(message)
        self.cause = cause
        self.fatal = fatal


@dataclass
class TaskOutcome:
    completed: bool
    attempts: int
    stop_reason: StopReason
    reflection: Optional[ReflectionResult] = None
    plan: ExecutionPlan = field(default_factory=ExecutionPlan)
    final_message: str = ""

    @property
    def reason(self) -> str:
        return self.reflection.reason if self.reflection else ""

    @property
    def answered(self) -> bool:
        """The model answered a question in free text."""
        return self.stop_reason is StopReason.ANSWERED


class TaskSession:
    """Drives a single task through one or more attempts.

    Not thread-safe: one session is driven by one thread. Providers hold no
    per-session state and can be shared between sessions.
    """

    def __init__(
        self,
        provider: LLMProvider,
        executor: ToolExecutor,
        tools: Optional[List[ToolDefinition]] = None,
        config: Optional[SessionConfig] = None,
        reflection: Optional[ReflectionEngine] = None,
        system_prompt: Optional[str] = None,
        context_provider: Optional[Callable[[], str]] = None,
    ):
        self.provider = provider
        self.executor = executor
        if tools is None:
            definitions = getattr(executor, "definitions", None)
            tools = definitions() if callable(definitions) else [ATTEMPT_COMPLETION_DEFINITION]
        self.tools: List[ToolDefinition] = list(tools)
        self.config = config or SessionConfig()
        self.reflection = reflection or ReflectionEngine(provider)
        self.completion_tool = self.reflection.config.completion_tool
        self.plans: List[ExecutionPlan] = []

        self._base_system_prompt = system_prompt
        self._context_provider = context_provider
        self._system_prompt: Optional[str] = None
        self._messages: List[Message] = []
        self._task = ""
        self._ctx = CancelContext.background()
        self._closed = False
        self._last_api_call: Optional[float] = None

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    @property
    def task(self) -> str:
        return self._task

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def closed(self) -> bool:
        return self._closed

    def set_task(self, text: str) -> None:
        """Set the original task and add it to the conversation."""
        self._check_open()
        text = (text or "").strip()
        if not text:
            raise ValueError("Task text must not be empty")
        self._task = text
        self.add_user_message(text)

    def add_user_message(self, text: str) -> None:
        self._check_open()
        self._append(Message.user(text))

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        self._trim_history()

    def _trim_history(self) -> None:
        """Drop the oldest turns beyond max_history_size, keeping the first message."""
        limit = self.config.max_history_size
        if len(self._messages) <= limit:
            return

        excess = len(self._messages) - limit
        kept = [self._messages[0]] + self._messages[1 + excess:]
        # A tool result whose assistant call was trimmed cannot be sent on its own.
        dropped_orphans = 0
        while len(kept) > 1 and kept[1].role == ROLE_TOOL:
            del kept[1]
            dropped_orphans += 1

        self._messages = kept
        get_logger().log("session", "HISTORY_TRIMMED", {
            "removed": excess + dropped_orphans,
            "remaining": len(kept),
        }, "DEBUG")

    def system_prompt(self) -> str:
        """System prompt, with the project context computed on first use."""
        if self._system_prompt is None:
            project_context = self._context_provider() if self._context_provider else ""
            self._system_prompt = build_system_prompt(self._base_system_prompt, project_context)
        return self._system_prompt

    # ------------------------------------------------------------------
    # Task loop
    # ------------------------------------------------------------------

    def process_task(self, ctx: Optional[CancelContext] = None) -> TaskOutcome:
        """Run attempts until reflection accepts the result or the budget is spent.

        Raises:
            TaskFailedError: a provider call failed
            CancelledError: ``ctx`` was cancelled or the session was closed
            RuntimeError: the session is closed
            ValueError: no task has been set
        """
        self._check_open()
        if not self._task:
            raise ValueError("No task set; call set_task() first")

        run_ctx = self._ctx.child()
        unregister = ctx.on_cancel(lambda: run_ctx.cancel(ctx.reason or "cancelled")) if ctx else None
        debug_logger = get_logger()
        try:
            outcome = None
            for attempt in range(1, self.config.max_attempts + 1):
                plan = ExecutionPlan()
                self.plans.append(plan)
                debug_logger.log("session", "ATTEMPT_START", {"attempt": attempt, "task": self._task[:200]})

                stop_reason, final_message = self._run_attempt(run_ctx, plan)
                run_ctx.raise_if_cancelled()

                verdict = self.reflection.evaluate_completion(plan, self._task, run_ctx)
                run_ctx.raise_if_cancelled()
                outcome = TaskOutcome(
                    completed=verdict.task_completed,
                    attempts=attempt,
                    stop_reason=stop_reason,
                    reflection=verdict,
                    plan=plan,
                    final_message=final_message,
                )
                debug_logger.log("session", "ATTEMPT_END", {
                    "attempt": attempt,
                    "stop_reason": stop_reason.value,
                    "plan": plan.to_dict(),
                    "verdict": verdict.to_dict(),
                })

                if verdict.task_completed or not verdict.should_retry:
                    return outcome
                if attempt < self.config.max_attempts:
                    self._append(Message.user(
                        format_continuation(self.config.continuation_message, verdict.reason)
                    ))

            debug_logger.warning(f"Giving up after {self.config.max_attempts} attempts")
            return outcome
        finally:
            if unregister is not None:
                unregister()
            run_ctx.release()

    def _run_attempt(self, ctx: CancelContext, plan: ExecutionPlan):
        no_tool_count = 0
        final_message = ""

        for turn in range(1, self.config.max_turns + 1):
            ctx.raise_if_cancelled()
            prompt = self._build_prompt()
            response = self._call_model(ctx, prompt)

            message = response.to_message()
            if not message.is_empty:
                self._append(message)
            if response.content:
                final_message = response.content

            if not response.tool_calls:
                if self._is_free_text_allowed(prompt):
                    return StopReason.ANSWERED, final_message

                no_tool_count += 1
                get_logger().log("session", "NO_TOOL_CALLS", {"turn": turn, "count": no_tool_count}, "WARNING")
                if no_tool_count >= self.config.max_no_tool_attempts:
                    return StopReason.NO_TOOLS, final_message
                self._append(Message.user(build_force_tools_message(self.tools)))
                continue

            no_tool_count = 0
            if self._execute_tools(ctx, plan, response.tool_calls):
                return StopReason.COMPLETION, final_message

        get_logger().warning(f"Reached turn limit of {self.config.max_turns}")
        return StopReason.TURN_LIMIT, final_message

    def _build_prompt(self) -> PromptData:
        return PromptData(
            system_prompt=self.system_prompt(),
            messages=list(self._messages),
            tools=list(self.tools),
        )

    def _is_free_text_allowed(self, prompt: PromptData) -> bool:
        mode = self.provider.determine_tool_choice(prompt)
        return mode is None or mode is ToolChoiceMode.AUTO

    def _enforce_rate_limit(self, ctx: CancelContext) -> None:
        if self._last_api_call is not None:
            wait_time = self.config.min_api_interval - (time.monotonic() - self._last_api_call)
            if wait_time > 0 and ctx.wait(wait_time):
                ctx.raise_if_cancelled()
        self._last_api_call = time.monotonic()

    def _call_model(self, ctx: CancelContext, prompt: PromptData) -> AIResponse:
        self._enforce_rate_limit(ctx)
        try:
            with ctx.child(self.config.ai_call_timeout) as call_ctx:
                return self.provider.generate_code(prompt, call_ctx)
        except CancelledError as e:
            if ctx.cancelled:
                raise
            timeout_error = ProviderError(
                ErrorClass.TIMEOUT,
                f"AI call timed out after {self.config.ai_call_timeout}s",
                original_error=e,
            )
            raise TaskFailedError(str(timeout_error), cause=timeout_error) from e
        except ProviderError as e:
            if e.error_class in _EMPTY_TURN_ERRORS:
                get_logger().log("session", "EMPTY_TURN", {"error": str(e)}, "WARNING")
                return AIResponse()
            raise TaskFailedError(f"AI error: {e}", cause=e, fatal=e.fatal) from e

    def _execute_tools(self, ctx: CancelContext, plan: ExecutionPlan, calls: List[ToolCall]) -> bool:
        """Run calls in order; True once the completion tool succeeds."""
        debug_logger = get_logger()
        max_lines = self.config.tool_output_lines

        for index, call in enumerate(calls):
            ctx.raise_if_cancelled()
            args = {"raw_arguments": call.arguments} if call.has_raw_arguments else call.args
            step_id = plan.add_step(call.name, args)
            debug_logger.log_step(step_id, call.name, "pending")

            output, error = self._run_tool(ctx, call.name, args)

            if error is not None:
                plan.fail_step(step_id, error)
                debug_logger.log_step(step_id, call.name, "failed", error)
                self._append(Message.tool_result(
                    call.id, format_tool_error(call.name, error, output, max_lines)
                ))
                continue

            plan.complete_step(step_id, output)
            debug_logger.log_step(step_id, call.name, "completed")
            self._append(Message.tool_result(call.id, format_tool_result(call.name, output, max_lines)))

            if call.name == self.completion_tool:
                # Every call id needs a result before the conversation can continue.
                for skipped in calls[index + 1:]:
                    self._append(Message.tool_result(
                        skipped.id, f"Skipped {skipped.name}: the task was already completed"
                    ))
                return True

        return False

    def _run_tool(self, ctx: CancelContext, name: str, args):
        """Return ``(output, error)``; ``error`` is None on success."""
        timeout = self.config.tool_timeout
        try:
            with ctx.child(timeout) as tool_ctx:
                return run_interruptible(tool_ctx, self.executor.execute, name, args), None
        except CancelledError:
            if ctx.cancelled:
                raise
            self._record_tool_failure(name)
            return "", f"tool {name} timed out after {timeout}s"
        except ToolExecutionError as e:
            return e.output or "", str(e)
        except Exception as e:
            self._record_tool_failure(name)
            return "", f"{type(e).__name__}: {e}"

    def _record_tool_failure(self, name: str) -> None:
        # Executors without the hook only see their own failures.
        record = getattr(self.executor, "record_failure", None)
        if callable(record):
            record(name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("TaskSession is closed")

    def close(self) -> None:
        """Cancel in-flight work; the session cannot be used afterwards."""
        if self._closed:
            return
        self._closed = True
        self._ctx.cancel("session closed")

    def __enter__(self) -> "TaskSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
