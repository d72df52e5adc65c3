#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Reflection: decide whether a task attempt finished and whether to retry it.

The verdict comes from the model when a provider is available. Whenever that
call fails, times out or returns something unreadable, a deterministic rule
over the execution plan takes over, so evaluation never raises for a valid
plan.
"""

import re
from dataclasses import dataclass
from typing import Optional

from autonomy.config import ReflectionConfig
from autonomy.core.cancellation import CancelContext, CancelledError
from autonomy.debug_logger import get_logger
from autonomy.llm.providers.base import LLMProvider, ProviderError
from autonomy.models.plan import ExecutionPlan, StepStatus

EVALUATION_INSTRUCTIONS = """
Please evaluate if the original task was completed successfully.

Answer in this format:
COMPLETED: yes/no
REASON: brief explanation
RETRY: yes/no (if task should be retried)

Consider:
- Did we achieve the original goal?
- Are there critical errors that prevent completion?
- Is the task in a good final state?
"""

DEFAULT_REASON = "NO REASON GIVEN"

# Optional bullet and markdown emphasis before the label, e.g. "- **COMPLETED:** yes".
_LABEL_RE = re.compile(
    r"^[\s>*_#-]*(COMPLETED|REASON|RETRY)[\s*_]*:[\s*_]*(.*)$",
    re.IGNORECASE,
)
_AFFIRMATIVE = ("yes", "true")


class ReflectionParseError(ValueError):
    """The model reply contains none of the expected labels."""


@dataclass
class ReflectionResult:
    task_completed: bool
    should_retry: bool
    reason: str

    def to_dict(self):
        return {
            "task_completed": self.task_completed,
            "should_retry": self.should_retry,
            "reason": self.reason,
        }


def _is_affirmative(value: str) -> bool:
    words = value.strip().strip("*_`.").lower().split()
    return bool(words) and words[0].strip("*_`.,") in _AFFIRMATIVE


class ReflectionEngine:
    """Judges an execution plan against the original task."""

    def __init__(self, provider: Optional[LLMProvider] = None, config: Optional[ReflectionConfig] = None):
        self.provider = provider
        self.config = config or ReflectionConfig()

    def evaluate_completion(self, plan: ExecutionPlan, original_task: str,
                            ctx: Optional[CancelContext] = None) -> ReflectionResult:
        """Return the verdict for ``plan``.

        Raises:
            TypeError: if ``plan`` is not an ExecutionPlan
        """
        if not isinstance(plan, ExecutionPlan):
            raise TypeError(f"evaluate_completion expects an ExecutionPlan, got {type(plan).__name__}")

        debug_logger = get_logger()
        success_rate = plan.success_rate()

        if self.provider is None:
            result = self.simple_evaluation(plan)
            debug_logger.log_reflection(result, "fallback", success_rate)
            return result

        parent = ctx or CancelContext.background()
        prompt = self.build_evaluation_prompt(plan, original_task)
        try:
            with parent.child(self.config.timeout) as call_ctx:
                reply = self.provider.complete_prompt(prompt, call_ctx)
            result = self.parse_response(reply)
        except (ProviderError, CancelledError, ReflectionParseError) as e:
            debug_logger.log("reflection", "FALLBACK", {
                "error_type": type(e).__name__,
                "error": str(e),
            }, "WARNING")
            result = self.simple_evaluation(plan)
            debug_logger.log_reflection(result, "fallback", success_rate)
            return result

        debug_logger.log_reflection(result, "model", success_rate)
        return result

    def build_evaluation_prompt(self, plan: ExecutionPlan, original_task: str) -> str:
        lines = [f"ORIGINAL TASK: {original_task}", "", "EXECUTION RESULTS:"]
        for index, step in enumerate(plan, start=1):
            line = f"{index}. {step.tool_name} - {step.status.value}"
            if step.error:
                line += f" (Error: {step.error})"
            lines.append(line)
        if not len(plan):
            lines.append("(no steps were executed)")

        lines.append("")
        lines.append(f"SUCCESS RATE: {plan.completed_count}/{len(plan)} steps completed")
        return "\n".join(lines) + "\n" + EVALUATION_INSTRUCTIONS

    def parse_response(self, response: str) -> ReflectionResult:
        """Parse the three labelled lines from ``response``.

        Raises:
            ReflectionParseError: if none of the labels is present
        """
        found = {}
        for raw_line in (response or "").splitlines():
            match = _LABEL_RE.match(raw_line.strip())
            if not match:
                continue
            label = match.group(1).upper()
            # First occurrence wins.
            found.setdefault(label, match.group(2).strip().rstrip("*_").strip())

        if not found:
            raise ReflectionParseError("reflection reply has no COMPLETED/REASON/RETRY labels")

        completed = _is_affirmative(found.get("COMPLETED", ""))
        retry = _is_affirmative(found.get("RETRY", ""))
        reason = found.get("REASON", "").upper() or DEFAULT_REASON
        if completed:
            retry = False
        return ReflectionResult(task_completed=completed, should_retry=retry, reason=reason)

    def simple_evaluation(self, plan: ExecutionPlan) -> ReflectionResult:
        """Rule-based verdict from step outcomes alone."""
        total = len(plan)
        completed = plan.completed_count
        completion_tool = self.config.completion_tool
        has_completion_step = plan.has_step(completion_tool)
        success_rate = plan.success_rate()

        if plan.has_completed_step(completion_tool) and not plan.has_failures:
            return ReflectionResult(
                task_completed=True,
                should_retry=False,
                reason=f"Task completed: {completion_tool} succeeded ({completed}/{total} steps)",
            )

        if total and success_rate >= self.config.complete_threshold and not has_completion_step:
            return ReflectionResult(
                task_completed=True,
                should_retry=False,
                reason=f"Task completed successfully ({completed}/{total} steps)",
            )

        if total and success_rate >= self.config.retry_threshold:
            return ReflectionResult(
                task_completed=False,
                should_retry=True,
                reason=f"Partial completion ({completed}/{total} steps) - may need continuation",
            )

        if not total:
            reason = "No steps were executed"
        else:
            reason = f"Low completion rate ({completed}/{total} steps) - significant issues"
        return ReflectionResult(task_completed=False, should_retry=False, reason=reason)
