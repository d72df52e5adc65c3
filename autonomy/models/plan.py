#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Execution plan models: the record of tool invocations in one task attempt."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class StepStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidStepTransition(RuntimeError):
    """A step was moved out of a terminal state."""


@dataclass
class ExecutionStep:
    """One attempted tool invocation."""

    id: str
    tool_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    status: StepStatus = StepStatus.PENDING
    result: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not StepStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "args": self.args,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class ExecutionPlan:
    """Ordered, append-only list of steps for one attempt.

    Step order is dispatch order. Only PENDING -> COMPLETED and
    PENDING -> FAILED are legal; touching a finished step again raises
    :class:`InvalidStepTransition` since it would skew the success rate.
    """

    def __init__(self):
        self._steps: List[ExecutionStep] = []
        self._index: Dict[str, ExecutionStep] = {}

    def add_step(self, tool_name: str, args: Optional[Dict[str, Any]] = None) -> str:
        step_id = f"step_{len(self._steps) + 1}"
        step = ExecutionStep(id=step_id, tool_name=tool_name, args=dict(args or {}))
        self._steps.append(step)
        self._index[step_id] = step
        return step_id

    def get_step(self, step_id: str) -> ExecutionStep:
        try:
            return self._index[step_id]
        except KeyError:
            raise KeyError(f"Unknown step id: {step_id}") from None

    def _finish(self, step_id: str, status: StepStatus) -> ExecutionStep:
        step = self.get_step(step_id)
        if step.is_terminal:
            raise InvalidStepTransition(
                f"{step_id} ({step.tool_name}) is already {step.status.value}; "
                f"cannot mark it {status.value}"
            )
        step.status = status
        step.finished_at = datetime.now()
        return step

    def complete_step(self, step_id: str, result: Optional[str] = None) -> None:
        step = self._finish(step_id, StepStatus.COMPLETED)
        step.result = result

    def fail_step(self, step_id: str, error: Any) -> None:
        step = self._finish(step_id, StepStatus.FAILED)
        step.error = str(error) if error is not None else "unknown error"

    @property
    def steps(self) -> List[ExecutionStep]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self):
        return iter(list(self._steps))

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self._steps if s.status is StepStatus.COMPLETED)

    @property
    def failed_count(self) -> int:
        return sum(1 for s in self._steps if s.status is StepStatus.FAILED)

    @property
    def pending_count(self) -> int:
        return sum(1 for s in self._steps if s.status is StepStatus.PENDING)

    @property
    def has_failures(self) -> bool:
        return self.failed_count > 0

    def success_rate(self) -> float:
        """Completed / total; an empty plan has a rate of 0."""
        if not self._steps:
            return 0.0
        return self.completed_count / len(self._steps)

    def has_completed_step(self, tool_name: str) -> bool:
        return any(
            s.tool_name == tool_name and s.status is StepStatus.COMPLETED for s in self._steps
        )

    def has_step(self, tool_name: str) -> bool:
        return any(s.tool_name == tool_name for s in self._steps)

    def get_summary(self) -> str:
        lines = [
            f"{len(self._steps)} steps: {self.completed_count} completed, "
            f"{self.failed_count} failed, {self.pending_count} pending"
        ]
        for step in self._steps:
            line = f"  {step.id} {step.tool_name}: {step.status.value}"
            if step.error:
                line += f" ({step.error})"
            lines.append(line)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steps": [s.to_dict() for s in self._steps],
            "success_rate": self.success_rate(),
        }
