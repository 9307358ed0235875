"""
Per-request workflow state.

A WorkflowState is created for every workflow request and never shared.
Its mutators enforce the ordering rules of step execution: the plan is set
once, the step index only moves forward, and each non-final step contributes
exactly one context entry, in order.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import WorkflowStateError, WorkflowTimeoutError


class Phase(str, Enum):
    """Phases a workflow moves through."""

    PLANNING = "planning"
    EXECUTING = "executing"
    FINAL_EXECUTING = "final_executing"
    COMPLETE = "complete"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETE, Phase.ERRORED)


@dataclass(frozen=True)
class PhaseRecord:
    """One entry of the phase history."""

    phase: Phase
    step_index: int
    timestamp: float


@dataclass
class WorkflowState:
    """Explicit state threaded through planning and step execution."""

    user_input: str
    steps: tuple[str, ...] = ()
    current_step_index: int = 0
    context: list[str] = field(default_factory=list)
    phase: Phase = Phase.PLANNING
    history: list[PhaseRecord] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)
    error: str | None = None
    _planned: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(PhaseRecord(self.phase, self.current_step_index, time.time()))

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def is_complete(self) -> bool:
        return self.phase == Phase.COMPLETE

    @property
    def is_final_step(self) -> bool:
        return self.total_steps > 0 and self.current_step_index == self.total_steps - 1

    @property
    def current_step(self) -> str:
        return self.steps[self.current_step_index]

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def check_deadline(self, max_duration_seconds: float | None) -> None:
        """Raise WorkflowTimeoutError once the workflow has run past its deadline."""
        if max_duration_seconds is not None and self.elapsed > max_duration_seconds:
            raise WorkflowTimeoutError(
                f"Workflow exceeded {max_duration_seconds}s at step {self.current_step_index}"
            )

    def set_plan(self, steps: list[str] | tuple[str, ...]) -> None:
        """Fix the step list. Allowed once, while planning."""
        if self._planned:
            raise WorkflowStateError("Workflow steps are immutable once planned")
        if self.phase != Phase.PLANNING:
            raise WorkflowStateError(f"Cannot set plan in phase {self.phase.value}")
        self.steps = tuple(steps)
        self._planned = True

    def advance_to(self, index: int) -> None:
        """Move the step cursor to ``index``; it never moves backwards."""
        if index < self.current_step_index:
            raise WorkflowStateError(
                f"Step index cannot regress from {self.current_step_index} to {index}"
            )
        if not 0 <= index < self.total_steps:
            raise WorkflowStateError(
                f"Step index {index} out of range for {self.total_steps} steps"
            )
        self.current_step_index = index

    def append_context(self, result: str) -> None:
        """Record the result of the current non-final step."""
        if self.phase != Phase.EXECUTING:
            raise WorkflowStateError(f"Cannot append context in phase {self.phase.value}")
        if self.is_final_step:
            raise WorkflowStateError("The final step result is streamed, not accumulated")
        if len(self.context) != self.current_step_index:
            raise WorkflowStateError(
                f"Step {self.current_step_index} already recorded a context entry"
            )
        self.context.append(result)

    def snapshot(self) -> dict[str, Any]:
        """Loggable summary of the state."""
        return {
            "phase": self.phase.value,
            "total_steps": self.total_steps,
            "current_step": self.current_step_index,
            "context_entries": len(self.context),
            "elapsed_ms": round(self.elapsed * 1000, 1),
        }
