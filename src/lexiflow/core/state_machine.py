"""
Phase machine for workflow execution with an explicit transition table.

Transitions are validated against the table and their guards before the
phase of a WorkflowState changes. Every accepted transition is appended to
the state's history.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from ..observability.logging import get_logger
from .errors import InvalidTransitionError
from .state import Phase, PhaseRecord, WorkflowState

logger = get_logger(__name__)


@dataclass(frozen=True)
class Transition:
    """Phase transition with optional guard condition."""

    from_phase: Phase
    to_phase: Phase
    guard: Callable[[WorkflowState], bool] | None = None
    description: str = ""

    def can_transition(self, state: WorkflowState) -> bool:
        """Check if transition is allowed based on guard condition."""
        if self.guard:
            return self.guard(state)
        return True


def _has_intermediate_steps(state: WorkflowState) -> bool:
    return state.total_steps > 1


def _has_steps(state: WorkflowState) -> bool:
    return state.total_steps > 0


def _is_empty_plan(state: WorkflowState) -> bool:
    return state.total_steps == 0


WORKFLOW_TRANSITIONS: tuple[Transition, ...] = (
    Transition(Phase.PLANNING, Phase.EXECUTING, _has_intermediate_steps, "start steps"),
    Transition(Phase.PLANNING, Phase.FINAL_EXECUTING, _has_steps, "single step plan"),
    Transition(Phase.PLANNING, Phase.COMPLETE, _is_empty_plan, "empty plan"),
    Transition(Phase.EXECUTING, Phase.EXECUTING, description="next step"),
    Transition(Phase.EXECUTING, Phase.FINAL_EXECUTING, description="final step"),
    Transition(Phase.FINAL_EXECUTING, Phase.COMPLETE, description="stream drained"),
    Transition(Phase.PLANNING, Phase.ERRORED, description="failure"),
    Transition(Phase.EXECUTING, Phase.ERRORED, description="failure"),
    Transition(Phase.FINAL_EXECUTING, Phase.ERRORED, description="failure"),
)


class StateMachine:
    """
    Validates and applies phase transitions on a WorkflowState.

    The machine holds no per-request data: the same instance can drive any
    number of concurrent workflows, each with its own state.
    """

    def __init__(self, name: str, transitions: tuple[Transition, ...] = WORKFLOW_TRANSITIONS):
        self.name = name
        self.transitions = transitions

    def get_valid_transitions(self, state: WorkflowState) -> list[Transition]:
        """Get all transitions allowed from the state's current phase."""
        return [
            t
            for t in self.transitions
            if t.from_phase == state.phase and t.can_transition(state)
        ]

    def can_transition(self, state: WorkflowState, to_phase: Phase) -> bool:
        return any(t.to_phase == to_phase for t in self.get_valid_transitions(state))

    def transition(self, state: WorkflowState, to_phase: Phase) -> WorkflowState:
        """Move ``state`` into ``to_phase`` or raise InvalidTransitionError."""
        if not self.can_transition(state, to_phase):
            raise InvalidTransitionError(
                f"No valid transition from '{state.phase.value}' to '{to_phase.value}'"
            )

        old_phase = state.phase
        state.phase = to_phase
        state.history.append(PhaseRecord(to_phase, state.current_step_index, time.time()))
        logger.debug(
            f"Workflow '{self.name}' transitioned from '{old_phase.value}' to '{to_phase.value}'",
            step=state.current_step_index,
        )
        return state

    def fail(self, state: WorkflowState, error: str) -> WorkflowState:
        """Transition to ERRORED, recording the error. No-op on terminal phases."""
        if state.phase.is_terminal:
            return state
        state.error = error
        return self.transition(state, Phase.ERRORED)
