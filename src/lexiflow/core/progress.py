"""
Progress channel and the stream parts multiplexed onto a response.

The orchestrator yields StreamPart values: model text as TextPart, progress
and error frames as DataPart. The API layer encodes them onto the wire.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..observability.logging import get_logger
from .errors import WorkflowStateError
from .state import WorkflowState

logger = get_logger(__name__)

WORKFLOW_FAILED_MESSAGE = "Workflow processing failed"


@dataclass(frozen=True)
class TextPart:
    """A fragment of model output."""

    text: str


@dataclass(frozen=True)
class DataPart:
    """A JSON data frame (progress or error event)."""

    value: dict[str, Any]


@dataclass(frozen=True)
class ErrorPart:
    """A stream-level error message."""

    message: str


@dataclass(frozen=True)
class FinishPart:
    """Terminates a response stream."""

    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)


StreamPart = TextPart | DataPart | ErrorPart | FinishPart


class ProgressEvent(BaseModel):
    """Snapshot of workflow progress as seen by the client."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    workflow_steps: list[str] = Field(alias="workflowSteps")
    current_step: int = Field(alias="currentStep", ge=0)
    is_complete: bool = Field(alias="isComplete")

    @classmethod
    def from_state(cls, state: WorkflowState, is_complete: bool = False) -> "ProgressEvent":
        return cls(
            workflow_steps=list(state.steps),
            current_step=state.current_step_index,
            is_complete=is_complete,
        )

    def to_frame(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ProgressChannel:
    """
    Per-request sink for progress events.

    When disabled, progress events are dropped but error frames are still
    produced. Emitted frames are recorded in ``events`` in emission order.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.events: list[dict[str, Any]] = []
        self._last_step: int | None = None
        self._completed = False

    def publish(self, state: WorkflowState, is_complete: bool = False) -> DataPart | None:
        """Build the progress frame for ``state``; None when progress is disabled."""
        if self._completed:
            raise WorkflowStateError("No progress events may follow completion")

        if is_complete:
            self._completed = True
        else:
            if self._last_step is not None and state.current_step_index <= self._last_step:
                raise WorkflowStateError(
                    f"Progress must advance past step {self._last_step}, "
                    f"got {state.current_step_index}"
                )
            self._last_step = state.current_step_index

        if not self.enabled:
            return None

        frame = ProgressEvent.from_state(state, is_complete).to_frame()
        self.events.append(frame)
        logger.debug(
            "Progress event",
            current_step=frame["currentStep"],
            is_complete=frame["isComplete"],
        )
        return DataPart(frame)

    def complete(self, state: WorkflowState) -> DataPart | None:
        return self.publish(state, is_complete=True)

    def fail(self, message: str = WORKFLOW_FAILED_MESSAGE) -> DataPart:
        """Build the error frame; emitted whether or not progress is enabled."""
        frame = {"error": message}
        self.events.append(frame)
        self._completed = True
        return DataPart(frame)

    @property
    def progress_events(self) -> list[dict[str, Any]]:
        return [event for event in self.events if "error" not in event]
