"""
Workflow engine: retry policy, step planning, step execution and the
orchestrator that streams results and progress.

Only the dependency-free building blocks are re-exported here; import the
service modules (``orchestrator``, ``chat``) directly.
"""

from .errors import (
    InvalidTransitionError,
    LexiflowError,
    ProviderError,
    WorkflowError,
    WorkflowStateError,
    WorkflowTimeoutError,
)
from .progress import DataPart, FinishPart, ProgressChannel, ProgressEvent, StreamPart, TextPart
from .state import Phase, WorkflowState
from .state_machine import StateMachine, Transition

__all__ = [
    "DataPart",
    "FinishPart",
    "InvalidTransitionError",
    "LexiflowError",
    "Phase",
    "ProgressChannel",
    "ProgressEvent",
    "ProviderError",
    "StateMachine",
    "StreamPart",
    "TextPart",
    "Transition",
    "WorkflowError",
    "WorkflowState",
    "WorkflowStateError",
    "WorkflowTimeoutError",
]
