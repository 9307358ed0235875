"""Exception hierarchy shared by providers, the orchestrator and the API layer."""


class LexiflowError(Exception):
    """Base class for all service errors."""


class ProviderError(LexiflowError):
    """A model provider call failed, optionally with an HTTP status code."""

    def __init__(self, message: str, status_code: int | None = None, provider: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider

    def __str__(self) -> str:
        prefix = f"[{self.provider}] " if self.provider else ""
        status = f" (status {self.status_code})" if self.status_code is not None else ""
        return f"{prefix}{self.args[0]}{status}"


class MalformedResponseError(ProviderError):
    """The provider answered but the payload could not be interpreted."""


class WorkflowError(LexiflowError):
    """Workflow execution failed."""


class WorkflowStateError(WorkflowError):
    """An operation would break a WorkflowState invariant."""


class InvalidTransitionError(WorkflowStateError):
    """A phase transition is not in the transition table."""


class WorkflowTimeoutError(WorkflowError):
    """The workflow exceeded its configured deadline."""
