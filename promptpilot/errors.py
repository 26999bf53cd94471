"""Error taxonomy for promptpilot workflows."""

from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow errors."""


class WorkflowCancelled(WorkflowError):
    """Raised at a checkpoint once the run has been stopped."""

    def __init__(self, message: str = "Workflow cancelled") -> None:
        super().__init__(message)


class AlreadyRunning(WorkflowError):
    """Raised when ``start`` is called while a run is active."""

    def __init__(self, message: str = "Workflow is already running") -> None:
        super().__init__(message)


class AgentModelError(WorkflowError):
    """The agent's active model failed; recoverable by switching models."""

    def __init__(self, message: str = "Agent model failed", model: Optional[str] = None) -> None:
        super().__init__(message)
        self.model = model


class TransportCommunicationError(WorkflowError):
    """Communication with the chat surface failed."""

    def __init__(
        self, message: str = "Failed to communicate with the chat interface"
    ) -> None:
        super().__init__(message)


class GitOperationError(WorkflowError):
    """A git operation failed."""

    def __init__(self, message: str = "Git operation failed") -> None:
        super().__init__(message)


class PromptLoadError(WorkflowError):
    """A prompt template could not be loaded."""

    def __init__(self, template_id: str, reason: Optional[str] = None) -> None:
        message = f"Failed to load prompt '{template_id}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.template_id = template_id


class ConfigurationError(WorkflowError):
    """Configuration is invalid or unreadable."""

    def __init__(self, message: str = "Invalid configuration") -> None:
        super().__init__(message)


class WorkflowTimeout(WorkflowError):
    """Reserved: steps rely on settle delays and never time out today."""

    def __init__(self, message: str = "Workflow operation timed out") -> None:
        super().__init__(message)


__all__ = [
    "WorkflowError",
    "WorkflowCancelled",
    "AlreadyRunning",
    "AgentModelError",
    "TransportCommunicationError",
    "GitOperationError",
    "PromptLoadError",
    "ConfigurationError",
    "WorkflowTimeout",
]
