"""Core contracts shared by the engine, sequencer and transports."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, model_validator

if TYPE_CHECKING:
    from .config import WorkflowConfig


class WorkflowPhase(str, Enum):
    """Named stage of the workflow state machine."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    CREATING_BRANCH = "creating-branch"
    SENDING_TASK = "sending-task"
    CHECKING_STATUS = "checking-status"
    REQUESTING_TESTS = "requesting-tests"
    VERIFYING_CHECKLIST = "verifying-checklist"
    CONTINUING_ITERATION = "continuing-iteration"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowPhase.COMPLETED, WorkflowPhase.ERROR)

    @property
    def is_active(self) -> bool:
        """``True`` for phases in which the agent is being driven."""
        return self not in (
            WorkflowPhase.IDLE,
            WorkflowPhase.PAUSED,
            WorkflowPhase.COMPLETED,
            WorkflowPhase.ERROR,
        )


class OperatorCommand(str, Enum):
    """Commands an operator can issue to the engine."""

    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"
    RESTART = "restart"
    CONTINUE = "continue"


class ResultStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class TransportResult(BaseModel):
    """Outcome of a single transport operation."""

    model_config = ConfigDict(frozen=True)

    status: ResultStatus
    reason: Optional[str] = None
    reply: Optional[str] = None

    @classmethod
    def accepted(cls, reply: Optional[str] = None) -> "TransportResult":
        return cls(status=ResultStatus.ACCEPTED, reply=reply)

    @classmethod
    def rejected(cls, reason: str) -> "TransportResult":
        return cls(status=ResultStatus.REJECTED, reason=reason)

    @classmethod
    def unknown(cls) -> "TransportResult":
        return cls(status=ResultStatus.UNKNOWN)

    @property
    def is_accepted(self) -> bool:
        return self.status is ResultStatus.ACCEPTED

    @property
    def is_rejected(self) -> bool:
        return self.status is ResultStatus.REJECTED


class StepAction(str, Enum):
    SEND = "send"
    OPEN_SURFACE = "open-surface"
    SELECT_MODEL = "select-model"
    CREATE_BRANCH = "create-branch"


class PhaseStep(BaseModel):
    """One scripted interaction with the agent.

    Exactly one of ``prompt_id`` or ``text`` supplies the message for send
    steps. Literal text may reference ``{agent_mode}``, ``{model_priority}``,
    ``{task_description}`` and ``{branch_name}``. ``gate`` names a boolean
    (or truthy) field of :class:`WorkflowConfig` that must be set for the
    step to run.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    phase: WorkflowPhase
    status: str
    action: StepAction = StepAction.SEND
    prompt_id: Optional[str] = None
    text: Optional[str] = None
    prefix: str = ""
    gate: Optional[str] = None
    settle: float = 0.0

    @model_validator(mode="after")
    def _check_message_source(self) -> "PhaseStep":
        if self.prompt_id and self.text:
            raise ValueError(f"Step {self.name} defines both prompt_id and text")
        if self.action is StepAction.SEND and not (self.prompt_id or self.text):
            raise ValueError(f"Send step {self.name} needs a prompt_id or text")
        return self

    def is_enabled(self, config: "WorkflowConfig") -> bool:
        if self.gate is None:
            return True
        return bool(getattr(config, self.gate))

    def render(self, context: Dict[str, Any]) -> str:
        """Format literal text with ``context``."""
        return (self.text or "").format(**context)
