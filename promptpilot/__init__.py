"""promptpilot: drive a conversational coding agent through a scripted workflow."""

from .config import PilotConfig, WorkflowConfig, load_config
from .contracts import OperatorCommand, PhaseStep, TransportResult, WorkflowPhase
from .engine import WorkflowEngine
from .models import WorkflowRun
from .monitor import IdleMonitor
from .prompts import get_prompt_store
from .status import StatusPublisher
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "IdleMonitor",
    "OperatorCommand",
    "PhaseStep",
    "PilotConfig",
    "StatusPublisher",
    "TransportResult",
    "WorkflowConfig",
    "WorkflowEngine",
    "WorkflowPhase",
    "WorkflowRun",
    "get_prompt_store",
    "get_transport",
    "load_config",
]
