"""Scripted steps of the Initialization and Development phases."""

from __future__ import annotations

from typing import List

from .constants import AGENT_PREFIX
from .contracts import PhaseStep, StepAction, WorkflowPhase

# Settle delays (seconds) after each send. Steps that are expected to make
# the agent generate code wait longer than plain announcements.
CHECKLIST_SETTLE = 4.0
AGENT_WORK_SETTLE = 6.0
BRANCH_SETTLE = 2.0


INITIALIZATION_STEPS: List[PhaseStep] = [
    PhaseStep(
        name="open_surface",
        phase=WorkflowPhase.INITIALIZING,
        status="Setting up environment",
        action=StepAction.OPEN_SURFACE,
    ),
    PhaseStep(
        name="announce_mode",
        phase=WorkflowPhase.SENDING_TASK,
        status="Setting agent mode",
        text="I'll be working in {agent_mode} mode for this task.",
    ),
    PhaseStep(
        name="select_model",
        phase=WorkflowPhase.SENDING_TASK,
        status="Selecting optimal AI model",
        action=StepAction.SELECT_MODEL,
        gate="preferred_models",
    ),
    PhaseStep(
        name="announce_models",
        phase=WorkflowPhase.SENDING_TASK,
        status="Selecting optimal AI model",
        text=(
            "I'll be using the most capable model available in this "
            "priority order: {model_priority}."
        ),
        gate="preferred_models",
    ),
    PhaseStep(
        name="send_task",
        phase=WorkflowPhase.SENDING_TASK,
        status="Sending initial instructions",
        text="{task_description}",
    ),
    PhaseStep(
        name="create_branch",
        phase=WorkflowPhase.CREATING_BRANCH,
        status="Creating new branch",
        action=StepAction.CREATE_BRANCH,
        text=(
            "Created new branch '{branch_name}' for this feature. "
            "Please click Continue when ready."
        ),
        gate="init_create_branch",
        settle=BRANCH_SETTLE,
    ),
]


DEVELOPMENT_STEPS: List[PhaseStep] = [
    PhaseStep(
        name="send_init",
        phase=WorkflowPhase.SENDING_TASK,
        status="Sending development checklist",
        prompt_id="init",
        prefix=AGENT_PREFIX,
    ),
    PhaseStep(
        name="send_checklist",
        phase=WorkflowPhase.SENDING_TASK,
        status="Sending development checklist",
        prompt_id="checklist",
        settle=CHECKLIST_SETTLE,
    ),
    PhaseStep(
        name="check_agent",
        phase=WorkflowPhase.CHECKING_STATUS,
        status="Checking agent progress",
        prompt_id="check_agent",
        prefix=AGENT_PREFIX,
        settle=AGENT_WORK_SETTLE,
    ),
    PhaseStep(
        name="request_tests",
        phase=WorkflowPhase.REQUESTING_TESTS,
        status="Requesting test implementation",
        prompt_id="write_tests",
        prefix=AGENT_PREFIX,
        gate="need_to_write_test",
        settle=AGENT_WORK_SETTLE,
    ),
    PhaseStep(
        name="check_tests",
        phase=WorkflowPhase.CHECKING_STATUS,
        status="Checking agent progress on tests",
        prompt_id="test_progress",
        prefix=AGENT_PREFIX,
        gate="need_to_write_test",
        settle=AGENT_WORK_SETTLE,
    ),
    PhaseStep(
        name="verify_checklist",
        phase=WorkflowPhase.VERIFYING_CHECKLIST,
        status="Verifying checklist completion",
        prompt_id="check_checklist",
        prefix=AGENT_PREFIX,
        settle=AGENT_WORK_SETTLE,
    ),
]


CONTINUE_ITERATION_STEP = PhaseStep(
    name="continue_iteration",
    phase=WorkflowPhase.CONTINUING_ITERATION,
    status="Starting iteration {iteration}",
    prompt_id="continue_iteration",
    prefix=AGENT_PREFIX,
    settle=AGENT_WORK_SETTLE,
)
