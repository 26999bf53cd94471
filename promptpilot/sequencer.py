"""Phase sequencer: executes the scripted steps of a workflow run."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .config import WorkflowConfig
from .constants import (
    COMPLETION_QUERY,
    MODEL_SWITCH_NOTICE,
    OPEN_SURFACE_ATTEMPTS,
    OPEN_SURFACE_INTERVAL,
)
from .continuation import ContinuationStrategy, get_continuation, reached_ceiling
from .contracts import PhaseStep, StepAction, TransportResult, WorkflowPhase
from .errors import (
    AgentModelError,
    GitOperationError,
    TransportCommunicationError,
    WorkflowCancelled,
)
from .fallback import ModelFallbackSelector
from .git import GitCollaborator
from .models import WorkflowRun
from .phases import CONTINUE_ITERATION_STEP, DEVELOPMENT_STEPS, INITIALIZATION_STEPS
from .prompts import PromptStore
from .transports import BaseChatTransport
from .utils.retry import retry_until_accepted

if TYPE_CHECKING:
    from .engine import WorkflowEngine

logger = logging.getLogger(__name__)


class PhaseSequencer:
    """Runs the Initialization and Development phases step by step.

    Every step passes the engine's checkpoint before it runs, so pause and
    stop requests take effect between steps. The sequencer never decides the
    run's final state; it returns normally on success and lets errors reach
    the engine's run boundary.
    """

    def __init__(
        self,
        engine: "WorkflowEngine",
        transport: BaseChatTransport,
        prompts: PromptStore,
        git: Optional[GitCollaborator] = None,
        selector: Optional[ModelFallbackSelector] = None,
        continuation: Optional[ContinuationStrategy] = None,
    ) -> None:
        self._engine = engine
        self._transport = transport
        self._prompts = prompts
        self._git = git
        self._selector = selector or ModelFallbackSelector(transport)
        self._continuation = continuation

    async def run(self, run: WorkflowRun) -> None:
        self._selector.reset()
        await self.initialize(run)
        await self.develop(run)

    # ------------------------------------------------------------------
    # Phases
    async def initialize(self, run: WorkflowRun) -> None:
        config = self._engine.snapshot_config(run)
        try:
            await self._run_steps(run, INITIALIZATION_STEPS, config)
        except WorkflowCancelled:
            raise
        except Exception as e:
            self._engine.set_phase(run, WorkflowPhase.ERROR, f"Setup failed: {e}")
            raise
        # A "continue" issued during setup only shortens the setup waits
        run.consume_advance()

    async def develop(self, run: WorkflowRun) -> None:
        try:
            while True:
                config = self._engine.snapshot_config(run)
                forced = await self._run_steps(
                    run, DEVELOPMENT_STEPS, config, interruptible=True
                )
                await self._engine.checkpoint(run)
                if not await self._should_continue(run, config, forced):
                    logger.info(f"Development finished after iteration {run.iteration}")
                    return

                self._engine.next_iteration(run)
                await self._engine.checkpoint(run)
                await self._execute_step(run, CONTINUE_ITERATION_STEP, config)
                run.consume_advance()
        except WorkflowCancelled:
            raise
        except Exception as e:
            self._engine.set_phase(
                run, WorkflowPhase.ERROR, f"Development workflow error: {e}"
            )
            raise

    async def _run_steps(
        self,
        run: WorkflowRun,
        steps: List[PhaseStep],
        config: WorkflowConfig,
        interruptible: bool = False,
    ) -> bool:
        """Execute ``steps`` in order.

        Returns ``True`` when an operator "continue" ended the pass early.
        """
        for step in steps:
            await self._engine.checkpoint(run)
            if interruptible and run.consume_advance():
                logger.info(f"Pass ended early before step {step.name}")
                return True
            if not step.is_enabled(config):
                logger.debug(f"Skipping step {step.name}: {step.gate} is disabled")
                continue
            await self._execute_step(run, step, config)
        return interruptible and run.consume_advance()

    # ------------------------------------------------------------------
    # Steps
    async def _execute_step(
        self, run: WorkflowRun, step: PhaseStep, config: WorkflowConfig
    ) -> None:
        context = self._context(run, config)
        status = step.status.format(**context)
        if step in DEVELOPMENT_STEPS and run.iteration > 0:
            status = f"{status} (iteration #{run.iteration})"
        self._engine.set_phase(run, step.phase, status)
        logger.info(f"Running step {step.name} (run {run.run_id})")

        if step.action is StepAction.OPEN_SURFACE:
            await self._open_surface(run, config)
        elif step.action is StepAction.SELECT_MODEL:
            run.active_model_index = await self._selector.select_initial(
                config.preferred_models
            )
        elif step.action is StepAction.CREATE_BRANCH:
            await self._create_branch(run, step, config, context)
        else:
            text = await self._message(step, context)
            await self.deliver(run, text, config)

        await run.settle(step.settle * config.settle_scale)

    async def _open_surface(self, run: WorkflowRun, config: WorkflowConfig) -> None:
        focus = not run.background_mode
        result = await retry_until_accepted(
            lambda: self._transport.open_surface(focus),
            attempts=OPEN_SURFACE_ATTEMPTS,
            interval=OPEN_SURFACE_INTERVAL * config.settle_scale,
        )
        if result.is_rejected:
            raise TransportCommunicationError(
                f"Could not open chat surface: {result.reason}"
            )
        if not result.is_accepted:
            logger.warning("Chat surface did not confirm it is open; continuing")

    async def _create_branch(
        self,
        run: WorkflowRun,
        step: PhaseStep,
        config: WorkflowConfig,
        context: Dict[str, Any],
    ) -> None:
        if self._git is None:
            raise GitOperationError("Branch creation requested but no git collaborator is configured")
        branch_name = await self._git.create_and_checkout_branch()
        if not branch_name:
            logger.warning("Git collaborator did not report a branch name")
            return
        text = step.render({**context, "branch_name": branch_name})
        await self.deliver(run, step.prefix + text, config)

    async def _message(self, step: PhaseStep, context: Dict[str, Any]) -> str:
        if step.prompt_id:
            body = await self._prompts.load(step.prompt_id)
        else:
            body = step.render(context)
        return step.prefix + body

    def _context(self, run: WorkflowRun, config: WorkflowConfig) -> Dict[str, Any]:
        return {
            "agent_mode": config.agent_mode.value,
            "model_priority": config.model_priority,
            "task_description": config.task_description,
            "iteration": run.iteration,
        }

    # ------------------------------------------------------------------
    # Sending
    async def send(self, run: WorkflowRun, text: str) -> TransportResult:
        """Send one message and record it as activity.

        Raises:
            TransportCommunicationError: If the transport rejected the message.
            AgentModelError: If the active model failed.
        """
        result = await self._transport.send(text, run.background_mode)
        if result.is_rejected:
            raise TransportCommunicationError(f"Message rejected: {result.reason}")
        if not result.is_accepted:
            logger.debug("Transport did not confirm delivery")
        self._engine.record_activity(run)
        return result

    async def deliver(
        self, run: WorkflowRun, text: str, config: Optional[WorkflowConfig] = None
    ) -> TransportResult:
        """Send ``text``, switching models and retrying on model failures.

        Raises:
            AgentModelError: If every preferred model has failed.
            TransportCommunicationError: If the transport rejected the message.
        """
        config = config or run.config
        while True:
            try:
                return await self.send(run, text)
            except AgentModelError as e:
                await self._recover_model(run, config, e)

    async def _recover_model(
        self, run: WorkflowRun, config: WorkflowConfig, error: AgentModelError
    ) -> None:
        models = config.preferred_models
        logger.warning(f"Model failure: {error}")
        next_index = await self._selector.handle_failure(run.active_model_index, models)
        if next_index is None:
            raise AgentModelError("All preferred models failed") from error

        run.active_model_index = next_index
        notice = MODEL_SWITCH_NOTICE.format(model=models[next_index])
        try:
            await self.send(run, notice)
        except AgentModelError as again:
            await self._recover_model(run, config, again)

    # ------------------------------------------------------------------
    # Continuation
    async def _should_continue(
        self, run: WorkflowRun, config: WorkflowConfig, forced: bool
    ) -> bool:
        if reached_ceiling(run.iteration, config.max_iterations):
            logger.info(f"Max iterations ({config.max_iterations}) reached")
            return False
        if forced:
            return True

        result = await self.deliver(run, COMPLETION_QUERY, config)
        strategy = self._continuation or get_continuation(config.continuation_policy)
        return strategy.should_continue(result.reply, run.iteration)
