"""Workflow state machine driving a conversational coding agent."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional, Union

from .config import WorkflowConfig
from .constants import PAUSE_POLL_INTERVAL, RESTART_GRACE_DELAY
from .continuation import ContinuationStrategy
from .contracts import OperatorCommand, WorkflowPhase
from .errors import AlreadyRunning, WorkflowCancelled
from .fallback import ModelFallbackSelector
from .git import GitCollaborator
from .models import WorkflowRun
from .prompts import PromptStore, get_prompt_store
from .sequencer import PhaseSequencer
from .status import StatusPublisher
from .transports import BaseChatTransport

logger = logging.getLogger(__name__)

ConfigSource = Callable[[], WorkflowConfig]
ConfigListener = Callable[[WorkflowConfig], None]


class WorkflowEngine:
    """Owns the current :class:`WorkflowRun` and its run/pause/stop flags.

    One engine is constructed per process and handed to whatever needs it
    (CLI, idle monitor, observers). All operations run on a single asyncio
    loop; the sequencer yields to :meth:`checkpoint` between steps so that
    pause and stop take effect there.
    """

    def __init__(
        self,
        transport: BaseChatTransport,
        prompts: Optional[PromptStore] = None,
        git: Optional[GitCollaborator] = None,
        publisher: Optional[StatusPublisher] = None,
        continuation: Optional[ContinuationStrategy] = None,
        config_source: Optional[ConfigSource] = None,
        clock: Callable[[], float] = time.monotonic,
        pause_interval: float = PAUSE_POLL_INTERVAL,
        restart_grace: float = RESTART_GRACE_DELAY,
    ) -> None:
        self.transport = transport
        self.publisher = publisher or StatusPublisher()
        self.clock = clock
        self.selector = ModelFallbackSelector(transport)
        self.sequencer = PhaseSequencer(
            self,
            transport,
            prompts or get_prompt_store(),
            git=git,
            selector=self.selector,
            continuation=continuation,
        )
        self._config_source = config_source
        self._pause_interval = pause_interval
        self._restart_grace = restart_grace
        self._run = WorkflowRun()
        self._task: Optional[asyncio.Task] = None
        self._config_listeners: List[ConfigListener] = []

    # ------------------------------------------------------------------
    # Queries
    @property
    def run(self) -> WorkflowRun:
        return self._run

    def is_running(self) -> bool:
        return self._run.running

    def is_paused(self) -> bool:
        return self._run.paused

    def current_phase(self) -> WorkflowPhase:
        return self._run.phase

    def iteration_count(self) -> int:
        return self._run.iteration

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self, config: Optional[WorkflowConfig] = None) -> None:
        """Run a workflow to its end.

        Raises:
            AlreadyRunning: If a run is already active.
        """
        run = self._begin(config)
        await self._execute(run)

    def launch(self, config: Optional[WorkflowConfig] = None) -> asyncio.Task:
        """Start a run in a background task and return the task."""
        run = self._begin(config)
        self._task = asyncio.create_task(self._execute(run))
        return self._task

    async def join(self) -> None:
        """Wait for the most recently launched run to finish."""
        if self._task is not None:
            await self._task

    def pause(self) -> None:
        run = self._run
        if not run.running or run.paused:
            return
        run.paused = True
        run.block_resume()
        self._publish(run, WorkflowPhase.PAUSED, "Workflow paused")

    def resume(self) -> None:
        run = self._run
        if not run.running or not run.paused:
            return
        run.paused = False
        run.release_resume()
        self._publish(run, WorkflowPhase.INITIALIZING, "Workflow resumed")

    def stop(self) -> None:
        run = self._run
        if not run.running:
            return
        run.running = False
        run.paused = False
        run.iteration = 0
        run.release_resume()
        self._publish(run, WorkflowPhase.IDLE, "Workflow stopped")

    async def restart(self, config: Optional[WorkflowConfig] = None) -> asyncio.Task:
        self.stop()
        await asyncio.sleep(self._restart_grace)
        return self.launch(config)

    def continue_(self, config: Optional[WorkflowConfig] = None) -> Optional[asyncio.Task]:
        """Advance the workflow without a full pause/resume cycle.

        Starts a run when none is active and resumes a paused one. While a
        run is progressing, the current development pass ends at the next
        checkpoint and the next iteration begins.
        """
        run = self._run
        if not run.running:
            return self.launch(config)
        if run.paused:
            self.resume()
            return None
        logger.info(f"Advance requested for run {run.run_id}")
        run.request_advance()
        return None

    async def handle_command(
        self,
        command: Union[OperatorCommand, str],
        config: Optional[WorkflowConfig] = None,
    ) -> Optional[asyncio.Task]:
        """Map an operator command onto the state machine."""
        command = OperatorCommand(command)
        logger.debug(f"Operator command: {command.value}")
        if command is OperatorCommand.PLAY:
            if self._run.running:
                self.resume()
                return None
            return self.launch(config)
        elif command is OperatorCommand.PAUSE:
            self.pause()
        elif command is OperatorCommand.STOP:
            self.stop()
        elif command is OperatorCommand.RESTART:
            return await self.restart(config)
        elif command is OperatorCommand.CONTINUE:
            return self.continue_(config)
        return None

    # ------------------------------------------------------------------
    # Hooks used by the sequencer and the idle monitor
    def add_config_listener(self, listener: ConfigListener) -> None:
        """Call ``listener`` whenever a run starts or its configuration changes."""
        self._config_listeners.append(listener)

    async def checkpoint(self, run: Optional[WorkflowRun] = None) -> None:
        """Cooperative cancellation point.

        Raises:
            WorkflowCancelled: If the run has been stopped, including while
                waiting here for a resume.
        """
        run = run or self._run
        if not run.running:
            raise WorkflowCancelled()
        while run.paused:
            await run.wait_resumed(self._pause_interval)
            if not run.running:
                raise WorkflowCancelled()

    def snapshot_config(self, run: WorkflowRun) -> WorkflowConfig:
        """Return the configuration for the phase that is about to start."""
        if self._config_source is not None:
            config = self._config_source()
            changed = config != run.config
            run.config = config
            run.background_mode = config.background_mode
            if changed and run is self._run:
                self._notify_config(config)
        return run.config

    def set_phase(
        self, run: WorkflowRun, phase: WorkflowPhase, message: Optional[str] = None
    ) -> None:
        """Publish a phase change made by a live run."""
        if run is not self._run or not run.running:
            return
        self._publish(run, phase, message)

    def next_iteration(self, run: WorkflowRun) -> int:
        run.iteration += 1
        return run.iteration

    def record_activity(self, run: Optional[WorkflowRun] = None) -> None:
        (run or self._run).touch(self.clock())

    # ------------------------------------------------------------------
    # Internals
    def _begin(self, config: Optional[WorkflowConfig]) -> WorkflowRun:
        if self._run.running:
            raise AlreadyRunning()
        if config is None:
            config = self._config_source() if self._config_source else WorkflowConfig()

        run = WorkflowRun(
            running=True,
            config=config,
            background_mode=config.background_mode,
            last_activity=self.clock(),
        )
        self._run = run
        logger.info(
            f"Starting workflow run {run.run_id}"
            + (" in background mode" if run.background_mode else "")
        )
        self._publish(run, WorkflowPhase.INITIALIZING, "Starting workflow")
        self._notify_config(config)
        return run

    async def _execute(self, run: WorkflowRun) -> None:
        try:
            await self.sequencer.run(run)
        except WorkflowCancelled:
            logger.info(f"Workflow run {run.run_id} cancelled")
            if self._run is run and run.phase is not WorkflowPhase.IDLE:
                self._publish(run, WorkflowPhase.IDLE, "Workflow stopped")
        except Exception as e:
            logger.error(f"Workflow run {run.run_id} failed: {e}", exc_info=True)
            if (
                self._run is run
                and run.running
                and run.phase is not WorkflowPhase.ERROR
            ):
                self._publish(run, WorkflowPhase.ERROR, f"Workflow failed: {e}")
        else:
            if self._run is run and run.running:
                self._publish(
                    run, WorkflowPhase.COMPLETED, "Workflow completed successfully"
                )
        finally:
            run.running = False
            run.paused = False
            run.release_resume()

    def _notify_config(self, config: WorkflowConfig) -> None:
        for listener in list(self._config_listeners):
            try:
                listener(config)
            except Exception:
                logger.exception("Configuration listener failed")

    def _publish(
        self, run: WorkflowRun, phase: WorkflowPhase, message: Optional[str]
    ) -> None:
        run.phase = phase
        self.publisher.publish(phase, message)
