"""Idle monitor: nudges the agent when it stops producing activity."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import WorkflowConfig
from .constants import ENSURE_OPEN_ATTEMPTS, IDLE_REMINDER_PROMPT, OPEN_SURFACE_INTERVAL
from .engine import WorkflowEngine
from .utils.retry import retry_until_accepted

logger = logging.getLogger(__name__)


class IdleMonitor:
    """Two fixed-interval timers watching the engine's current run.

    The idle check runs every ``checkAgentFrequency`` milliseconds and sends
    a reminder once ``idleTimeoutSeconds`` have passed without activity. The
    ensure-open check runs every ``ensureChatFrequency`` milliseconds and
    re-opens the chat surface. Both only act while a run is active and not
    paused. The timers follow every configuration snapshot the engine takes,
    and the idle timeout is read from the current run on each tick.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        reminder: str = IDLE_REMINDER_PROMPT,
    ) -> None:
        self._engine = engine
        self._reminder = reminder
        self._config: Optional[WorkflowConfig] = None
        self._idle_task: Optional[asyncio.Task] = None
        self._ensure_task: Optional[asyncio.Task] = None
        engine.add_config_listener(self._config_changed)

    @property
    def running(self) -> bool:
        return self._idle_task is not None or self._ensure_task is not None

    def _active(self) -> bool:
        return self._engine.is_running() and not self._engine.is_paused()

    def _idle_timeout(self) -> float:
        return self._engine.run.config.idle_timeout_seconds

    def _config_changed(self, config: WorkflowConfig) -> None:
        if self.running:
            self.reconfigure(config)

    # ------------------------------------------------------------------
    # Checks
    async def check_idle(self) -> bool:
        """Send a reminder when the agent has been quiet too long.

        Returns ``True`` when a reminder was sent.
        """
        if not self._active():
            return False

        run = self._engine.run
        elapsed = self._engine.clock() - run.last_activity
        if elapsed <= self._idle_timeout():
            return False

        status = await self._engine.transport.query_idle()
        if status.is_rejected:
            logger.debug("Agent reports it is still working")
            self._engine.record_activity(run)
            return False

        logger.info(f"Agent idle for {elapsed:.0f}s, sending reminder")
        await self._engine.sequencer.deliver(run, self._reminder)
        return True

    async def ensure_open(self) -> bool:
        """Re-open the chat surface; focus it only outside background mode."""
        if not self._active():
            return False

        focus = not self._engine.run.background_mode
        result = await retry_until_accepted(
            lambda: self._engine.transport.open_surface(focus),
            attempts=ENSURE_OPEN_ATTEMPTS,
            interval=OPEN_SURFACE_INTERVAL,
        )
        if result.is_rejected:
            logger.warning(f"Could not re-open chat surface: {result.reason}")
            return False
        return True

    # ------------------------------------------------------------------
    # Timers
    def start(self, config: WorkflowConfig) -> None:
        """Create both timers, replacing any that are already running."""
        self._cancel_idle()
        self._cancel_ensure()
        self._config = config
        self._idle_task = self._schedule(config.check_agent_frequency, self.check_idle, "idle check")
        self._ensure_task = self._schedule(
            config.ensure_chat_frequency, self.ensure_open, "ensure chat open"
        )

    def reconfigure(self, config: WorkflowConfig) -> None:
        """Recreate the timers whose governing settings changed."""
        previous = self._config
        if previous is None or not self.running:
            self.start(config)
            return

        self._config = config
        if (
            config.check_agent_frequency != previous.check_agent_frequency
            or config.idle_timeout_seconds != previous.idle_timeout_seconds
        ):
            logger.info("Idle check settings changed, restarting timer")
            self._cancel_idle()
            self._idle_task = self._schedule(
                config.check_agent_frequency, self.check_idle, "idle check"
            )
        if config.ensure_chat_frequency != previous.ensure_chat_frequency:
            logger.info("Ensure-open frequency changed, restarting timer")
            self._cancel_ensure()
            self._ensure_task = self._schedule(
                config.ensure_chat_frequency, self.ensure_open, "ensure chat open"
            )

    async def shutdown(self) -> None:
        tasks = [t for t in (self._idle_task, self._ensure_task) if t is not None]
        self._cancel_idle()
        self._cancel_ensure()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _schedule(
        self, interval_ms: int, tick: Callable[[], Awaitable[bool]], label: str
    ) -> asyncio.Task:
        return asyncio.create_task(self._loop(interval_ms / 1000.0, tick, label))

    async def _loop(
        self, interval: float, tick: Callable[[], Awaitable[bool]], label: str
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await tick()
            except Exception as e:
                logger.error(f"Error in {label}: {e}")

    def _cancel_idle(self) -> None:
        if self._idle_task is not None:
            self._idle_task.cancel()
            self._idle_task = None

    def _cancel_ensure(self) -> None:
        if self._ensure_task is not None:
            self._ensure_task.cancel()
            self._ensure_task = None
