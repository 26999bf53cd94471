"""Broadcast workflow state transitions to passive observers."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, List, Optional, Set

from .contracts import WorkflowPhase

logger = logging.getLogger(__name__)

StateListener = Callable[[WorkflowPhase, Optional[str]], Any]
Notifier = Callable[[WorkflowPhase, str], Any]

# Phases that warrant an operator notification on entry
NOTIFY_PHASES = (WorkflowPhase.PAUSED, WorkflowPhase.COMPLETED, WorkflowPhase.ERROR)


class StatusPublisher:
    """Fan out ``(phase, message)`` updates to registered listeners.

    Listeners are called in registration order for every update, and updates
    are delivered in the order they were published. Coroutine listeners are
    scheduled on the running loop and never awaited, so a slow observer
    cannot hold up the engine. Listener failures are logged and dropped.
    """

    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self.phase = WorkflowPhase.IDLE
        self.message: Optional[str] = None
        self.last_update = time.monotonic()
        self._listeners: List[StateListener] = []
        self._notifier = notifier
        self._pending: Set[asyncio.Future] = set()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, phase: WorkflowPhase, message: Optional[str] = None) -> None:
        previous = self.phase
        self.phase = phase
        self.message = message
        self.last_update = time.monotonic()
        logger.info(f"Workflow state: {phase.value}" + (f" - {message}" if message else ""))

        if phase in NOTIFY_PHASES and phase is not previous:
            self._notify(phase, message or phase.value)

        for listener in list(self._listeners):
            self._deliver(listener, phase, message)

    def _notify(self, phase: WorkflowPhase, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._dispatch(self._notifier(phase, message))
        except Exception:
            logger.exception(f"Notifier failed for phase {phase.value}")

    def _deliver(
        self, listener: StateListener, phase: WorkflowPhase, message: Optional[str]
    ) -> None:
        try:
            self._dispatch(listener(phase, message))
        except Exception:
            logger.exception(f"State listener {listener!r} failed")

    def _dispatch(self, result: Any) -> None:
        if not inspect.isawaitable(result):
            return
        future = asyncio.ensure_future(result)
        self._pending.add(future)
        future.add_done_callback(self._finish)

    def _finish(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Async state listener failed: {error}")

    async def drain(self) -> None:
        """Wait for scheduled async listeners; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
