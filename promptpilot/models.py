from __future__ import annotations

import asyncio
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .config import WorkflowConfig
from .contracts import WorkflowPhase


class WorkflowRun(BaseModel):
    """Execution context of a single workflow run.

    A fresh instance is created on every start. Work that is still unwinding
    from a stopped run keeps a reference to its own instance, so it can only
    ever observe ``running == False`` there.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    phase: WorkflowPhase = WorkflowPhase.IDLE
    running: bool = False
    paused: bool = False
    iteration: int = 0
    background_mode: bool = False
    active_model_index: Optional[int] = None
    last_activity: float = 0.0
    config: WorkflowConfig = Field(default_factory=WorkflowConfig)

    _resumed: asyncio.Event = PrivateAttr(default_factory=asyncio.Event)
    _advance: asyncio.Event = PrivateAttr(default_factory=asyncio.Event)

    def model_post_init(self, __context) -> None:
        self._resumed.set()

    def touch(self, now: float) -> None:
        """Record activity; never moves the timestamp backwards."""
        self.last_activity = max(self.last_activity, now)

    # ------------------------------------------------------------------
    # Pause wake channel
    def block_resume(self) -> None:
        self._resumed.clear()

    def release_resume(self) -> None:
        self._resumed.set()

    async def wait_resumed(self, timeout: float) -> None:
        """Wait until resumed or stopped, at most ``timeout`` seconds."""
        try:
            await asyncio.wait_for(self._resumed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Operator "continue" requests
    def request_advance(self) -> None:
        self._advance.set()

    def advance_requested(self) -> bool:
        return self._advance.is_set()

    def consume_advance(self) -> bool:
        requested = self._advance.is_set()
        self._advance.clear()
        return requested

    async def settle(self, seconds: float) -> None:
        """Sleep ``seconds`` unless an advance request cuts the wait short."""
        if seconds <= 0 or self._advance.is_set():
            return
        try:
            await asyncio.wait_for(self._advance.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
