"""Shared fixtures for promptpilot tests."""

import asyncio
from typing import List, Optional, Tuple

import pytest

from promptpilot.config import WorkflowConfig
from promptpilot.contracts import WorkflowPhase
from promptpilot.status import StatusPublisher
from promptpilot.transports.inmemory import InMemoryChatTransport


class GatedTransport(InMemoryChatTransport):
    """In-memory transport whose sends block until ``gate`` is set."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.gate = asyncio.Event()
        self.gate.set()
        self.in_flight = asyncio.Event()

    async def send(self, text: str, background: bool):
        self.in_flight.set()
        await self.gate.wait()
        return await super().send(text, background)


class RecordingPublisher(StatusPublisher):
    """Status publisher that keeps every published update."""

    def __init__(self) -> None:
        super().__init__()
        self.history: List[Tuple[WorkflowPhase, Optional[str]]] = []
        self.subscribe(lambda phase, message: self.history.append((phase, message)))

    @property
    def phases(self) -> List[WorkflowPhase]:
        return [phase for phase, _ in self.history]


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fast_config() -> WorkflowConfig:
    """Single pass, no settle delays."""
    return WorkflowConfig(settleScale=0, maxIterations=1, continuationPolicy="never")


@pytest.fixture
def transport() -> InMemoryChatTransport:
    return InMemoryChatTransport()


@pytest.fixture
def gated_transport() -> GatedTransport:
    return GatedTransport()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
