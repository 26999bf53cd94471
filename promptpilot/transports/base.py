"""Base chat transport interface."""

from __future__ import annotations

import abc

from ..contracts import TransportResult


class BaseChatTransport(metaclass=abc.ABCMeta):
    """Abstract channel to the conversational agent's chat surface."""

    async def connect(self) -> None:
        """Open connection to the chat surface (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the chat surface (no-op by default)."""
        pass

    @abc.abstractmethod
    async def open_surface(self, focus: bool) -> TransportResult:
        """Open the chat surface, focusing it only when ``focus`` is set."""
        raise NotImplementedError

    @abc.abstractmethod
    async def send(self, text: str, background: bool) -> TransportResult:
        """Send ``text`` to the agent.

        Raises:
            AgentModelError: If the active model failed to handle the message.
            TransportCommunicationError: If the chat surface is unreachable.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def select_model(self, name: str) -> TransportResult:
        """Ask the chat surface to switch to model ``name``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def query_idle(self) -> TransportResult:
        """Report whether the agent is idle (accepted) or working (rejected)."""
        raise NotImplementedError
