"""In-memory chat transport for testing and dry runs."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable, Deque, Iterable, List, Optional, Set, Tuple

from ..contracts import TransportResult
from .base import BaseChatTransport

Responder = Callable[[str], Optional[TransportResult]]


class InMemoryChatTransport(BaseChatTransport):
    """Records every call instead of talking to a real chat surface.

    ``responder`` may inspect each outgoing message and return the result to
    report for it (``None`` means accepted without a reply) or raise to
    simulate a failure.
    """

    def __init__(
        self,
        unavailable_models: Optional[Iterable[str]] = None,
        responder: Optional[Responder] = None,
        on_send: Optional[Callable[[str, bool], None]] = None,
    ) -> None:
        self.sent: List[Tuple[str, bool]] = []
        self.opened: List[bool] = []
        self.selected: List[str] = []
        self.idle_queries = 0
        self.idle = True
        self.unavailable_models: Set[str] = set(unavailable_models or ())
        self.responder = responder
        self.on_send = on_send
        self._failures: Deque[Exception] = deque()
        self._lock = asyncio.Lock()

    def queue_failure(self, error: Exception) -> None:
        """Raise ``error`` from the next ``send`` call."""
        self._failures.append(error)

    @property
    def messages(self) -> List[str]:
        return [text for text, _ in self.sent]

    async def open_surface(self, focus: bool) -> TransportResult:
        self.opened.append(focus)
        return TransportResult.accepted()

    async def send(self, text: str, background: bool) -> TransportResult:
        async with self._lock:
            if self._failures:
                raise self._failures.popleft()
            result = self.responder(text) if self.responder else None
            if result is not None and result.is_rejected:
                return result
            self.sent.append((text, background))
        if self.on_send is not None:
            self.on_send(text, background)
        return result or TransportResult.accepted()

    async def select_model(self, name: str) -> TransportResult:
        self.selected.append(name)
        if name in self.unavailable_models:
            return TransportResult.rejected(f"Model {name} is not available")
        return TransportResult.accepted()

    async def query_idle(self) -> TransportResult:
        self.idle_queries += 1
        if self.idle:
            return TransportResult.accepted()
        return TransportResult.rejected("Agent is working")
