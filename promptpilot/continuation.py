"""Strategies deciding whether the development phase loops again.

There is no reliable signal that the agent actually finished its checklist,
so the decision is a policy seam: the sequencer enforces the iteration
ceiling and defers everything else to one of these strategies.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

INCOMPLETE_MARKERS = (
    "not yet",
    "not complete",
    "not done",
    "incomplete",
    "unfinished",
    "still working",
    "still need",
    "in progress",
    "pending",
    "todo",
)


class ContinuationStrategy(Protocol):
    def should_continue(self, reply: Optional[str], iteration: int) -> bool:
        """Return ``True`` to run another development pass."""


class KeywordContinuation:
    """Loop when the agent's reply mentions unfinished work.

    Without a reply (the transport did not return one) the run stops.
    """

    def __init__(self, markers: Sequence[str] = INCOMPLETE_MARKERS) -> None:
        self.markers = tuple(m.lower() for m in markers)

    def should_continue(self, reply: Optional[str], iteration: int) -> bool:
        if not reply:
            return False
        text = reply.lower()
        return any(marker in text for marker in self.markers)


class AlwaysContinue:
    def should_continue(self, reply: Optional[str], iteration: int) -> bool:
        return True


class NeverContinue:
    def should_continue(self, reply: Optional[str], iteration: int) -> bool:
        return False


def get_continuation(policy: str) -> ContinuationStrategy:
    if policy == "keyword":
        return KeywordContinuation()
    elif policy == "always":
        return AlwaysContinue()
    elif policy == "never":
        return NeverContinue()
    raise ValueError(f"Unsupported continuation policy: {policy}")


def reached_ceiling(iteration: int, max_iterations: int) -> bool:
    return iteration >= max_iterations - 1
