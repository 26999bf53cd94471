"""Choose an operational model from an ordered preference list."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Set

from .errors import AgentModelError
from .transports import BaseChatTransport

logger = logging.getLogger(__name__)


class ModelFallbackSelector:
    """Try preferred models in order until the transport accepts one.

    Every index the selector has tried during the current run is remembered,
    so a failed model is never offered again before :meth:`reset`.
    """

    def __init__(self, transport: BaseChatTransport) -> None:
        self._transport = transport
        self._tried: Set[int] = set()

    def reset(self) -> None:
        self._tried.clear()

    @property
    def tried(self) -> Set[int]:
        return set(self._tried)

    async def _try(self, index: int, model: str) -> bool:
        self._tried.add(index)
        try:
            result = await self._transport.select_model(model)
        except AgentModelError as e:
            logger.warning(f"Selecting model {model} raised: {e}")
            return False
        if result.is_accepted:
            logger.info(f"Selected model: {model}")
            return True
        logger.info(f"Model {model} not accepted: {result.reason or result.status.value}")
        return False

    async def select_initial(self, models: Sequence[str]) -> Optional[int]:
        """Return the index of the first accepted model, or ``None``."""
        for index, model in enumerate(models):
            if await self._try(index, model):
                return index
        if models:
            logger.warning(
                "Could not select any of the preferred models; "
                "continuing with the default model"
            )
        return None

    async def handle_failure(
        self, current_index: Optional[int], models: Sequence[str]
    ) -> Optional[int]:
        """Switch away from a failed model.

        Candidates after ``current_index`` are tried first, then any earlier
        ones that were never tried. Returns the accepted index or ``None``
        when the list is exhausted.
        """
        if current_index is not None:
            self._tried.add(current_index)
        start = 0 if current_index is None else current_index + 1
        order = list(range(start, len(models))) + list(range(0, min(start, len(models))))
        for index in order:
            if index in self._tried:
                continue
            if await self._try(index, models[index]):
                return index
        logger.error("All preferred models failed")
        return None
