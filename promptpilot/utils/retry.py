from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..contracts import TransportResult

logger = logging.getLogger(__name__)


async def retry_until_accepted(
    operation: Callable[[], Awaitable[TransportResult]],
    attempts: int,
    interval: float,
) -> TransportResult:
    """Call ``operation`` until it is accepted or ``attempts`` run out.

    Waits ``interval`` seconds between attempts and returns the last result.
    Exceptions raised by ``operation`` propagate immediately.
    """
    result = TransportResult.unknown()
    for attempt in range(1, attempts + 1):
        result = await operation()
        if result.is_accepted:
            return result
        logger.debug(f"Attempt {attempt}/{attempts} not accepted: {result.reason}")
        if attempt < attempts and interval > 0:
            await asyncio.sleep(interval)
    return result
