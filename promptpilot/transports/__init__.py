"""Chat transport factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import PilotConfig, load_config
from .base import BaseChatTransport
from .inmemory import InMemoryChatTransport


def get_transport(
    backend: Optional[str] = None, config: Optional[PilotConfig] = None
) -> BaseChatTransport:
    """Factory function to get the configured chat transport."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("PROMPTPILOT_TRANSPORT")
        or config.transport.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryChatTransport()
    elif backend == "http":
        from .http import HttpChatTransport

        http_conf = config.transport.http
        return HttpChatTransport(base_url=http_conf.base_url, timeout=http_conf.timeout)
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = ["BaseChatTransport", "InMemoryChatTransport", "get_transport"]
