"""Relay factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import AgentDeckConfig, load_config
from .base import BaseRelay
from .inmemory import InMemoryEngine


def get_relay(
    backend: Optional[str] = None, config: Optional[AgentDeckConfig] = None
) -> BaseRelay:
    """Factory function to get the configured engine relay."""

    config = config or load_config()
    backend = (backend or os.getenv("AGENTDECK_RELAY") or config.relay.backend).lower()

    if backend == "inmemory":
        return InMemoryEngine()
    elif backend == "http":
        from .http import HttpRelay

        relay_conf = config.relay
        return HttpRelay(
            url=relay_conf.url or "",
            token=relay_conf.token,
            timeout=relay_conf.timeout,
            max_retries=relay_conf.max_retries,
        )
    else:
        raise ValueError(f"Unsupported relay backend: {backend}")


__all__ = ["BaseRelay", "InMemoryEngine", "get_relay"]
