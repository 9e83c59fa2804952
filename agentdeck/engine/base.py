"""Base relay interface for talking to the external workflow engine."""

from __future__ import annotations

import abc
from typing import Any, Dict, Optional

from ..contracts import ActionName


class BaseRelay(metaclass=abc.ABCMeta):
    """Abstract named-action relay.

    Implementations attach the upstream engine credentials themselves; callers
    never hold them.
    """

    engine_url: Optional[str] = None

    async def connect(self) -> None:
        """Open the underlying connection (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Release the underlying connection (no-op by default)."""
        pass

    async def __aenter__(self) -> "BaseRelay":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @abc.abstractmethod
    async def invoke(
        self, action: ActionName, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send ``{"action": action, **params}`` and return the success payload.

        Raises:
            RelayConnectionError: relay unreachable or upstream down.
            ActionError: upstream rejected the action.
            AuthError: relay rejected our credentials.
        """
        raise NotImplementedError
