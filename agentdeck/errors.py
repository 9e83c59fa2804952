"""Error taxonomy for agentdeck."""

from __future__ import annotations

from typing import Optional


class AgentDeckError(Exception):
    """Base class for all agentdeck errors."""


class EngineError(AgentDeckError):
    """Failure reported while talking to the workflow engine relay."""

    def __init__(self, message: str, action: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.action = action


class RelayConnectionError(EngineError):
    """Relay unreachable or upstream engine down. Retryable."""


class ActionError(EngineError):
    """Upstream rejected a specific action, e.g. an unknown workflow id."""


class AuthError(EngineError):
    """Relay credentials rejected. Requires operator intervention."""


class ValidationError(AgentDeckError):
    """Operation attempted with missing or invalid input. Raised before any network call."""


class PartialDataError(AgentDeckError):
    """One or more executions in a batch did not yield usage data."""

    def __init__(self, failed: dict[str, str]) -> None:
        ids = ", ".join(sorted(failed))
        super().__init__(f"Usage unknown for {len(failed)} execution(s): {ids}")
        self.failed = failed


class SaveError(AgentDeckError):
    """Local persistence of an agent configuration failed."""


class SyncError(AgentDeckError):
    """Pushing the configuration projection to the engine failed.

    Local state remains authoritative; retrying the sync is always safe.
    """

    def __init__(self, message: str, workflow_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.workflow_id = workflow_id
