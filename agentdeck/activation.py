"""Reconciliation of local and remote workflow activation state."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from .client import WorkflowEngineClient
from .contracts import WorkflowDescriptor
from .errors import ValidationError

logger = logging.getLogger(__name__)


class ActivationPhase(str, Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"
    TRANSITIONING = "transitioning"


class ActivationState(BaseModel):
    """What we asked for versus what the engine last reported."""

    workflow_id: str
    local_is_active: Optional[bool] = None
    remote_is_active: Optional[bool] = None
    phase: ActivationPhase = ActivationPhase.UNKNOWN
    pending_target: Optional[bool] = None
    last_reconciled_at: Optional[datetime] = None

    @property
    def drift(self) -> bool:
        return (
            self.local_is_active is not None
            and self.remote_is_active is not None
            and self.local_is_active != self.remote_is_active
        )


def _settled(active: bool) -> ActivationPhase:
    return ActivationPhase.ONLINE if active else ActivationPhase.OFFLINE


class ActivationReconciler:
    """Tracks activation of known workflows.

    A toggle only moves the state to ``transitioning``. The online/offline
    phase is decided by the next successful :meth:`poll`, never by the
    toggle response itself.
    """

    def __init__(
        self,
        client: WorkflowEngineClient,
        known_workflows: Optional[Iterable[str]] = None,
    ) -> None:
        self._client = client
        self._states: Dict[str, ActivationState] = {}
        for workflow_id in known_workflows or []:
            self.register(workflow_id)

    def register(self, workflow_id: str) -> ActivationState:
        if not workflow_id:
            raise ValidationError("workflow_id is required")
        return self._states.setdefault(workflow_id, ActivationState(workflow_id=workflow_id))

    def state(self, workflow_id: str) -> ActivationState:
        return self._known(workflow_id)

    def states(self) -> List[ActivationState]:
        return [self._states[k] for k in sorted(self._states)]

    def _known(self, workflow_id: str) -> ActivationState:
        state = self._states.get(workflow_id)
        if state is None:
            raise ValidationError(f"unknown workflow: {workflow_id!r}")
        return state

    async def refresh_known(self) -> List[ActivationState]:
        """Register every workflow the engine lists and record its remote flag."""
        workflows = await self._client.list_workflows()
        for workflow in workflows:
            self.register(workflow.id)
            self._apply(workflow)
        return self.states()

    async def activate(self, workflow_id: str) -> ActivationState:
        return await self._toggle(workflow_id, True)

    async def deactivate(self, workflow_id: str) -> ActivationState:
        return await self._toggle(workflow_id, False)

    async def _toggle(self, workflow_id: str, target: bool) -> ActivationState:
        state = self._known(workflow_id)
        if state.pending_target is None and state.remote_is_active is target:
            state.local_is_active = target
            logger.debug(f"Workflow {workflow_id} already {_settled(target).value}")
            return state

        previous = state.model_copy()
        state.local_is_active = target
        state.pending_target = target
        state.phase = ActivationPhase.TRANSITIONING
        try:
            if target:
                await self._client.activate_workflow(workflow_id)
            else:
                await self._client.deactivate_workflow(workflow_id)
        except Exception:
            logger.warning(
                f"Toggle of workflow {workflow_id} to active={target} failed; "
                f"restoring phase {previous.phase.value}"
            )
            for field in ("local_is_active", "pending_target", "phase"):
                setattr(state, field, getattr(previous, field))
            raise
        logger.info(f"Requested workflow {workflow_id} active={target}")
        return state

    async def poll(self, workflow_id: str) -> ActivationState:
        """Read the remote flag and settle the phase from it."""
        self._known(workflow_id)
        workflow = await self._client.get_workflow(workflow_id)
        return self._apply(workflow)

    async def poll_all(self) -> List[ActivationState]:
        for workflow_id in list(self._states):
            await self.poll(workflow_id)
        return self.states()

    def _apply(self, workflow: WorkflowDescriptor) -> ActivationState:
        state = self._states[workflow.id]
        state.remote_is_active = workflow.active
        state.last_reconciled_at = datetime.now(timezone.utc)
        if state.pending_target is not None and state.pending_target != workflow.active:
            logger.info(
                f"Workflow {workflow.id} still reports active={workflow.active} "
                f"after request for active={state.pending_target}"
            )
        state.pending_target = None
        state.phase = _settled(workflow.active)
        if state.local_is_active is None:
            state.local_is_active = workflow.active
        if state.drift:
            logger.warning(
                f"Workflow {workflow.id} drift: local active={state.local_is_active}, "
                f"remote active={workflow.active}"
            )
        return state

    def adopt_remote(self, workflow_id: str) -> ActivationState:
        """Copy the remote flag into the local one, resolving drift."""
        state = self._known(workflow_id)
        if state.remote_is_active is None:
            raise ValidationError(f"workflow {workflow_id} has not been polled yet")
        state.local_is_active = state.remote_is_active
        state.pending_target = None
        state.phase = _settled(state.remote_is_active)
        return state
