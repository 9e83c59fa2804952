"""Typed client for the workflow engine relay."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .constants import DEFAULT_EXECUTION_LIMIT, DEFAULT_WORKFLOW_LIST_LIMIT
from .contracts import ConnectionStatus, ExecutionSummary, WorkflowDescriptor
from .engine import BaseRelay
from .errors import ActionError, RelayConnectionError, ValidationError

logger = logging.getLogger(__name__)


def _require(value: Optional[str], name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return str(value)


def _as_count(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Ignoring malformed workflow count: {value!r}")
        return 0


class WorkflowEngineClient:
    """Issues named actions to the engine through a relay.

    No local state is touched; every method is a single remote round trip.
    """

    def __init__(self, relay: BaseRelay) -> None:
        self._relay = relay

    @property
    def relay(self) -> BaseRelay:
        return self._relay

    async def test_connection(self) -> ConnectionStatus:
        """Check relay and engine reachability.

        Connection failures are reported in the returned status rather than
        raised. Authentication failures still propagate.
        """
        try:
            payload = await self._relay.invoke("test_connection", {})
        except (RelayConnectionError, ActionError) as exc:
            logger.warning(f"Engine connection test failed: {exc}")
            return ConnectionStatus(
                ok=False, message=str(exc), engine_url=self._relay.engine_url
            )
        return ConnectionStatus(
            ok=True,
            message=payload.get("message", ""),
            engine_url=payload.get("n8nUrl") or self._relay.engine_url,
            total_workflows=_as_count(payload.get("totalWorkflows")),
        )

    async def list_workflows(
        self, limit: int = DEFAULT_WORKFLOW_LIST_LIMIT, cursor: Optional[str] = None
    ) -> List[WorkflowDescriptor]:
        params: Dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        payload = await self._relay.invoke("list_workflows", params)
        workflows: List[WorkflowDescriptor] = []
        for raw in payload.get("workflows") or []:
            try:
                workflows.append(WorkflowDescriptor.model_validate(raw))
            except PydanticValidationError as exc:
                logger.warning(f"Skipping malformed workflow record: {exc}")
        return workflows

    async def get_workflow(self, workflow_id: str) -> WorkflowDescriptor:
        _require(workflow_id, "workflow_id")
        payload = await self._relay.invoke("get_workflow", {"workflowId": workflow_id})
        raw = payload.get("workflow")
        if not isinstance(raw, dict):
            raise ActionError(
                f"relay returned no workflow for {workflow_id}", action="get_workflow"
            )
        return WorkflowDescriptor.model_validate(raw)

    async def get_executions(
        self,
        workflow_id: str,
        limit: int = DEFAULT_EXECUTION_LIMIT,
        status: Optional[str] = None,
    ) -> List[ExecutionSummary]:
        """Return up to ``limit`` most recent executions of ``workflow_id``."""
        _require(workflow_id, "workflow_id")
        params: Dict[str, Any] = {"workflowId": workflow_id, "limit": limit}
        if status:
            params["status"] = status
        payload = await self._relay.invoke("get_executions", params)
        executions: List[ExecutionSummary] = []
        for raw in payload.get("executions") or []:
            if not isinstance(raw, dict):
                logger.warning(f"Skipping malformed execution record: {raw!r}")
                continue
            row = dict(raw)
            row.setdefault("workflowId", workflow_id)
            try:
                executions.append(ExecutionSummary.from_engine(row))
            except (PydanticValidationError, ValueError) as exc:
                logger.warning(f"Skipping malformed execution record: {exc}")
        return executions

    async def get_execution(self, execution_id: str) -> Dict[str, Any]:
        """Return the raw execution payload, result tree included."""
        _require(execution_id, "execution_id")
        payload = await self._relay.invoke("get_execution", {"executionId": execution_id})
        execution = payload.get("execution")
        if not isinstance(execution, dict):
            raise ActionError(
                f"relay returned no execution for {execution_id}", action="get_execution"
            )
        return execution

    async def activate_workflow(self, workflow_id: str) -> bool:
        """Request activation. Returns the active flag the relay reported."""
        _require(workflow_id, "workflow_id")
        payload = await self._relay.invoke(
            "activate_workflow", {"workflowId": workflow_id}
        )
        return bool(payload.get("active", True))

    async def deactivate_workflow(self, workflow_id: str) -> bool:
        _require(workflow_id, "workflow_id")
        payload = await self._relay.invoke(
            "deactivate_workflow", {"workflowId": workflow_id}
        )
        return bool(payload.get("active", False))

    async def sync_config(
        self, workflow_id: str, projection: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Push an agent configuration projection onto the workflow."""
        _require(workflow_id, "workflow_id")
        return await self._relay.invoke(
            "sync_config", {"workflowId": workflow_id, "config": projection}
        )
