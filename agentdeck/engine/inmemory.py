"""In-process workflow engine for tests and offline use."""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..contracts import ActionName
from ..errors import ActionError, EngineError
from .base import BaseRelay


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryEngine(BaseRelay):
    """Emulates the relay protocol against an in-memory set of workflows.

    Failures can be injected per action (and optionally per workflow or
    execution id) with :meth:`fail`. With ``activation_lag`` enabled, toggles
    report success but only take effect after :meth:`settle`, which mimics an
    engine whose reported state trails the request.
    """

    engine_url = "memory://engine"

    def __init__(self, activation_lag: bool = False) -> None:
        self.activation_lag = activation_lag
        self.workflows: Dict[str, Dict[str, Any]] = {}
        self.executions: Dict[str, Dict[str, Any]] = {}
        self.detail_delays: Dict[str, float] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._failures: Dict[Tuple[str, Optional[str]], EngineError] = {}
        self._pending: Dict[str, bool] = {}

    # ------------------------------------------------------------------
    # Fixture helpers
    def add_workflow(
        self,
        workflow_id: str,
        name: str = "",
        active: bool = False,
        nodes: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        now = _now_iso()
        workflow = {
            "id": workflow_id,
            "name": name or workflow_id,
            "active": active,
            "createdAt": now,
            "updatedAt": now,
            "nodes": nodes or [],
            "connections": {},
        }
        self.workflows[workflow_id] = workflow
        return workflow

    def add_execution(
        self,
        execution_id: str,
        workflow_id: str,
        started_at: str,
        status: str = "success",
        run_data: Optional[Dict[str, Any]] = None,
        stopped_at: Optional[str] = None,
        nodes: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        execution = {
            "id": execution_id,
            "workflowId": workflow_id,
            "status": status,
            "finished": status not in ("running", "new", "waiting"),
            "startedAt": started_at,
            "stoppedAt": stopped_at if stopped_at is not None else (
                None if status == "running" else started_at
            ),
            "data": {"resultData": {"runData": run_data or {}}},
            "workflowData": {"id": workflow_id, "nodes": nodes or []},
        }
        self.executions[execution_id] = execution
        return execution

    def fail(self, action: str, error: EngineError, key: Optional[str] = None) -> None:
        """Make ``action`` raise ``error``, optionally only for one id."""
        self._failures[(action, key)] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def settle(self) -> None:
        """Apply toggles that were accepted while ``activation_lag`` was on."""
        for workflow_id, active in self._pending.items():
            if workflow_id in self.workflows:
                self.workflows[workflow_id]["active"] = active
                self.workflows[workflow_id]["updatedAt"] = _now_iso()
        self._pending.clear()

    # ------------------------------------------------------------------
    def _check_failure(self, action: str, key: Optional[str]) -> None:
        error = self._failures.get((action, key)) or self._failures.get((action, None))
        if error is not None:
            raise error

    def _workflow(self, action: str, workflow_id: Optional[str]) -> Dict[str, Any]:
        if not workflow_id:
            raise ActionError("workflowId is required", action=action)
        workflow = self.workflows.get(workflow_id)
        if workflow is None:
            raise ActionError(f"workflow {workflow_id} not found", action=action)
        return workflow

    @staticmethod
    def _summary(workflow: Dict[str, Any]) -> Dict[str, Any]:
        return {
            k: workflow[k] for k in ("id", "name", "active", "createdAt", "updatedAt")
        }

    async def invoke(
        self, action: ActionName, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        params = dict(params or {})
        self.calls.append((action, params))
        key = params.get("workflowId") or params.get("executionId")
        self._check_failure(action, key)

        if action == "test_connection":
            return {
                "success": True,
                "message": "engine reachable",
                "n8nUrl": self.engine_url,
                "totalWorkflows": len(self.workflows),
            }

        if action == "list_workflows":
            limit = params.get("limit") or len(self.workflows)
            workflows = [self._summary(w) for w in self.workflows.values()][:limit]
            return {"success": True, "workflows": workflows, "nextCursor": None}

        if action == "get_workflow":
            workflow = self._workflow(action, params.get("workflowId"))
            return {"success": True, "workflow": copy.deepcopy(workflow)}

        if action in ("activate_workflow", "deactivate_workflow"):
            workflow = self._workflow(action, params.get("workflowId"))
            target = action == "activate_workflow"
            if self.activation_lag:
                self._pending[workflow["id"]] = target
            else:
                workflow["active"] = target
                workflow["updatedAt"] = _now_iso()
            return {
                "success": True,
                "workflow": self._summary(workflow),
                "active": target,
            }

        if action == "get_executions":
            workflow_id = params.get("workflowId")
            status = params.get("status")
            rows = [
                e
                for e in self.executions.values()
                if (not workflow_id or e["workflowId"] == workflow_id)
                and (not status or e["status"] == status)
            ]
            rows.sort(key=lambda e: e["startedAt"], reverse=True)
            limit = params.get("limit") or len(rows)
            summaries = [
                {k: v for k, v in e.items() if k not in ("data", "workflowData")}
                for e in rows[:limit]
            ]
            return {"success": True, "executions": summaries, "nextCursor": None}

        if action == "get_execution":
            execution_id = params.get("executionId")
            if not execution_id:
                raise ActionError("executionId is required", action=action)
            execution = self.executions.get(execution_id)
            if execution is None:
                raise ActionError(f"execution {execution_id} not found", action=action)
            delay = self.detail_delays.get(execution_id)
            if delay:
                await asyncio.sleep(delay)
            return {"success": True, "execution": copy.deepcopy(execution)}

        if action == "sync_config":
            workflow = self._workflow(action, params.get("workflowId"))
            workflow["agentConfig"] = copy.deepcopy(params.get("config") or {})
            workflow["updatedAt"] = _now_iso()
            return {
                "success": True,
                "workflowId": workflow["id"],
                "workflowName": workflow["name"],
            }

        raise ActionError(f"unknown action: {action}", action=action)
