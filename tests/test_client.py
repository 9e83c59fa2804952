"""Workflow engine client tests."""

from typing import Any, Dict, Optional

import pytest

from agentdeck.client import WorkflowEngineClient
from agentdeck.contracts import ExecutionStatus
from agentdeck.engine import BaseRelay, InMemoryEngine
from agentdeck.errors import ActionError, AuthError, RelayConnectionError, ValidationError


class CannedRelay(BaseRelay):
    """Relay returning a fixed payload per action."""

    engine_url = "https://engine.example.com"

    def __init__(self, responses: Dict[str, Dict[str, Any]]) -> None:
        self.responses = responses
        self.calls = []

    async def invoke(self, action, params: Optional[Dict[str, Any]] = None):
        self.calls.append((action, params))
        return self.responses[action]


@pytest.mark.asyncio
async def test_test_connection_reports_engine():
    engine = InMemoryEngine()
    engine.add_workflow("wf-1")
    status = await WorkflowEngineClient(engine).test_connection()

    assert status.ok
    assert status.total_workflows == 1
    assert status.engine_url == engine.engine_url


@pytest.mark.asyncio
async def test_test_connection_failure_is_reported_not_raised():
    engine = InMemoryEngine()
    engine.fail("test_connection", RelayConnectionError("relay unreachable"))

    status = await WorkflowEngineClient(engine).test_connection()

    assert not status.ok
    assert "unreachable" in status.message


@pytest.mark.asyncio
async def test_test_connection_auth_failure_propagates():
    engine = InMemoryEngine()
    engine.fail("test_connection", AuthError("bad token"))

    with pytest.raises(AuthError):
        await WorkflowEngineClient(engine).test_connection()


@pytest.mark.asyncio
async def test_list_and_get_workflow():
    engine = InMemoryEngine()
    engine.add_workflow("wf-1", name="Sales bot", active=True)
    engine.add_workflow("wf-2", name="Support bot")
    client = WorkflowEngineClient(engine)

    workflows = await client.list_workflows(limit=1)
    assert [w.id for w in workflows] == ["wf-1"]

    wf = await client.get_workflow("wf-2")
    assert wf.name == "Support bot"
    assert wf.active is False

    with pytest.raises(ActionError):
        await client.get_workflow("missing")


@pytest.mark.asyncio
async def test_get_executions_normalises_and_skips_malformed_rows():
    relay = CannedRelay(
        {
            "get_executions": {
                "success": True,
                "executions": [
                    {"id": 11, "finished": True, "startedAt": "2024-06-01T10:00:00Z"},
                    {"id": 12, "status": "crashed", "startedAt": "2024-06-01T09:00:00Z"},
                    "garbage",
                    {"status": "success"},
                    {"id": 13, "startedAt": "not a date"},
                ],
            }
        }
    )
    executions = await WorkflowEngineClient(relay).get_executions("wf-1", limit=5)

    assert [e.execution_id for e in executions] == ["11", "12"]
    assert executions[0].workflow_id == "wf-1"
    assert executions[0].status is ExecutionStatus.SUCCESS
    assert executions[1].status is ExecutionStatus.ERROR
    assert relay.calls == [("get_executions", {"workflowId": "wf-1", "limit": 5})]


@pytest.mark.asyncio
async def test_get_execution_returns_raw_payload():
    engine = InMemoryEngine()
    engine.add_execution("e1", "wf-1", "2024-06-01T10:00:00Z", run_data={"A": []})

    payload = await WorkflowEngineClient(engine).get_execution("e1")

    assert payload["data"]["resultData"]["runData"] == {"A": []}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method", ["get_workflow", "get_executions", "get_execution", "activate_workflow", "deactivate_workflow"]
)
async def test_empty_ids_rejected_before_any_call(method):
    engine = InMemoryEngine()
    with pytest.raises(ValidationError):
        await getattr(WorkflowEngineClient(engine), method)("")
    assert engine.calls == []


@pytest.mark.asyncio
async def test_toggle_returns_reported_flag():
    engine = InMemoryEngine()
    engine.add_workflow("wf-1")
    client = WorkflowEngineClient(engine)

    assert await client.activate_workflow("wf-1") is True
    assert engine.workflows["wf-1"]["active"] is True
    assert await client.deactivate_workflow("wf-1") is False


@pytest.mark.asyncio
async def test_test_connection_tolerates_malformed_workflow_count():
    relay = CannedRelay({"test_connection": {"success": True, "totalWorkflows": "many"}})

    status = await WorkflowEngineClient(relay).test_connection()

    assert status.ok
    assert status.total_workflows == 0
    assert status.engine_url == "https://engine.example.com"
