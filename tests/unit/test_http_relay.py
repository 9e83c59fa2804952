"""HTTP relay tests using httpx.MockTransport."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from agentdeck.engine.http import HttpRelay
from agentdeck.errors import ActionError, AuthError, RelayConnectionError
from agentdeck.utils import retry

RELAY_URL = "https://relay.example.com/functions/n8n-api"


def _relay(handler, max_retries: int = 0) -> HttpRelay:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRelay(RELAY_URL, token="relay-token", max_retries=max_retries, client=client)


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch):
    monkeypatch.setattr(retry, "schedule_retry", AsyncMock())


@pytest.mark.asyncio
async def test_invoke_posts_action_envelope():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"success": True, "workflows": []})

    relay = _relay(handler)
    payload = await relay.invoke("list_workflows", {"limit": 10})

    assert payload == {"success": True, "workflows": []}
    assert seen["body"] == {"action": "list_workflows", "limit": 10}
    assert seen["auth"] == "Bearer relay-token"


@pytest.mark.asyncio
async def test_error_body_becomes_action_error():
    def handler(request):
        return httpx.Response(500, json={"success": False, "error": "Workflow not found"})

    with pytest.raises(ActionError) as excinfo:
        await _relay(handler).invoke("get_workflow", {"workflowId": "missing"})
    assert excinfo.value.message == "Workflow not found"
    assert excinfo.value.action == "get_workflow"


@pytest.mark.asyncio
async def test_success_false_with_200_is_action_error():
    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "bad request"})

    with pytest.raises(ActionError):
        await _relay(handler).invoke("activate_workflow", {"workflowId": "wf-1"})


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_credentials_raise_auth_error(status):
    def handler(request):
        return httpx.Response(status, json={"error": "unauthorized"})

    with pytest.raises(AuthError):
        await _relay(handler, max_retries=3).invoke("test_connection", {})


@pytest.mark.asyncio
async def test_unavailable_engine_is_retried_then_raised():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="upstream down")

    with pytest.raises(RelayConnectionError):
        await _relay(handler, max_retries=2).invoke("get_executions", {"workflowId": "wf-1"})
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_transport_error_recovers_on_retry():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused")
        return httpx.Response(200, json={"success": True, "message": "ok"})

    payload = await _relay(handler, max_retries=1).invoke("test_connection", {})
    assert payload["message"] == "ok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_non_json_success_body_is_action_error():
    def handler(request):
        return httpx.Response(200, text="<html>proxy page</html>")

    with pytest.raises(ActionError):
        await _relay(handler).invoke("test_connection", {})


def test_http_relay_requires_url():
    with pytest.raises(ValueError):
        HttpRelay("")
