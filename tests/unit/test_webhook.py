"""Outbound webhook command tests."""

import json

import httpx
import pytest

from agentdeck.errors import ValidationError
from agentdeck.webhook import WebhookCommander, build_payload

HOOK_URL = "https://hooks.example.com/webhook/agent"


def _commander(handler) -> WebhookCommander:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookCommander(HOOK_URL, client=client)


def test_build_payload_shape():
    payload = build_payload("restart", "product-1", {"reason": "config change"})
    assert set(payload) == {"event", "timestamp", "product_id", "data"}
    assert payload["event"] == "restart"
    assert payload["product_id"] == "product-1"
    assert payload["data"] == {"reason": "config change"}


def test_unknown_command_is_rejected():
    with pytest.raises(ValidationError):
        build_payload("reboot", "product-1")


@pytest.mark.parametrize("url", [None, "", "ftp://hooks.example.com", "not a url"])
def test_invalid_url_is_rejected(url):
    with pytest.raises(ValidationError):
        WebhookCommander(url)


@pytest.mark.asyncio
async def test_send_posts_command():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"received": True})

    result = await _commander(handler).send("start", "product-1")

    assert result.ok
    assert result.status_code == 200
    assert bodies[0]["event"] == "start"
    assert bodies[0]["data"] == {}


@pytest.mark.asyncio
async def test_send_reports_http_failure_without_raising():
    def handler(request):
        return httpx.Response(404, text="no webhook registered")

    result = await _commander(handler).send("status", "product-1")
    assert not result.ok
    assert result.status_code == 404
    assert result.error == "HTTP 404"


@pytest.mark.asyncio
async def test_send_reports_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    result = await _commander(handler).send("stop", "product-1")
    assert not result.ok
    assert result.status_code is None
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_dispatch_is_fire_and_forget():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(202)

    commander = _commander(handler)
    task = commander.dispatch("restart", "product-1", {"by": "operator"})
    await commander.drain()

    assert task.result().ok
    assert bodies[0]["data"] == {"by": "operator"}
