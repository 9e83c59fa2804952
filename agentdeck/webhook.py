"""Outbound webhook commands for operator-controlled workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel

from .constants import WEBHOOK_COMMANDS
from .errors import ValidationError

logger = logging.getLogger(__name__)


class WebhookResult(BaseModel):
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


def _validate_url(url: Optional[str]) -> str:
    if not url:
        raise ValidationError("webhook url is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"invalid webhook url: {url!r}")
    return url


def build_payload(
    command: str, product_id: str, data: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    if command not in WEBHOOK_COMMANDS:
        raise ValidationError(
            f"unknown webhook command {command!r}; expected one of {', '.join(WEBHOOK_COMMANDS)}"
        )
    return {
        "event": command,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "product_id": product_id,
        "data": data or {},
    }


class WebhookCommander:
    """POSTs start/stop/restart/status commands to a workflow webhook."""

    def __init__(
        self,
        url: Optional[str],
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = _validate_url(url)
        self.timeout = timeout
        self._client = client
        self._pending: Set[asyncio.Task] = set()

    async def send(
        self, command: str, product_id: str, data: Optional[Dict[str, Any]] = None
    ) -> WebhookResult:
        """Send ``command`` and report the outcome. HTTP failures are not raised."""
        payload = build_payload(command, product_id, data)
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning(f"Webhook {command} for {product_id} failed: {exc}")
            return WebhookResult(ok=False, error=str(exc))

        if response.is_success:
            logger.info(f"Webhook {command} for {product_id} delivered ({response.status_code})")
            return WebhookResult(ok=True, status_code=response.status_code)
        logger.warning(
            f"Webhook {command} for {product_id} rejected with HTTP {response.status_code}"
        )
        return WebhookResult(
            ok=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}",
        )

    def dispatch(
        self, command: str, product_id: str, data: Optional[Dict[str, Any]] = None
    ) -> asyncio.Task:
        """Schedule :meth:`send` without waiting for it."""
        build_payload(command, product_id, data)
        task = asyncio.create_task(self.send(command, product_id, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending)
