"""HTTP relay backed by httpx."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..contracts import ActionName
from ..errors import ActionError, AuthError, RelayConnectionError
from ..utils.retry import retry_async
from .base import BaseRelay

logger = logging.getLogger(__name__)

_UNAVAILABLE_STATUSES = {502, 503, 504}


class HttpRelay(BaseRelay):
    """POST named actions to the trusted server-side relay."""

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        max_retries: int = 2,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not url:
            raise ValueError("relay url is required for the http backend")
        self.url = url
        self.engine_url = url
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True

    async def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def invoke(
        self, action: ActionName, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await retry_async(
            lambda: self._invoke_once(action, params or {}),
            retries=self.max_retries,
            retry_on=(RelayConnectionError,),
            label=f"relay action {action}",
        )

    async def _invoke_once(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if self._client is None:
            await self.connect()

        body = {"action": action, **params}
        logger.debug(f"relay: POST {self.url} action={action}")
        try:
            response = await self._client.post(self.url, json=body, headers=self._headers())
        except httpx.TransportError as exc:
            raise RelayConnectionError(f"relay unreachable: {exc}", action=action) from exc

        if response.status_code in (401, 403):
            raise AuthError(
                f"relay rejected credentials (HTTP {response.status_code})", action=action
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code in _UNAVAILABLE_STATUSES or (
            response.status_code >= 500 and not isinstance(payload, dict)
        ):
            raise RelayConnectionError(
                f"engine unavailable (HTTP {response.status_code})", action=action
            )

        if not isinstance(payload, dict):
            raise ActionError(
                f"relay returned a non-JSON body (HTTP {response.status_code})",
                action=action,
            )

        if not payload.get("success", response.is_success):
            message = payload.get("error") or payload.get("message") or (
                f"action {action} failed (HTTP {response.status_code})"
            )
            logger.error(f"relay: action {action} rejected: {message}")
            raise ActionError(str(message), action=action)

        if not response.is_success:
            raise ActionError(
                f"action {action} failed (HTTP {response.status_code})", action=action
            )
        return payload
