"""HTTP chat transport talking to a chat bridge service."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..contracts import ResultStatus, TransportResult
from ..errors import AgentModelError, TransportCommunicationError
from .base import BaseChatTransport

logger = logging.getLogger(__name__)


class HttpChatTransport(BaseChatTransport):
    """Drive the chat surface through a small JSON bridge.

    The bridge answers every call with
    ``{"status": "accepted" | "rejected" | "unknown", "reason": ..., "reply": ...}``.
    A ``409`` carrying ``{"error": "model_unavailable"}`` means the active
    model failed and is surfaced as :class:`AgentModelError`.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8765",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
            self._owns_client = True

    async def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def open_surface(self, focus: bool) -> TransportResult:
        return await self._request("POST", "/surface", json={"focus": focus})

    async def send(self, text: str, background: bool) -> TransportResult:
        return await self._request(
            "POST", "/messages", json={"text": text, "background": background}
        )

    async def select_model(self, name: str) -> TransportResult:
        return await self._request("POST", "/model", json={"name": name})

    async def query_idle(self) -> TransportResult:
        return await self._request("GET", "/status")

    async def _request(
        self, method: str, path: str, json: Optional[Dict[str, Any]] = None
    ) -> TransportResult:
        await self.connect()
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error(f"Chat bridge request {method} {path} failed: {e}")
            raise TransportCommunicationError(
                f"Chat bridge request {method} {path} failed: {e}"
            ) from e

        if response.status_code == 409:
            body = _json_or_empty(response)
            if body.get("error") == "model_unavailable":
                raise AgentModelError(
                    body.get("reason") or "Active model is unavailable",
                    model=body.get("model"),
                )
        if response.is_error:
            raise TransportCommunicationError(
                f"Chat bridge returned {response.status_code} for {method} {path}"
            )
        return _parse_result(_json_or_empty(response))


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _parse_result(body: Dict[str, Any]) -> TransportResult:
    """Map a bridge response body onto a :class:`TransportResult`."""
    if "idle" in body and "status" not in body:
        if body["idle"]:
            return TransportResult.accepted()
        return TransportResult.rejected("Agent is working")
    try:
        status = ResultStatus(body.get("status", ResultStatus.UNKNOWN.value))
    except ValueError:
        logger.warning(f"Unrecognised bridge status {body.get('status')!r}")
        return TransportResult.unknown()
    if status is ResultStatus.REJECTED:
        return TransportResult.rejected(body.get("reason") or "rejected by chat bridge")
    if status is ResultStatus.ACCEPTED:
        return TransportResult.accepted(reply=body.get("reply"))
    return TransportResult.unknown()
