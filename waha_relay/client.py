"""Async HTTP client for the subset of the WAHA API this project uses."""

from __future__ import annotations

import asyncio
import random
from typing import Any
from urllib.parse import quote

import httpx

from waha_relay.config import GatewayConfig
from waha_relay.errors import GatewayError
from waha_relay.utils.logging import get_logger

log = get_logger(__name__)

MAX_PAGE_SIZE = 100


def _clean_params(params: dict[str, Any]) -> dict[str, Any]:
    """Drop unset values and render booleans the way the gateway expects."""
    cleaned: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = value
    return cleaned


class WahaClient:
    def __init__(
        self,
        config: GatewayConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
    ) -> None:
        self._config = config
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._client = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=config.timeout,
            headers={"X-Api-Key": config.api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def default_session(self) -> str:
        return self._config.default_session

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def get_chats_overview(
        self,
        session: str,
        limit: int = 10,
        offset: int | None = None,
        ids: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """GET /api/{session}/chats/overview"""
        params = _clean_params({"limit": min(limit, MAX_PAGE_SIZE), "offset": offset})
        if ids:
            params["ids"] = list(ids)
        return await self._request("GET", f"/api/{quote(session, safe='')}/chats/overview", params=params)

    async def get_chat_messages(
        self,
        session: str,
        chat_id: str,
        limit: int = 10,
        offset: int | None = None,
        download_media: bool = False,
        timestamp_gte: int | None = None,
        timestamp_lte: int | None = None,
        from_me: bool | None = None,
    ) -> list[dict[str, Any]]:
        """GET /api/{session}/chats/{chatId}/messages"""
        if not chat_id:
            raise GatewayError("chat_id is required")
        params = _clean_params({
            "limit": min(limit, MAX_PAGE_SIZE),
            "offset": offset,
            "downloadMedia": download_media,
            "filter.timestamp.gte": timestamp_gte,
            "filter.timestamp.lte": timestamp_lte,
            "filter.fromMe": from_me,
        })
        path = f"/api/{quote(session, safe='')}/chats/{quote(chat_id, safe='')}/messages"
        return await self._request("GET", path, params=params)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def update_session_webhook(
        self,
        session: str,
        url: str,
        events: list[str],
        hmac_key: str | None = None,
    ) -> None:
        """PUT /api/sessions/{session} with a single webhook target."""
        webhook: dict[str, Any] = {"url": url, "events": list(events)}
        if hmac_key:
            webhook["hmac"] = {"key": hmac_key}
        body = {"config": {"webhooks": [webhook]}}

        await self._request("PUT", f"/api/sessions/{quote(session, safe='')}", json=body)
        log.info(
            "gateway_webhook_configured",
            session=session,
            url=url,
            events=list(events),
            hmac=bool(hmac_key),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = await self._send_with_retry(method, path, **kwargs)
        if not resp.is_success:
            raise GatewayError(self._error_message(resp), status_code=resp.status_code)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    async def _send_with_retry(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        for attempt in range(self._max_retries + 1):
            try:
                resp = await self._client.request(method, path, **kwargs)
            except httpx.TransportError as e:
                if attempt == self._max_retries:
                    raise GatewayError(f"Failed to connect to WAHA API: {e}") from e
                log.warning("gateway_connect_retry", path=path, attempt=attempt)
            except httpx.HTTPError as e:
                raise GatewayError(f"WAHA API request failed: {e}") from e
            else:
                if resp.status_code < 500 or attempt == self._max_retries:
                    return resp
                log.warning("gateway_retry", path=path, status=resp.status_code, attempt=attempt)
            await asyncio.sleep((2 ** attempt) * self._retry_backoff + random.uniform(0, self._retry_backoff))
        raise RuntimeError("Unreachable")

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        fallback = f"HTTP {resp.status_code}: {resp.reason_phrase}"
        try:
            data = resp.json()
        except ValueError:
            return fallback
        if isinstance(data, dict):
            message = data.get("message") or data.get("error")
            if message:
                return str(message)
        return fallback
