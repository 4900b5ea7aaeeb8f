"""Public tunnel lifecycle for the local webhook listener (ngrok)."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

import ngrok

from waha_relay.errors import TunnelFailure
from waha_relay.utils.logging import get_logger

log = get_logger(__name__)


class Listener(Protocol):
    def url(self) -> str | None: ...

    async def close(self) -> Any: ...


Forwarder = Callable[[int, str], Awaitable[Listener]]


async def ngrok_forward(port: int, auth_token: str) -> Listener:
    options: dict[str, Any] = {"authtoken_from_env": True}
    if auth_token:
        options["authtoken"] = auth_token
    return await ngrok.forward(port, **options)


@dataclass
class TunnelHandle:
    public_url: str
    is_active: bool = True


class TunnelManager:
    """Holds at most one live tunnel.

    ``start`` is idempotent while a tunnel is active. A ``stop`` issued while
    a ``start`` is still in flight wins: the new tunnel is closed as soon as
    it opens and ``start`` raises TunnelFailure.
    """

    def __init__(
        self,
        port: int,
        auth_token: str = "",
        forwarder: Forwarder = ngrok_forward,
    ) -> None:
        self._port = port
        self._auth_token = auth_token
        self._forwarder = forwarder
        self._listener: Listener | None = None
        self._handle: TunnelHandle | None = None
        self._lock = asyncio.Lock()
        self._stop_epoch = 0

    @property
    def handle(self) -> TunnelHandle | None:
        return self._handle

    def get_public_url(self) -> str | None:
        return self._handle.public_url if self._handle else None

    def get_webhook_url(self, path: str = "/webhook") -> str | None:
        url = self.get_public_url()
        if url is None:
            return None
        return f"{url.rstrip('/')}/{path.lstrip('/')}"

    def is_active(self) -> bool:
        return self._listener is not None and self._handle is not None

    async def start(self) -> str:
        epoch = self._stop_epoch
        async with self._lock:
            if self._handle is not None:
                log.debug("tunnel_already_active", url=self._handle.public_url)
                return self._handle.public_url

            log.info("tunnel_starting", port=self._port)
            try:
                listener = await self._forwarder(self._port, self._auth_token)
            except Exception as e:
                log.error("tunnel_start_failed", port=self._port, error=str(e))
                raise TunnelFailure(f"Failed to start ngrok tunnel: {e}") from e

            url = listener.url()
            if epoch != self._stop_epoch or not url:
                await self._close_quietly(listener)
                if not url:
                    raise TunnelFailure("Failed to start ngrok tunnel: provider returned no URL")
                log.info("tunnel_start_superseded", port=self._port)
                raise TunnelFailure("Tunnel start was cancelled by a concurrent stop")

            self._listener = listener
            self._handle = TunnelHandle(public_url=url)
            log.info("tunnel_started", url=url)
            return url

    async def stop(self) -> None:
        self._stop_epoch += 1
        async with self._lock:
            listener = self._listener
            if self._handle is not None:
                self._handle.is_active = False
            self._listener = None
            self._handle = None
            if listener is None:
                return
            log.info("tunnel_stopping")
            await self._close_quietly(listener)
            log.info("tunnel_stopped")

    async def _close_quietly(self, listener: Listener) -> None:
        try:
            await listener.close()
        except Exception:
            log.exception("tunnel_close_failed")
