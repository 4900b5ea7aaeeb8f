"""Webhook HTTP server using aiohttp."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable

from aiohttp import web

from waha_relay.config import WebhookConfig
from waha_relay.errors import AuthenticationFailure, ValidationFailure
from waha_relay.utils.logging import get_logger
from waha_relay.webhooks.dispatcher import EventDispatcher
from waha_relay.webhooks.handlers import authenticate, parse_webhook_event
from waha_relay.webhooks.models import DispatchResult

log = get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Hmac"


@web.middleware
async def _log_requests(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    log.debug("webhook_request", method=request.method, path=request.path)
    return await handler(request)


class WebhookServer:
    """Receives gateway webhooks, authenticates them and awaits dispatch."""

    def __init__(
        self,
        config: WebhookConfig,
        dispatcher: EventDispatcher,
        default_session: str = "default",
    ) -> None:
        self._config = config
        self._dispatcher = dispatcher
        self._default_session = default_session
        self._runner: web.AppRunner | None = None
        # Dispatches that outlived the request timeout; left to finish
        self._pending: set[asyncio.Task[DispatchResult]] = set()

    @property
    def path(self) -> str:
        path = self._config.path
        return path if path.startswith("/") else f"/{path}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._runner is not None:
            return
        if not self._config.hmac_key:
            log.warning(
                "webhook_hmac_disabled",
                msg="No HMAC key configured; webhook signatures will not be checked.",
            )
        app = self.build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.bind, self._config.port)
        try:
            await site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            raise
        log.info(
            "webhook_server_started",
            bind=self._config.bind,
            port=self._config.port,
            path=self.path,
        )

    async def stop(self) -> None:
        if self._pending:
            await asyncio.wait(set(self._pending), timeout=self._config.dispatch_timeout)
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("webhook_server_stopped")

    def is_running(self) -> bool:
        return self._runner is not None

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[_log_requests])
        app.router.add_get("/health", self._handle_health)
        app.router.add_post(self.path, self._handle_webhook)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
        )

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        # Signature is computed over the exact bytes received
        body = await request.read()

        try:
            authenticate(body, request.headers.get(SIGNATURE_HEADER), self._config.hmac_key)
        except AuthenticationFailure as e:
            log.warning("webhook_auth_failed", reason=str(e), remote=request.remote)
            return web.json_response({"error": str(e)}, status=401)

        try:
            event = parse_webhook_event(body, self._default_session)
        except ValidationFailure as e:
            log.warning("webhook_invalid_payload", reason=str(e))
            return web.json_response({"error": "Invalid webhook payload", "detail": str(e)}, status=400)

        log.info("webhook_received", event_type=event.event_type, session=event.session_id)

        task = asyncio.ensure_future(self._dispatcher.dispatch(event))
        try:
            result = await asyncio.wait_for(
                asyncio.shield(task), timeout=self._config.dispatch_timeout
            )
        except asyncio.TimeoutError:
            # Handlers keep running; only the HTTP response gives up
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            log.error(
                "webhook_dispatch_timeout",
                event_type=event.event_type,
                session=event.session_id,
                timeout=self._config.dispatch_timeout,
            )
            return web.json_response({"error": "Dispatch timed out"}, status=500)

        return web.json_response(
            {
                "success": True,
                "received": event.event_type,
                "handled": len(result.succeeded),
                "failed": len(result.failed),
            }
        )
