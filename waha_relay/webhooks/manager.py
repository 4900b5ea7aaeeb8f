"""Webhook manager: listener + tunnel + gateway registration."""

from __future__ import annotations

from waha_relay.client import WahaClient
from waha_relay.config import WebhookConfig
from waha_relay.errors import TunnelFailure
from waha_relay.utils.logging import get_logger
from waha_relay.webhooks.dispatcher import EventDispatcher
from waha_relay.webhooks.emitter import NotificationEmitter
from waha_relay.webhooks.handlers import EventHandler, default_handlers
from waha_relay.webhooks.server import WebhookServer
from waha_relay.webhooks.tunnel import Forwarder, TunnelManager, ngrok_forward

log = get_logger(__name__)


class WebhookManager:
    """Starts the webhook pipeline and registers it with the gateway.

    Startup order is listener, tunnel, registration. If any step fails,
    whatever was already started is torn down and the error propagates.
    """

    def __init__(
        self,
        config: WebhookConfig,
        client: WahaClient,
        emitter: NotificationEmitter,
        default_session: str = "default",
        handlers: list[EventHandler] | None = None,
        forwarder: Forwarder = ngrok_forward,
    ) -> None:
        self._config = config
        self._client = client
        self._default_session = default_session
        self.dispatcher = EventDispatcher(
            emitter, handlers if handlers is not None else default_handlers()
        )
        self.server = WebhookServer(config, self.dispatcher, default_session)
        self.tunnel = TunnelManager(config.port, config.ngrok_auth_token, forwarder)

    @property
    def public_url(self) -> str | None:
        return self.tunnel.get_public_url()

    def is_running(self) -> bool:
        return self.server.is_running() and self.tunnel.is_active()

    async def start(self) -> str:
        """Start everything and return the registered webhook URL."""
        log.info("webhook_manager_starting")
        await self.server.start()
        try:
            await self.tunnel.start()
            webhook_url = self.tunnel.get_webhook_url(self.server.path)
            if webhook_url is None:
                raise TunnelFailure("Failed to get webhook URL from tunnel")

            await self._client.update_session_webhook(
                self._default_session,
                url=webhook_url,
                events=self._config.events,
                hmac_key=self._config.hmac_key or None,
            )
        except Exception:
            await self.stop()
            raise

        log.info("webhook_manager_started", url=webhook_url)
        return webhook_url

    async def stop(self) -> None:
        log.info("webhook_manager_stopping")
        try:
            await self.tunnel.stop()
        except Exception:
            log.exception("tunnel_stop_failed")
        try:
            await self.server.stop()
        except Exception:
            log.exception("webhook_server_stop_failed")
