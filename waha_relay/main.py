"""waha-relay entry point: wires the webhook pipeline and resources together."""

from __future__ import annotations

import asyncio
import json
import signal
import sys

import click

from waha_relay import __version__
from waha_relay.client import WahaClient
from waha_relay.config import Settings, load_settings
from waha_relay.core.bus import Event, EventBus, EventType
from waha_relay.errors import WahaRelayError
from waha_relay.resources import ResourceManager, create_resource_manager
from waha_relay.utils.logging import get_logger, setup_logging
from waha_relay.webhooks.emitter import BusEmitter
from waha_relay.webhooks.manager import WebhookManager
from waha_relay.webhooks.tunnel import Forwarder, ngrok_forward

log = get_logger(__name__)


class WahaRelay:
    """Application orchestrator."""

    def __init__(
        self,
        settings: Settings,
        client: WahaClient | None = None,
        forwarder: Forwarder = ngrok_forward,
    ) -> None:
        self.settings = settings
        self.bus = EventBus()
        self.client = client or WahaClient(settings.gateway)
        self.resources: ResourceManager = create_resource_manager(
            self.client, settings.cache, settings.gateway.default_session
        )
        self.webhooks = WebhookManager(
            settings.webhook,
            self.client,
            BusEmitter(self.bus),
            default_session=settings.gateway.default_session,
            forwarder=forwarder,
        )
        self.webhooks_active = False

    async def start(self) -> None:
        log.info("waha_relay_starting", version=__version__, gateway=self.settings.gateway.base_url)

        await self.resources.start()
        await self.bus.start()

        cfg = self.settings.webhook
        if cfg.enabled and cfg.auto_start:
            try:
                url = await self.webhooks.start()
            except (WahaRelayError, OSError) as e:
                # Keep serving resources without webhooks
                log.error("webhook_start_failed", error=str(e), msg="Continuing without webhooks")
            else:
                self.webhooks_active = True
                log.info("webhooks_enabled", url=url)
        else:
            log.info("webhooks_disabled")

        log.info("waha_relay_ready")

    async def stop(self) -> None:
        log.info("waha_relay_stopping")
        if self.webhooks_active:
            await self.webhooks.stop()
            self.webhooks_active = False
        await self.bus.stop()
        await self.resources.stop()
        await self.client.close()
        log.info("waha_relay_stopped")


async def _print_notification(event: Event) -> None:
    click.echo(json.dumps(event.data, default=str))


async def run(settings: Settings) -> None:
    app = WahaRelay(settings)
    app.bus.subscribe(EventType.NOTIFICATION_READY, _print_notification)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    try:
        await app.start()
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


async def read_once(settings: Settings, uri: str) -> str:
    client = WahaClient(settings.gateway)
    try:
        manager = create_resource_manager(client, settings.cache, settings.gateway.default_session)
        content = await manager.read_resource(uri)
        return content.text
    finally:
        await client.close()


def _load(config_path: str | None, log_level: str | None) -> Settings:
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    return settings


@click.group()
@click.version_option(__version__, prog_name="waha-relay")
def cli() -> None:
    """WAHA webhook relay and cached resource reader."""


@cli.command("run")
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
def run_command(config_path: str | None, log_level: str | None) -> None:
    """Start the webhook pipeline and print notifications as JSON lines."""
    settings = _load(config_path, log_level)
    asyncio.run(run(settings))


@cli.command("read")
@click.argument("uri")
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
def read_command(uri: str, config_path: str | None, log_level: str | None) -> None:
    """Read one resource URI, e.g. waha://chats/overview?limit=5."""
    settings = _load(config_path, log_level)
    try:
        text = asyncio.run(read_once(settings, uri))
    except WahaRelayError as e:
        raise click.ClickException(str(e)) from e
    click.echo(text)


async def list_templates(settings: Settings) -> list[tuple[str, str]]:
    client = WahaClient(settings.gateway)
    try:
        manager = create_resource_manager(client, settings.cache, settings.gateway.default_session)
        return [(meta.uri, meta.name) for meta in manager.list_resources()]
    finally:
        await client.close()


@cli.command("resources")
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
def resources_command(config_path: str | None) -> None:
    """List the registered resource templates."""
    settings = _load(config_path, None)
    for uri, name in asyncio.run(list_templates(settings)):
        click.echo(f"{uri}\t{name}")


if __name__ == "__main__":
    cli()
