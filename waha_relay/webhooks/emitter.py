"""Notification emitters: the hand-off point to the outer protocol layer."""

from __future__ import annotations

from typing import Protocol

from waha_relay.core.bus import EventBus, NotificationReady
from waha_relay.utils.logging import get_logger
from waha_relay.webhooks.models import NormalizedNotification

log = get_logger(__name__)


class NotificationEmitter(Protocol):
    async def emit(self, notification: NormalizedNotification) -> None: ...


class BusEmitter:
    """Publishes notifications onto the event bus as NotificationReady events."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    async def emit(self, notification: NormalizedNotification) -> None:
        try:
            await self._bus.publish(
                NotificationReady(
                    data=notification.to_dict(),
                    notification=notification,
                )
            )
        except Exception:
            log.exception("notification_emit_failed", type=notification.type)
            raise
        log.debug("notification_emitted", type=notification.type, session=notification.session_id)
