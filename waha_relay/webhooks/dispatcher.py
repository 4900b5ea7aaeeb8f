"""Routes validated webhook events to every matching handler."""

from __future__ import annotations

import asyncio

from waha_relay.utils.logging import get_logger
from waha_relay.webhooks.emitter import NotificationEmitter
from waha_relay.webhooks.handlers import EventHandler
from waha_relay.webhooks.models import DispatchResult, HandlerResult, WebhookEvent

log = get_logger(__name__)


class EventDispatcher:
    """Fans an event out to all handlers that accept it.

    Handlers run concurrently. A failing handler is logged and recorded in
    the returned DispatchResult; it never stops the others and never
    propagates to the caller.
    """

    def __init__(
        self,
        emitter: NotificationEmitter,
        handlers: list[EventHandler] | None = None,
    ) -> None:
        self._emitter = emitter
        self._handlers: list[EventHandler] = list(handlers or [])

    @property
    def handlers(self) -> list[EventHandler]:
        return list(self._handlers)

    def register(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def matching(self, event_type: str) -> list[EventHandler]:
        return [h for h in self._handlers if h.can_handle(event_type)]

    async def dispatch(self, event: WebhookEvent) -> DispatchResult:
        matched = self.matching(event.event_type)
        if not matched:
            log.info(
                "event_unrecognized",
                event_type=event.event_type,
                session=event.session_id,
            )
            return DispatchResult(event_type=event.event_type)

        results = await asyncio.gather(*(self._run(h, event) for h in matched))
        return DispatchResult(event_type=event.event_type, results=list(results))

    async def _run(self, handler: EventHandler, event: WebhookEvent) -> HandlerResult:
        try:
            notification = await handler.handle(event, self._emitter)
        except Exception as e:
            log.exception(
                "handler_failed",
                handler=handler.kind,
                event_type=event.event_type,
                session=event.session_id,
            )
            return HandlerResult(handler=handler.kind, success=False, error=str(e) or type(e).__name__)
        return HandlerResult(handler=handler.kind, success=True, notification=notification)
