"""Webhook signature validation, payload parsing and event handlers."""

from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass
from types import MappingProxyType
from datetime import datetime, timezone
from typing import Any, Callable

from waha_relay.errors import AuthenticationFailure, ValidationFailure
from waha_relay.utils.logging import get_logger
from waha_relay.webhooks.emitter import NotificationEmitter
from waha_relay.webhooks.models import (
    ACK_CODES,
    AckStatus,
    NormalizedNotification,
    SessionState,
    WahaEventType,
    WebhookEvent,
)

log = get_logger(__name__)

LOG_PREVIEW_LENGTH = 50


# ---------------------------------------------------------------------------
# Signature validation
# ---------------------------------------------------------------------------

def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw body, as the gateway computes it."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Constant-time check of a hex signature against the raw body.

    Returns False if either the secret or the signature is empty.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(body, secret).encode()
    received = signature.encode("utf-8", "surrogateescape")
    if len(expected) != len(received):
        return False
    return hmac.compare_digest(expected, received)


def authenticate(body: bytes, signature: str | None, secret: str) -> None:
    """Raise AuthenticationFailure unless the request is signed correctly.

    With no secret configured the check is skipped entirely.
    """
    if not secret:
        return
    if not signature:
        raise AuthenticationFailure("Missing HMAC signature")
    if not verify_signature(body, signature, secret):
        raise AuthenticationFailure("Invalid HMAC signature")


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def parse_webhook_event(body: bytes, default_session: str = "default") -> WebhookEvent:
    """Deserialize one request body into a WebhookEvent."""
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationFailure(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValidationFailure("Webhook body must be a JSON object")

    event_type = data.get("event")
    if not isinstance(event_type, str) or not event_type:
        raise ValidationFailure("Webhook payload is missing 'event'")

    session = data.get("session") or default_session
    if not isinstance(session, str):
        raise ValidationFailure("'session' must be a string")

    payload = data.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailure("'payload' must be a JSON object")

    return WebhookEvent(
        event_type=event_type,
        session_id=session,
        raw_payload=MappingProxyType(payload),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def extract_chat_id(sender: str, recipient: str, from_me: bool) -> str:
    """The chat is the recipient for our own messages, else the sender."""
    return recipient if from_me else sender


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _iso_timestamp(value: Any) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None


def _session_state(value: Any) -> str:
    """Canonical SessionState name, or the raw value for states we do not know."""
    if not isinstance(value, str):
        return ""
    try:
        return SessionState(value.upper()).value
    except ValueError:
        return value


def _ack_name(ack: Any, ack_name: Any) -> str:
    if isinstance(ack_name, str) and ack_name:
        return ack_name
    if isinstance(ack, str) and ack:
        return ack
    if isinstance(ack, int) and not isinstance(ack, bool):
        status = ACK_CODES.get(ack)
        if status is not None:
            return status.value
    return AckStatus.PENDING.value


# ---------------------------------------------------------------------------
# Event normalization
# ---------------------------------------------------------------------------

def normalize_message_event(event: WebhookEvent) -> NormalizedNotification:
    data = event.raw_payload
    from_me = bool(data.get("fromMe", False))
    sender = str(data.get("from", ""))
    chat_id = extract_chat_id(sender, str(data.get("to", "")), from_me)
    has_media = bool(data.get("hasMedia", False))
    body = data.get("body") or ""
    text = body or ("[Media]" if has_media else "[No content]")
    reply_to = data.get("replyTo") if isinstance(data.get("replyTo"), dict) else None
    ack = data.get("ack")

    return NormalizedNotification(
        channel="message",
        session_id=event.session_id,
        payload={
            "session": event.session_id,
            "messageId": data.get("id", ""),
            "chatId": chat_id,
            "from": "Me" if from_me else sender,
            "fromMe": from_me,
            "text": text,
            "timestamp": _iso_timestamp(data.get("timestamp")),
            "timestampRaw": data.get("timestamp"),
            "hasMedia": has_media,
            "mediaUrl": data.get("mediaUrl"),
            "ackStatus": _ack_name(ack, data.get("ackName")) if ack is not None else AckStatus.PENDING.value,
            "replyToId": reply_to.get("id") if reply_to else None,
            "replyToBody": reply_to.get("body") if reply_to else None,
        },
    )


def normalize_ack_event(event: WebhookEvent) -> NormalizedNotification:
    data = event.raw_payload
    from_me = bool(data.get("fromMe", False))
    chat_id = extract_chat_id(str(data.get("from", "")), str(data.get("to", "")), from_me)
    ack = data.get("ack")

    return NormalizedNotification(
        channel="ack",
        session_id=event.session_id,
        payload={
            "session": event.session_id,
            "messageId": data.get("id", ""),
            "chatId": chat_id,
            "status": ack,
            "statusName": _ack_name(ack, data.get("ackName")),
            "fromMe": from_me,
        },
    )


def normalize_state_event(event: WebhookEvent) -> NormalizedNotification:
    data = event.raw_payload
    # Some engines send the status under "status" instead of "state"
    state = _session_state(data.get("state") or data.get("status"))

    return NormalizedNotification(
        channel="state",
        session_id=event.session_id,
        payload={
            "session": event.session_id,
            "state": state,
            "reason": data.get("reason"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

Normalizer = Callable[[WebhookEvent], NormalizedNotification]


def _describe_message(n: NormalizedNotification) -> dict[str, Any]:
    p = n.payload
    return {
        "chat_id": p["chatId"],
        "sender": p["from"],
        "preview": truncate(str(p["text"]), LOG_PREVIEW_LENGTH),
    }


def _describe_ack(n: NormalizedNotification) -> dict[str, Any]:
    p = n.payload
    return {"message_id": p["messageId"], "chat_id": p["chatId"], "status": p["statusName"]}


def _describe_state(n: NormalizedNotification) -> dict[str, Any]:
    p = n.payload
    return {"state": p["state"], "reason": p["reason"]}


@dataclass(frozen=True)
class EventHandler:
    """A stateless handler: which events it takes and how it normalizes them.

    ``match_all`` handlers are offered every event regardless of type.
    """

    kind: str
    event_types: frozenset[str]
    normalize: Normalizer
    describe: Callable[[NormalizedNotification], dict[str, Any]] | None = None
    match_all: bool = False

    def can_handle(self, event_type: str) -> bool:
        return self.match_all or event_type in self.event_types

    async def handle(
        self, event: WebhookEvent, emitter: NotificationEmitter
    ) -> NormalizedNotification:
        notification = self.normalize(event)
        context = self.describe(notification) if self.describe else {}
        # Message text only ever reaches DEBUG output
        preview = context.pop("preview", None)
        log.info(
            "event_handled",
            handler=self.kind,
            event_type=event.event_type,
            session=event.session_id,
            **context,
        )
        if preview is not None:
            log.debug("event_preview", handler=self.kind, preview=preview)
        await emitter.emit(notification)
        return notification


MESSAGE_HANDLER = EventHandler(
    kind="message",
    event_types=frozenset({WahaEventType.MESSAGE.value, WahaEventType.MESSAGE_ANY.value}),
    normalize=normalize_message_event,
    describe=_describe_message,
)

ACK_HANDLER = EventHandler(
    kind="ack",
    event_types=frozenset({WahaEventType.MESSAGE_ACK.value}),
    normalize=normalize_ack_event,
    describe=_describe_ack,
)

STATE_HANDLER = EventHandler(
    kind="state",
    event_types=frozenset({WahaEventType.STATE_CHANGE.value}),
    normalize=normalize_state_event,
    describe=_describe_state,
)


def default_handlers() -> list[EventHandler]:
    return [MESSAGE_HANDLER, ACK_HANDLER, STATE_HANDLER]
