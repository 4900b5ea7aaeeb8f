"""Webhook event and notification models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class WahaEventType(str, Enum):
    """Event names the gateway is known to send. Not a closed set."""

    MESSAGE = "message"
    MESSAGE_ANY = "message.any"
    MESSAGE_ACK = "message.ack"
    STATE_CHANGE = "state.change"
    GROUP_JOIN = "group.join"
    GROUP_LEAVE = "group.leave"
    PRESENCE_UPDATE = "presence.update"
    POLL_VOTE = "poll.vote"
    POLL_VOTE_FAILED = "poll.vote.failed"


class AckStatus(str, Enum):
    ERROR = "ERROR"
    PENDING = "PENDING"
    SERVER = "SERVER"
    DEVICE = "DEVICE"
    READ = "READ"
    PLAYED = "PLAYED"


# Numeric ack codes as sent by the gateway engines
ACK_CODES: dict[int, AckStatus] = {
    -1: AckStatus.ERROR,
    0: AckStatus.PENDING,
    1: AckStatus.SERVER,
    2: AckStatus.DEVICE,
    3: AckStatus.READ,
    4: AckStatus.PLAYED,
}


class SessionState(str, Enum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    SCAN_QR_CODE = "SCAN_QR_CODE"
    WORKING = "WORKING"
    FAILED = "FAILED"


@dataclass(frozen=True)
class WebhookEvent:
    event_type: str
    session_id: str
    # Read-only view shared by every handler
    raw_payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NormalizedNotification:
    channel: str
    session_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return f"waha/{self.channel}"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": dict(self.payload)}


@dataclass
class HandlerResult:
    handler: str
    success: bool
    notification: NormalizedNotification | None = None
    error: str = ""


@dataclass
class DispatchResult:
    event_type: str
    results: list[HandlerResult] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return bool(self.results)

    @property
    def succeeded(self) -> list[HandlerResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[HandlerResult]:
        return [r for r in self.results if not r.success]
