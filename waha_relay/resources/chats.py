"""Chat resources backed by the WAHA gateway."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import unquote

from waha_relay.client import WahaClient
from waha_relay.errors import InvalidResourceUri
from waha_relay.resources.base import (
    Resource,
    ResourceContent,
    ResourceMetadata,
    get_bool_param,
    get_int_param,
    get_optional_int_param,
    parse_uri_params,
)
from waha_relay.resources.formatters import format_chats_overview, format_messages

DEFAULT_LIMIT = 10
MAX_LIMIT = 100

_CHAT_ID_RE = re.compile(r"^\d+@(c|g)\.us$")


def _footer(lines: list[str]) -> str:
    return "\n\n--- Resource Info ---\n" + "\n".join(lines)


def _fetched_at() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatsOverviewResource(Resource):
    """waha://chats/overview - recent chats with last-message previews."""

    TEMPLATE = "waha://chats/overview"

    def __init__(self, client: WahaClient, default_session: str) -> None:
        self._client = client
        self._default_session = default_session

    @property
    def metadata(self) -> ResourceMetadata:
        return ResourceMetadata(
            uri=self.TEMPLATE,
            name="WhatsApp Chats Overview",
            description=(
                "Overview of recent WhatsApp chats with last message previews. "
                "Supports parameters: limit (default: 10, max: 100), offset (for pagination), "
                "ids (comma-separated chat IDs to filter), session"
            ),
        )

    def can_handle(self, uri: str) -> bool:
        return uri == self.TEMPLATE or uri.startswith(self.TEMPLATE + "?")

    async def read(self, uri: str) -> ResourceContent:
        params = parse_uri_params(uri)
        limit = get_int_param(params, "limit", DEFAULT_LIMIT, MAX_LIMIT)
        offset = get_int_param(params, "offset", 0)
        ids = [i.strip() for i in params["ids"].split(",") if i.strip()] if params.get("ids") else None
        session = params.get("session") or self._default_session

        chats = await self._client.get_chats_overview(session, limit=limit, offset=offset, ids=ids)

        text = format_chats_overview(chats) + _footer([
            f"URI: {uri}",
            f"Fetched: {_fetched_at()}",
            f"Total Chats: {len(chats)}",
        ])
        return ResourceContent(uri=uri, text=text)


class ChatMessagesResource(Resource):
    """waha://chat/{chatId}/messages - a page of one chat's history."""

    TEMPLATE = "waha://chat/{chatId}/messages"
    URI_PATTERN = re.compile(r"^waha://chat/([^/?]+)/messages(?:\?|$)")

    def __init__(self, client: WahaClient, default_session: str) -> None:
        self._client = client
        self._default_session = default_session

    @property
    def metadata(self) -> ResourceMetadata:
        return ResourceMetadata(
            uri=self.TEMPLATE,
            name="WhatsApp Chat Messages",
            description=(
                "Messages from a specific WhatsApp chat. "
                "URI format: waha://chat/{chatId}/messages?limit=10&offset=0 "
                "Supports parameters: limit (default: 10, max: 100), offset (for pagination), "
                "downloadMedia (true/false), timestampGte, timestampLte, fromMe (true/false), session"
            ),
        )

    def can_handle(self, uri: str) -> bool:
        return self.URI_PATTERN.match(uri) is not None

    async def read(self, uri: str) -> ResourceContent:
        match = self.URI_PATTERN.match(uri)
        if match is None:
            raise InvalidResourceUri(
                f"Invalid URI format: {uri}. Expected: {self.TEMPLATE}"
            )

        chat_id = unquote(match.group(1))
        if not _CHAT_ID_RE.match(chat_id):
            raise InvalidResourceUri(
                f"Invalid chat ID format: {chat_id}. "
                "Expected format: number@c.us (individual) or number@g.us (group)"
            )

        params = parse_uri_params(uri)
        filters: dict[str, Any] = {}
        timestamp_gte = get_optional_int_param(params, "timestampGte")
        if timestamp_gte is not None:
            filters["timestampGte"] = timestamp_gte
        timestamp_lte = get_optional_int_param(params, "timestampLte")
        if timestamp_lte is not None:
            filters["timestampLte"] = timestamp_lte
        if "fromMe" in params:
            filters["fromMe"] = get_bool_param(params, "fromMe", False)
        session = params.get("session") or self._default_session

        messages = await self._client.get_chat_messages(
            session,
            chat_id,
            limit=get_int_param(params, "limit", DEFAULT_LIMIT, MAX_LIMIT),
            offset=get_int_param(params, "offset", 0),
            download_media=get_bool_param(params, "downloadMedia", False),
            timestamp_gte=filters.get("timestampGte"),
            timestamp_lte=filters.get("timestampLte"),
            from_me=filters.get("fromMe"),
        )

        text = format_messages(messages) + _footer([
            f"URI: {uri}",
            f"Chat ID: {chat_id}",
            f"Fetched: {_fetched_at()}",
            f"Total Messages: {len(messages)}",
            f"Filters Applied: {json.dumps(filters) if filters else 'None'}",
        ])
        return ResourceContent(uri=uri, text=text)
