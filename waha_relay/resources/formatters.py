"""Plain-text rendering of chats and messages."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def format_timestamp(timestamp: Any) -> str:
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return "Unknown"
    try:
        dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return "Unknown"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def format_chat_overview(chat: dict[str, Any]) -> str:
    name = chat.get("name") or chat.get("id", "Unknown")
    lines = [f"Chat ID: {chat.get('id', 'Unknown')}", f"Name: {name}"]

    if chat.get("isGroup"):
        lines.append("Type: Group")

    unread = chat.get("unreadCount") or 0
    if unread > 0:
        lines.append(f"Unread: {_plural(unread, 'message')}")

    last = chat.get("lastMessage")
    if isinstance(last, dict):
        lines.append(f"Last Message: \"{last.get('body') or '(media)'}\"")
        lines.append(f"  From: {'Me' if last.get('fromMe') else name}")
        lines.append(f"  Time: {format_timestamp(last.get('timestamp'))}")

    if chat.get("archived"):
        lines.append("Status: Archived")

    return "\n".join(lines)


def format_chats_overview(chats: list[dict[str, Any]]) -> str:
    if not chats:
        return "No chats found."
    sections = [f"\n[Chat {i}]\n{format_chat_overview(c)}" for i, c in enumerate(chats, 1)]
    return f"Found {_plural(len(chats), 'chat')}:\n" + "\n".join(sections)


def format_message(message: dict[str, Any]) -> str:
    lines = [
        f"Message ID: {message.get('id', 'Unknown')}",
        f"Time: {format_timestamp(message.get('timestamp'))}",
        f"From: {'Me' if message.get('fromMe') else (message.get('from') or 'Unknown')}",
    ]

    if message.get("body"):
        lines.append(f"Text: \"{message['body']}\"")

    if message.get("hasMedia"):
        caption = message.get("caption")
        lines.append(f"Media: Yes (caption: \"{caption}\")" if caption else "Media: Yes")

    if message.get("quotedMsg"):
        lines.append(f"Reply to: {message['quotedMsg']}")

    if message.get("ack") is not None:
        lines.append(f"Status: {message.get('ackName') or message['ack']}")

    if message.get("isForwarded"):
        lines.append("Forwarded: Yes")

    return "\n".join(lines)


def format_messages(messages: list[dict[str, Any]]) -> str:
    if not messages:
        return "No messages found."
    sections = [f"\n[Message {i}]\n{format_message(m)}" for i, m in enumerate(messages, 1)]
    return f"Found {_plural(len(messages), 'message')}:\n" + "\n".join(sections)
