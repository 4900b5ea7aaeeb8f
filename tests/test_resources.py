"""Tests for resources, formatting and the cache-first resource manager."""

import asyncio

import pytest

from waha_relay.config import CacheConfig
from waha_relay.errors import InvalidResourceUri, NoProducerFound
from waha_relay.resources import (
    ChatMessagesResource,
    ChatsOverviewResource,
    ResourceCache,
    ResourceManager,
    create_resource_manager,
)
from waha_relay.resources.base import (
    get_bool_param,
    get_int_param,
    get_optional_int_param,
    parse_uri_params,
)
from waha_relay.resources.formatters import (
    format_chats_overview,
    format_message,
    format_messages,
    format_timestamp,
)


class FakeClient:
    def __init__(self, chats=None, messages=None):
        self.chats = chats if chats is not None else [
            {"id": "15551234567@c.us", "name": "Alice", "unreadCount": 2,
             "lastMessage": {"body": "hi", "fromMe": False, "timestamp": 1700000000}},
        ]
        self.messages = messages if messages is not None else [
            {"id": "m1", "timestamp": 1700000000, "from": "15551234567@c.us", "body": "hello"},
        ]
        self.overview_calls = []
        self.message_calls = []

    async def get_chats_overview(self, session, limit=10, offset=None, ids=None):
        self.overview_calls.append({"session": session, "limit": limit, "offset": offset, "ids": ids})
        return self.chats

    async def get_chat_messages(self, session, chat_id, **kwargs):
        self.message_calls.append({"session": session, "chat_id": chat_id, **kwargs})
        return self.messages


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def manager(client):
    return create_resource_manager(client, CacheConfig(ttl_seconds=300, max_entries=100), "default")


class TestUriParams:
    def test_parse(self):
        assert parse_uri_params("waha://chats/overview?limit=5&offset=2") == {"limit": "5", "offset": "2"}

    def test_no_query(self):
        assert parse_uri_params("waha://chats/overview") == {}

    def test_int_param_caps_and_defaults(self):
        params = {"limit": "500", "bad": "abc"}
        assert get_int_param(params, "limit", 10, 100) == 100
        assert get_int_param(params, "bad", 10) == 10
        assert get_int_param(params, "missing", 7) == 7

    def test_optional_int(self):
        assert get_optional_int_param({"t": "123"}, "t") == 123
        assert get_optional_int_param({"t": "x"}, "t") is None
        assert get_optional_int_param({}, "t") is None

    def test_bool_param(self):
        assert get_bool_param({"f": "true"}, "f", False) is True
        assert get_bool_param({"f": "1"}, "f", False) is True
        assert get_bool_param({"f": "false"}, "f", True) is False
        assert get_bool_param({}, "f", True) is True


class TestChatsOverviewResource:
    def test_can_handle(self, client):
        resource = ChatsOverviewResource(client, "default")
        assert resource.can_handle("waha://chats/overview")
        assert resource.can_handle("waha://chats/overview?limit=5")
        assert not resource.can_handle("waha://chats/overviewx")
        assert not resource.can_handle("waha://chat/1@c.us/messages")

    async def test_read_passes_params(self, client):
        resource = ChatsOverviewResource(client, "default")
        content = await resource.read("waha://chats/overview?limit=500&offset=3&ids=a@c.us,b@c.us&session=work")
        assert client.overview_calls == [
            {"session": "work", "limit": 100, "offset": 3, "ids": ["a@c.us", "b@c.us"]}
        ]
        assert "Found 1 chat:" in content.text
        assert "Total Chats: 1" in content.text
        assert content.mime_type == "text/plain"


class TestChatMessagesResource:
    def test_can_handle(self, client):
        resource = ChatMessagesResource(client, "default")
        assert resource.can_handle("waha://chat/15551234567@c.us/messages")
        assert resource.can_handle("waha://chat/123@g.us/messages?limit=5")
        assert not resource.can_handle("waha://chat//messages")
        assert not resource.can_handle("waha://chats/overview")

    async def test_invalid_chat_id(self, client):
        resource = ChatMessagesResource(client, "default")
        with pytest.raises(InvalidResourceUri, match="Invalid chat ID format"):
            await resource.read("waha://chat/not-a-chat/messages")
        assert client.message_calls == []

    async def test_read_applies_filters(self, client):
        resource = ChatMessagesResource(client, "default")
        content = await resource.read(
            "waha://chat/15551234567%40c.us/messages?limit=20&fromMe=true&timestampGte=100&downloadMedia=true"
        )
        call = client.message_calls[0]
        assert call["chat_id"] == "15551234567@c.us"
        assert call["limit"] == 20
        assert call["from_me"] is True
        assert call["timestamp_gte"] == 100
        assert call["timestamp_lte"] is None
        assert call["download_media"] is True
        assert 'Filters Applied: {"timestampGte": 100, "fromMe": true}' in content.text

    async def test_read_without_filters(self, client):
        resource = ChatMessagesResource(client, "default")
        content = await resource.read("waha://chat/123@g.us/messages")
        assert "Filters Applied: None" in content.text
        assert client.message_calls[0]["session"] == "default"


class TestResourceManager:
    async def test_second_read_within_ttl_is_cached(self, manager, client):
        uri = "waha://chats/overview?limit=5"
        first = await manager.read_resource(uri)
        second = await manager.read_resource(uri)
        assert first == second
        assert len(client.overview_calls) == 1

    async def test_different_uri_is_a_separate_entry(self, manager, client):
        await manager.read_resource("waha://chats/overview?limit=5")
        await manager.read_resource("waha://chats/overview?limit=6")
        assert len(client.overview_calls) == 2

    async def test_unknown_uri_lists_templates(self, manager):
        with pytest.raises(NoProducerFound) as exc_info:
            await manager.read_resource("waha://unknown/path")
        assert exc_info.value.templates == [
            "waha://chats/overview",
            "waha://chat/{chatId}/messages",
        ]
        assert "waha://chat/{chatId}/messages" in str(exc_info.value)

    async def test_failed_read_is_not_cached(self, manager, client):
        with pytest.raises(InvalidResourceUri):
            await manager.read_resource("waha://chat/bad/messages")
        assert len(manager.cache) == 0

    async def test_clear_cache_forces_refetch(self, manager, client):
        uri = "waha://chats/overview"
        await manager.read_resource(uri)
        manager.clear_cache()
        await manager.read_resource(uri)
        assert len(client.overview_calls) == 2
        assert manager.cache_stats()["size"] == 1

    def test_list_and_metadata(self, manager):
        assert [m.uri for m in manager.list_resources()] == manager.templates()
        meta = manager.get_metadata("waha://chats/overview")
        assert meta.name == "WhatsApp Chats Overview"
        assert meta.to_dict()["mimeType"] == "text/plain"
        assert manager.get_metadata("waha://nope") is None

    def test_unregister(self, manager):
        manager.unregister("waha://chats/overview")
        assert not manager.can_handle("waha://chats/overview")
        assert manager.can_handle("waha://chat/1@c.us/messages")

    async def test_disabled_cache_always_fetches(self, client):
        manager = create_resource_manager(client, CacheConfig(enabled=False), "default")
        await manager.read_resource("waha://chats/overview")
        await manager.read_resource("waha://chats/overview")
        assert len(client.overview_calls) == 2

    async def test_prune_task_reclaims_expired_entries_without_reads(self, client):
        now = [1000.0]
        config = CacheConfig(ttl_seconds=10, prune_interval=0.01)
        manager = ResourceManager(config, cache=ResourceCache(config, clock=lambda: now[0]))
        manager.register(ChatsOverviewResource(client, "default"))
        await manager.read_resource("waha://chats/overview")
        assert len(manager.cache) == 1

        await manager.start()
        await manager.start()
        try:
            await asyncio.sleep(0.03)
            assert len(manager.cache) == 1
            now[0] += 11
            await asyncio.sleep(0.05)
            assert len(manager.cache) == 0
        finally:
            await manager.stop()
        await manager.stop()
        assert manager._prune_task is None

    async def test_prune_task_not_started_when_disabled(self):
        manager = ResourceManager(CacheConfig(enabled=False))
        await manager.start()
        assert manager._prune_task is None


class TestFormatters:
    def test_timestamp(self):
        assert format_timestamp(0) == "1970-01-01 00:00:00 UTC"
        assert format_timestamp(None) == "Unknown"
        assert format_timestamp("soon") == "Unknown"

    def test_empty_lists(self):
        assert format_chats_overview([]) == "No chats found."
        assert format_messages([]) == "No messages found."

    def test_chat_overview(self):
        text = format_chats_overview([
            {"id": "1@g.us", "name": "Team", "isGroup": True, "unreadCount": 1,
             "lastMessage": {"body": "", "fromMe": True, "timestamp": 0}, "archived": True},
        ])
        assert "[Chat 1]" in text
        assert "Type: Group" in text
        assert "Unread: 1 message" in text
        assert 'Last Message: "(media)"' in text
        assert "From: Me" in text
        assert "Status: Archived" in text

    def test_message(self):
        text = format_message({
            "id": "m1", "timestamp": 0, "fromMe": False, "from": "1@c.us",
            "body": "hey", "hasMedia": True, "caption": "pic", "ack": 3, "ackName": "READ",
            "isForwarded": True,
        })
        assert "From: 1@c.us" in text
        assert 'Text: "hey"' in text
        assert 'Media: Yes (caption: "pic")' in text
        assert "Status: READ" in text
        assert "Forwarded: Yes" in text
