"""URI-addressable, cached views over gateway data."""

from waha_relay.client import WahaClient
from waha_relay.config import CacheConfig
from waha_relay.resources.base import Resource, ResourceContent, ResourceMetadata
from waha_relay.resources.cache import ResourceCache
from waha_relay.resources.chats import ChatMessagesResource, ChatsOverviewResource
from waha_relay.resources.manager import ResourceManager

__all__ = [
    "Resource",
    "ResourceContent",
    "ResourceMetadata",
    "ResourceCache",
    "ResourceManager",
    "ChatsOverviewResource",
    "ChatMessagesResource",
    "create_resource_manager",
]


def create_resource_manager(
    client: WahaClient, config: CacheConfig, default_session: str
) -> ResourceManager:
    """Build a manager with every built-in resource registered."""
    manager = ResourceManager(config)
    manager.register(ChatsOverviewResource(client, default_session))
    manager.register(ChatMessagesResource(client, default_session))
    return manager
