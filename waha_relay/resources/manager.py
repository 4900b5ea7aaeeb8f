"""Resource registry with a cache-first read path."""

from __future__ import annotations

import asyncio
from typing import Any

from waha_relay.config import CacheConfig
from waha_relay.errors import NoProducerFound
from waha_relay.resources.base import Resource, ResourceContent, ResourceMetadata
from waha_relay.resources.cache import ResourceCache
from waha_relay.utils.logging import get_logger

log = get_logger(__name__)


class ResourceManager:
    def __init__(self, config: CacheConfig, cache: ResourceCache | None = None) -> None:
        self._config = config
        self._resources: dict[str, Resource] = {}
        self._cache = cache if cache is not None else ResourceCache(config)
        self._prune_task: asyncio.Task[None] | None = None

    @property
    def cache(self) -> ResourceCache:
        return self._cache

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, resource: Resource) -> None:
        self._resources[resource.metadata.uri] = resource

    def unregister(self, template: str) -> None:
        self._resources.pop(template, None)

    def list_resources(self) -> list[ResourceMetadata]:
        return [r.metadata for r in self._resources.values()]

    def templates(self) -> list[str]:
        return list(self._resources)

    def get_metadata(self, template: str) -> ResourceMetadata | None:
        resource = self._resources.get(template)
        return resource.metadata if resource else None

    def can_handle(self, uri: str) -> bool:
        return self._find(uri) is not None

    def _find(self, uri: str) -> Resource | None:
        for resource in self._resources.values():
            if resource.can_handle(uri):
                return resource
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_resource(self, uri: str) -> ResourceContent:
        cached = self._cache.get(uri)
        if cached is not None:
            log.debug("resource_cache_hit", uri=uri)
            return cached

        resource = self._find(uri)
        if resource is None:
            log.warning("resource_not_found", uri=uri)
            raise NoProducerFound(uri, self.templates())

        log.debug("resource_cache_miss", uri=uri, resource=resource.metadata.uri)
        content = await resource.read(uri)
        self._cache.set(uri, content)
        return content

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        return self._cache.stats()

    # ------------------------------------------------------------------
    # Background pruning
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if not self._config.enabled or self._prune_task is not None:
            return
        self._prune_task = asyncio.create_task(self._prune_loop(), name="cache-prune")
        log.info("resource_cache_pruning_started", interval=self._config.prune_interval)

    async def stop(self) -> None:
        if self._prune_task is None:
            return
        self._prune_task.cancel()
        await asyncio.gather(self._prune_task, return_exceptions=True)
        self._prune_task = None

    async def _prune_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.prune_interval)
            try:
                self._cache.prune_expired()
            except Exception:
                log.exception("cache_prune_error")
