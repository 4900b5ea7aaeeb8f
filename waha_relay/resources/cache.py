"""TTL + LRU cache for resource reads."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from waha_relay.config import CacheConfig
from waha_relay.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    stored_at: float
    expires_at: float


class ResourceCache:
    """Bounded key-value store with per-entry expiry and LRU eviction.

    Keys are used literally: ``waha://x?a=1&b=2`` and ``waha://x?b=2&a=1``
    are different entries. Both ``get`` hits and ``set`` count as an access
    for eviction order. Stored values must not be mutated by callers.
    """

    def __init__(
        self,
        config: CacheConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or None on a miss."""
        if not self._config.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: Any) -> None:
        if not self._config.enabled:
            return
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self._config.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                log.debug("cache_evicted", key=evicted)
            self._entries[key] = CacheEntry(
                value=value,
                stored_at=now,
                expires_at=now + self._config.ttl_seconds,
            )
            self._entries.move_to_end(key)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            log.debug("cache_pruned", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def keys(self) -> list[str]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def stats(self) -> dict[str, Any]:
        return {
            "size": len(self._entries),
            "max_size": self._config.max_entries,
            "enabled": self._config.enabled,
            "ttl_seconds": self._config.ttl_seconds,
        }
