"""
Response Cache
==============

Cache abstraction for credential lookups and proof verification results.

Entries are JSON-compatible values (dicts, lists, strings, numbers, bools).
The in-memory backend is an LRU with an optional capacity; `None` keeps
every entry for the life of the process.

Version: 0.1.0
"""

from collections import OrderedDict
from typing import Any, Protocol

from shared.logging import get_logger


logger = get_logger(__name__)


class ResponseCache(Protocol):
    """Async key-value cache."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> bool: ...


class InMemoryCache:
    """
    Process-local LRU cache.

    Args:
        capacity: Maximum number of entries; least recently used entries
            are evicted first. `None` means unbounded.
    """

    def __init__(self, capacity: int | None = None) -> None:
        if capacity is not None and capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._entries: OrderedDict[str, Any] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get(self, key: str) -> Any | None:
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    async def set(self, key: str, value: Any) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        if self._capacity is not None:
            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("cache_entry_evicted", key=evicted)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
