"""Small read cache in front of the record store.

Entries go stale after a fixed duration and are refetched on the next read.
Services invalidate the keys they touch after every mutation, and the cache
listens to the store's change notifications so writes made elsewhere (e.g.
another process editing the JSON data file) are seen too.
"""
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_STALE_TIME = 60.0  # seconds


class QueryCache:
    def __init__(self, stale_time: float = DEFAULT_STALE_TIME, clock: Callable[[], float] = time.monotonic):
        self.stale_time = stale_time
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        # Bumped by every invalidation; a fetch that spans one is not stored
        self._generation = 0
        self._unsubscribe: Optional[Callable[[], None]] = None

    def _key_matches(self, key: str, prefix: str) -> bool:
        return key == prefix or key.startswith(prefix + ":")

    def is_stale(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return True
        fetched_at, _ = entry
        return self._clock() - fetched_at >= self.stale_time

    async def get_or_fetch(self, key: str, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for key, calling fetcher when missing or stale."""
        if not self.is_stale(key):
            logger.debug(f"Query cache hit: {key}")
            return self._entries[key][1]
        logger.debug(f"Query cache miss: {key}")
        generation = self._generation
        value = await fetcher()
        if generation == self._generation:
            self._entries[key] = (self._clock(), value)
        else:
            logger.debug(f"Query cache invalidated during fetch, not storing: {key}")
        return value

    def invalidate(self, *keys: str) -> None:
        """
        Drop cached entries. A key also drops its "key:..." variants
        (e.g. "expenses" drops "expenses:limit=5"). No keys clears everything.
        """
        self._generation += 1
        if not keys:
            self._entries.clear()
            return
        for cached_key in list(self._entries):
            if any(self._key_matches(cached_key, key) for key in keys):
                del self._entries[cached_key]
        logger.debug(f"Query cache invalidated: {', '.join(keys)}")

    def attach(self, store) -> None:
        """Invalidate on every change the store announces."""
        self.detach()
        self._unsubscribe = store.subscribe(self.invalidate)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
