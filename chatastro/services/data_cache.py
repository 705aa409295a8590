"""
Astrology Data Cache

Time-bounded cache of provider responses keyed by user and required data.

Policy on refresh failure:
- a previous entry exists -> keep serving it unchanged (stale but usable)
- no previous entry       -> store a degraded entry (empty payload) so the
                             conversation can still proceed
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from chatastro.logger import logger
from chatastro.stores.memory import InMemoryStore, KeyedLocks, KeyValueStore
from chatastro.utils.models import BirthData, CacheEntry, now_ms

FetchFn = Callable[[BirthData, List[str]], Awaitable[Dict[str, Any]]]

DEFAULT_EXPIRY_MS = 3_600_000
DEFAULT_DEGRADED_RETRY_MS = 60_000


def make_cache_key(user_id: str, required_data: Iterable[str]) -> str:
    """Build the cache key: {user_id}_{sorted data keys joined by '_'}"""
    return "_".join([user_id, *sorted(required_data)])


class DataCache:
    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        expiry_ms: int = DEFAULT_EXPIRY_MS,
        degraded_retry_ms: int = DEFAULT_DEGRADED_RETRY_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store if store is not None else InMemoryStore("astro_cache")
        self.expiry_ms = expiry_ms
        self.degraded_retry_ms = degraded_retry_ms
        self._clock = clock
        self._locks = KeyedLocks()

    def is_stale(self, entry: CacheEntry) -> bool:
        # degraded placeholders are retried sooner than real data
        window = self.degraded_retry_ms if entry.degraded else self.expiry_ms
        return self._clock() - entry.timestamp > window

    def peek(self, user_id: str, required_data: Iterable[str]) -> Optional[CacheEntry]:
        return self.store.get(make_cache_key(user_id, required_data))

    async def get_or_refresh(
        self,
        user_id: str,
        required_data: Iterable[str],
        birth_data: BirthData,
        fetch_fn: FetchFn,
    ) -> CacheEntry:
        """
        Return a usable entry for (user, required data), refreshing it through
        `fetch_fn` when missing or older than the expiry window.

        Concurrent refreshes of the same key are collapsed into one call.
        """
        keys = sorted(set(required_data))
        cache_key = make_cache_key(user_id, keys)

        async with self._locks.lock(cache_key):
            entry = self.store.get(cache_key)
            if entry is not None and not self.is_stale(entry):
                logger.debug("astro_cache_hit", cache_key=cache_key)
                return entry

            logger.info("astro_cache_refresh", cache_key=cache_key, stale=entry is not None)
            try:
                payload = await fetch_fn(birth_data, keys)
            except Exception as exc:  # noqa: BLE001
                if entry is not None:
                    logger.warning(
                        "astro_cache_refresh_failed_serving_stale",
                        cache_key=cache_key,
                        error=str(exc),
                    )
                    return entry

                logger.warning(
                    "astro_cache_refresh_failed_degraded",
                    cache_key=cache_key,
                    error=str(exc),
                )
                degraded = CacheEntry(key=cache_key, payload={}, timestamp=self._clock(), degraded=True)
                self.store.set(cache_key, degraded)
                return degraded

            fresh = CacheEntry(key=cache_key, payload=payload or {}, timestamp=self._clock())
            self.store.set(cache_key, fresh)
            return fresh

    def stats(self) -> dict:
        return {"entries": len(self.store), "locks": len(self._locks)}

    def __len__(self) -> int:
        return len(self.store)
