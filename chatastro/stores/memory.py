"""
In-Memory Stores

Keyed storage for users, sessions, usage state and payment records, plus
per-key asyncio locks. State lives for the process lifetime only.

Concurrency discipline:
- A store call never suspends, so a single get or set is atomic on the
  event loop.
- A read-modify-write that spans an await (anything touching a collaborator)
  must hold the KeyedLocks lock for that key.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Generic, Iterator, List, Optional, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class KeyValueStore(Protocol[T]):
    """Interface the services depend on."""

    def get(self, key: str) -> Optional[T]:
        ...

    def set(self, key: str, value: T) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def values(self) -> List[T]:
        ...

    def __len__(self) -> int:
        ...


class InMemoryStore(Generic[T]):
    """Dict-backed KeyValueStore."""

    def __init__(self, name: str = "store"):
        self.name = name
        self._data: Dict[str, T] = {}

    def get(self, key: str) -> Optional[T]:
        return self._data.get(key)

    def set(self, key: str, value: T) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def values(self) -> List[T]:
        return list(self._data.values())

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)


class KeyedLocks:
    """
    One asyncio.Lock per key, held only while someone uses it.

    A key's lock is dropped once its last holder or waiter leaves, so the
    map stays as large as the number of keys currently in contention.

    Usage:
        locks = KeyedLocks()
        async with locks.lock(user_id):
            ...
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
