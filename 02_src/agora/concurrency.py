"""Sharded map: per-shard locks instead of one lock over the whole structure."""

import threading
import zlib
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, TypeVar

V = TypeVar("V")

DEFAULT_SHARDS = 32


class ShardedMap(Generic[V]):
    """String-keyed map split into independently locked shards.

    Operations on keys in different shards never contend. Every public
    operation holds exactly one shard lock, so readers never see a
    half-applied update.
    """

    def __init__(self, shards: int = DEFAULT_SHARDS):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._locks = [threading.Lock() for _ in range(shards)]
        self._data: list[dict[str, V]] = [{} for _ in range(shards)]

    def _index(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % len(self._locks)

    @contextmanager
    def locked(self, key: str) -> Iterator[dict[str, V]]:
        """Hold the shard lock for ``key`` and expose that shard's dict."""
        index = self._index(key)
        with self._locks[index]:
            yield self._data[index]

    def get(self, key: str) -> V | None:
        with self.locked(key) as shard:
            return shard.get(key)

    def insert_if_absent(self, key: str, value: V) -> bool:
        with self.locked(key) as shard:
            if key in shard:
                return False
            shard[key] = value
            return True

    def pop(self, key: str) -> V | None:
        with self.locked(key) as shard:
            return shard.pop(key, None)

    def values(self) -> list[V]:
        """Snapshot of all values, taken shard by shard."""
        result: list[V] = []
        for lock, shard in zip(self._locks, self._data):
            with lock:
                result.extend(shard.values())
        return result

    def evict(self, predicate: Callable[[str, V], bool]) -> int:
        """Remove entries matching ``predicate``; returns how many were removed."""
        removed = 0
        for lock, shard in zip(self._locks, self._data):
            with lock:
                for key in [k for k, v in shard.items() if predicate(k, v)]:
                    del shard[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        total = 0
        for lock, shard in zip(self._locks, self._data):
            with lock:
                total += len(shard)
        return total
