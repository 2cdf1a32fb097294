from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from db.key_value import KeyValueStorage, StorageKey
from domain.errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheItem:
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TtlCache:
    """Time-boxed cache; entries expire ttl seconds after set, nothing else evicts them.

    When a storage backend is given, entries are mirrored under `cache_<key>` and
    reloaded on construction. Values must then be JSON-serializable.
    """

    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        storage: KeyValueStorage | None = None,
        prefix: str = StorageKey.CACHE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if default_ttl <= 0:
            raise ValueError("default_ttl must be > 0")
        self.default_ttl = default_ttl
        self.prefix = prefix
        self._storage = storage
        self._clock = clock
        self._items: dict[str, CacheItem] = {}
        if storage is not None:
            self._load_from_storage()

    def get(self, key: str, default: Any | None = None) -> Any | None:
        item = self._live_item(key)
        return default if item is None else item.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if not key:
            raise ValueError("cache key must be non-empty")
        effective_ttl = self.default_ttl if ttl is None else ttl
        if effective_ttl <= 0:
            raise ValueError("ttl must be > 0")
        item = CacheItem(value=value, expires_at=self._clock() + effective_ttl)
        self._items[key] = item
        self._persist(key, item)

    def has(self, key: str) -> bool:
        return self._live_item(key) is not None

    def delete(self, key: str) -> None:
        self._items.pop(key, None)
        if self._storage is None:
            return
        try:
            self._storage.delete(self._storage_key(key))
        except PersistenceError:
            logger.warning("Failed to remove cache entry %s from storage", key, exc_info=True)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, item in self._items.items() if item.is_expired(now)]
        for key in expired:
            self.delete(key)
        return len(expired)

    def clear(self) -> None:
        keys = list(self._items)
        self._items.clear()
        if self._storage is None:
            return
        try:
            stored = self._storage.keys(f"{self.prefix}_")
        except PersistenceError:
            logger.warning("Failed to list cache entries in storage", exc_info=True)
            stored = [self._storage_key(key) for key in keys]
        for storage_key in stored:
            try:
                self._storage.delete(storage_key)
            except PersistenceError:
                logger.warning("Failed to remove %s from storage", storage_key, exc_info=True)

    def __len__(self) -> int:
        return len(self._items)

    def _live_item(self, key: str) -> CacheItem | None:
        item = self._items.get(key)
        if item is not None and item.is_expired(self._clock()):
            self.delete(key)
            return None
        return item

    def _storage_key(self, key: str) -> str:
        return f"{self.prefix}_{key}"

    def _persist(self, key: str, item: CacheItem) -> None:
        if self._storage is None:
            return
        try:
            self._storage.set(self._storage_key(key), {"data": item.value, "expires_at": item.expires_at})
        except PersistenceError:
            logger.warning("Failed to persist cache entry %s; keeping it in memory only", key, exc_info=True)

    def _load_from_storage(self) -> None:
        assert self._storage is not None
        prefix = f"{self.prefix}_"
        now = self._clock()
        try:
            stored_keys = self._storage.keys(prefix)
        except PersistenceError:
            logger.warning("Failed to load cache from storage", exc_info=True)
            return

        for storage_key in stored_keys:
            key = storage_key[len(prefix) :]
            try:
                record = self._storage.get(storage_key)
            except PersistenceError:
                logger.warning("Dropping unreadable cache entry %s", storage_key)
                self._drop_stored(storage_key)
                continue

            if not isinstance(record, dict) or not isinstance(record.get("expires_at"), (int, float)):
                self._drop_stored(storage_key)
                continue

            item = CacheItem(value=record.get("data"), expires_at=float(record["expires_at"]))
            if item.is_expired(now):
                self._drop_stored(storage_key)
                continue
            self._items[key] = item

    def _drop_stored(self, storage_key: str) -> None:
        assert self._storage is not None
        try:
            self._storage.delete(storage_key)
        except PersistenceError:
            logger.warning("Failed to remove %s from storage", storage_key, exc_info=True)


__all__ = ["CacheItem", "DEFAULT_TTL_SECONDS", "TtlCache"]
