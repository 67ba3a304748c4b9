"""Concrete cache stores and the cache-aside ResponseCache.

Provides an in-memory store (fast, not persisted) and a diskcache-backed
store (slower, survives restarts). Both apply the same TTL rule and expire
entries lazily on read; `sweep_expired` removes them eagerly.
"""

import asyncio
import copy
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import diskcache as dc

from sourcer.domain.interfaces.cache import CacheStore, MISS
from sourcer.domain.models.common import CacheKey

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60  # 1 hour
DEFAULT_KEY_PREFIX = "coupang_api:"

Clock = Callable[[], float]


def _stringify_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(item) for item in value]
    return value


def options_digest(options: Any) -> str:
    """sha256 hex of the options serialised with sorted, stringified keys.

    Keys are converted to str first so that mixed int/str keys still sort.
    """
    normalized = json.dumps(_stringify_keys(options), sort_keys=True, separators=(',', ':'), default=str, ensure_ascii=False)
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()


@dataclass
class CacheEntry:
    """Internal representation of a cache entry with expiry."""
    key: CacheKey
    value: Any
    expires_at: float  # Unix timestamp when the entry expires

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class MemoryCacheStore(CacheStore):
    """In-process dict store. No awaits inside, so each call is atomic on the loop.

    Values are deep-copied on write and on read, so callers never share a
    cached object (the disk store gets the same effect from pickling).
    """

    def __init__(self, clock: Clock = time.time):
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._clock = clock

    async def get(self, key: CacheKey) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return MISS
        if entry.is_expired(self._clock()):
            del self._entries[key]
            logger.debug(f"Memory cache entry expired, removed: {key}")
            return MISS
        return copy.deepcopy(entry.value)

    async def set(self, key: CacheKey, value: Any, ttl: float) -> None:
        self._entries[key] = CacheEntry(key=key, value=copy.deepcopy(value), expires_at=self._clock() + ttl)

    async def delete(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    async def sweep_expired(self) -> int:
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        for k in expired:
            del self._entries[k]
        return len(expired)

    async def keys(self) -> List[CacheKey]:
        return list(self._entries)


class DiskCacheStore(CacheStore):
    """Durable store backed by a `diskcache.Cache` directory.

    Entries are stored as pickled CacheEntry records so that expiry follows the
    same clock as the memory store. Blocking diskcache calls run in a worker
    thread.
    """

    def __init__(self, directory: Path, clock: Clock = time.time):
        self.directory = Path(directory)
        self._clock = clock
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._cache = dc.Cache(str(self.directory), timeout=1)
        except OSError as e:
            logger.error(f"Failed to open disk cache at {self.directory}: {e}")
            raise
        logger.info(f"Disk cache store opened at: {self._cache.directory}")

    def _get_sync(self, key: CacheKey) -> Any:
        entry: Optional[CacheEntry] = self._cache.get(key, default=None, retry=True)
        if entry is None:
            return MISS
        if not isinstance(entry, CacheEntry):
            logger.warning(f"Unexpected record in disk cache for key {key}. Removing.")
            self._cache.delete(key, retry=True)
            return MISS
        if entry.is_expired(self._clock()):
            self._cache.delete(key, retry=True)
            logger.debug(f"Disk cache entry expired, removed: {key}")
            return MISS
        return entry.value

    def _sweep_sync(self) -> int:
        now = self._clock()
        removed = 0
        for key in list(self._cache.iterkeys()):
            entry = self._cache.get(key, default=None, retry=True)
            if entry is None or not isinstance(entry, CacheEntry) or entry.is_expired(now):
                if self._cache.delete(key, retry=True):
                    removed += 1
        return removed

    async def get(self, key: CacheKey) -> Any:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: CacheKey, value: Any, ttl: float) -> None:
        entry = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)
        await asyncio.to_thread(self._cache.set, key, entry, retry=True)

    async def delete(self, key: CacheKey) -> None:
        await asyncio.to_thread(self._cache.delete, key, retry=True)

    async def clear(self) -> None:
        await asyncio.to_thread(self._cache.clear, retry=True)

    async def sweep_expired(self) -> int:
        return await asyncio.to_thread(self._sweep_sync)

    async def keys(self) -> List[CacheKey]:
        return await asyncio.to_thread(lambda: [CacheKey(k) for k in self._cache.iterkeys()])

    async def close(self) -> None:
        self._cache.close()


class ResponseCache:
    """Cache-aside wrapper around a single CacheStore.

    Owns the store, the default TTL and the key prefix. Every operation runs
    under one asyncio.Lock so concurrent callers never interleave a
    read-modify-write on the same store.
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        self.store = store if store is not None else MemoryCacheStore()
        self.default_ttl = default_ttl
        self.key_prefix = key_prefix
        self._lock = asyncio.Lock()
        logger.info(f"ResponseCache initialized: store={type(self.store).__name__}, ttl={default_ttl}s, prefix='{key_prefix}'")

    def make_key(self, method: str, path: str, options: Optional[Dict[str, Any]] = None) -> CacheKey:
        """Derives a deterministic key: `<prefix><METHOD>:<path>[:<options hash>]`.

        Options are serialised with sorted keys so logically identical requests
        share a key regardless of dict ordering or object identity.
        """
        key = f"{self.key_prefix}{method.upper()}:{path}"
        if options:
            key += ':' + options_digest(options)
        return CacheKey(key)

    async def get(self, key: CacheKey) -> Any:
        """Returns the cached value or `MISS`."""
        async with self._lock:
            value = await self.store.get(key)
        if value is MISS:
            logger.debug(f"Cache miss for key: {key}")
        else:
            logger.debug(f"Cache hit for key: {key}")
        return value

    async def set(self, key: CacheKey, value: Any, ttl: Optional[float] = None) -> None:
        effective_ttl = ttl if ttl is not None else self.default_ttl
        async with self._lock:
            await self.store.set(key, value, effective_ttl)
        logger.debug(f"Stored item in cache: key={key}, ttl={effective_ttl}s")

    async def has(self, key: CacheKey) -> bool:
        return await self.get(key) is not MISS

    async def delete(self, key: CacheKey) -> None:
        async with self._lock:
            await self.store.delete(key)
        logger.debug(f"Deleted item from cache: key={key}")

    async def clear(self) -> None:
        async with self._lock:
            await self.store.clear()
        logger.info("Cleared response cache.")

    async def sweep_expired(self) -> int:
        async with self._lock:
            removed = await self.store.sweep_expired()
        logger.info(f"Swept {removed} expired cache entries.")
        return removed

    async def remember(self, key: CacheKey, factory: Callable[[], Awaitable[Any]], ttl: Optional[float] = None) -> Any:
        """Returns the cached value, or computes it with `factory` and stores it.

        The lock is not held while `factory` runs; two concurrent misses may
        both compute, and the later write wins.
        """
        value = await self.get(key)
        if value is not MISS:
            return value
        value = await factory()
        await self.set(key, value, ttl)
        return value

    async def close(self) -> None:
        await self.store.close()


def create_cache_store(backend: str, directory: Optional[Path] = None, clock: Clock = time.time) -> CacheStore:
    """Builds the store named by the `cache.backend` setting."""
    if backend == "disk":
        if directory is None:
            raise ValueError("A directory is required for the disk cache backend.")
        return DiskCacheStore(directory, clock=clock)
    if backend == "memory":
        return MemoryCacheStore(clock=clock)
    raise ValueError(f"Unknown cache backend: {backend}")
