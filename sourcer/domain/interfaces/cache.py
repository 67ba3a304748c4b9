"""Interface for cache backing stores.

Defines the contract for storing, retrieving, and expiring cached data. Every
store honours the same TTL rule: an entry is absent once `now >= expires_at`,
whether or not it has been physically removed yet.
"""

import abc
from typing import Any, List, Optional

# Import relevant domain models
from ..models.common import CacheKey

# Sentinel distinguishing "miss" from a cached None value
MISS = object()


class CacheStore(abc.ABC):
    """Abstract Base Class for a keyed store with TTL and lazy expiry."""

    @abc.abstractmethod
    async def get(self, key: CacheKey) -> Any:
        """Retrieves an item from the store asynchronously.

        An expired entry behaves as a miss and is removed as a side effect.

        Args:
            key: The cache key to retrieve.

        Returns:
            The cached item, or `MISS` if absent or expired.
        """
        pass

    @abc.abstractmethod
    async def set(self, key: CacheKey, value: Any, ttl: float) -> None:
        """Stores an item, overwriting any existing entry with a new expiry.

        Args:
            key: The cache key to store the item under.
            value: The item to store.
            ttl: Time-to-live in seconds.
        """
        pass

    @abc.abstractmethod
    async def delete(self, key: CacheKey) -> None:
        """Deletes an item from the store asynchronously."""
        pass

    @abc.abstractmethod
    async def clear(self) -> None:
        """Clears all items from the store asynchronously."""
        pass

    @abc.abstractmethod
    async def sweep_expired(self) -> int:
        """Eagerly removes every expired entry.

        Returns:
            The number of entries removed.
        """
        pass

    @abc.abstractmethod
    async def keys(self) -> List[CacheKey]:
        """Lists the keys currently held (expired or not)."""
        pass

    async def close(self) -> None:
        """Releases any resources held by the store."""
        return None

    # Optional: stores may expose a size for diagnostics
    async def size(self) -> Optional[int]:
        return len(await self.keys())
