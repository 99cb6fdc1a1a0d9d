"""Abstract base class for remote object stores.

This module defines the interface every storage backend must implement,
so the cache engine can read through any of them the same way.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

# Chunk size used by backends when streaming object contents
DEFAULT_CHUNK_SIZE = 64 * 1024


class RemoteStore(ABC):
    """Abstract base class for remote object stores.

    Stream contract:
        get_stream() must fail fast. A missing key raises ObjectNotFoundError
        and an unreachable store raises StoreTransportError before the
        returned iterator yields anything. Errors after the first chunk are
        raised from the iterator as StoreTransportError.
    """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object exists.

        Args:
            key: Object key in the store

        Returns:
            True if the object exists, False if it does not

        Raises:
            StoreTransportError: If the store cannot be reached
        """
        pass

    @abstractmethod
    async def get_stream(self, key: str) -> AsyncIterator[bytes]:
        """Open an object and return an async iterator over its bytes.

        Args:
            key: Object key in the store

        Returns:
            Async iterator yielding the object contents in chunks

        Raises:
            ObjectNotFoundError: If the key does not exist
            StoreTransportError: If the store cannot be reached
        """
        pass

    @classmethod
    def from_config(cls, config) -> "RemoteStore":  # type: ignore[no-untyped-def]
        """Build the store from a loaded AppConfig."""
        raise NotImplementedError(f"{cls.__name__} cannot be built from config")

    async def close(self) -> None:
        """Release any client resources held by the store."""
        return None
