"""Data models for cache bookkeeping."""

from dataclasses import dataclass


@dataclass
class CacheEntry:
    """Metadata for one cached object on disk.

    The local file path is not stored; it is always derived from the key
    by CacheDirectory.resolve_path().

    Attributes:
        key: Remote object key this entry caches
        size_bytes: Byte length of the cached content
        created_at: Epoch seconds of the cache write
        last_accessed_at: Epoch seconds of the last cache hit (or the write)
    """

    key: str
    size_bytes: int
    created_at: float
    last_accessed_at: float


@dataclass
class CacheState:
    """Aggregate bookkeeping for the whole cache.

    Maintained incrementally by CacheIndex; never persisted.
    """

    total_size_bytes: int = 0
    entry_count: int = 0
    last_cleanup_at: float = 0.0


@dataclass
class PopulationStats:
    """Outcome counters for background population tasks."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    last_error: str | None = None
