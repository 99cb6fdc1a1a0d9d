"""In-memory index of cached keys.

All methods are synchronous and must only be called from the event loop
thread; the engine never mutates the index from worker threads.
"""

import logging
from collections.abc import Iterator

from .models import CacheEntry, CacheState

logger = logging.getLogger(__name__)


class CacheIndex:
    """Tracks cached entries and the running aggregates over them.

    Invariant: state.total_size_bytes equals the sum of size_bytes over
    every entry, and state.entry_count equals len(self).
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self.state = CacheState()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    def lookup(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def record_access(self, key: str, now: float) -> None:
        """Mark an entry as accessed; no-op if the key is not indexed."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_accessed_at = now

    def record_insert(self, key: str, size_bytes: int, now: float) -> CacheEntry:
        """Add an entry for a freshly written cache file.

        Args:
            key: Remote object key
            size_bytes: Size of the written file
            now: Current time in epoch seconds

        Returns:
            The new entry
        """
        return self.insert_entry(
            CacheEntry(
                key=key, size_bytes=size_bytes, created_at=now, last_accessed_at=now
            )
        )

    def insert_entry(self, entry: CacheEntry) -> CacheEntry:
        """Add a prebuilt entry, replacing any existing entry for its key.

        A replaced entry's size is subtracted first so the aggregates stay
        exact when two populations of the same key both complete.
        """
        if entry.size_bytes < 0:
            raise ValueError("size_bytes cannot be negative")

        previous = self._entries.pop(entry.key, None)
        if previous is not None:
            self.state.total_size_bytes -= previous.size_bytes
            self.state.entry_count -= 1
            logger.debug(f"Replacing index entry for {entry.key}")

        self._entries[entry.key] = entry
        self.state.total_size_bytes += entry.size_bytes
        self.state.entry_count += 1
        return entry

    def record_removal(self, key: str) -> CacheEntry | None:
        """Remove an entry and subtract it from the aggregates.

        Returns:
            The removed entry, or None if the key was not indexed
        """
        entry = self._entries.pop(key, None)
        if entry is None:
            return None

        self.state.total_size_bytes -= entry.size_bytes
        self.state.entry_count -= 1
        return entry

    def entries_by_recency(self) -> list[CacheEntry]:
        """Return entries ordered by last access, oldest first."""
        return sorted(self._entries.values(), key=lambda e: e.last_accessed_at)
