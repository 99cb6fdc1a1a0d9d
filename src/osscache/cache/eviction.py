"""LRU eviction for the file cache."""

import logging

from .index import CacheIndex
from .models import CacheEntry, CacheState
from .paths import CacheDirectory

logger = logging.getLogger(__name__)

# Fraction of the size limit eviction trims down to, so the next insert
# does not immediately trigger another cleanup.
DEFAULT_TARGET_RATIO = 0.8


class EvictionPolicy:
    """Keeps the cache under its size limit by evicting least-recently-used entries.

    Eviction runs when the cache is over its limit or when the periodic
    cleanup interval has elapsed since the last run. A run removes entries in
    ascending last-access order until the total size is at or below
    target_ratio * max_size_bytes.
    """

    def __init__(
        self,
        max_size_bytes: int,
        cleanup_interval_seconds: float,
        target_ratio: float = DEFAULT_TARGET_RATIO,
    ) -> None:
        if max_size_bytes <= 0:
            raise ValueError("max_size_bytes must be greater than 0")
        if not 0.0 < target_ratio <= 1.0:
            raise ValueError(
                f"target_ratio must be between 0.0 and 1.0, got {target_ratio}"
            )

        self.max_size_bytes = max_size_bytes
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.target_ratio = target_ratio

    @property
    def target_size_bytes(self) -> int:
        return int(self.max_size_bytes * self.target_ratio)

    def should_run(self, state: CacheState, now: float) -> bool:
        if state.total_size_bytes > self.max_size_bytes:
            return True
        return now - state.last_cleanup_at > self.cleanup_interval_seconds

    def select_victims(self, index: CacheIndex) -> list[CacheEntry]:
        """Pick the entries a run would evict, oldest access first.

        Args:
            index: Cache index to trim

        Returns:
            Entries whose removal brings the total to the target size
        """
        victims: list[CacheEntry] = []
        remaining = index.state.total_size_bytes
        target = self.target_size_bytes

        for entry in index.entries_by_recency():
            if remaining <= target:
                break
            victims.append(entry)
            remaining -= entry.size_bytes
        return victims

    def commit(
        self,
        index: CacheIndex,
        victims: list[CacheEntry],
        deleted: list[bool],
        now: float,
    ) -> list[CacheEntry]:
        """Drop evicted entries from the index once their files are deleted.

        A file that cannot be deleted is still dropped from the index, so an
        unremovable file never blocks later cleanups. An entry replaced while
        its file was being deleted is left to the hit path, which drops it
        when its file turns out to be missing.

        Args:
            index: Cache index to trim
            victims: Entries from select_victims()
            deleted: Per-victim result of the file deletion
            now: Current time in epoch seconds

        Returns:
            Evicted entries in eviction order
        """
        evicted: list[CacheEntry] = []
        for entry, ok in zip(victims, deleted):
            if not ok:
                logger.warning(f"Evicting {entry.key} from index despite delete failure")
            if index.lookup(entry.key) is entry:
                index.record_removal(entry.key)
                evicted.append(entry)

        index.state.last_cleanup_at = now

        if evicted:
            freed = sum(e.size_bytes for e in evicted)
            logger.info(
                f"Evicted {len(evicted)} cache entries ({freed} bytes), "
                f"{index.state.total_size_bytes} bytes remain"
            )
        return evicted

    def run(
        self, index: CacheIndex, directory: CacheDirectory, now: float
    ) -> list[CacheEntry]:
        """Evict oldest entries until the cache is under the target size.

        Deletes files in the calling thread; CacheService uses
        select_victims() and commit() to delete off the event loop instead.

        Returns:
            Evicted entries in eviction order
        """
        victims = self.select_victims(index)
        deleted = [directory.remove(directory.resolve_path(e.key)) for e in victims]
        return self.commit(index, victims, deleted, now)
