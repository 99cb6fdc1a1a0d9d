"""Read-through file cache in front of a remote object store.

CacheService serves a key from the local disk cache when a fresh copy is
there, and otherwise streams it from the remote store while a background
task copies the same bytes into the cache. Cache failures never reach the
caller; only remote store errors do.
"""

import asyncio
import logging
import os
import time
from contextlib import aclosing
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..config import CacheConfig
from ..store.base import DEFAULT_CHUNK_SIZE, RemoteStore
from ..store.errors import StoreError, StoreTransportError
from .errors import CacheInitError, CacheWriteError
from .eviction import EvictionPolicy
from .index import CacheIndex
from .models import CacheEntry, PopulationStats
from .paths import CacheDirectory

logger = logging.getLogger(__name__)

# Queue sentinel marking the end of a teed stream
_END = object()


@dataclass
class _Failure:
    """Queue item carrying the error that ended a teed stream."""

    error: Exception


@dataclass
class CachedStream:
    """Result of CacheService.get_stream().

    Unpacks as (stream, served_from_cache) for callers that only need the
    pair.

    Attributes:
        stream: Async iterator over the object bytes
        served_from_cache: True if the bytes come from the local cache
        size: Byte length when known up front (cache hits), else None
    """

    stream: AsyncIterator[bytes]
    served_from_cache: bool
    size: int | None = None

    def __iter__(self) -> Iterator[Any]:
        yield self.stream
        yield self.served_from_cache


class _StreamTee:
    """Fans one remote byte stream out to several consumer queues.

    The pump reads the source at its own pace. A consumer that goes away
    detaches its queue and the remaining consumers keep receiving chunks,
    so a client disconnect does not interrupt cache population.
    """

    def __init__(self, source: AsyncIterator[bytes], key: str) -> None:
        self._source = source
        self._key = key
        self._queues: list[asyncio.Queue] = []
        self._task: asyncio.Task[None] | None = None

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def detach(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def start(self) -> None:
        self._task = asyncio.create_task(self._pump())

    def _broadcast(self, item: Any) -> None:
        for queue in list(self._queues):
            queue.put_nowait(item)

    async def _pump(self) -> None:
        try:
            async for chunk in self._source:
                if not self._queues:
                    logger.debug(f"All consumers of {self._key} detached, stopping")
                    return
                self._broadcast(chunk)
        except asyncio.CancelledError:
            self._broadcast(
                _Failure(StoreTransportError(f"Stream cancelled for {self._key}"))
            )
            raise
        except StoreError as e:
            self._broadcast(_Failure(e))
        except Exception as e:
            self._broadcast(
                _Failure(
                    StoreTransportError(f"Stream failed for {self._key}: {e}", e)
                )
            )
        else:
            self._broadcast(_END)
        finally:
            aclose = getattr(self._source, "aclose", None)
            if aclose is not None:
                await aclose()

    async def iter_queue(self, queue: asyncio.Queue) -> AsyncIterator[bytes]:
        """Yield chunks from a subscribed queue until the stream ends."""
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    return
                if isinstance(item, _Failure):
                    raise item.error
                yield item
        finally:
            self.detach(queue)


class CacheService:
    """Disk-backed read-through cache for remote store objects.

    One instance is created at process startup and shared by all request
    handlers. Index and aggregate state belong to the instance and are only
    touched from the event loop.

    Example:
        service = CacheService(OSSStore(config.oss), config.cache)
        await service.start()

        stream, served_from_cache = await service.get_stream("audio/q1.mp3")
        async for chunk in stream:
            ...
    """

    def __init__(
        self,
        store: RemoteStore,
        config: CacheConfig,
        clock: Callable[[], float] = time.time,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the cache service.

        Args:
            store: Remote store to read through to
            config: Cache settings
            clock: Returns the current time in epoch seconds
            chunk_size: Bytes per chunk when streaming cached files
        """
        self.store = store
        self.config = config
        self.directory = CacheDirectory(config.directory)
        self.index = CacheIndex()
        self.eviction = EvictionPolicy(
            max_size_bytes=config.max_size_bytes,
            cleanup_interval_seconds=config.cleanup_interval_seconds,
        )
        self.population_stats = PopulationStats()
        self.enabled = False

        self._clock = clock
        self._chunk_size = chunk_size
        self._started = False
        self._inflight: dict[str, asyncio.Task[None]] = {}
        # Files found on disk at startup, indexed by filename until their
        # real key is requested
        self._adopted: set[str] = set()
        # Cache filename -> key whose bytes it holds. Distinct keys can
        # sanitize to one filename; only the last writer stays indexed.
        self._owners: dict[str, str] = {}

    async def start(self) -> None:
        """Prepare the cache directory and optionally rebuild the index.

        A directory failure switches the service to pass-through mode for
        the rest of the process lifetime instead of raising.
        """
        if self._started:
            return
        self._started = True
        self.index.state.last_cleanup_at = self._clock()

        if not self.config.enabled:
            logger.info("File cache disabled by configuration, serving pass-through")
            return

        ok = await asyncio.to_thread(self.directory.ensure_directory)
        if not ok:
            error = CacheInitError(
                f"Cache directory {self.directory.root} is unusable"
            )
            logger.error(f"{error}; serving pass-through without caching")
            return

        self.enabled = True
        logger.info(
            f"File cache ready at {self.directory.root} "
            f"(max {self.config.max_size_mb}MB, expiry {self.config.expiry_hours}h)"
        )

        if self.config.scan_on_startup:
            await self._rebuild_index()

    async def get_stream(self, key: str) -> CachedStream:
        """Return a byte stream for a key, from cache when possible.

        Args:
            key: Remote object key

        Returns:
            CachedStream with the bytes and whether they came from cache

        Raises:
            ObjectNotFoundError: If the key is not cached and not in the store
            StoreTransportError: If the store cannot be reached
        """
        if not self._started:
            await self.start()

        cacheable = self._is_cacheable(key)
        if cacheable:
            hit = await self._open_cached(key)
            if hit is not None:
                return hit

        return await self._serve_miss(key, populate=cacheable)

    async def exists(self, key: str) -> bool:
        """Check whether a key can be served.

        A fresh cache entry answers without contacting the store.
        """
        if not self._started:
            await self.start()

        if self._is_cacheable(key) and await self._valid_entry(key) is not None:
            return True
        return await self.store.exists(key)

    async def wait_for_populations(self) -> None:
        """Wait until every in-flight background population has finished."""
        while self._inflight:
            await asyncio.gather(*self._inflight.values(), return_exceptions=True)

    async def purge(self) -> int:
        """Delete every cached file and clear the index.

        Returns:
            Number of index entries removed
        """
        await self.wait_for_populations()

        keys = list(self.index.keys())
        paths = [self.directory.resolve_path(key) for key in keys]

        def _delete_all() -> None:
            for path in paths:
                self.directory.remove(path)
            for path in list(self.directory.scan()):
                self.directory.remove(path)

        await asyncio.to_thread(_delete_all)

        for key in keys:
            self.index.record_removal(key)
        removed = len(keys)
        self._adopted.clear()
        self._owners.clear()

        logger.info(f"Purged {removed} cache entries")
        return removed

    async def close(self) -> None:
        await self.wait_for_populations()
        await self.store.close()

    def stats(self) -> dict[str, Any]:
        """Return a snapshot of cache and population counters."""
        state = self.index.state
        return {
            "enabled": self.enabled,
            "directory": str(self.directory.root),
            "total_size_bytes": state.total_size_bytes,
            "entry_count": state.entry_count,
            "max_size_bytes": self.eviction.max_size_bytes,
            "last_cleanup_at": state.last_cleanup_at,
            "populations_in_flight": len(self._inflight),
            "populations_succeeded": self.population_stats.succeeded,
            "populations_failed": self.population_stats.failed,
            "populations_skipped": self.population_stats.skipped,
            "last_population_error": self.population_stats.last_error,
        }

    # === CACHE HIT PATH ===

    def _is_cacheable(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            self.directory.resolve_path(key)
        except ValueError as e:
            logger.debug(f"Not caching {key!r}: {e}")
            return False
        return True

    def _lookup(self, key: str) -> CacheEntry | None:
        """Find the index entry for a key, claiming adopted files by name."""
        entry = self.index.lookup(key)
        if entry is not None:
            return entry

        name = self.directory.resolve_path(key).name
        if name == key or name not in self._adopted:
            return None

        # File found by the startup scan: re-index it under its real key
        adopted = self.index.record_removal(name)
        self._adopted.discard(name)
        if adopted is None:
            return None
        adopted.key = key
        self._owners[name] = key
        return self.index.insert_entry(adopted)

    async def _valid_entry(
        self, key: str
    ) -> tuple[CacheEntry, os.stat_result] | None:
        """Return the entry and its file stat if the cached copy is usable.

        Missing or expired files are removed from disk and index. Any other
        stat failure drops the entry and is treated as a miss.
        """
        entry = self._lookup(key)
        if entry is None:
            return None

        path = self.directory.resolve_path(key)
        try:
            st = await asyncio.to_thread(path.stat)
        except FileNotFoundError:
            logger.warning(f"Cache file missing for indexed key {key}, dropping entry")
            self.index.record_removal(key)
            return None
        except OSError as e:
            logger.warning(f"Cannot stat cache file for {key}, dropping entry: {e}")
            self.index.record_removal(key)
            return None

        if self._clock() - st.st_mtime > self.config.expiry_seconds:
            logger.debug(f"Cache entry expired: {key}")
            await self._drop(key, path)
            return None

        return entry, st

    async def _drop(self, key: str, path: Path) -> None:
        self.index.record_removal(key)
        await asyncio.to_thread(self.directory.remove, path)

    async def _open_cached(self, key: str) -> CachedStream | None:
        valid = await self._valid_entry(key)
        if valid is None:
            logger.debug(f"Cache miss: {key}")
            return None

        _, st = valid
        path = self.directory.resolve_path(key)
        try:
            handle = await asyncio.to_thread(open, path, "rb")
        except OSError as e:
            # Evicted or replaced between the check and the open
            logger.warning(f"Failed to open cache file for {key}: {e}")
            self.index.record_removal(key)
            return None

        self.index.record_access(key, self._clock())
        logger.debug(f"Cache hit: {key}")
        return CachedStream(
            stream=self._iter_file(handle), served_from_cache=True, size=st.st_size
        )

    async def _iter_file(self, handle) -> AsyncIterator[bytes]:  # type: ignore[no-untyped-def]
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    # === CACHE MISS PATH ===

    async def _serve_miss(self, key: str, populate: bool) -> CachedStream:
        # Store errors propagate to the caller untouched
        remote = await self.store.get_stream(key)

        if not populate:
            return CachedStream(stream=remote, served_from_cache=False)

        if key in self._inflight:
            logger.debug(f"Population already in flight for {key}, not duplicating")
            self.population_stats.skipped += 1
            return CachedStream(stream=remote, served_from_cache=False)

        if len(self._inflight) >= self.config.max_concurrent_populations:
            logger.warning(
                f"Population limit reached ({len(self._inflight)} in flight), "
                f"serving {key} without caching"
            )
            self.population_stats.skipped += 1
            return CachedStream(stream=remote, served_from_cache=False)

        tee = _StreamTee(remote, key)
        caller_queue = tee.subscribe()
        writer_queue = tee.subscribe()

        task = asyncio.create_task(self._populate(key, tee, writer_queue))
        self._inflight[key] = task
        task.add_done_callback(lambda _: self._inflight.pop(key, None))
        tee.start()

        return CachedStream(
            stream=tee.iter_queue(caller_queue), served_from_cache=False
        )

    async def _populate(self, key: str, tee: _StreamTee, queue: asyncio.Queue) -> None:
        """Copy a teed stream into the cache, then index it and run eviction.

        Never raises (except on cancellation); failures are logged and
        counted in population_stats.
        """
        target = self.directory.resolve_path(key)
        temp = self.directory.temp_path(key)
        completed = False

        try:
            size = await self._write_temp(temp, tee.iter_queue(queue))
            try:
                await asyncio.to_thread(os.replace, temp, target)
            except OSError as e:
                raise CacheWriteError(f"Failed to move {temp} to {target}: {e}", e) from e
            completed = True
        except StoreError as e:
            self._record_failure(key, f"remote stream failed: {e}")
            return
        except CacheWriteError as e:
            self._record_failure(key, str(e))
            return
        except Exception as e:
            logger.exception(f"Unexpected error populating cache for {key}")
            self._record_failure(key, f"unexpected error: {e}")
            return
        finally:
            tee.detach(queue)
            if not completed:
                await asyncio.to_thread(self.directory.remove, temp)

        now = self._clock()
        self._claim_filename(target.name, key)
        self.index.record_insert(key, size, now)
        self.population_stats.succeeded += 1
        logger.info(f"Cached {key} ({size} bytes)")

        if self.eviction.should_run(self.index.state, now):
            await self._evict(now)

    def _claim_filename(self, name: str, key: str) -> None:
        """Record key as the owner of a cache file, unindexing the old owner."""
        previous = self._owners.get(name)
        if previous is not None and previous != key:
            if self.index.record_removal(previous) is not None:
                logger.info(f"Cache file {name} now holds {key}, dropped {previous}")
        self._adopted.discard(name)
        self._owners[name] = key

    async def _evict(self, now: float) -> list[CacheEntry]:
        """Run eviction with file deletes in a worker thread."""
        victims = self.eviction.select_victims(self.index)
        paths = [self.directory.resolve_path(e.key) for e in victims]
        deleted = await asyncio.to_thread(
            lambda: [self.directory.remove(path) for path in paths]
        )
        return self.eviction.commit(self.index, victims, deleted, now)

    async def _write_temp(self, temp: Path, chunks: AsyncIterator[bytes]) -> int:
        """Write chunks to a temp file and return the byte count."""
        try:
            handle = await asyncio.to_thread(open, temp, "wb")
        except OSError as e:
            raise CacheWriteError(f"Failed to create {temp}: {e}", e) from e

        size = 0
        try:
            async with aclosing(chunks) as stream:
                async for chunk in stream:
                    try:
                        await asyncio.to_thread(handle.write, chunk)
                    except OSError as e:
                        raise CacheWriteError(
                            f"Failed to write {temp}: {e}", e
                        ) from e
                    size += len(chunk)
        finally:
            handle.close()
        return size

    def _record_failure(self, key: str, message: str) -> None:
        self.population_stats.failed += 1
        self.population_stats.last_error = f"{key}: {message}"
        logger.warning(f"Cache population abandoned for {key}: {message}")

    # === STARTUP ===

    async def _rebuild_index(self) -> None:
        """Index cache files left on disk by a previous process.

        Entries are keyed by filename until a request claims them under
        their real key; expired files are deleted.
        """
        now = self._clock()

        def _list_files() -> tuple[list[tuple[Path, int, float]], int]:
            found = []
            expired = 0
            for path in self.directory.scan():
                try:
                    st = path.stat()
                except OSError:
                    continue
                if now - st.st_mtime > self.config.expiry_seconds:
                    self.directory.remove(path)
                    expired += 1
                    continue
                found.append((path, st.st_size, st.st_mtime))
            return found, expired

        files, expired = await asyncio.to_thread(_list_files)

        for path, size, mtime in files:
            self.index.insert_entry(
                CacheEntry(
                    key=path.name,
                    size_bytes=size,
                    created_at=mtime,
                    last_accessed_at=mtime,
                )
            )
            self._adopted.add(path.name)
            self._owners[path.name] = path.name

        logger.info(
            f"Rebuilt cache index from disk: {len(self._adopted)} files, "
            f"{self.index.state.total_size_bytes} bytes ({expired} expired removed)"
        )

        if self.index.state.total_size_bytes > self.eviction.max_size_bytes:
            await self._evict(now)
            self._adopted.intersection_update(self.index.keys())
