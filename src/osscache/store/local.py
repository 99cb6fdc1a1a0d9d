"""Local directory remote store implementation."""

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path

from .base import DEFAULT_CHUNK_SIZE, RemoteStore
from .errors import ObjectNotFoundError, StoreTransportError

logger = logging.getLogger(__name__)


class LocalDirectoryStore(RemoteStore):
    """Remote store that serves objects from a directory tree.

    Keys are paths relative to the root. Keys that resolve outside the root
    are reported as missing.
    """

    def __init__(self, root: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.root = Path(root)
        self._chunk_size = chunk_size

    @classmethod
    def from_config(cls, config) -> "LocalDirectoryStore":  # type: ignore[no-untyped-def]
        return cls(config.local_root)

    def _object_path(self, key: str) -> Path | None:
        root = self.root.resolve()
        candidate = (root / key.lstrip("/")).resolve()
        if candidate != root and root not in candidate.parents:
            return None
        return candidate

    async def exists(self, key: str) -> bool:
        path = self._object_path(key)
        return path is not None and path.is_file()

    async def get_stream(self, key: str) -> AsyncIterator[bytes]:
        path = self._object_path(key)
        if path is None or not path.is_file():
            raise ObjectNotFoundError(key)

        try:
            handle = await asyncio.to_thread(open, path, "rb")
        except FileNotFoundError as e:
            raise ObjectNotFoundError(key, e) from e
        except OSError as e:
            raise StoreTransportError(f"Failed to open {key}: {e}", e) from e

        logger.debug(f"Local stream opened: {path}")
        return self._iter_file(key, handle)

    async def _iter_file(self, key: str, handle) -> AsyncIterator[bytes]:  # type: ignore[no-untyped-def]
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(handle.read, self._chunk_size)
                except OSError as e:
                    raise StoreTransportError(f"Read failed for {key}: {e}", e) from e
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()
