"""Cache directory layout and key-to-filename mapping."""

import logging
import re
import uuid
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[/\\]+")
_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

# Files still being written by a population task: <name>.<uuid hex>.part
TEMP_SUFFIX = ".part"
_TEMP_NAME = re.compile(r"\.[0-9a-f]{32}\.part$")


def sanitize_key(key: str) -> str:
    """Map a remote key to a flat, filesystem-safe filename.

    Runs of path separators collapse to a single "_", then every other
    character outside [A-Za-z0-9_.-] becomes "_".

    Args:
        key: Remote object key

    Returns:
        Filename with no directory components

    Raises:
        ValueError: If the key is empty or maps to "." or ".."
    """
    if not key:
        raise ValueError("Cache key cannot be empty")

    name = _UNSAFE.sub("_", _SEPARATORS.sub("_", key))
    if name in (".", ".."):
        raise ValueError(f"Cache key {key!r} does not map to a usable filename")
    return name


class CacheDirectory:
    """Owns the cache root directory and the files inside it."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def resolve_path(self, key: str) -> Path:
        """Return the cache file path for a key.

        Args:
            key: Remote object key

        Returns:
            Path directly under the cache root
        """
        return self.root / sanitize_key(key)

    def temp_path(self, key: str) -> Path:
        """Return a unique scratch path next to the key's cache file.

        Each population writes to its own temp file and renames it onto
        resolve_path() once complete, so readers never see partial content.
        """
        return self.root / f"{sanitize_key(key)}.{uuid.uuid4().hex}{TEMP_SUFFIX}"

    def ensure_directory(self) -> bool:
        """Create the cache root (and parents) if missing.

        Returns:
            True if the directory exists and is usable, False otherwise
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create cache directory {self.root}: {e}")
            return False

        if not self.root.is_dir():
            logger.error(f"Cache root {self.root} exists but is not a directory")
            return False
        return True

    def remove(self, path: Path) -> bool:
        """Delete a cache file.

        Args:
            path: File to delete

        Returns:
            True if the file is gone afterwards, False if deletion failed
        """
        try:
            path.unlink()
        except FileNotFoundError:
            # Already removed
            return True
        except OSError as e:
            logger.warning(f"Failed to delete cache file {path}: {e}")
            return False
        return True

    def scan(self) -> Iterator[Path]:
        """Yield finished cache files currently in the root.

        Leftover temp files from interrupted populations are deleted as
        they are found.
        """
        try:
            children = list(self.root.iterdir())
        except OSError as e:
            logger.warning(f"Failed to scan cache directory {self.root}: {e}")
            return

        for child in children:
            if _TEMP_NAME.search(child.name):
                logger.debug(f"Removing stale temp file: {child}")
                self.remove(child)
                continue
            if child.is_file():
                yield child
