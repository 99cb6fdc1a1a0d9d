"""Local disk cache for remote object-store files."""

import os
from pathlib import Path


def get_cache_dir() -> Path:
    """Get the default cache root directory.

    Uses $XDG_CACHE_HOME/osscache/files when set, otherwise
    ~/.cache/osscache/files. The directory is not created here; the
    cache service creates it on startup.

    Returns:
        Path to the default cache directory
    """
    cache_home = os.environ.get("XDG_CACHE_HOME")
    base = Path(cache_home) if cache_home else Path.home() / ".cache"
    return base / "osscache" / "files"
