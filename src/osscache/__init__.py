"""osscache - disk-backed read-through cache for object-storage audio files."""

__version__ = "0.1.0"
__all__ = ["CacheService"]


def __getattr__(name: str):  # type: ignore[no-untyped-def]
    if name == "CacheService":
        from .cache.service import CacheService

        return CacheService
    raise AttributeError(f"module 'osscache' has no attribute {name!r}")
