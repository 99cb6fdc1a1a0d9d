"""Cache-internal exceptions.

None of these escape CacheService.get_stream; they are logged and counted.
"""


class CacheError(Exception):
    """Base exception for local cache failures."""

    def __init__(
        self, message: str, original_error: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.original_error = original_error


class CacheWriteError(CacheError):
    """Exception raised when a population write fails.

    This typically occurs when:
    - The disk is full
    - The cache directory is not writable
    - The temp file cannot be renamed onto the target path
    """

    pass


class CacheInitError(CacheError):
    """Exception raised when the cache directory cannot be prepared."""

    pass
