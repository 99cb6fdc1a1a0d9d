"""Remote store exceptions."""


class StoreError(Exception):
    """Base exception for remote object store errors."""

    def __init__(
        self, message: str, original_error: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.original_error = original_error


class ObjectNotFoundError(StoreError):
    """Exception raised when the requested key does not exist in the store."""

    def __init__(
        self, key: str, original_error: Exception | None = None
    ) -> None:
        super().__init__(f"Object not found: {key}", original_error)
        self.key = key


class StoreTransportError(StoreError):
    """Exception raised for failures talking to the store.

    This typically occurs when:
    - The storage endpoint is unreachable or times out
    - The connection drops while an object is being streamed
    - The service answers with a server-side error (5xx)
    - Credentials are rejected
    """

    pass
