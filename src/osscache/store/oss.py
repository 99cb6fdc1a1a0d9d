"""Alibaba Cloud OSS remote store implementation."""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import oss2
from oss2.exceptions import NoSuchKey, NotFound, OssError

from ..config import OSSConfig
from .base import DEFAULT_CHUNK_SIZE, RemoteStore
from .errors import ObjectNotFoundError, StoreTransportError

logger = logging.getLogger(__name__)


def resolve_endpoint(config: OSSConfig) -> str:
    """Work out the OSS endpoint URL for a configuration.

    An explicit endpoint wins. Otherwise the endpoint is derived from the
    region, using the internal (same-region VPC) host when requested.

    Args:
        config: OSS connection settings

    Returns:
        Endpoint URL

    Raises:
        ValueError: If neither endpoint nor region is configured
    """
    if config.endpoint:
        endpoint = config.endpoint
        if "://" not in endpoint:
            endpoint = f"https://{endpoint}"
        return endpoint

    if not config.region:
        raise ValueError("OSS endpoint or region must be configured")

    region = config.region
    if not region.startswith("oss-"):
        region = f"oss-{region}"
    suffix = "-internal" if config.internal else ""
    return f"https://{region}{suffix}.aliyuncs.com"


class OSSStore(RemoteStore):
    """Remote store backed by an OSS bucket.

    The oss2 SDK is synchronous, so each blocking call runs in a worker
    thread to keep the event loop free for other requests.
    """

    def __init__(
        self,
        config: OSSConfig,
        bucket: Any | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize OSS store.

        Args:
            config: OSS connection settings
            bucket: Pre-built bucket client. If not provided, one is created
                    from config on first use.
            chunk_size: Bytes read per chunk when streaming
        """
        self._config = config
        self._bucket = bucket
        self._chunk_size = chunk_size

    @classmethod
    def from_config(cls, config) -> "OSSStore":  # type: ignore[no-untyped-def]
        return cls(config.oss)

    def _get_bucket(self) -> Any:
        """Return the bucket client, creating it once."""
        if self._bucket is not None:
            return self._bucket

        if not self._config.access_key_id or not self._config.access_key_secret:
            raise StoreTransportError(
                "OSS credentials not found. Set OSS_ACCESS_KEY_ID and "
                "OSS_ACCESS_KEY_SECRET environment variables."
            )
        if not self._config.bucket:
            raise StoreTransportError(
                "OSS bucket not configured. Set OSS_BUCKET environment variable."
            )

        try:
            auth = oss2.Auth(self._config.access_key_id, self._config.access_key_secret)
            self._bucket = oss2.Bucket(
                auth, resolve_endpoint(self._config), self._config.bucket
            )
        except Exception as e:
            logger.error(f"OSS client initialization failed: {e}")
            raise StoreTransportError(
                f"Failed to initialize OSS client: {e}", e
            ) from e

        logger.info(f"OSS client initialized for bucket {self._config.bucket}")
        return self._bucket

    async def exists(self, key: str) -> bool:
        """Check whether an object exists in the bucket.

        Args:
            key: Object key

        Returns:
            True if the object exists, False otherwise

        Raises:
            StoreTransportError: If the request fails
        """
        bucket = self._get_bucket()
        try:
            return bool(await asyncio.to_thread(bucket.object_exists, key))
        except (NoSuchKey, NotFound):
            return False
        except OssError as e:
            raise StoreTransportError(f"OSS head failed for {key}: {e}", e) from e

    async def get_stream(self, key: str) -> AsyncIterator[bytes]:
        """Open an object and stream its contents.

        Args:
            key: Object key

        Returns:
            Async iterator over the object bytes

        Raises:
            ObjectNotFoundError: If the object does not exist
            StoreTransportError: If the request fails
        """
        bucket = self._get_bucket()
        try:
            result = await asyncio.to_thread(bucket.get_object, key)
        except (NoSuchKey, NotFound) as e:
            raise ObjectNotFoundError(key, e) from e
        except OssError as e:
            logger.error(f"OSS stream open failed: {key}: {e}")
            raise StoreTransportError(f"OSS get failed for {key}: {e}", e) from e

        logger.info(f"OSS stream opened: {key}")
        return self._iter_result(key, result)

    async def _iter_result(self, key: str, result: Any) -> AsyncIterator[bytes]:
        """Read an open GetObjectResult chunk by chunk."""
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(result.read, self._chunk_size)
                except Exception as e:
                    raise StoreTransportError(
                        f"OSS stream interrupted for {key}: {e}", e
                    ) from e
                if not chunk:
                    break
                yield chunk
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()
