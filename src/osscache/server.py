"""FastAPI application serving object-store files through the cache."""

import logging
import mimetypes
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from . import __version__, responses
from .cache.service import CacheService
from .config import AppConfig, load_config
from .store import create_store
from .store.errors import ObjectNotFoundError, StoreTransportError

logger = logging.getLogger(__name__)

# Audio types are pinned so serving does not depend on the host's mime database
AUDIO_CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
}


def content_type_for(key: str) -> str:
    """Pick a Content-Type from the key's file extension."""
    lowered = key.lower()
    for extension, content_type in AUDIO_CONTENT_TYPES.items():
        if lowered.endswith(extension):
            return content_type

    guessed, _ = mimetypes.guess_type(key)
    return guessed or "application/octet-stream"


def build_service(config: AppConfig) -> CacheService:
    """Create the cache service for the configured store."""
    return CacheService(create_store(config), config.cache)


def get_cache_service(request: Request) -> CacheService:
    return request.app.state.cache_service


async def _relay(stream: AsyncIterator[bytes], key: str) -> AsyncIterator[bytes]:
    try:
        async for chunk in stream:
            yield chunk
    except StoreTransportError as e:
        # Headers are already sent; aborting the body is all that is left
        logger.error(f"Upstream stream for {key} failed mid-response: {e}")
        raise


def create_app(
    service: CacheService | None = None, config: AppConfig | None = None
) -> FastAPI:
    """Create the HTTP application.

    Args:
        service: Cache service to serve from. Built from config when omitted.
        config: Application config (loaded from file/env when omitted)

    Returns:
        Configured FastAPI application
    """
    if service is None:
        service = build_service(config or load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await app.state.cache_service.start()
        logger.info("osscache server started")
        yield
        await app.state.cache_service.close()
        logger.info("osscache server stopped")

    app = FastAPI(title="osscache", version=__version__, lifespan=lifespan)
    app.state.cache_service = service

    @app.exception_handler(ObjectNotFoundError)
    async def handle_not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
        logger.info(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=responses.error("file not found"),
        )

    @app.exception_handler(StoreTransportError)
    async def handle_transport_error(
        request: Request, exc: StoreTransportError
    ) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=responses.error("upstream storage unavailable"),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled error on {request.method} {request.url.path}: {exc}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=responses.error("internal server error"),
        )

    @app.get("/")
    async def root() -> dict:
        return responses.success({"service": "osscache", "version": __version__})

    @app.get("/cache/stats")
    async def cache_stats(cache: CacheService = Depends(get_cache_service)) -> dict:
        return responses.success(cache.stats())

    @app.get("/oss/{key:path}")
    async def get_file(
        key: str, cache: CacheService = Depends(get_cache_service)
    ) -> StreamingResponse:
        result = await cache.get_stream(key)

        headers = {"X-Cache": "HIT" if result.served_from_cache else "MISS"}
        if result.size is not None:
            headers["Content-Length"] = str(result.size)

        return StreamingResponse(
            _relay(result.stream, key),
            media_type=content_type_for(key),
            headers=headers,
        )

    @app.head("/oss/{key:path}")
    async def head_file(
        key: str, cache: CacheService = Depends(get_cache_service)
    ) -> Response:
        # HEAD responses carry no body, so errors skip the JSON envelope
        try:
            found = await cache.exists(key)
        except StoreTransportError as e:
            logger.error(f"HEAD {key}: {e}")
            return Response(status_code=status.HTTP_502_BAD_GATEWAY)

        if found:
            return Response(
                status_code=status.HTTP_200_OK, media_type=content_type_for(key)
            )
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    return app
