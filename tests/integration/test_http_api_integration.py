"""Integration tests for the HTTP API - protecting envelope and header invariants."""

import sys
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio

# Add src and tests to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from osscache import __version__
from osscache.cache.service import CacheService
from osscache.server import create_app
from test_helpers import make_payload

KEY = "audio/q1.mp3"


@pytest_asyncio.fixture
async def client(service):
    """HTTP client wired to an app over the fake-store cache service."""
    await service.start()
    app = create_app(service=service)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await service.close()


class TestFileEndpoint:
    """Test GET /oss/{key}."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, client, service, fake_store) -> None:
        """
        INVARIANT: X-Cache reports where the bytes came from
        BREAKS: Operators cannot tell whether the cache is working
        """
        payload = make_payload(20_000)
        fake_store.objects[KEY] = payload

        first = await client.get(f"/oss/{KEY}")
        assert first.status_code == 200
        assert first.headers["x-cache"] == "MISS"
        assert first.headers["content-type"] == "audio/mpeg"
        assert first.content == payload

        await service.wait_for_populations()

        second = await client.get(f"/oss/{KEY}")
        assert second.status_code == 200
        assert second.headers["x-cache"] == "HIT"
        assert second.headers["content-length"] == str(len(payload))
        assert second.content == payload

    @pytest.mark.asyncio
    async def test_missing_file_returns_404_envelope(self, client) -> None:
        """
        INVARIANT: Missing objects return 404 with the error envelope
        BREAKS: Frontend cannot distinguish missing audio from outages
        """
        response = await client.get("/oss/audio/missing.mp3")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "data": None,
            "message": "file not found",
        }

    @pytest.mark.asyncio
    async def test_unreachable_store_returns_502_envelope(
        self, client, fake_store
    ) -> None:
        fake_store.unreachable = True

        response = await client.get(f"/oss/{KEY}")

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "upstream storage unavailable"

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_500_envelope(self, service) -> None:
        app = create_app(service=service)
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)

        with patch.object(
            CacheService, "get_stream", side_effect=RuntimeError("boom")
        ):
            async with httpx.AsyncClient(
                transport=transport, base_url="http://test"
            ) as client:
                response = await client.get(f"/oss/{KEY}")

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "data": None,
            "message": "internal server error",
        }

    @pytest.mark.asyncio
    async def test_non_audio_content_type(self, client, fake_store) -> None:
        fake_store.objects["data/blob"] = b"\x00\x01"

        response = await client.get("/oss/data/blob")

        assert response.headers["content-type"] == "application/octet-stream"


class TestHeadEndpoint:
    """Test HEAD /oss/{key}."""

    @pytest.mark.asyncio
    async def test_existing_key(self, client, fake_store) -> None:
        fake_store.objects[KEY] = b"abc"

        response = await client.head(f"/oss/{KEY}")

        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"

    @pytest.mark.asyncio
    async def test_missing_key(self, client) -> None:
        response = await client.head("/oss/audio/missing.mp3")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unreachable_store_returns_bare_502(
        self, client, fake_store
    ) -> None:
        """
        INVARIANT: HEAD errors carry a status and no body
        BREAKS: HTTP clients read a stray body on a bodiless response
        """
        fake_store.unreachable = True

        response = await client.head(f"/oss/{KEY}")

        assert response.status_code == 502
        assert response.content == b""
        assert response.headers.get("content-length", "0") == "0"


class TestServiceEndpoints:
    """Test the banner and stats endpoints."""

    @pytest.mark.asyncio
    async def test_root_banner(self, client) -> None:
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": {"service": "osscache", "version": __version__},
            "message": "ok",
        }

    @pytest.mark.asyncio
    async def test_stats_reflect_cache(self, client, service, fake_store) -> None:
        fake_store.objects[KEY] = b"x" * 100
        await client.get(f"/oss/{KEY}")
        await service.wait_for_populations()

        response = await client.get("/cache/stats")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["entry_count"] == 1
        assert body["data"]["total_size_bytes"] == 100
        assert body["data"]["enabled"] is True
