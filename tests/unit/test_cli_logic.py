"""Unit tests for CLI logic functions."""

import sys
from pathlib import Path

import pytest

# Add src to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from osscache.cli import fetch_key
from osscache.store.errors import ObjectNotFoundError


@pytest.fixture
def local_setup(tmp_path, monkeypatch) -> Path:
    """Point the CLI at a local asset tree and a temp cache."""
    assets = tmp_path / "assets"
    (assets / "audio").mkdir(parents=True)
    (assets / "audio" / "q1.mp3").write_bytes(b"ID3 fake audio")
    monkeypatch.setenv("OSSCACHE_STORE", "local")
    monkeypatch.setenv("OSSCACHE_LOCAL_ROOT", str(assets))
    monkeypatch.setenv("OSS_CACHE_DIR", str(tmp_path / "cache"))
    return tmp_path


@pytest.mark.asyncio
async def test_fetch_key_writes_output_and_reports_cache_use(local_setup) -> None:
    """Test that the second fetch of a key is served from the cache."""
    output = local_setup / "out.mp3"

    assert await fetch_key("audio/q1.mp3", output) is False
    assert output.read_bytes() == b"ID3 fake audio"

    output.unlink()
    assert await fetch_key("audio/q1.mp3", output) is True
    assert output.read_bytes() == b"ID3 fake audio"


@pytest.mark.asyncio
async def test_fetch_key_missing_raises(local_setup) -> None:
    """Test that fetch_key propagates not-found errors."""
    with pytest.raises(ObjectNotFoundError):
        await fetch_key("audio/missing.mp3", local_setup / "out.mp3")
