"""Pytest configuration and fixtures for osscache tests."""

import sys
from pathlib import Path

import pytest

# Add src and tests to path so test modules can import the package and helpers
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from osscache.cache.service import CacheService
from osscache.config import CacheConfig
from test_helpers import FakeStore


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path) -> None:
    """Keep tests away from the user's config file and real OSS settings."""
    monkeypatch.setenv("OSSCACHE_CONFIG", str(tmp_path / "no-config.toml"))
    for name in (
        "OSS_REGION",
        "OSS_ACCESS_KEY_ID",
        "OSS_ACCESS_KEY_SECRET",
        "OSS_BUCKET",
        "OSS_ENDPOINT",
        "OSS_INTERNAL",
        "OSSCACHE_STORE",
        "OSSCACHE_LOCAL_ROOT",
        "OSS_CACHE_DIR",
        "OSS_CACHE_EXPIRY_HOURS",
        "OSS_CACHE_MAX_SIZE_MB",
        "OSS_CACHE_CLEANUP_INTERVAL_HOURS",
        "OSSCACHE_ENABLED",
        "OSSCACHE_SCAN_ON_STARTUP",
        "OSSCACHE_HTTP_HOST",
        "OSSCACHE_HTTP_PORT",
        "OSSCACHE_LOG_DIR",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    """Cache root inside the test's temp directory (not created yet)."""
    return tmp_path / "cache"


@pytest.fixture
def cache_config(cache_dir) -> CacheConfig:
    """Cache settings with defaults and a temp cache root."""
    return CacheConfig(directory=cache_dir)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def service(fake_store, cache_config) -> CacheService:
    """Unstarted CacheService over the fake store."""
    return CacheService(fake_store, cache_config)
