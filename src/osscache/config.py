"""Configuration management for osscache.

Loads configuration from $OSSCACHE_CONFIG or ~/.config/osscache/config.toml.
Priority chain: CLI flags > env vars > config file > built-in defaults.
"""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from .cache import get_cache_dir

CONFIG_DIR = Path.home() / ".config" / "osscache"
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_CONFIG = """\
# osscache configuration
# Environment variables override every value in this file.

# Backend: "oss" (Alibaba Cloud OSS) or "local" (directory tree, for development)
store = "oss"

# Root directory served by the "local" store
# local_root = "./raw-assets"

[oss]
# Region such as "oss-cn-hangzhou"; the endpoint is derived from it if unset
region = "oss-cn-hangzhou"
bucket = ""
# endpoint = "https://oss-cn-hangzhou.aliyuncs.com"

# Use the same-region internal network endpoint
internal = false

[cache]
enabled = true

# Cache root directory (defaults to ~/.cache/osscache/files)
# directory = "/var/cache/osscache"

# Entries whose file is older than this are refetched
expiry_hours = 24

# LRU eviction trims the cache to 80% of this size once it is exceeded
max_size_mb = 100

# Eviction also runs when this long has passed since the last cleanup
cleanup_interval_hours = 6

# Rebuild the index from files already on disk at startup
scan_on_startup = true

max_concurrent_populations = 8

[http]
host = "0.0.0.0"
port = 3000

[logging]
level = "info"
directory = "logs"

# Credentials are read from environment variables, not this file:
#   OSS_ACCESS_KEY_ID
#   OSS_ACCESS_KEY_SECRET
"""

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class OSSConfig:
    """OSS connection configuration."""

    region: str | None = None
    access_key_id: str | None = None
    access_key_secret: str | None = None
    bucket: str | None = None
    endpoint: str | None = None
    internal: bool = False


@dataclass(frozen=True)
class CacheConfig:
    """Local file cache configuration.

    Args:
        directory: Cache root directory
        enabled: Whether caching is enabled at all
        expiry_hours: Maximum age of a cached file before it is refetched
        max_size_mb: Size limit that triggers LRU eviction
        cleanup_interval_hours: Periodic eviction interval
        scan_on_startup: Rebuild the index from disk when the service starts
        max_concurrent_populations: Cap on in-flight background writes
    """

    directory: Path
    enabled: bool = True
    expiry_hours: float = 24
    max_size_mb: float = 100
    cleanup_interval_hours: float = 6
    scan_on_startup: bool = True
    max_concurrent_populations: int = 8

    def __post_init__(self) -> None:
        """Validate cache limits."""
        if self.expiry_hours <= 0:
            raise ValueError("expiry_hours must be greater than 0")
        if self.max_size_mb <= 0:
            raise ValueError("max_size_mb must be greater than 0")
        if self.cleanup_interval_hours <= 0:
            raise ValueError("cleanup_interval_hours must be greater than 0")
        if self.max_concurrent_populations < 1:
            raise ValueError("max_concurrent_populations must be at least 1")

    @property
    def expiry_seconds(self) -> float:
        return self.expiry_hours * 3600

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)

    @property
    def cleanup_interval_seconds(self) -> float:
        return self.cleanup_interval_hours * 3600


@dataclass(frozen=True)
class HTTPConfig:
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 3000


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    directory: Path | None = Path("logs")


@dataclass(frozen=True)
class AppConfig:
    """Top-level osscache configuration."""

    store: str
    local_root: Path
    oss: OSSConfig
    cache: CacheConfig
    http: HTTPConfig
    logging: LoggingConfig


def get_config_path() -> Path:
    """Return the config file path, honouring $OSSCACHE_CONFIG."""
    override = os.getenv("OSSCACHE_CONFIG")
    return Path(override) if override else CONFIG_PATH


def generate_config(path: Path | None = None) -> Path:
    """Write the default config file.

    Args:
        path: Destination (defaults to get_config_path())

    Returns:
        Path the file was written to
    """
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG)
    return path


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return float(default)
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from the config file with env var overrides.

    A missing config file is not an error; defaults and environment
    variables are used instead.

    Args:
        path: Config file to read (defaults to get_config_path())

    Returns:
        Loaded and validated AppConfig.

    Raises:
        ValueError: If a value is malformed or out of range.
    """
    path = path or get_config_path()

    data: dict = {}
    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)

    oss = data.get("oss", {})
    cache = data.get("cache", {})
    http_cfg = data.get("http", {})
    log_cfg = data.get("logging", {})

    cache_dir = os.getenv("OSS_CACHE_DIR") or cache.get("directory")
    log_dir = os.getenv("OSSCACHE_LOG_DIR", log_cfg.get("directory", "logs"))
    port_str = os.getenv("OSSCACHE_HTTP_PORT", str(http_cfg.get("port", 3000)))

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"OSSCACHE_HTTP_PORT must be an integer, got {port_str!r}") from None

    # Env vars override config file values
    return AppConfig(
        store=os.getenv("OSSCACHE_STORE", data.get("store", "oss")),
        local_root=Path(
            os.getenv("OSSCACHE_LOCAL_ROOT", data.get("local_root", "raw-assets"))
        ),
        oss=OSSConfig(
            region=os.getenv("OSS_REGION", oss.get("region")),
            access_key_id=os.getenv("OSS_ACCESS_KEY_ID"),
            access_key_secret=os.getenv("OSS_ACCESS_KEY_SECRET"),
            bucket=os.getenv("OSS_BUCKET", oss.get("bucket")),
            endpoint=os.getenv("OSS_ENDPOINT", oss.get("endpoint")),
            internal=_env_bool("OSS_INTERNAL", oss.get("internal", False)),
        ),
        cache=CacheConfig(
            directory=Path(cache_dir) if cache_dir else get_cache_dir(),
            enabled=_env_bool("OSSCACHE_ENABLED", cache.get("enabled", True)),
            expiry_hours=_env_float(
                "OSS_CACHE_EXPIRY_HOURS", cache.get("expiry_hours", 24)
            ),
            max_size_mb=_env_float(
                "OSS_CACHE_MAX_SIZE_MB", cache.get("max_size_mb", 100)
            ),
            cleanup_interval_hours=_env_float(
                "OSS_CACHE_CLEANUP_INTERVAL_HOURS",
                cache.get("cleanup_interval_hours", 6),
            ),
            scan_on_startup=_env_bool(
                "OSSCACHE_SCAN_ON_STARTUP", cache.get("scan_on_startup", True)
            ),
            max_concurrent_populations=int(
                cache.get("max_concurrent_populations", 8)
            ),
        ),
        http=HTTPConfig(
            host=os.getenv("OSSCACHE_HTTP_HOST", http_cfg.get("host", "0.0.0.0")),
            port=port,
        ),
        logging=LoggingConfig(
            level=os.getenv("LOG_LEVEL", log_cfg.get("level", "info")),
            directory=Path(log_dir) if log_dir else None,
        ),
    )
