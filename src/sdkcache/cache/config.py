"""Cache configuration management."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx

from sdkcache.cache.policy import CacheType

logger = logging.getLogger(__name__)

APP_NAME = "sdkcache"
CONFIG_FILENAME = "config.json"


def default_cache_dir() -> Path:
    """Per-user cache location plus the application namespace.

    Uses ``$XDG_CACHE_HOME`` when set, otherwise ``~/.cache``.
    """
    base = os.environ.get("XDG_CACHE_HOME")
    root = Path(base).expanduser() if base else Path.home() / ".cache"
    return root / APP_NAME


def default_config_path() -> Path:
    """Location of the user config file, inside the default cache dir."""
    return default_cache_dir() / CONFIG_FILENAME


@dataclass
class CacheConfig:
    """Configuration for the HTTP cache.

    Attributes:
        cache_dir: Root directory for cache storage
        timeout: Per-request timeout in seconds (None = no timeout)
        lock_timeout: Seconds to wait for a cache entry lock
        chunk_size: Bytes per chunk when streaming bodies and hashing files
        user_agent: User-Agent sent with every request
        cache_type: Public or private cache (not enforced differently)
    """

    cache_dir: Path = field(default_factory=default_cache_dir)
    timeout: Optional[float] = 30.0
    lock_timeout: float = 30.0
    chunk_size: int = 1024 * 1024  # 1 MiB
    user_agent: str = f"{APP_NAME}/0.1.0"
    cache_type: CacheType = CacheType.PRIVATE

    def __post_init__(self):
        """Ensure cache_dir is an expanded Path and cache_type an enum."""
        if self.cache_dir is None:
            self.cache_dir = default_cache_dir()
        self.cache_dir = Path(self.cache_dir).expanduser()
        if not isinstance(self.cache_type, CacheType):
            self.cache_type = CacheType(self.cache_type)

    @property
    def lock_dir(self) -> Path:
        return self.cache_dir / ".locks"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses
                ``default_config_path()``.

        Returns:
            CacheConfig instance (defaults if the file does not exist)
        """
        if config_path is None:
            config_path = default_config_path()

        config_path = Path(config_path)
        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if "cache_dir" in data:
            data["cache_dir"] = Path(data["cache_dir"])

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses
                ``default_config_path()``.
        """
        if config_path is None:
            config_path = default_config_path()

        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir),
            "timeout": self.timeout,
            "lock_timeout": self.lock_timeout,
            "chunk_size": self.chunk_size,
            "user_agent": self.user_agent,
            "cache_type": self.cache_type.value,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls, base: Optional["CacheConfig"] = None) -> "CacheConfig":
        """Create configuration from environment variables.

        Variables that are set override the matching fields of ``base``
        (or of the defaults when ``base`` is None).

        Environment variables:
            SDKCACHE_DIR: Cache directory path
            SDKCACHE_TIMEOUT: Request timeout in seconds
            SDKCACHE_LOCK_TIMEOUT: Lock timeout in seconds

        Args:
            base: Configuration to start from

        Returns:
            CacheConfig instance
        """
        config = base if base is not None else cls()

        if os.getenv("SDKCACHE_DIR"):
            config.cache_dir = Path(os.getenv("SDKCACHE_DIR")).expanduser()

        if os.getenv("SDKCACHE_TIMEOUT"):
            config.timeout = float(os.getenv("SDKCACHE_TIMEOUT"))

        if os.getenv("SDKCACHE_LOCK_TIMEOUT"):
            config.lock_timeout = float(os.getenv("SDKCACHE_LOCK_TIMEOUT"))

        return config

    def build_client(
        self, transport: Optional[httpx.BaseTransport] = None
    ) -> httpx.Client:
        """Create the shared HTTP client for a run.

        Args:
            transport: Optional custom transport (useful for testing)

        Returns:
            httpx.Client; the caller owns it and must close it
        """
        return httpx.Client(
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
            follow_redirects=True,
            transport=transport,
        )


def load_config(config_path: Optional[Path] = None) -> CacheConfig:
    """Load the configuration for a run.

    Reads the config file (defaults when it does not exist), then applies
    environment overrides. An unreadable file is logged and skipped.

    Args:
        config_path: Path to config file. If None, uses
            ``default_config_path()``.

    Returns:
        CacheConfig instance
    """
    try:
        config = CacheConfig.load(config_path)
    except (OSError, ValueError, TypeError) as e:
        logger.warning(f"Ignoring unreadable config file: {e}")
        config = None
    return CacheConfig.from_env(config)
