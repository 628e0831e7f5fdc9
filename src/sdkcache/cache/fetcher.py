"""Conditional HTTP fetching through the on-disk cache."""

import codecs
import errno
import json
import logging
import shutil
from pathlib import Path
from typing import Any, BinaryIO, Optional

import httpx
from filelock import FileLock, Timeout

from sdkcache.cache.config import CacheConfig
from sdkcache.cache.errors import (
    CacheDecodeError,
    CacheDiskFullError,
    CacheLockError,
    CacheMissingError,
    CachePermissionError,
    HTTPStatusError,
    TransportError,
)
from sdkcache.cache.keys import derive_cache_key
from sdkcache.cache.metadata import CacheMetadata, MetadataStore
from sdkcache.cache.policy import CacheType, evaluate

logger = logging.getLogger(__name__)


def charset_from_content_type(content_type: Optional[str]) -> Optional[str]:
    """Extract the charset parameter from a Content-Type value.

    Examples:
        >>> charset_from_content_type('text/plain; charset="ISO-8859-1"')
        'ISO-8859-1'
        >>> charset_from_content_type('application/octet-stream') is None
        True
    """
    if not content_type:
        return None
    for param in content_type.split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset":
            value = value.strip().strip('"').strip("'")
            return value or None
    return None


class CachedArtifact:
    """Handle to a cached response body.

    Attributes:
        url: URL the artifact was requested from
        path: Local path of the cached data file
        content_type: Content-Type of the response that produced the data
        from_cache: True if the server answered 304 and cached bytes were reused
        status_code: Status of the response that produced this handle
    """

    def __init__(
        self,
        url: str,
        path: Path,
        content_type: Optional[str] = None,
        from_cache: bool = False,
        status_code: int = 200,
    ):
        self.url = url
        self.path = Path(path)
        self.content_type = content_type
        self.from_cache = from_cache
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"CachedArtifact(url={self.url!r}, path={str(self.path)!r}, "
            f"from_cache={self.from_cache})"
        )

    def open(self) -> BinaryIO:
        """Open the cached data for binary reading. Caller closes it."""
        return open(self.path, "rb")

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def encoding(self, default_encoding: str = "utf-8") -> str:
        """Encoding declared by the Content-Type, else ``default_encoding``.

        Unknown charset labels fall back to UTF-8.
        """
        label = charset_from_content_type(self.content_type) or default_encoding
        try:
            return codecs.lookup(label).name
        except LookupError:
            logger.warning(
                f"Unknown charset {label!r} for {self.url}, falling back to utf-8"
            )
            return "utf-8"

    def text(self, default_encoding: str = "utf-8") -> str:
        """Decode the cached body as text.

        Raises:
            CacheDecodeError: If the bytes are invalid for the encoding
        """
        encoding = self.encoding(default_encoding)
        try:
            return self.read_bytes().decode(encoding)
        except UnicodeDecodeError as e:
            raise CacheDecodeError(
                f"Cannot decode {self.url} as {encoding}: {e}"
            ) from e

    def json(self) -> Any:
        """Decode the cached body as JSON.

        Raises:
            CacheDecodeError: If the body is not valid JSON
        """
        try:
            return json.loads(self.read_bytes())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CacheDecodeError(f"Invalid JSON from {self.url}: {e}") from e

    def copy_to(self, destination: Path) -> Path:
        """Copy the cached data to ``destination``, creating parent dirs.

        Returns:
            Destination path
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with self.open() as src, open(destination, "wb") as dst:
            shutil.copyfileobj(src, dst)
        return destination


class ConditionalFetcher:
    """Fetches URLs through a revalidating on-disk cache.

    Each fetch sends the stored ETag / Last-Modified validators that the
    cache-control policy allows. A 2xx response replaces the cached data and
    metadata; a 304 reuses the cached data untouched. Fetches of the same URL
    are serialized with a file lock per cache entry.

    Args:
        client: Shared HTTP client, owned by the caller
        config: Cache configuration
        cache_type: Public or private cache (defaults to the config's)

    Example::

        config = CacheConfig(cache_dir="/tmp/cache")
        with config.build_client() as client:
            fetcher = ConditionalFetcher(client, config)
            catalog = fetcher.fetch("https://example.test/repo.json").json()
    """

    def __init__(
        self,
        client: httpx.Client,
        config: Optional[CacheConfig] = None,
        cache_type: Optional[CacheType] = None,
    ):
        self.client = client
        self.config = config or CacheConfig()
        self.cache_type = cache_type or self.config.cache_type
        self.store = MetadataStore(self.config.cache_dir)
        self.lock_dir = self.config.lock_dir

    def _get_lock_path(self, key: str) -> Path:
        return self.lock_dir / f"{key}.lock"

    def data_path(self, url: str) -> Path:
        return self.store.data_path(derive_cache_key(url))

    def load_metadata(self, url: str) -> Optional[CacheMetadata]:
        return self.store.load(derive_cache_key(url))

    def fetch(self, url: str) -> CachedArtifact:
        """Fetch a URL, revalidating any cached copy.

        Args:
            url: URL to fetch

        Returns:
            Handle to the cached data

        Raises:
            HTTPStatusError: For responses other than 2xx and 304
            TransportError: If the request fails at the network level
            CacheMetadataError: If the stored metadata is corrupt
            CacheLockError: If the entry lock cannot be acquired
        """
        key = derive_cache_key(url)
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise CachePermissionError(
                f"Cannot create cache lock directory at {self.lock_dir}: {e}"
            ) from e

        try:
            with FileLock(self._get_lock_path(key), timeout=self.config.lock_timeout):
                return self._fetch_locked(url, key)
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring lock for {url} after "
                f"{self.config.lock_timeout} seconds"
            ) from e

    def _fetch_locked(self, url: str, key: str) -> CachedArtifact:
        """Fetch with the entry lock already acquired."""
        data_path = self.store.data_path(key)
        metadata = self.store.load(key)
        if metadata is not None and not data_path.exists():
            logger.warning(f"Cached data for {url} is missing, fetching in full")
            metadata = None

        validators = evaluate(metadata)
        headers = validators.to_headers()
        for name, value in headers.items():
            logger.debug(f"Request for {url} has {name}: {value}")

        try:
            with self.client.stream(
                "GET", url, headers=headers, timeout=self.config.timeout
            ) as response:
                status = response.status_code

                if response.is_success:
                    logger.info(f"Downloading {url} into the cache...")
                    self._update_cache(url, key, response)
                    return CachedArtifact(
                        url,
                        data_path,
                        content_type=response.headers.get("content-type"),
                        from_cache=False,
                        status_code=status,
                    )

                if status == httpx.codes.NOT_MODIFIED:
                    if metadata is None:
                        raise CacheMissingError(
                            f"Server reported {url} not modified but nothing is cached"
                        )
                    logger.info(f"Using cached copy of {url}")
                    return CachedArtifact(
                        url,
                        data_path,
                        content_type=metadata.content_type,
                        from_cache=True,
                        status_code=status,
                    )

                raise HTTPStatusError(status, url)
        except httpx.HTTPError as e:
            raise TransportError(f"Request for {url} failed: {e}") from e

    def _update_cache(self, url: str, key: str, response: httpx.Response) -> None:
        """Stream a fresh response body and its metadata into the entry."""
        self.store.ensure_entry_dir(key)
        data_path = self.store.data_path(key)
        temp_path = data_path.with_name(data_path.name + ".tmp")

        logger.debug(f"Caching {url} to {data_path}")
        try:
            try:
                with open(temp_path, "wb") as f:
                    for chunk in response.iter_bytes(self.config.chunk_size):
                        f.write(chunk)
            except PermissionError as e:
                raise CachePermissionError(
                    f"Cannot write to cache file {temp_path}: {e}"
                ) from e
            except OSError as e:
                if e.errno == errno.ENOSPC:
                    raise CacheDiskFullError(
                        f"Disk full while writing {url} to cache"
                    ) from e
                raise
            temp_path.replace(data_path)
        except BaseException:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as cleanup_error:
                    logger.warning(f"Failed to clean up temp file: {cleanup_error}")
            raise

        metadata = CacheMetadata.from_response(url, response.headers.multi_items())
        self.store.save(key, metadata)


def cached_get_path(fetcher: ConditionalFetcher, url: str) -> Path:
    """Fetch a URL through the cache and return the local data path."""
    return fetcher.fetch(url).path


def cached_get_reader(fetcher: ConditionalFetcher, url: str) -> BinaryIO:
    """Fetch a URL through the cache and open the data for reading."""
    return fetcher.fetch(url).open()

