"""Revalidating HTTP cache and file integrity verification.

This module keeps downloaded artifacts on disk and asks the origin server
whether they are still current before reusing them.

Key components:
- ConditionalFetcher: Fetch a URL through the cache (ETag / Last-Modified)
- MetadataStore: Per-entry metadata persistence
- evaluate: Cache-Control policy deciding which validators to send
- verify_file: Streaming checksum verification
- CacheConfig: Configuration management
"""

from sdkcache.cache.config import CacheConfig, load_config
from sdkcache.cache.errors import (
    CacheDecodeError,
    CacheDiskFullError,
    CacheError,
    CacheLockError,
    CacheMetadataError,
    CacheMissingError,
    CachePermissionError,
    HTTPStatusError,
    TransportError,
    UnsupportedAlgorithmError,
)
from sdkcache.cache.fetcher import (
    CachedArtifact,
    ConditionalFetcher,
    cached_get_path,
    cached_get_reader,
)
from sdkcache.cache.keys import derive_cache_key
from sdkcache.cache.metadata import CacheMetadata, MetadataStore
from sdkcache.cache.policy import (
    CacheType,
    EffectiveValidators,
    Expires,
    MustRevalidate,
    NoCache,
    NoStore,
    evaluate,
    parse_cache_control,
)
from sdkcache.cache.validation import (
    DigestMismatch,
    Missing,
    UnsupportedAlgorithm,
    Valid,
    compute_checksum,
    verify_file,
)

__all__ = [
    "CacheConfig",
    "CacheDecodeError",
    "CacheDiskFullError",
    "CacheError",
    "CacheLockError",
    "CacheMetadata",
    "CacheMetadataError",
    "CacheMissingError",
    "CachePermissionError",
    "CacheType",
    "CachedArtifact",
    "ConditionalFetcher",
    "DigestMismatch",
    "EffectiveValidators",
    "Expires",
    "HTTPStatusError",
    "MetadataStore",
    "Missing",
    "MustRevalidate",
    "NoCache",
    "NoStore",
    "TransportError",
    "UnsupportedAlgorithm",
    "UnsupportedAlgorithmError",
    "Valid",
    "cached_get_path",
    "cached_get_reader",
    "compute_checksum",
    "derive_cache_key",
    "evaluate",
    "load_config",
    "parse_cache_control",
    "verify_file",
]
