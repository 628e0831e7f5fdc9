"""Mapping of request URLs to on-disk cache locations."""

import hashlib

HTTP_SUBDIR = "http"


def derive_cache_key(url: str) -> str:
    """Derive the cache key for a URL.

    The key is the hex SHA-256 digest of the exact URL string. No
    normalization is applied, so two spellings of the same resource get
    separate entries.

    Args:
        url: Request URL

    Returns:
        64 character lower-case hex string, safe as a path segment

    Examples:
        >>> len(derive_cache_key('https://example.test/a.bin'))
        64
    """
    return hashlib.sha256(url.encode("utf-8")).hexdigest()
