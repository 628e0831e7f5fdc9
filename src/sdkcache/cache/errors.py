"""Exceptions raised by the HTTP cache and integrity verifier."""

from typing import Optional


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CacheDiskFullError(CacheError):
    """Raised when disk is full and cannot write to cache."""

    pass


class CachePermissionError(CacheError):
    """Raised when cache directory permissions are insufficient."""

    pass


class CacheLockError(CacheError):
    """Raised when unable to acquire a cache entry lock."""

    pass


class CacheMetadataError(CacheError):
    """Raised when a stored metadata record cannot be deserialized."""

    pass


class CacheDecodeError(CacheError):
    """Raised when a cached body cannot be decoded as text or JSON."""

    pass


class CacheMissingError(CacheError):
    """Raised when the server reports 'not modified' but nothing is cached."""

    pass


class TransportError(CacheError):
    """Raised when the HTTP client fails below the HTTP layer."""

    pass


class HTTPStatusError(CacheError):
    """Raised for responses that are neither 2xx nor 304.

    Attributes:
        status_code: Numeric HTTP status of the response
        url: URL that was requested
    """

    def __init__(self, status_code: int, url: Optional[str] = None):
        self.status_code = status_code
        self.url = url
        message = f"HTTP status {status_code}"
        if url:
            message += f" for {url}"
        super().__init__(message)


class UnsupportedAlgorithmError(CacheError):
    """Raised when a checksum algorithm is not in the supported set."""

    pass
