"""sdkcache: Revalidating download cache and checksum verifier for SDK artifacts."""

__version__ = "0.1.0"

from sdkcache.cache import CacheConfig, ConditionalFetcher, verify_file

__all__ = ["CacheConfig", "ConditionalFetcher", "verify_file", "__version__"]
