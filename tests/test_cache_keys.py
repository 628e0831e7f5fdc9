"""Unit tests for cache key derivation."""

import hashlib
import random
import string

from sdkcache.cache.keys import derive_cache_key


class TestDeriveCacheKey:
    """Test URL to cache key mapping."""

    def test_key_is_deterministic(self):
        """Test that the same URL always yields the same key."""
        url = "https://example.test/a.bin"
        assert derive_cache_key(url) == derive_cache_key(url)

    def test_key_is_stable_across_processes(self):
        """Test that the key is the plain SHA-256 of the URL, with no salt."""
        url = "https://example.test/repo/l3.json?rev=2"
        expected = hashlib.sha256(url.encode("utf-8")).hexdigest()
        assert derive_cache_key(url) == expected

    def test_key_is_path_safe(self):
        """Test that keys are usable as a single path segment."""
        key = derive_cache_key("https://example.test/some/deep/path?q=a/b")
        assert len(key) == 64
        assert set(key) <= set("0123456789abcdef")

    def test_url_is_not_normalized(self):
        """Test that different spellings of a URL get different keys."""
        assert derive_cache_key("https://example.test/a") != derive_cache_key(
            "https://example.test/a/"
        )
        assert derive_cache_key("https://example.test/a?x=1") != derive_cache_key(
            "https://example.test/a"
        )

    def test_no_collisions_in_random_sample(self):
        """Test that a large sample of distinct URLs maps to distinct keys."""
        rng = random.Random(1234)
        alphabet = string.ascii_letters + string.digits + "-_/."
        urls = {
            "https://example.test/"
            + "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 40)))
            for _ in range(20000)
        }
        keys = {derive_cache_key(url) for url in urls}
        assert len(keys) == len(urls)
