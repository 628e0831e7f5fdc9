"""Cache-Control parsing and validator selection.

A stored response's ``Cache-Control`` header is reduced to one of four
policies. Only ``no-store``, ``no-cache`` and ``max-age=<seconds>`` are
understood; everything else, ``must-revalidate`` included, falls back to
``MustRevalidate``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence, Union

if TYPE_CHECKING:
    from sdkcache.cache.metadata import CacheMetadata

logger = logging.getLogger(__name__)


class CacheType(Enum):
    """Visibility of a cache. Recorded only; both behave the same today."""

    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class NoStore:
    """Never trust the cache; always request the full body."""


@dataclass(frozen=True)
class NoCache:
    """May be cached but must be revalidated on every use."""


@dataclass(frozen=True)
class Expires:
    """Valid until ``at``, revalidate afterwards."""

    at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.at


@dataclass(frozen=True)
class MustRevalidate:
    """Fallback when the directive is missing or not understood."""


CacheControlPolicy = Union[NoStore, NoCache, Expires, MustRevalidate]


@dataclass(frozen=True)
class EffectiveValidators:
    """Validators to forward on the next request.

    Attributes:
        etag: Value for ``If-None-Match``, or None to omit it
        last_modified: Value for ``If-Modified-Since``, or None to omit it
    """

    etag: Optional[str] = None
    last_modified: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.etag is None and self.last_modified is None

    def to_headers(self) -> dict:
        """Build conditional request headers for the selected validators."""
        headers = {}
        if self.etag is not None:
            headers["If-None-Match"] = self.etag
        if self.last_modified is not None:
            headers["If-Modified-Since"] = self.last_modified
        return headers


def _parse_max_age(token: str) -> Optional[int]:
    _, _, value = token.partition("=")
    value = value.strip().strip('"')
    if not value.isdigit():
        return None
    return int(value)


def parse_cache_control(
    header_values: Optional[Sequence[str]], now: datetime
) -> CacheControlPolicy:
    """Parse Cache-Control header values into a policy.

    Args:
        header_values: All values of the header, in received order. None or
            empty when the response carried no Cache-Control header.
        now: Reference time that ``max-age`` is relative to

    Returns:
        The most restrictive recognised policy, or MustRevalidate
    """
    if not header_values:
        return MustRevalidate()

    raw = ", ".join(header_values)
    tokens = [t.strip().lower() for t in raw.split(",") if t.strip()]

    if "no-store" in tokens:
        return NoStore()
    if "no-cache" in tokens:
        return NoCache()

    for token in tokens:
        if token.startswith("max-age"):
            seconds = _parse_max_age(token)
            if seconds is not None:
                return Expires(now + timedelta(seconds=seconds))

    logger.info(
        f"Unrecognized Cache-Control directive {raw!r}, treating as must-revalidate"
    )
    return MustRevalidate()


def evaluate(
    metadata: Optional["CacheMetadata"], now: Optional[datetime] = None
) -> EffectiveValidators:
    """Decide which stored validators to forward on the next request.

    Unexpired ``Expires`` entries get no validators, so the next request
    downloads the full body.

    Args:
        metadata: Stored metadata for the entry, or None if nothing is cached
        now: Current time (defaults to now in UTC)

    Returns:
        Validators to send; empty when the request must be unconditional
    """
    if metadata is None:
        return EffectiveValidators()

    now = now or datetime.now(timezone.utc)
    policy = metadata.cache_control

    if isinstance(policy, NoStore):
        logger.debug(f"no-store for {metadata.source_url}, stripping validators")
        return EffectiveValidators()
    if isinstance(policy, Expires) and not policy.is_expired(now):
        logger.debug(
            f"{metadata.source_url} not yet expired ({policy.at.isoformat()}), "
            "refetching without validators"
        )
        return EffectiveValidators()

    return EffectiveValidators(
        etag=metadata.etag, last_modified=metadata.last_modified
    )
