"""Cache metadata records and their on-disk store."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sdkcache.cache.errors import CacheError, CacheMetadataError, CachePermissionError
from sdkcache.cache.keys import HTTP_SUBDIR
from sdkcache.cache.policy import CacheControlPolicy, parse_cache_control

logger = logging.getLogger(__name__)

DATA_FILENAME = "data"
METADATA_FILENAME = "metadata"


@dataclass
class CacheMetadata:
    """Metadata captured from the response that produced a cache entry.

    Attributes:
        source_url: URL the entry was fetched from
        captured_at: When the response was received (UTC)
        raw_headers: Response headers, lower-cased name to values in order
    """

    source_url: str
    captured_at: datetime
    raw_headers: Dict[str, List[str]] = field(default_factory=dict)

    def __post_init__(self):
        """Lower-case header names and treat naive timestamps as UTC."""
        if self.captured_at.tzinfo is None:
            self.captured_at = self.captured_at.replace(tzinfo=timezone.utc)
        headers: Dict[str, List[str]] = {}
        for name, values in self.raw_headers.items():
            headers.setdefault(name.lower(), []).extend(values)
        self.raw_headers = headers

    @classmethod
    def from_response(
        cls,
        source_url: str,
        header_items: Iterable[Tuple[str, str]],
        captured_at: Optional[datetime] = None,
    ) -> "CacheMetadata":
        """Build metadata from a response's header pairs.

        Args:
            source_url: URL that was requested
            header_items: (name, value) pairs, repeated names allowed
            captured_at: Capture time (defaults to now in UTC)

        Returns:
            CacheMetadata instance
        """
        headers: Dict[str, List[str]] = {}
        for name, value in header_items:
            headers.setdefault(name, []).append(value)
        return cls(
            source_url=source_url,
            captured_at=captured_at or datetime.now(timezone.utc),
            raw_headers=headers,
        )

    def header(self, name: str) -> Optional[str]:
        """First stored value of a header, or None."""
        values = self.raw_headers.get(name.lower())
        return values[0] if values else None

    @property
    def etag(self) -> Optional[str]:
        return self.header("etag")

    @property
    def last_modified(self) -> Optional[str]:
        return self.header("last-modified")

    @property
    def content_type(self) -> Optional[str]:
        return self.header("content-type")

    @property
    def cache_control(self) -> CacheControlPolicy:
        """Policy from the stored Cache-Control header, relative to capture."""
        return parse_cache_control(
            self.raw_headers.get("cache-control"), self.captured_at
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source_url,
            "timestamp": self.captured_at.isoformat(),
            "response_headers": self.raw_headers,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CacheMetadata":
        """Deserialize a metadata record.

        Raises:
            CacheMetadataError: If the record is structurally invalid
        """
        if not isinstance(data, dict):
            raise CacheMetadataError(
                f"Metadata record must be an object, got {type(data).__name__}"
            )
        try:
            source = data["source"]
            timestamp = datetime.fromisoformat(data["timestamp"])
            headers = data["response_headers"]
        except (KeyError, TypeError, ValueError) as e:
            raise CacheMetadataError(f"Invalid metadata record: {e}") from e

        if not isinstance(source, str):
            raise CacheMetadataError("Metadata 'source' must be a string")
        if not isinstance(headers, dict) or not all(
            isinstance(k, str)
            and isinstance(v, list)
            and all(isinstance(item, str) for item in v)
            for k, v in headers.items()
        ):
            raise CacheMetadataError(
                "Metadata 'response_headers' must map names to lists of strings"
            )

        return cls(
            source_url=source,
            captured_at=timestamp,
            raw_headers={k: list(v) for k, v in headers.items()},
        )


class MetadataStore:
    """Reads and writes per-entry metadata records under a cache root.

    Layout::

        <cache_root>/http/<key>/data
        <cache_root>/http/<key>/metadata
    """

    def __init__(self, cache_root: Path):
        self.cache_root = Path(cache_root)

    def entry_dir(self, key: str) -> Path:
        return self.cache_root / HTTP_SUBDIR / key

    def data_path(self, key: str) -> Path:
        return self.entry_dir(key) / DATA_FILENAME

    def metadata_path(self, key: str) -> Path:
        return self.entry_dir(key) / METADATA_FILENAME

    def ensure_entry_dir(self, key: str) -> Path:
        """Create the entry directory if needed.

        Raises:
            CachePermissionError: If the directory cannot be created
        """
        path = self.entry_dir(key)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise CachePermissionError(
                f"Cannot create cache directory {path}: {e}"
            ) from e
        except OSError as e:
            logger.error(f"OS error creating cache directory: {e}")
            raise CacheError(f"Cannot create cache directory: {e}") from e
        return path

    def load(self, key: str) -> Optional[CacheMetadata]:
        """Load the metadata record for a key.

        Args:
            key: Cache key

        Returns:
            CacheMetadata, or None if no record exists

        Raises:
            CacheMetadataError: If the record exists but is corrupt
        """
        path = self.metadata_path(key)
        if not path.exists():
            return None

        logger.debug(f"Reading http cache metadata from {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise CacheMetadataError(
                    f"Corrupt cache metadata at {path}: {e}"
                ) from e
        return CacheMetadata.from_dict(data)

    def save(self, key: str, metadata: CacheMetadata) -> None:
        """Write the metadata record for a key, replacing any prior record.

        The record is written to a temporary file and renamed into place so a
        reader never sees a partial record.
        """
        self.ensure_entry_dir(key)
        path = self.metadata_path(key)
        temp_path = path.with_name(path.name + ".tmp")

        logger.debug(f"Writing http cache metadata to {path}")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(metadata.to_dict(), f, indent=2)
            temp_path.replace(path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
