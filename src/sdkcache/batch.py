"""Batch fetch and verification of catalog download files.

The catalog (a tree of JSON repositories) is read elsewhere; this module only
consumes its per-file records::

    {"url": "...", "fileName": "...", "size": 123,
     "checksum": "...", "checksumType": "md5"}
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin

from sdkcache.cache.errors import (
    CacheError,
    CacheMissingError,
    HTTPStatusError,
    TransportError,
)
from sdkcache.cache.fetcher import ConditionalFetcher
from sdkcache.cache.validation import (
    DEFAULT_CHUNK_SIZE,
    DigestMismatch,
    Missing,
    UnsupportedAlgorithm,
    Valid,
    VerificationOutcome,
    verify_file,
)

logger = logging.getLogger(__name__)


class ManifestError(CacheError):
    """Raised when a download manifest cannot be parsed."""

    pass


@dataclass
class DownloadFile:
    """One downloadable file described by the catalog.

    Attributes:
        url: Location relative to the source base URL (or absolute)
        file_name: Local file name to store the download under
        size: Expected size in bytes
        checksum: Expected hex digest
        checksum_type: Digest algorithm name (e.g. 'md5')
    """

    url: str
    file_name: str
    size: int
    checksum: str
    checksum_type: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadFile":
        """Build from a catalog record with camelCase keys.

        Raises:
            ManifestError: If a required field is missing or mistyped
        """
        try:
            return cls(
                url=str(data["url"]),
                file_name=str(data["fileName"]),
                size=int(data.get("size", 0)),
                checksum=str(data["checksum"]),
                checksum_type=str(data["checksumType"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ManifestError(f"Invalid download file record {data!r}: {e}") from e

    def resolve_url(self, base_url: Optional[str] = None) -> str:
        return urljoin(base_url, self.url) if base_url else self.url


@dataclass
class FetchResult:
    """Outcome of fetching one file: a local path or the error that stopped it."""

    file: DownloadFile
    path: Optional[Path] = None
    error: Optional[CacheError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# Called with (file, bytes processed, total bytes) while verifying
BatchProgressCallback = Callable[[DownloadFile, int, int], None]


def load_manifest(path: Path) -> List[DownloadFile]:
    """Load download file records from a JSON manifest.

    The manifest is either a list of records or an object with a
    ``downloadFiles`` list.

    Raises:
        ManifestError: If the file is not a valid manifest
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Manifest {path} is not valid JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("downloadFiles")
    if not isinstance(data, list):
        raise ManifestError(
            f"Manifest {path} must be a list or contain a 'downloadFiles' list"
        )
    return [DownloadFile.from_dict(item) for item in data]


def fetch_files(
    fetcher: ConditionalFetcher,
    files: List[DownloadFile],
    dest_dir: Path,
    base_url: Optional[str] = None,
) -> List[FetchResult]:
    """Fetch each file through the cache and copy it into ``dest_dir``.

    HTTP status and transport failures are recorded per file and the run
    continues. Anything else (corrupt metadata, filesystem errors) aborts it.

    Args:
        fetcher: Conditional fetcher to download through
        files: Files to fetch
        dest_dir: Directory receiving ``file_name`` for each file
        base_url: Base URL that relative file URLs resolve against

    Returns:
        One FetchResult per input file, in order
    """
    dest_dir = Path(dest_dir)
    results = []
    if not files:
        logger.warning("Fetch: Nothing to do!")

    for file in files:
        url = file.resolve_url(base_url)
        try:
            artifact = fetcher.fetch(url)
        except (HTTPStatusError, TransportError, CacheMissingError) as e:
            logger.error(f"Failed to fetch {url}: {e}")
            results.append(FetchResult(file, error=e))
            continue

        path = artifact.copy_to(dest_dir / file.file_name)
        logger.debug(f"Copied {url} to {path}")
        results.append(FetchResult(file, path=path))

    return results


def verify_files(
    files: List[DownloadFile],
    dest_dir: Path,
    progress: Optional[BatchProgressCallback] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> List[VerificationOutcome]:
    """Verify every file in ``dest_dir`` against its catalog checksum.

    Mismatched, missing and unsupported-algorithm files are logged and
    reported; the run always completes a full pass. Other errors propagate
    and abort the remaining files.

    Args:
        files: Files to verify
        dest_dir: Directory containing ``file_name`` for each file
        progress: Optional per-chunk progress callback
        chunk_size: Bytes per read

    Returns:
        One outcome per input file, in order
    """
    dest_dir = Path(dest_dir)
    outcomes = []

    for file in files:
        callback = None
        if progress is not None:
            callback = _bind_progress(progress, file)

        outcome = verify_file(
            dest_dir / file.file_name,
            file.checksum,
            file.checksum_type,
            progress=callback,
            chunk_size=chunk_size,
        )

        if isinstance(outcome, Valid):
            logger.debug(f"{file.file_name}: valid")
        elif isinstance(outcome, DigestMismatch):
            logger.warning(
                f"{file.file_name}: digest mismatch "
                f"(expected {outcome.expected}, got {outcome.actual})"
            )
        elif isinstance(outcome, Missing):
            logger.warning(f"{file.file_name}: missing")
        elif isinstance(outcome, UnsupportedAlgorithm):
            logger.warning(
                f"{file.file_name}: unsupported checksum type {outcome.name!r}"
            )
        outcomes.append(outcome)

    return outcomes


def _bind_progress(
    progress: BatchProgressCallback, file: DownloadFile
) -> Callable[[int, int], None]:
    def callback(done: int, total: int) -> None:
        progress(file, done, total)

    return callback
