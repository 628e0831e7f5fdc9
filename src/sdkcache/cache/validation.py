"""Streaming checksum verification of local files."""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from sdkcache.cache.errors import UnsupportedAlgorithmError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024

# Supported checksum algorithms. Extend by registering a hashlib constructor.
CHECKSUM_ALGORITHMS: Dict[str, Callable[[], "hashlib._Hash"]] = {
    "md5": hashlib.md5,
}

# Called after each chunk with (bytes processed so far, total bytes)
ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class Valid:
    path: Path


@dataclass(frozen=True)
class DigestMismatch:
    path: Path
    expected: str
    actual: str


@dataclass(frozen=True)
class Missing:
    path: Path


@dataclass(frozen=True)
class UnsupportedAlgorithm:
    path: Path
    name: str


VerificationOutcome = Union[Valid, DigestMismatch, Missing, UnsupportedAlgorithm]


def _normalize_algorithm(algorithm: str) -> str:
    return algorithm.strip().lower()


def is_supported_algorithm(algorithm: str) -> bool:
    return _normalize_algorithm(algorithm) in CHECKSUM_ALGORITHMS


def compute_checksum(
    file_path: Path,
    algorithm: str = "md5",
    progress: Optional[ProgressCallback] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> str:
    """Compute checksum for a file.

    The file is read in fixed-size chunks so arbitrarily large files are
    never held in memory.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm name (see CHECKSUM_ALGORITHMS)
        progress: Optional callback invoked after each chunk
        chunk_size: Bytes per read

    Returns:
        Lower-case hex digest

    Raises:
        UnsupportedAlgorithmError: If algorithm not supported
    """
    name = _normalize_algorithm(algorithm)
    if name not in CHECKSUM_ALGORITHMS:
        raise UnsupportedAlgorithmError(f"Unsupported algorithm: {algorithm}")

    hasher = CHECKSUM_ALGORITHMS[name]()
    file_path = Path(file_path)
    total = file_path.stat().st_size
    done = 0

    with open(file_path, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
            done += len(chunk)
            if progress is not None:
                progress(done, total)

    return hasher.hexdigest().lower()


def verify_file(
    file_path: Path,
    expected_checksum: str,
    algorithm: str = "md5",
    progress: Optional[ProgressCallback] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> VerificationOutcome:
    """Verify a file's checksum against an expected value.

    Missing files and unknown algorithms are reported without reading any
    file content. Other I/O errors propagate.

    Args:
        file_path: Path to file
        expected_checksum: Expected hex digest (case-insensitive)
        algorithm: Hash algorithm name
        progress: Optional callback invoked after each chunk
        chunk_size: Bytes per read

    Returns:
        Valid, DigestMismatch, Missing or UnsupportedAlgorithm
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return Missing(file_path)

    if not is_supported_algorithm(algorithm):
        return UnsupportedAlgorithm(file_path, algorithm)

    logger.debug(f"Computing {algorithm} digest of {file_path}")
    actual = compute_checksum(file_path, algorithm, progress, chunk_size)
    expected = expected_checksum.strip().lower()

    if actual != expected:
        return DigestMismatch(file_path, expected, actual)
    return Valid(file_path)
