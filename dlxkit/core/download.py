"""
Streaming HTTP downloads with Subresource Integrity hashing.

Downloads are streamed into a temporary file next to the destination,
hashed on the fly and renamed into place only once complete, so a
concurrent reader never observes a partial file.

Integrity strings use the SRI format: ``sha512-<base64 digest>``.
"""

import base64
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import requests
from requests.exceptions import RequestException

from dlxkit.core.exceptions import DownloadError, IntegrityError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
SUPPORTED_ALGORITHMS = ("sha512", "sha384", "sha256")


class StreamingHasher:
    """Compute an SRI integrity string incrementally."""

    def __init__(self, algorithm: str = "sha512"):
        """
        Initialize streaming hasher.

        Args:
            algorithm: Hash algorithm ('sha512', 'sha384', 'sha256')

        Raises:
            ValueError: If algorithm is not supported
        """
        self.algorithm = algorithm.lower()
        if self.algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")
        self.hasher = hashlib.new(self.algorithm)

    def update(self, data: bytes):
        """Add data to hash computation."""
        self.hasher.update(data)

    def finalize(self) -> str:
        """Get the SRI integrity string."""
        digest = base64.b64encode(self.hasher.digest()).decode("ascii")
        return f"{self.algorithm}-{digest}"

    def verify(self, expected_integrity: str) -> bool:
        return self.finalize() == expected_integrity.strip()


def integrity_algorithm(integrity: str) -> str:
    """
    Extract the hash algorithm from an SRI string.

    Raises:
        ValueError: If the string is not a supported SRI value
    """
    algorithm, sep, _ = integrity.strip().partition("-")
    if not sep or algorithm.lower() not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported integrity format: {integrity}")
    return algorithm.lower()


def compute_integrity(data: Union[bytes, Path], algorithm: str = "sha512") -> str:
    """
    Compute the SRI integrity string of bytes or a file.

    Example:
        >>> compute_integrity(b"hello")[:7]
        'sha512-'
    """
    hasher = StreamingHasher(algorithm)
    if isinstance(data, (bytes, bytearray)):
        hasher.update(data)
    else:
        with open(data, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                hasher.update(chunk)
    return hasher.finalize()


def http_download(
    url: str,
    destination: Path,
    expected_integrity: Optional[str] = None,
    session: Optional[requests.Session] = None,
    timeout: int = 30,
) -> str:
    """
    Download url to destination and return its SRI integrity.

    There is no retry here; a failed download surfaces immediately.

    Args:
        url: URL to download
        destination: Final file path
        expected_integrity: SRI string the content must match
        session: Optional requests session (default: module-level requests)
        timeout: Request timeout in seconds

    Returns:
        Integrity string of the downloaded content

    Raises:
        DownloadError: On HTTP or network failure
        IntegrityError: If the content does not match expected_integrity
    """
    if not url:
        raise ValueError("URL cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    algorithm = integrity_algorithm(expected_integrity) if expected_integrity else "sha512"
    hasher = StreamingHasher(algorithm)
    http = session or requests

    logger.info(f"Downloading from {url}")

    temp_fd, temp_name = tempfile.mkstemp(
        dir=destination.parent, prefix=f".{destination.name}.", suffix=".download"
    )
    os.close(temp_fd)
    temp_path = Path(temp_name)
    try:
        try:
            response = http.get(url, stream=True, timeout=timeout, allow_redirects=True)
            response.raise_for_status()
            with open(temp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        hasher.update(chunk)
        except RequestException as e:
            raise DownloadError(f"Failed to download {url}: {e}") from e

        integrity = hasher.finalize()
        if expected_integrity and integrity != expected_integrity.strip():
            raise IntegrityError(
                f"Integrity mismatch for {url}:\n"
                f"  expected: {expected_integrity}\n"
                f"  actual:   {integrity}"
            )

        os.replace(temp_path, destination)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise

    logger.info(f"Download complete: {destination}")
    return integrity


__all__ = [
    "StreamingHasher",
    "compute_integrity",
    "integrity_algorithm",
    "http_download",
]
