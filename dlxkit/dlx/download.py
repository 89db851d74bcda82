"""
Download and run standalone binaries from URLs.

Binaries share the dlx directory with npm packages. Each download gets a
slot keyed by ``<url>:<name>`` holding the file itself and a metadata
record:

    <dlx_dir>/<cache-key>/<name>
    <dlx_dir>/<cache-key>/.dlx-metadata.json
    <dlx_dir>/<cache-key>/concurrency.lock     (while downloading)

A slot is reused while its metadata timestamp is younger than the cache
TTL (7 days by default).
"""

import json
import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import requests

from dlxkit.config.parser import DEFAULT_BINARY_CACHE_TTL, LockSettings
from dlxkit.core.directory import get_dlx_dir
from dlxkit.core.download import compute_integrity, http_download, integrity_algorithm
from dlxkit.core.exceptions import DlxKitError, DownloadError, IntegrityError
from dlxkit.core.filesystem import (
    IS_WINDOWS,
    PERMISSION_DENIED,
    READ_ONLY,
    atomic_write,
    classify_os_error,
    is_empty_directory,
    remove_tree,
)
from dlxkit.core.locking import LockManager
from dlxkit.core.platform import PlatformInfo, detect_platform
from dlxkit.dlx.binary import EXECUTABLE_MODE, needs_shell
from dlxkit.dlx.cache import generate_cache_key
from dlxkit.dlx.manifest import BinaryDetails, BinarySource, ManifestStore
from dlxkit.dlx.paths import LOCK_DIR_NAME, get_lock_path, get_package_dir

logger = logging.getLogger(__name__)

METADATA_FILE_NAME = ".dlx-metadata.json"
METADATA_VERSION = "1.0.0"


@dataclass
class DownloadBinaryResult:
    binary_path: Path
    downloaded: bool
    integrity: Optional[str]


@dataclass
class CachedBinary:
    """
    One downloaded binary in the cache.

    Attributes:
        name: Binary file name
        url: Source URL
        size: File size in bytes
        age: Seconds since download
        integrity: SRI string recorded at download
    """

    name: str
    url: str
    size: int
    age: float
    integrity: str


def get_metadata_path(entry_dir: Path) -> Path:
    return Path(entry_dir) / METADATA_FILE_NAME


def read_metadata(entry_dir: Path) -> Optional[Dict[str, Any]]:
    """Read a slot's metadata, or None if missing or unreadable."""
    try:
        with open(get_metadata_path(entry_dir), "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _metadata_age(metadata: Dict[str, Any], now: float) -> float:
    """Age in seconds; entries without a usable timestamp are infinitely old."""
    timestamp = metadata.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or timestamp <= 0:
        return float("inf")
    return now - timestamp / 1000.0


def execute_binary(
    binary_path: Union[str, Path],
    args: Sequence[str] = (),
    is_windows: bool = IS_WINDOWS,
    **run_kwargs,
) -> subprocess.CompletedProcess:
    """
    Run a downloaded binary and wait for it.

    Windows script wrappers run through the shell with their slot
    directory prepended to PATH.
    """
    binary_path = Path(binary_path)
    cmd = [str(binary_path), *args]
    if needs_shell(binary_path, is_windows):
        env = dict(run_kwargs.get("env") or os.environ)
        env["PATH"] = f"{binary_path.parent}{os.pathsep}{env.get('PATH', '')}"
        run_kwargs["env"] = env
        run_kwargs["shell"] = True
    logger.debug(f"Executing: {' '.join(cmd)}")
    return subprocess.run(cmd, **run_kwargs)


class BinaryDownloader:
    """
    Downloads binaries into the dlx cache.

    Example:
        >>> downloader = BinaryDownloader()
        >>> result = downloader.download_binary(
        ...     "https://example.com/tool-linux-x64", name="tool"
        ... )
        >>> execute_binary(result.binary_path, ["--version"])
    """

    def __init__(
        self,
        dlx_dir: Optional[Path] = None,
        lock_manager: Optional[LockManager] = None,
        lock_settings: Optional[LockSettings] = None,
        manifest: Optional[ManifestStore] = None,
        session: Optional[requests.Session] = None,
        cache_ttl: float = DEFAULT_BINARY_CACHE_TTL,
        platform_info: Optional[PlatformInfo] = None,
    ):
        """
        Initialize binary downloader.

        Args:
            dlx_dir: Root of the cache slots
            lock_manager: Lock manager shared with the rest of the process
            lock_settings: Retry parameters for slot locks
            manifest: Manifest updated after downloads (optional)
            session: requests session used for HTTP
            cache_ttl: Default cache lifetime in seconds
            platform_info: Host platform (default: detected)
        """
        self.dlx_dir = Path(dlx_dir) if dlx_dir is not None else get_dlx_dir()
        self.lock_manager = lock_manager or LockManager()
        self.lock_settings = lock_settings or LockSettings(retries=30)
        self.manifest = manifest
        self.session = session
        self.cache_ttl = cache_ttl
        self.platform_info = platform_info or detect_platform()

    def default_binary_name(self) -> str:
        return f"binary-{self.platform_info.os}-{self.platform_info.arch}"

    def is_cache_valid(self, entry_dir: Path, cache_ttl: float) -> bool:
        """True if the slot metadata has a positive timestamp younger than cache_ttl seconds."""
        metadata = read_metadata(entry_dir)
        if metadata is None:
            return False
        return _metadata_age(metadata, time.time()) < cache_ttl

    def _create_entry_dir(self, entry_dir: Path) -> None:
        try:
            entry_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            kind = classify_os_error(e)
            if kind == PERMISSION_DENIED:
                message = (
                    f"Permission denied creating binary cache directory: {entry_dir}\n"
                    "Please check directory permissions or run with appropriate access."
                )
            elif kind == READ_ONLY:
                message = (
                    f"Cannot create binary cache directory on read-only filesystem: {entry_dir}\n"
                    "Ensure the filesystem is writable or set DLXKIT_DLX_DIR to a writable location."
                )
            else:
                message = f"Failed to create binary cache directory: {entry_dir}"
            raise DownloadError(message) from e

    def _download_file(
        self, url: str, binary_path: Path, integrity: Optional[str], force: bool
    ) -> str:
        """Download under the slot lock and return the file's integrity."""

        def _locked() -> str:
            if not force and binary_path.is_file() and binary_path.stat().st_size > 0:
                algorithm = integrity_algorithm(integrity) if integrity else "sha512"
                existing = compute_integrity(binary_path, algorithm)
                if not integrity or existing == integrity.strip():
                    logger.debug(f"Reusing downloaded binary: {binary_path}")
                    return existing
                logger.warning(f"Cached binary does not match integrity, re-downloading: {binary_path}")

            try:
                actual = http_download(url, binary_path, integrity, session=self.session)
            except IntegrityError:
                binary_path.unlink(missing_ok=True)
                raise
            except DownloadError as e:
                raise DownloadError(
                    f"Failed to download binary from {url}\n"
                    f"Destination: {binary_path}\n"
                    "Check your internet connection or verify the URL is accessible."
                ) from e

            if not IS_WINDOWS:
                os.chmod(binary_path, EXECUTABLE_MODE)
            return actual

        return self.lock_manager.with_lock(
            get_lock_path(binary_path.parent), _locked, **self.lock_settings.as_kwargs()
        )

    def _write_metadata(
        self, entry_dir: Path, cache_key: str, url: str, integrity: str, size: int
    ) -> None:
        metadata = {
            "version": METADATA_VERSION,
            "cache_key": cache_key,
            "timestamp": int(time.time() * 1000),
            "integrity": integrity,
            "size": size,
            "source": {"type": "download", "url": url},
        }
        atomic_write(get_metadata_path(entry_dir), json.dumps(metadata, indent=2))

    def _record(self, spec: str, cache_key: str, url: str, integrity: str, size: int) -> None:
        if self.manifest is None:
            return
        details = BinaryDetails(
            integrity=integrity,
            platform=self.platform_info.os,
            arch=self.platform_info.arch,
            size=size,
            source=BinarySource(type="download", url=url),
        )
        try:
            self.manifest.set_binary_entry(spec, cache_key, details)
        except (DlxKitError, OSError) as e:
            logger.warning(f"Failed to record {spec} in manifest: {e}")

    def download_binary(
        self,
        url: str,
        name: Optional[str] = None,
        integrity: Optional[str] = None,
        cache_ttl: Optional[float] = None,
        force: bool = False,
        yes: bool = False,
    ) -> DownloadBinaryResult:
        """
        Download a binary unless a fresh copy is cached.

        Args:
            url: Download URL
            name: File name in the cache (default: binary-<os>-<arch>)
            integrity: Expected SRI string (sha512-...)
            cache_ttl: Cache lifetime in seconds (default: downloader TTL)
            force: Ignore the cache and download again
            yes: Auto-approve; implies force

        Raises:
            DownloadError: On HTTP, network or filesystem failure
            IntegrityError: If the download does not match integrity
        """
        force = force or yes
        ttl = self.cache_ttl if cache_ttl is None else cache_ttl
        binary_name = name or self.default_binary_name()
        spec = f"{url}:{binary_name}"
        cache_key = generate_cache_key(spec)
        entry_dir = get_package_dir(self.dlx_dir, cache_key)
        binary_path = entry_dir / binary_name

        if not force and self.is_cache_valid(entry_dir, ttl) and binary_path.is_file():
            metadata = read_metadata(entry_dir) or {}
            cached_integrity = metadata.get("integrity")
            if isinstance(cached_integrity, str) and cached_integrity:
                logger.debug(f"Using cached binary: {binary_path}")
                return DownloadBinaryResult(binary_path, False, cached_integrity)

        self._create_entry_dir(entry_dir)
        actual = self._download_file(url, binary_path, integrity, force)
        size = binary_path.stat().st_size
        self._write_metadata(entry_dir, cache_key, url, actual, size)
        self._record(spec, cache_key, url, actual, size)

        logger.info(f"Downloaded {url} to {binary_path}")
        return DownloadBinaryResult(binary_path, True, actual)

    def dlx_binary(
        self, args: Sequence[str], url: str, name: Optional[str] = None, **options
    ) -> subprocess.CompletedProcess:
        """Download if needed, then run the binary with args."""
        result = self.download_binary(url, name, **options)
        return execute_binary(result.binary_path, args)

    def _entry_dirs(self) -> List[Path]:
        try:
            with os.scandir(self.dlx_dir) as entries:
                return [
                    Path(entry.path)
                    for entry in entries
                    if not entry.name.startswith(".") and entry.is_dir(follow_symlinks=False)
                ]
        except FileNotFoundError:
            return []

    def clean_cache(self, max_age: Optional[float] = None) -> int:
        """
        Remove expired binary slots.

        Slots with a metadata file are removed once older than max_age
        seconds, or immediately when the metadata has no usable timestamp.
        Slots without metadata (npm package slots) are left alone unless
        they are empty. Slots being downloaded right now are skipped.

        Returns:
            Number of slots removed
        """
        max_age = self.cache_ttl if max_age is None else max_age
        now = time.time()
        cleaned = 0

        for entry_dir in self._entry_dirs():
            lock_age = self.lock_manager.lock_age(entry_dir / LOCK_DIR_NAME)
            if lock_age is not None and lock_age <= self.lock_settings.stale_after:
                logger.debug(f"Skipping busy cache entry: {entry_dir}")
                continue

            try:
                if get_metadata_path(entry_dir).exists():
                    metadata = read_metadata(entry_dir) or {}
                    if _metadata_age(metadata, now) > max_age:
                        remove_tree(entry_dir)
                        cleaned += 1
                elif is_empty_directory(entry_dir):
                    entry_dir.rmdir()
                    cleaned += 1
            except OSError as e:
                logger.warning(f"Failed to clean cache entry {entry_dir}: {e}")

        if cleaned:
            logger.info(f"Removed {cleaned} expired cache entr{'y' if cleaned == 1 else 'ies'}")
        return cleaned

    def list_cache(self) -> List[CachedBinary]:
        """List downloaded binaries. Package slots are not included."""
        results = []
        now = time.time()

        for entry_dir in self._entry_dirs():
            metadata = read_metadata(entry_dir)
            if metadata is None:
                continue

            source = metadata.get("source")
            url = ""
            if isinstance(source, dict):
                url = source.get("url") or ""
            url = url or metadata.get("url") or ""

            try:
                files = sorted(
                    p for p in entry_dir.iterdir() if not p.name.startswith(".") and p.is_file()
                )
                if not files:
                    continue
                binary = files[0]
                size = binary.stat().st_size
            except OSError as e:
                logger.debug(f"Cannot inspect cache entry {entry_dir}: {e}")
                continue

            age = _metadata_age(metadata, now)
            if age == float("inf"):
                age = now
            results.append(
                CachedBinary(
                    name=binary.name,
                    url=str(url),
                    size=size,
                    age=age,
                    integrity=str(metadata.get("integrity") or ""),
                )
            )

        return results


__all__ = [
    "METADATA_FILE_NAME",
    "DownloadBinaryResult",
    "CachedBinary",
    "BinaryDownloader",
    "execute_binary",
    "read_metadata",
]
