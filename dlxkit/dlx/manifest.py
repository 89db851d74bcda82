"""
Persistent metadata for everything installed in the dlx directory.

The manifest is a single JSON object mapping a spec string to a record.
Two record shapes coexist in the same file:

    New format (has a "type" field):
        {"type": "package", "cache_key": "...", "timestamp": 1700000000000,
         "details": {"installed_version": "1.3.0", "size": 4096}}

    Legacy format (update-check cache, no "type" field):
        {"timestampFetch": 1700000000000, "timestampNotification": 0,
         "version": "1.3.0"}

Records are classified once, when they are read, into PackageEntry,
BinaryEntry or LegacyRecord. Every write happens under the manifest lock
and replaces the file with an atomic rename. Reads never raise: a missing,
empty or corrupt manifest reads as empty.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from dlxkit.config.parser import LockSettings
from dlxkit.core.directory import get_dlx_dir
from dlxkit.core.filesystem import atomic_write
from dlxkit.core.locking import LockManager

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = ".dlx-manifest.json"

ENTRY_PACKAGE = "package"
ENTRY_BINARY = "binary"


def now_ms() -> int:
    return int(time.time() * 1000)


# ============================================================================
# Record Types
# ============================================================================


@dataclass
class UpdateCheck:
    """Bookkeeping for background update notifications."""

    last_check: int
    last_notification: int
    latest_known: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_check": self.last_check,
            "last_notification": self.last_notification,
            "latest_known": self.latest_known,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["UpdateCheck"]:
        if not isinstance(data, dict):
            return None
        return cls(
            last_check=int(data.get("last_check", 0)),
            last_notification=int(data.get("last_notification", 0)),
            latest_known=str(data.get("latest_known", "")),
        )


@dataclass
class PackageDetails:
    installed_version: str
    size: Optional[int] = None
    update_check: Optional[UpdateCheck] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"installed_version": self.installed_version}
        if self.size is not None:
            data["size"] = self.size
        if self.update_check is not None:
            data["update_check"] = self.update_check.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageDetails":
        if not isinstance(data, dict):
            raise TypeError("package details must be an object")
        return cls(
            installed_version=str(data["installed_version"]),
            size=None if data.get("size") is None else int(data["size"]),
            update_check=UpdateCheck.from_dict(data.get("update_check")),
        )


@dataclass
class BinarySource:
    """Where a binary came from: 'download' (url) or 'extract' (path)."""

    type: str
    url: Optional[str] = None
    path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.url is not None:
            data["url"] = self.url
        if self.path is not None:
            data["path"] = self.path
        return data


@dataclass
class BinaryDetails:
    integrity: str
    platform: str
    arch: str
    size: int
    source: BinarySource
    update_check: Optional[UpdateCheck] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "integrity": self.integrity,
            "platform": self.platform,
            "arch": self.arch,
            "size": self.size,
            "source": self.source.to_dict(),
        }
        if self.update_check is not None:
            data["update_check"] = self.update_check.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BinaryDetails":
        if not isinstance(data, dict):
            raise TypeError("binary details must be an object")
        source = data.get("source")
        if source is None:
            source = {}
        elif not isinstance(source, dict):
            raise TypeError("binary source must be an object")
        return cls(
            integrity=str(data["integrity"]),
            platform=str(data["platform"]),
            arch=str(data["arch"]),
            size=int(data.get("size", 0)),
            source=BinarySource(
                type=str(source.get("type", "download")),
                url=source.get("url"),
                path=source.get("path"),
            ),
            update_check=UpdateCheck.from_dict(data.get("update_check")),
        )


@dataclass
class PackageEntry:
    cache_key: str
    timestamp: int
    details: PackageDetails
    type: str = field(default=ENTRY_PACKAGE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "cache_key": self.cache_key,
            "timestamp": self.timestamp,
            "details": self.details.to_dict(),
        }


@dataclass
class BinaryEntry:
    cache_key: str
    timestamp: int
    details: BinaryDetails
    type: str = field(default=ENTRY_BINARY, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "cache_key": self.cache_key,
            "timestamp": self.timestamp,
            "details": self.details.to_dict(),
        }


@dataclass
class LegacyRecord:
    """Update-check record written by older releases."""

    timestamp_fetch: int
    timestamp_notification: int
    version: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestampFetch": self.timestamp_fetch,
            "timestampNotification": self.timestamp_notification,
            "version": self.version,
        }


ManifestEntry = Union[PackageEntry, BinaryEntry]
ManifestRecord = Union[PackageEntry, BinaryEntry, LegacyRecord]


class LookupStatus(Enum):
    FOUND = "found"
    LEGACY = "legacy"
    ABSENT = "absent"


@dataclass
class ManifestLookup:
    """Result of looking a spec up: a new-format entry, a legacy record, or nothing."""

    status: LookupStatus
    entry: Optional[ManifestEntry] = None
    legacy: Optional[LegacyRecord] = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND


def is_package_entry(entry: Any) -> bool:
    return isinstance(entry, PackageEntry)


def is_binary_entry(entry: Any) -> bool:
    return isinstance(entry, BinaryEntry)


def parse_record(key: str, raw: Any) -> Optional[ManifestRecord]:
    """
    Classify one raw manifest record.

    Returns None (and logs) for records that match neither shape.
    """
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring malformed manifest record for {key!r}")
        return None

    try:
        if "type" in raw:
            entry_type = raw["type"]
            cache_key = str(raw["cache_key"])
            timestamp = int(raw["timestamp"])
            details = raw.get("details")
            if details is None:
                details = {}
            if entry_type == ENTRY_PACKAGE:
                return PackageEntry(cache_key, timestamp, PackageDetails.from_dict(details))
            if entry_type == ENTRY_BINARY:
                return BinaryEntry(cache_key, timestamp, BinaryDetails.from_dict(details))
            logger.warning(f"Unknown manifest entry type {entry_type!r} for {key!r}")
            return None

        return LegacyRecord(
            timestamp_fetch=int(raw.get("timestampFetch", 0)),
            timestamp_notification=int(raw.get("timestampNotification", 0)),
            version=str(raw.get("version", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring malformed manifest record for {key!r}: {e}")
        return None


# ============================================================================
# Store
# ============================================================================


class ManifestStore:
    """
    Reads and updates the dlx manifest.

    Example:
        >>> store = ManifestStore(dlx_dir / ".dlx-manifest.json")
        >>> store.set_package_entry("left-pad@1.3.0", key, PackageDetails("1.3.0"))
        >>> store.lookup("left-pad@1.3.0").status
        <LookupStatus.FOUND: 'found'>
    """

    def __init__(
        self,
        manifest_path: Optional[Path] = None,
        lock_manager: Optional[LockManager] = None,
        lock_settings: Optional[LockSettings] = None,
    ):
        """
        Initialize manifest store.

        Args:
            manifest_path: Manifest file (default: <dlx_dir>/.dlx-manifest.json)
            lock_manager: Lock manager shared with the rest of the process
            lock_settings: Retry parameters for the manifest lock
        """
        if manifest_path is None:
            manifest_path = get_dlx_dir() / MANIFEST_FILE_NAME

        self.manifest_path = Path(manifest_path)
        self.lock_path = self.manifest_path.with_name(self.manifest_path.name + ".lock")
        self.lock_manager = lock_manager or LockManager()
        self.lock_settings = lock_settings or LockSettings()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_document(self) -> Dict[str, Any]:
        """Read the raw manifest, degrading to {} on any problem."""
        try:
            content = self.manifest_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read manifest {self.manifest_path}: {e}")
            return {}

        if not content.strip():
            return {}

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse manifest {self.manifest_path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Manifest root is not an object, ignoring: {self.manifest_path}")
            return {}

        return data

    def lookup(self, spec: str) -> ManifestLookup:
        raw = self._read_document().get(spec)
        if raw is None:
            return ManifestLookup(LookupStatus.ABSENT)

        record = parse_record(spec, raw)
        if isinstance(record, LegacyRecord):
            return ManifestLookup(LookupStatus.LEGACY, legacy=record)
        if record is None:
            return ManifestLookup(LookupStatus.ABSENT)
        return ManifestLookup(LookupStatus.FOUND, entry=record)

    def get_entry(self, spec: str) -> Optional[ManifestEntry]:
        """Get a new-format entry. Legacy records are not returned."""
        return self.lookup(spec).entry

    def get_legacy(self, name: str) -> Optional[LegacyRecord]:
        """Get a legacy record. New-format entries are not returned."""
        return self.lookup(name).legacy

    def get_all_packages(self) -> List[str]:
        """All keys in the manifest, in file order."""
        return list(self._read_document().keys())

    def get_entries(self) -> Dict[str, ManifestEntry]:
        """All new-format entries keyed by spec."""
        entries = {}
        for spec, raw in self._read_document().items():
            record = parse_record(spec, raw)
            if isinstance(record, (PackageEntry, BinaryEntry)):
                entries[spec] = record
        return entries

    def is_fresh(self, entry: Optional[ManifestRecord], ttl_ms: float) -> bool:
        """
        Check whether a record is younger than ttl_ms.

        Uses ``timestamp`` for entries and ``timestamp_fetch`` for legacy
        records. A missing record is never fresh.
        """
        if entry is None:
            return False
        if isinstance(entry, LegacyRecord):
            stamp = entry.timestamp_fetch
        else:
            stamp = entry.timestamp
        return now_ms() - stamp < ttl_ms

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _update(self, mutate: Callable[[Dict[str, Any]], bool]) -> None:
        """
        Read, mutate and atomically rewrite the manifest under its lock.

        ``mutate`` returns False when nothing changed, which skips the write.
        """
        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)

        def _locked() -> None:
            data = self._read_document()
            if mutate(data) is False:
                return
            atomic_write(self.manifest_path, json.dumps(data, indent=2))

        self.lock_manager.with_lock(
            self.lock_path, _locked, **self.lock_settings.as_kwargs()
        )

    def _set(self, key: str, record: ManifestRecord) -> None:
        def _mutate(data: Dict[str, Any]) -> bool:
            data[key] = record.to_dict()
            return True

        self._update(_mutate)
        logger.debug(f"Updated manifest entry: {key}")

    def set_package_entry(self, spec: str, cache_key: str, details: PackageDetails) -> None:
        self._set(spec, PackageEntry(cache_key, now_ms(), details))

    def set_binary_entry(self, spec: str, cache_key: str, details: BinaryDetails) -> None:
        self._set(spec, BinaryEntry(cache_key, now_ms(), details))

    def set_legacy(self, name: str, record: LegacyRecord) -> None:
        self._set(name, record)

    def clear(self, name: str) -> None:
        """Remove one record. A missing manifest or key is a no-op."""

        def _mutate(data: Dict[str, Any]) -> bool:
            if name not in data:
                return False
            del data[name]
            return True

        self._update(_mutate)

    def clear_all(self) -> None:
        """Delete the manifest file."""
        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)

        def _remove() -> None:
            self.manifest_path.unlink(missing_ok=True)

        self.lock_manager.with_lock(
            self.lock_path, _remove, **self.lock_settings.as_kwargs()
        )


__all__ = [
    "MANIFEST_FILE_NAME",
    "UpdateCheck",
    "PackageDetails",
    "BinarySource",
    "BinaryDetails",
    "PackageEntry",
    "BinaryEntry",
    "LegacyRecord",
    "ManifestEntry",
    "LookupStatus",
    "ManifestLookup",
    "ManifestStore",
    "is_package_entry",
    "is_binary_entry",
    "parse_record",
]
