"""
On-demand installation of npm packages and binaries into a shared cache.

This package implements the dlx cache: content-addressed installation
slots, the metadata manifest, entry-point resolution and binary downloads.
"""

from dlxkit.dlx.binary import BinaryReference, BinaryResolver, get_bin_from_manifest
from dlxkit.dlx.cache import generate_cache_key
from dlxkit.dlx.context import DlxContext
from dlxkit.dlx.download import BinaryDownloader, CachedBinary, DownloadBinaryResult
from dlxkit.dlx.installer import Installer, InstallRequest, NpmInstaller
from dlxkit.dlx.manifest import (
    BinaryDetails,
    BinaryEntry,
    LegacyRecord,
    LookupStatus,
    ManifestLookup,
    ManifestStore,
    PackageDetails,
    PackageEntry,
)
from dlxkit.dlx.package import (
    DownloadPackageResult,
    InstallCoordinator,
    InstallResult,
    execute_package,
)
from dlxkit.dlx.slots import DirectoryManager
from dlxkit.dlx.spec import PackageSpec, is_version_range, parse_package_spec

__all__ = [
    "BinaryReference",
    "BinaryResolver",
    "get_bin_from_manifest",
    "generate_cache_key",
    "DlxContext",
    "BinaryDownloader",
    "CachedBinary",
    "DownloadBinaryResult",
    "Installer",
    "InstallRequest",
    "NpmInstaller",
    "BinaryDetails",
    "BinaryEntry",
    "LegacyRecord",
    "LookupStatus",
    "ManifestLookup",
    "ManifestStore",
    "PackageDetails",
    "PackageEntry",
    "DownloadPackageResult",
    "InstallCoordinator",
    "InstallResult",
    "execute_package",
    "DirectoryManager",
    "PackageSpec",
    "is_version_range",
    "parse_package_spec",
]
