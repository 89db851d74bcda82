"""
Install and run npm packages from the shared dlx cache.

Each package spec gets its own content-addressed slot:

    <dlx_dir>/<cache-key>/                  slot root (key = hash of name@version)
    <dlx_dir>/<cache-key>/concurrency.lock  held while installing
    <dlx_dir>/<cache-key>/node_modules/...  installed package tree

Installs are serialized per slot by a directory lock, so any number of
processes can ask for the same package at once and only one of them runs
the installer. The rest wait for the lock and then find the package
already in place.

Version ranges (``^1.0.0``, ``~2``, ``>=3``) reinstall by default so the
slot tracks the newest matching release; exact versions and tags are
reused.

Usage:
    coordinator = InstallCoordinator(dlx_dir, cacache_dir, NpmInstaller())
    result = coordinator.download_package("cowsay@1.5.0")
    execute_package(result.binary_path, ["hello"])
"""

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from dlxkit.config.parser import LockSettings
from dlxkit.core.directory import get_cacache_dir, get_dlx_dir
from dlxkit.core.exceptions import (
    DlxKitError,
    InstallDirectoryError,
    InstallError,
    InstallNetworkError,
    PackageNotFoundError,
)
from dlxkit.core.filesystem import (
    IS_WINDOWS,
    PERMISSION_DENIED,
    READ_ONLY,
    classify_os_error,
    directory_size,
)
from dlxkit.core.locking import LockManager
from dlxkit.dlx.binary import BinaryReference, BinaryResolver, needs_shell
from dlxkit.dlx.cache import generate_cache_key
from dlxkit.dlx.installer import Installer, InstallRequest, NpmInstaller
from dlxkit.dlx.manifest import ManifestStore, PackageDetails
from dlxkit.dlx.paths import get_installed_package_dir, get_lock_path, get_package_dir
from dlxkit.dlx.spec import PackageSpec, parse_package_spec

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = ("E404", "ETARGET")
NETWORK_CODES = ("ENOTFOUND", "ETIMEDOUT", "EAI_AGAIN")


@dataclass
class InstallResult:
    """
    Outcome of ensure_installed().

    Attributes:
        installed: True if the installer ran, False if the slot was reused
        package_dir: Slot root
        cache_key: Slot directory name
        spec: Parsed package spec
    """

    installed: bool
    package_dir: Path
    cache_key: str
    spec: PackageSpec


@dataclass
class DownloadPackageResult:
    package_dir: Path
    binary_path: Path
    installed: bool
    binary: BinaryReference


@dataclass
class DlxPackageResult:
    download: DownloadPackageResult
    process: subprocess.CompletedProcess

    @property
    def returncode(self) -> int:
        return self.process.returncode


def _as_spec(spec: Union[str, PackageSpec]) -> PackageSpec:
    return spec if isinstance(spec, PackageSpec) else parse_package_spec(spec)


def resolve_force(
    spec: PackageSpec, force: Optional[bool] = None, yes: bool = False
) -> bool:
    """
    Decide whether an install must run even if the slot is populated.

    An explicit ``force`` wins; otherwise ``yes`` forces; otherwise version
    ranges force and everything else reuses the slot.
    """
    if force is not None:
        return force
    if yes:
        return True
    return spec.is_range


def execute_package(
    binary_path: Union[str, Path],
    args: Sequence[str] = (),
    is_windows: bool = IS_WINDOWS,
    **run_kwargs,
) -> subprocess.CompletedProcess:
    """
    Run an installed binary and wait for it.

    Windows script wrappers (.cmd, .bat, .ps1) run through the shell.

    Args:
        binary_path: Executable to run
        args: Arguments passed to the binary
        **run_kwargs: Passed through to subprocess.run

    Returns:
        CompletedProcess
    """
    cmd = [str(binary_path), *args]
    if needs_shell(Path(binary_path), is_windows):
        run_kwargs["shell"] = True
    logger.debug(f"Executing: {' '.join(cmd)}")
    return subprocess.run(cmd, **run_kwargs)


class InstallCoordinator:
    """
    Installs packages into content-addressed slots, one process at a time per slot.

    Example:
        >>> coordinator = InstallCoordinator()
        >>> result = coordinator.ensure_installed("left-pad@1.3.0")
        >>> result.installed
        True
        >>> coordinator.ensure_installed("left-pad@1.3.0").installed
        False
    """

    def __init__(
        self,
        dlx_dir: Optional[Path] = None,
        cacache_dir: Optional[Path] = None,
        installer: Optional[Installer] = None,
        lock_manager: Optional[LockManager] = None,
        lock_settings: Optional[LockSettings] = None,
        manifest: Optional[ManifestStore] = None,
        resolver: Optional[BinaryResolver] = None,
    ):
        """
        Initialize install coordinator.

        Args:
            dlx_dir: Root of the installation slots
            cacache_dir: Shared installer download cache
            installer: Package installer (default: NpmInstaller)
            lock_manager: Lock manager shared with the rest of the process
            lock_settings: Retry parameters for slot locks
            manifest: Manifest updated after fresh installs (optional)
            resolver: Binary resolver
        """
        self.dlx_dir = Path(dlx_dir) if dlx_dir is not None else get_dlx_dir()
        self.cacache_dir = Path(cacache_dir) if cacache_dir is not None else get_cacache_dir()
        self.installer = installer or NpmInstaller()
        self.lock_manager = lock_manager or LockManager()
        self.lock_settings = lock_settings or LockSettings(retries=30)
        self.manifest = manifest
        self.resolver = resolver or BinaryResolver()

    def _create_package_dir(self, package_dir: Path, spec: PackageSpec) -> None:
        try:
            package_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            kind = classify_os_error(e)
            if kind == PERMISSION_DENIED:
                message = (
                    f"Permission denied creating package directory: {package_dir}\n"
                    "Please check directory permissions or run with appropriate access."
                )
            elif kind == READ_ONLY:
                message = (
                    f"Cannot create package directory on read-only filesystem: {package_dir}\n"
                    "Ensure the filesystem is writable or set DLXKIT_DLX_DIR to a writable location."
                )
            else:
                message = f"Failed to create package directory: {package_dir}"
            raise InstallDirectoryError(message, spec.normalized, package_dir) from e

    def _classify_install_failure(
        self, error: Exception, spec: PackageSpec, installed_dir: Path
    ) -> InstallError:
        code = getattr(error, "code", None)
        if code in NOT_FOUND_CODES:
            return PackageNotFoundError(
                f"Package not found: {spec.normalized}\n"
                "Verify the package exists on npm registry and check the version.\n"
                f"Visit https://www.npmjs.com/package/{spec.name} to see available versions.",
                spec.normalized,
                installed_dir,
            )
        if code in NETWORK_CODES:
            return InstallNetworkError(
                f"Network error installing {spec.normalized}\n"
                "Check your internet connection and try again.",
                spec.normalized,
                installed_dir,
            )
        return InstallError(
            f"Failed to install package: {spec.normalized}\n"
            f"Destination: {installed_dir}\n"
            "Check npm registry connectivity or package name.",
            spec.normalized,
            installed_dir,
        )

    def _record_install(self, spec: PackageSpec, cache_key: str, installed_dir: Path) -> None:
        if self.manifest is None:
            return
        try:
            version = spec.version or ""
            pkg_json = installed_dir / "package.json"
            with open(pkg_json, "r", encoding="utf-8") as f:
                version = str(json.load(f).get("version", version))
            details = PackageDetails(
                installed_version=version, size=directory_size(installed_dir)
            )
            self.manifest.set_package_entry(spec.normalized, cache_key, details)
        except (DlxKitError, OSError, ValueError) as e:
            logger.warning(f"Failed to record {spec.normalized} in manifest: {e}")

    def ensure_installed(
        self,
        spec: Union[str, PackageSpec],
        force: bool = False,
        *,
        refresh_ranges: bool = True,
    ) -> InstallResult:
        """
        Make sure a package is installed in its slot.

        Args:
            spec: Package spec ('name', 'name@version', '@scope/name@range')
            force: Reinstall even if the slot is populated
            refresh_ranges: Treat version ranges as force=True

        Returns:
            InstallResult

        Raises:
            InstallDirectoryError: If the slot cannot be created
            PackageNotFoundError: If the package or version does not exist
            InstallNetworkError: If the registry is unreachable
            InstallError: For any other installer failure
            LockAcquisitionError: If the slot lock could not be taken
        """
        spec = _as_spec(spec)
        force = force or (refresh_ranges and spec.is_range)

        cache_key = generate_cache_key(spec.normalized)
        package_dir = get_package_dir(self.dlx_dir, cache_key)
        installed_dir = get_installed_package_dir(package_dir, spec.name)

        # The lock directory lives inside the slot, so the slot must exist first
        self._create_package_dir(package_dir, spec)

        def _install() -> InstallResult:
            # Another process may have finished the install while we waited
            if not force and (installed_dir / "package.json").exists():
                logger.debug(f"Reusing installed {spec.normalized} in {package_dir}")
                return InstallResult(False, package_dir, cache_key, spec)

            logger.info(f"Installing {spec.normalized}")
            request = InstallRequest(
                target_dir=package_dir,
                cache_dir=self.cacache_dir,
                spec=spec.normalized,
                production_only=True,
                ignore_scripts=True,
                bin_links=True,
                quiet=True,
            )
            try:
                self.installer.install(request)
            except Exception as e:
                raise self._classify_install_failure(e, spec, installed_dir) from e

            self._record_install(spec, cache_key, installed_dir)
            return InstallResult(True, package_dir, cache_key, spec)

        return self.lock_manager.with_lock(
            get_lock_path(package_dir), _install, **self.lock_settings.as_kwargs()
        )

    def download_package(
        self,
        spec: Union[str, PackageSpec],
        binary_name: Optional[str] = None,
        force: Optional[bool] = None,
        yes: bool = False,
    ) -> DownloadPackageResult:
        """
        Install a package if needed and resolve its binary.

        Args:
            spec: Package spec
            binary_name: Preferred bin when the package declares several
            force: Explicit reinstall decision (None applies the range policy)
            yes: Auto-approve; implies force unless force is given

        Raises:
            BinaryNotFoundError: If the package has no runnable bin
        """
        spec = _as_spec(spec)
        result = self.ensure_installed(
            spec, resolve_force(spec, force, yes), refresh_ranges=False
        )

        binary = self.resolver.resolve(result.package_dir, spec.name, binary_name)
        self.resolver.make_bins_executable(result.package_dir, spec.name)

        return DownloadPackageResult(
            package_dir=result.package_dir,
            binary_path=binary.path,
            installed=result.installed,
            binary=binary,
        )

    def dlx_package(
        self,
        args: Sequence[str],
        spec: Union[str, PackageSpec],
        binary_name: Optional[str] = None,
        force: Optional[bool] = None,
        yes: bool = False,
        **run_kwargs,
    ) -> DlxPackageResult:
        """Install if needed, then run the package binary with args."""
        download = self.download_package(spec, binary_name, force, yes)
        process = execute_package(
            download.binary_path, args, self.resolver.is_windows, **run_kwargs
        )
        return DlxPackageResult(download, process)


__all__ = [
    "InstallResult",
    "DownloadPackageResult",
    "DlxPackageResult",
    "InstallCoordinator",
    "resolve_force",
    "execute_package",
]
