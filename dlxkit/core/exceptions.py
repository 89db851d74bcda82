"""
Centralized exception hierarchy for dlxkit.

This module defines all custom exceptions used across the codebase
so callers can catch a single family per concern.
"""

from pathlib import Path
from typing import Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class DlxKitError(Exception):
    """Base exception for all dlxkit errors."""

    pass


class ConfigError(DlxKitError):
    """Raised when configuration cannot be loaded or is invalid."""

    pass


class OperationCancelled(DlxKitError):
    """Raised by the retry helper when its cancel event fires."""

    pass


# ============================================================================
# Lock Exceptions
# ============================================================================


class LockError(DlxKitError):
    """Base exception for process lock errors."""

    def __init__(self, message: str, lock_path: Optional[Path] = None):
        self.lock_path = lock_path
        super().__init__(message)


class LockContentionError(LockError):
    """Raised when a lock is held by a live holder (retryable)."""

    pass


class LockAcquisitionError(LockError):
    """Raised when a lock cannot be acquired and retrying will not help."""

    pass


class LockEnvironmentError(LockAcquisitionError):
    """Permission, read-only filesystem or invalid parent path."""

    pass


class LockCancelledError(LockError):
    """Raised by with_lock() when acquisition was cancelled."""

    pass


# ============================================================================
# Install Exceptions
# ============================================================================


class InstallError(DlxKitError):
    """Base exception for package installation failures."""

    def __init__(
        self,
        message: str,
        spec: Optional[str] = None,
        destination: Optional[Path] = None,
    ):
        self.spec = spec
        self.destination = destination
        super().__init__(message)


class InstallDirectoryError(InstallError):
    """Raised when the installation directory cannot be created."""

    pass


class PackageNotFoundError(InstallError):
    """Raised when the requested package or version does not exist."""

    pass


class InstallNetworkError(InstallError):
    """Raised when the installer could not reach the registry."""

    pass


class InstallerError(DlxKitError):
    """
    Failure reported by the installer collaborator.

    Carries the npm-style error code (E404, ETARGET, ENOTFOUND, ...) when
    one could be determined.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


# ============================================================================
# Resolution / Storage Exceptions
# ============================================================================


class BinaryNotFoundError(DlxKitError):
    """Raised when no runnable binary can be resolved for a package."""

    def __init__(self, package_name: str, message: Optional[str] = None):
        self.package_name = package_name
        super().__init__(message or f'No binary found for package "{package_name}"')


class SlotRemovalError(DlxKitError):
    """Raised when an installation slot cannot be removed."""

    def __init__(self, message: str, slot: str, directory: Path):
        self.slot = slot
        self.directory = directory
        super().__init__(message)


# ============================================================================
# Download Exceptions
# ============================================================================


class DownloadError(DlxKitError):
    """Raised when a binary download fails."""

    pass


class IntegrityError(DownloadError):
    """Raised when a downloaded file does not match its expected integrity."""

    pass
