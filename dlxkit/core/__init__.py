"""
Core functionality for dlxkit.

This package contains the foundational modules that the dlx layer depends on.
"""

from .directory import (
    get_dlxkit_home,
    get_dlx_dir,
    get_cacache_dir,
)

from .locking import (
    LockManager,
    LockRegistry,
    HeldLock,
)

from .platform import (
    PlatformInfo,
    detect_platform,
    clear_platform_cache,
)

from .retry import retry_call

from .exceptions import (
    DlxKitError,
    ConfigError,
    OperationCancelled,
    LockError,
    LockContentionError,
    LockAcquisitionError,
    LockEnvironmentError,
    LockCancelledError,
    InstallError,
    InstallDirectoryError,
    PackageNotFoundError,
    InstallNetworkError,
    InstallerError,
    BinaryNotFoundError,
    SlotRemovalError,
    DownloadError,
    IntegrityError,
)

__all__ = [
    # Directory
    "get_dlxkit_home",
    "get_dlx_dir",
    "get_cacache_dir",
    # Locking
    "LockManager",
    "LockRegistry",
    "HeldLock",
    # Platform
    "PlatformInfo",
    "detect_platform",
    "clear_platform_cache",
    # Retry
    "retry_call",
    # Exceptions
    "DlxKitError",
    "ConfigError",
    "OperationCancelled",
    "LockError",
    "LockContentionError",
    "LockAcquisitionError",
    "LockEnvironmentError",
    "LockCancelledError",
    "InstallError",
    "InstallDirectoryError",
    "PackageNotFoundError",
    "InstallNetworkError",
    "InstallerError",
    "BinaryNotFoundError",
    "SlotRemovalError",
    "DownloadError",
    "IntegrityError",
]
