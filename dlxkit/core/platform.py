"""
Platform detection for dlxkit.

Binary downloads are keyed by the host OS and CPU architecture, so the
names here must be stable across Python versions and distributions.
"""

import platform
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class PlatformInfo:
    """
    Normalized host platform.

    Attributes:
        os: 'windows', 'linux' or 'macos'
        arch: 'x64', 'arm64', 'x86', 'arm' or the raw machine name
    """

    os: str
    arch: str

    def platform_string(self) -> str:
        """Return '<os>-<arch>', e.g. 'linux-x64'."""
        return f"{self.os}-{self.arch}"

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"


def _detect_os() -> str:
    """
    Detect operating system.

    Returns:
        Normalized OS name. Unknown systems are returned lowercased.
    """
    system = platform.system().lower()

    if system == "windows":
        return "windows"
    elif system == "darwin":
        return "macos"
    return system


def _detect_architecture() -> str:
    """
    Detect CPU architecture.

    Returns:
        Normalized architecture: 'x64', 'arm64', 'x86', 'arm'
    """
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x64"
    elif machine in ("aarch64", "arm64"):
        return "arm64"
    elif machine in ("i386", "i686", "x86"):
        return "x86"
    elif machine.startswith("arm"):
        return "arm"
    else:
        # Return original for unknown architectures
        return machine


@lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect the current platform (cached).

    Example:
        >>> detect_platform().platform_string()
        'linux-x64'
    """
    return PlatformInfo(os=_detect_os(), arch=_detect_architecture())


def clear_platform_cache():
    """Force the next detect_platform() call to re-detect."""
    detect_platform.cache_clear()


__all__ = ["PlatformInfo", "detect_platform", "clear_platform_cache"]
