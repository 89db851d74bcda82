"""
Entry-point resolution for installed packages.

Given a slot and a package name, find the executable the package declares
in the ``bin`` field of its package.json:

1. A string ``bin``, or a mapping with a single entry, is used directly.
2. Otherwise npm's own heuristic runs: if every bin points at the same
   file use the first name, else use the bin named after the unscoped
   package name.
3. If that fails, try the caller's hint, the last segment of the package
   name, the scope-stripped name, and finally the first declared bin.

On Windows the installer writes ``.cmd``/``.ps1`` shims next to each bin
link, so the resolved path is probed for those wrappers.
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dlxkit.core.exceptions import BinaryNotFoundError
from dlxkit.core.filesystem import IS_WINDOWS
from dlxkit.dlx.paths import get_installed_package_dir, get_package_json_path

logger = logging.getLogger(__name__)

# Matches the order npm's bin-links creates wrappers in
WRAPPER_EXTENSIONS = (".cmd", ".bat", ".ps1", ".exe", "")

SCRIPT_EXTENSIONS = (".cmd", ".bat", ".ps1")

EXECUTABLE_MODE = 0o755

_SCOPE_PREFIX = re.compile(r"^@[^/]+/")


@dataclass(frozen=True)
class BinaryReference:
    """
    A resolved entry point.

    Attributes:
        path: Absolute path to run
        extension: Wrapper extension chosen ('' for the bare path)
        name: Bin name from package.json, when declared as a mapping
    """

    path: Path
    extension: str = ""
    name: Optional[str] = None

    @property
    def needs_shell(self) -> bool:
        return self.extension.lower() in SCRIPT_EXTENSIONS


def needs_shell(binary_path: Path, is_windows: bool = IS_WINDOWS) -> bool:
    """Windows script wrappers cannot be exec'd directly and must go through the shell."""
    return is_windows and Path(binary_path).suffix.lower() in SCRIPT_EXTENSIONS


def get_bin_from_manifest(package_name: str, bin_map: Dict[str, str]) -> str:
    """
    npm's bin selection for packages that declare several bins.

    Raises:
        ValueError: If no bin can be chosen unambiguously

    Example:
        >>> get_bin_from_manifest("@scope/tool", {"tool": "a.js", "other": "b.js"})
        'tool'
    """
    if len(set(bin_map.values())) == 1:
        return next(iter(bin_map))

    unscoped = package_name.split("/")[-1]
    if bin_map.get(unscoped):
        return unscoped

    raise ValueError(f"Could not determine executable to run for {package_name}")


def resolve_wrapper(base_path: Path, is_windows: bool = IS_WINDOWS) -> BinaryReference:
    """
    Find the wrapper npm created for a bin on Windows.

    Tries .cmd, .bat, .ps1, .exe, then the bare path; the first that exists
    wins. Falls back to the bare path. On other platforms the path is
    returned unchanged.
    """
    base_path = Path(base_path)
    if not is_windows:
        return BinaryReference(base_path, "")

    for ext in WRAPPER_EXTENSIONS:
        candidate = Path(str(base_path) + ext)
        if candidate.exists():
            return BinaryReference(candidate, ext)

    return BinaryReference(base_path, "")


def _read_package_json(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("package.json root is not an object")
    return data


def _declared_bin_paths(bin_field: Any) -> List[str]:
    if isinstance(bin_field, str):
        return [bin_field]
    if isinstance(bin_field, dict):
        return [value for value in bin_field.values() if isinstance(value, str)]
    return []


class BinaryResolver:
    """Resolves and prepares the executables of installed packages."""

    def __init__(self, is_windows: bool = IS_WINDOWS):
        self.is_windows = is_windows

    def _load_bin_field(self, package_dir: Path, package_name: str) -> Any:
        pkg_json = get_package_json_path(package_dir, package_name)
        try:
            return _read_package_json(pkg_json).get("bin")
        except (OSError, ValueError) as e:
            raise BinaryNotFoundError(
                package_name,
                f'No binary found for package "{package_name}": '
                f"cannot read {pkg_json} ({e})",
            ) from e

    def select_bin(
        self, package_name: str, bin_field: Any, binary_name: Optional[str] = None
    ) -> Tuple[Optional[str], str]:
        """
        Pick (bin name, relative path) from a package.json bin field.

        Raises:
            BinaryNotFoundError: If the package declares no usable bin
        """
        if isinstance(bin_field, str) and bin_field:
            return None, bin_field

        if not isinstance(bin_field, dict) or not bin_field:
            raise BinaryNotFoundError(package_name)

        bin_map = {k: v for k, v in bin_field.items() if isinstance(v, str) and v}
        if not bin_map:
            raise BinaryNotFoundError(package_name)

        if len(bin_map) == 1:
            name = next(iter(bin_map))
            return name, bin_map[name]

        try:
            name = get_bin_from_manifest(package_name, bin_map)
            return name, bin_map[name]
        except ValueError:
            logger.debug(f"npm bin heuristic failed for {package_name}, trying fallbacks")

        candidates = [
            binary_name,
            package_name.split("/")[-1],
            _SCOPE_PREFIX.sub("", package_name),
        ]
        for candidate in candidates:
            if candidate and candidate in bin_map:
                return candidate, bin_map[candidate]

        name = next(iter(bin_map))
        return name, bin_map[name]

    def resolve(
        self, package_dir: Path, package_name: str, binary_name: Optional[str] = None
    ) -> BinaryReference:
        """
        Resolve the entry point of an installed package.

        Args:
            package_dir: Installation slot root
            package_name: Installed package name
            binary_name: Preferred bin name when the package declares several

        Raises:
            BinaryNotFoundError: If no bin can be resolved
        """
        bin_field = self._load_bin_field(package_dir, package_name)
        name, relative = self.select_bin(package_name, bin_field, binary_name)

        installed_dir = get_installed_package_dir(package_dir, package_name)
        raw_path = Path(os.path.normpath(installed_dir / relative))
        ref = resolve_wrapper(raw_path, self.is_windows)
        return BinaryReference(ref.path, ref.extension, name)

    def find_binary_path(
        self, package_dir: Path, package_name: str, binary_name: Optional[str] = None
    ) -> Path:
        return self.resolve(package_dir, package_name, binary_name).path

    def make_bins_executable(self, package_dir: Path, package_name: str) -> int:
        """
        chmod 0o755 every declared bin that exists (POSIX only).

        Errors are logged and ignored.

        Returns:
            Number of files whose mode was set
        """
        if self.is_windows:
            return 0

        installed_dir = get_installed_package_dir(package_dir, package_name)
        pkg_json = get_package_json_path(package_dir, package_name)
        try:
            bin_field = _read_package_json(pkg_json).get("bin")
        except (OSError, ValueError) as e:
            logger.debug(f"Cannot read bins of {package_name}: {e}")
            return 0

        changed = 0
        for relative in _declared_bin_paths(bin_field):
            full_path = Path(os.path.normpath(installed_dir / relative))
            if not full_path.exists():
                continue
            try:
                os.chmod(full_path, EXECUTABLE_MODE)
                changed += 1
            except OSError as e:
                logger.debug(f"Failed to chmod {full_path}: {e}")
        return changed


__all__ = [
    "BinaryReference",
    "BinaryResolver",
    "get_bin_from_manifest",
    "resolve_wrapper",
    "needs_shell",
    "WRAPPER_EXTENSIONS",
]
