"""
Cross-platform file system utilities for dlxkit.

This module provides the filesystem operations the cache relies on:
- Safe file operations (atomic writes, safe deletion)
- Directory listing and sizing
- Classification of OSError codes into actionable categories

All operations handle platform differences transparently.
"""

import errno
import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path
from typing import List, Optional, Union

# Platform detection
IS_WINDOWS = os.name == "nt"


# ============================================================================
# Error Classification
# ============================================================================

PERMISSION_DENIED = "permission"
READ_ONLY = "read-only"
INVALID_PARENT = "invalid-parent"

_ERRNO_KINDS = {
    errno.EACCES: PERMISSION_DENIED,
    errno.EPERM: PERMISSION_DENIED,
    errno.EROFS: READ_ONLY,
    errno.ENOENT: INVALID_PARENT,
    errno.ENOTDIR: INVALID_PARENT,
}


def classify_os_error(error: BaseException) -> Optional[str]:
    """
    Map an OSError to a coarse, non-retryable category.

    Args:
        error: Exception raised by a filesystem call

    Returns:
        One of PERMISSION_DENIED, READ_ONLY, INVALID_PARENT, or None when
        the error is not in a known non-retryable category

    Example:
        >>> classify_os_error(PermissionError(errno.EACCES, "denied"))
        'permission'
    """
    if not isinstance(error, OSError):
        return None
    return _ERRNO_KINDS.get(error.errno)


# ============================================================================
# Path Utilities
# ============================================================================


def normalize_path(path: Union[str, Path]) -> Path:
    """
    Normalize a path for consistent comparison across platforms.

    Args:
        path: Path to normalize

    Returns:
        Absolute path with user home expanded
    """
    return Path(os.path.abspath(os.path.expanduser(str(path))))


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Args:
        path: Path to check
        parent: Parent directory

    Returns:
        True if path is under parent directory
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    This ensures the file is never in a partially-written state.
    If the write fails, the original file (if any) remains unchanged
    and the temp file is removed before the error is re-raised.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)

    Example:
        >>> atomic_write('manifest.json', '{"key": "value"}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory (ensures same filesystem)
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        # Atomic rename (replaces destination if it exists)
        os.replace(temp_path, file_path)

    except BaseException:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def _remove_readonly(func, path, exc):
    """Error handler for read-only files on Windows."""
    if not os.access(path, os.W_OK):
        os.chmod(path, stat.S_IWRITE)
        func(path)
    else:
        raise exc


def remove_tree(path: Union[str, Path]) -> None:
    """
    Remove a file or directory tree, ignoring a missing path.

    The raw OSError propagates so callers can classify it.

    Args:
        path: File or directory to remove

    Raises:
        OSError: If removal fails
    """
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
        return
    if not path.exists():
        return
    if IS_WINDOWS:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=_remove_readonly)
        else:
            shutil.rmtree(
                path, onerror=lambda f, p, info: _remove_readonly(f, p, info[1])
            )
    else:
        shutil.rmtree(path)


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists (idempotent).

    Args:
        path: Directory path

    Returns:
        Path object

    Raises:
        OSError: If the directory cannot be created
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def is_empty_directory(path: Union[str, Path]) -> bool:
    """Return True if path is an existing, empty directory."""
    path = Path(path)

    if not path.is_dir():
        return False

    return not any(path.iterdir())


def read_dir_names(
    path: Union[str, Path], sort: bool = True, include_hidden: bool = False
) -> List[str]:
    """
    List the names of the immediate subdirectories of path.

    Args:
        path: Directory to list
        sort: Sort names alphabetically
        include_hidden: Include names starting with '.'

    Returns:
        Directory names (one level deep)

    Raises:
        OSError: If the directory cannot be read
    """
    names = []
    with os.scandir(path) as entries:
        for entry in entries:
            if not include_hidden and entry.name.startswith("."):
                continue
            if entry.is_dir(follow_symlinks=False):
                names.append(entry.name)

    if sort:
        names.sort()
    return names


def directory_size(path: Union[str, Path]) -> int:
    """
    Calculate total size of a directory in bytes.

    Symlinks are not followed.

    Args:
        path: Directory path

    Returns:
        Total size in bytes
    """
    path = Path(path)
    total_size = 0

    for item in path.rglob("*"):
        if item.is_file() and not item.is_symlink():
            total_size += item.stat().st_size

    return total_size


__all__ = [
    "IS_WINDOWS",
    "PERMISSION_DENIED",
    "READ_ONLY",
    "INVALID_PARENT",
    "classify_os_error",
    "normalize_path",
    "is_relative_to",
    "atomic_write",
    "remove_tree",
    "ensure_directory",
    "is_empty_directory",
    "read_dir_names",
    "directory_size",
]
