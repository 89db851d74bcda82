"""Path helpers for installation slots inside the dlx directory."""

from pathlib import Path
from typing import Optional, Union

from dlxkit.core.filesystem import is_relative_to, normalize_path

LOCK_DIR_NAME = "concurrency.lock"
NODE_MODULES = "node_modules"
PACKAGE_JSON = "package.json"


def get_package_dir(dlx_dir: Path, cache_key: str) -> Path:
    """Root of the installation slot for a cache key."""
    return Path(dlx_dir) / cache_key


def get_lock_path(slot_dir: Path) -> Path:
    """Lock directory guarding one installation slot."""
    return Path(slot_dir) / LOCK_DIR_NAME


def get_node_modules_dir(package_dir: Path) -> Path:
    return Path(package_dir) / NODE_MODULES


def get_installed_package_dir(package_dir: Path, package_name: str) -> Path:
    """
    Directory the installer places a package in.

    Scoped names nest one level: ``node_modules/@scope/pkg``.
    """
    return get_node_modules_dir(package_dir).joinpath(*package_name.split("/"))


def get_package_json_path(package_dir: Path, package_name: str) -> Path:
    return get_installed_package_dir(package_dir, package_name) / PACKAGE_JSON


def is_in_dlx(path: Optional[Union[str, Path]], dlx_dir: Path) -> bool:
    """
    Check whether a path lives strictly inside the dlx directory.

    Example:
        >>> is_in_dlx("/home/u/.dlxkit/_dlx/abc/bin/tool", Path("/home/u/.dlxkit/_dlx"))
        True
    """
    if not path:
        return False
    absolute = normalize_path(path)
    root = normalize_path(dlx_dir)
    return absolute != root and is_relative_to(absolute, root)


__all__ = [
    "LOCK_DIR_NAME",
    "get_package_dir",
    "get_lock_path",
    "get_node_modules_dir",
    "get_installed_package_dir",
    "get_package_json_path",
    "is_in_dlx",
]
