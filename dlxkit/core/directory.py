"""
Directory structure management for dlxkit.

This module resolves the per-user cache locations used by every dlxkit
process. All paths honour environment overrides so tests and CI can
point the cache at a scratch location.

Directory Structure:
    User Home (~/.dlxkit/ or %USERPROFILE%\\.dlxkit\\):
        - _dlx/                     : Content-addressed installation slots
          - <cache-key>/            : One slot per package or binary spec
          - .dlx-manifest.json      : Install/update metadata
        - _cacache/                 : Shared download cache for the installer
        - config.yaml               : Optional user configuration

Environment Overrides:
    DLXKIT_HOME         Base directory (default: ~/.dlxkit)
    DLXKIT_DLX_DIR      Installation slots directory
    DLXKIT_CACACHE_DIR  Installer download cache
"""

import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional

from dlxkit.core.filesystem import normalize_path

HOME_DIR_NAME = ".dlxkit"
DLX_DIR_NAME = "_dlx"
CACACHE_DIR_NAME = "_cacache"
CONFIG_FILE_NAME = "config.yaml"

ENV_HOME = "DLXKIT_HOME"
ENV_DLX_DIR = "DLXKIT_DLX_DIR"
ENV_CACACHE_DIR = "DLXKIT_CACACHE_DIR"


def _env(env: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return os.environ if env is None else env


def get_user_home_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the user's home directory, falling back to the temp directory.

    Args:
        env: Environment mapping (default: os.environ)

    Returns:
        Path to the home directory
    """
    env = _env(env)
    if os.name == "nt":
        user_profile = env.get("USERPROFILE")
        if user_profile:
            return Path(user_profile)
    else:
        home = env.get("HOME")
        if home:
            return Path(home)

    try:
        return Path.home()
    except RuntimeError:
        return Path(tempfile.gettempdir())


def get_dlxkit_home(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the dlxkit base directory.

    Returns:
        Path: $DLXKIT_HOME if set, otherwise ~/.dlxkit

    Example:
        >>> get_dlxkit_home({"DLXKIT_HOME": "/opt/dlx"})
        PosixPath('/opt/dlx')
    """
    env = _env(env)
    override = env.get(ENV_HOME)
    if override:
        return normalize_path(override)
    return normalize_path(get_user_home_dir(env) / HOME_DIR_NAME)


def get_dlx_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the directory holding installation slots.

    Returns:
        Path: $DLXKIT_DLX_DIR if set, otherwise <home>/_dlx
    """
    env = _env(env)
    override = env.get(ENV_DLX_DIR)
    if override:
        return normalize_path(override)
    return get_dlxkit_home(env) / DLX_DIR_NAME


def get_cacache_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the shared installer download cache.

    Returns:
        Path: $DLXKIT_CACACHE_DIR if set, otherwise <home>/_cacache
    """
    env = _env(env)
    override = env.get(ENV_CACACHE_DIR)
    if override:
        return normalize_path(override)
    return get_dlxkit_home(env) / CACACHE_DIR_NAME


def get_default_config_path(env: Optional[Mapping[str, str]] = None) -> Path:
    """Get the default user configuration file path."""
    return get_dlxkit_home(env) / CONFIG_FILE_NAME


__all__ = [
    "get_user_home_dir",
    "get_dlxkit_home",
    "get_dlx_dir",
    "get_cacache_dir",
    "get_default_config_path",
    "ENV_HOME",
    "ENV_DLX_DIR",
    "ENV_CACACHE_DIR",
]
