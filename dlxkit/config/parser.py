"""
Configuration loading for dlxkit.

Configuration comes from three layers, later layers winning:

1. Built-in defaults
2. An optional YAML file (``$DLXKIT_CONFIG`` or ``<home>/config.yaml``)
3. Environment overrides (``DLXKIT_DLX_DIR``, ``DLXKIT_CACACHE_DIR``)

Example config.yaml:

    dlx_dir: ~/.cache/dlx
    npm: /usr/local/bin/npm
    registry: https://registry.npmjs.org/
    binary_cache_ttl: 86400
    locks:
      install:
        retries: 60
        max_delay: 2.0
      manifest:
        retries: 10
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from dlxkit.core.directory import (
    ENV_CACACHE_DIR,
    ENV_DLX_DIR,
    get_cacache_dir,
    get_default_config_path,
    get_dlx_dir,
)
from dlxkit.core.exceptions import ConfigError
from dlxkit.core.filesystem import normalize_path

logger = logging.getLogger(__name__)

ENV_CONFIG = "DLXKIT_CONFIG"

DEFAULT_BINARY_CACHE_TTL = 7 * 24 * 60 * 60  # 7 days, in seconds


@dataclass
class LockSettings:
    """
    Retry and staleness parameters for one class of lock.

    Attributes:
        retries: Retries after the first attempt
        base_delay: Initial backoff in seconds
        max_delay: Backoff cap in seconds
        stale_after: Age in seconds after which a lock is reclaimed
        touch_interval: Heartbeat period in seconds
    """

    retries: int = 3
    base_delay: float = 0.1
    max_delay: float = 1.0
    stale_after: float = 5.0
    touch_interval: float = 2.0

    def as_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for LockManager.acquire()."""
        return {
            "retries": self.retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "stale_after": self.stale_after,
            "touch_interval": self.touch_interval,
        }


def _default_install_lock() -> LockSettings:
    # A real npm install can take far longer than the manifest default allows
    return LockSettings(retries=30)


@dataclass
class DlxConfig:
    """Resolved dlxkit configuration."""

    dlx_dir: Path = field(default_factory=get_dlx_dir)
    cacache_dir: Path = field(default_factory=get_cacache_dir)
    npm_executable: str = "npm"
    registry: Optional[str] = None
    binary_cache_ttl: float = DEFAULT_BINARY_CACHE_TTL
    install_lock: LockSettings = field(default_factory=_default_install_lock)
    manifest_lock: LockSettings = field(default_factory=LockSettings)

    @property
    def manifest_path(self) -> Path:
        from dlxkit.dlx.manifest import MANIFEST_FILE_NAME

        return self.dlx_dir / MANIFEST_FILE_NAME


def load_yaml_file(config_file: Path) -> Dict[str, Any]:
    """
    Load a YAML mapping from disk.

    An empty file yields an empty mapping.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML, or its
            root is not a mapping
    """
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {config_file}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {config_file}")
    return data


def _parse_lock_settings(data: Any, base: LockSettings, section: str) -> LockSettings:
    if data is None:
        return base
    if not isinstance(data, dict):
        raise ConfigError(f"locks.{section} must be a mapping")

    known = {f.name: f.type for f in fields(LockSettings)}
    values = base.as_kwargs()
    for key, value in data.items():
        if key not in known:
            raise ConfigError(f"Unknown lock setting: locks.{section}.{key}")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"locks.{section}.{key} must be a number, got {value!r}")
        if value < 0:
            raise ConfigError(f"locks.{section}.{key} must not be negative")
        values[key] = int(value) if key == "retries" else float(value)
    return LockSettings(**values)


def _parse_path(data: Dict[str, Any], key: str) -> Optional[Path]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{key} must be a non-empty string")
    return normalize_path(value)


def load_config(
    config_file: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> DlxConfig:
    """
    Load dlxkit configuration.

    Args:
        config_file: Explicit config path. When given it must exist.
        env: Environment mapping (default: os.environ)

    Returns:
        DlxConfig with defaults, file values and environment overrides applied

    Raises:
        ConfigError: If the file or any value is invalid
    """
    env = os.environ if env is None else env

    explicit = config_file is not None or bool(env.get(ENV_CONFIG))
    path = Path(config_file or env.get(ENV_CONFIG) or get_default_config_path(env))
    path = normalize_path(path)

    data: Dict[str, Any] = {}
    if path.is_file():
        logger.debug(f"Loading configuration from {path}")
        data = load_yaml_file(path)
    elif explicit:
        raise ConfigError(f"Configuration file not found: {path}")

    config = DlxConfig(dlx_dir=get_dlx_dir(env), cacache_dir=get_cacache_dir(env))

    if ENV_DLX_DIR not in env:
        config.dlx_dir = _parse_path(data, "dlx_dir") or config.dlx_dir
    if ENV_CACACHE_DIR not in env:
        config.cacache_dir = _parse_path(data, "cacache_dir") or config.cacache_dir

    npm = data.get("npm")
    if npm is not None:
        if not isinstance(npm, str) or not npm:
            raise ConfigError("npm must be a non-empty string")
        config.npm_executable = npm

    registry = data.get("registry")
    if registry is not None:
        if not isinstance(registry, str):
            raise ConfigError("registry must be a string")
        config.registry = registry

    ttl = data.get("binary_cache_ttl")
    if ttl is not None:
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl < 0:
            raise ConfigError(f"binary_cache_ttl must be a non-negative number, got {ttl!r}")
        config.binary_cache_ttl = float(ttl)

    locks = data.get("locks")
    if locks is None:
        locks = {}
    if not isinstance(locks, dict):
        raise ConfigError("locks must be a mapping")
    config.install_lock = _parse_lock_settings(
        locks.get("install"), config.install_lock, "install"
    )
    config.manifest_lock = _parse_lock_settings(
        locks.get("manifest"), config.manifest_lock, "manifest"
    )

    return config


__all__ = [
    "LockSettings",
    "DlxConfig",
    "load_config",
    "load_yaml_file",
    "DEFAULT_BINARY_CACHE_TTL",
    "ENV_CONFIG",
]
