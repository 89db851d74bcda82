"""Configuration module for dlxkit.

This module loads the optional YAML configuration file and applies
environment overrides.
"""

from dlxkit.config.parser import (
    LockSettings,
    DlxConfig,
    load_config,
    load_yaml_file,
)
from dlxkit.core.exceptions import ConfigError

__all__ = [
    "LockSettings",
    "DlxConfig",
    "load_config",
    "load_yaml_file",
    "ConfigError",
]
