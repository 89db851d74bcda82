"""
Shared CLI utilities for dlxkit commands.
"""

from typing import List, Optional, Sequence

from dlxkit.config.parser import load_config
from dlxkit.dlx.context import DlxContext


def create_context(args) -> DlxContext:
    """
    Build a DlxContext from parsed CLI arguments.

    Args:
        args: Parsed arguments (uses args.config if present)

    Raises:
        ConfigError: If the configuration is invalid
    """
    config = load_config(getattr(args, "config", None))
    return DlxContext(config)


def strip_separator(args: Optional[Sequence[str]]) -> List[str]:
    """Drop a leading '--' separating dlxkit options from the program's own."""
    args = list(args or [])
    if args and args[0] == "--":
        return args[1:]
    return args


def format_size(size_bytes: float) -> str:
    """
    Format a byte count for display.

    Example:
        >>> format_size(1536)
        '1.5 KB'
    """
    if size_bytes < 1024:
        return f"{size_bytes:.0f} B"
    for unit in ("KB", "MB"):
        size_bytes /= 1024
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
    return f"{size_bytes / 1024:.1f} GB"


def format_age(seconds: float) -> str:
    """
    Format an age in seconds for display.

    Example:
        >>> format_age(7200)
        '2h'
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


__all__ = ["create_context", "strip_separator", "format_size", "format_age"]
