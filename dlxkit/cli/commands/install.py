"""
Install command implementation.

Installs a package into the dlx cache without running it.
"""

import logging

from dlxkit.cli.utils import create_context
from dlxkit.dlx.package import resolve_force
from dlxkit.dlx.spec import parse_package_spec

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the install command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    spec = parse_package_spec(args.spec)

    with create_context(args) as ctx:
        result = ctx.coordinator.ensure_installed(
            spec, resolve_force(spec, args.force), refresh_ranges=False
        )

    if result.installed:
        print(f"Installed {spec.normalized} ({result.cache_key})")
    else:
        print(f"{spec.normalized} is already installed ({result.cache_key})")
    print(f"  Location: {result.package_dir}")
    return 0
