"""
Run command implementation.

Installs a package into the dlx cache if needed and runs its binary,
exiting with the binary's return code.
"""

import logging

from dlxkit.cli.utils import create_context, strip_separator

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the run command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code of the executed binary
    """
    program_args = strip_separator(args.args)

    with create_context(args) as ctx:
        result = ctx.coordinator.dlx_package(
            program_args,
            args.spec,
            binary_name=args.binary,
            force=args.force,
            yes=args.yes,
        )

    if result.download.installed:
        logger.debug(f"Installed {args.spec} into {result.download.package_dir}")
    return result.returncode
