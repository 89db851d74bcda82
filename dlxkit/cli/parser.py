"""
dlxkit CLI argument parser.

This module implements the command-line interface for dlxkit using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dlxkit.core.exceptions import DlxKitError

# Get version from package
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("dlxkit")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)


class CLI:
    """dlxkit command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="dlxkit",
            description="dlxkit - run npm packages and binaries from a shared cache",
            epilog='Use "dlxkit COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"dlxkit {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ~/.dlxkit/config.yaml)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_run_command(subparsers)
        self._add_install_command(subparsers)
        self._add_cache_command(subparsers)

        return parser

    def _add_force_options(self, parser):
        parser.add_argument(
            "--force",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Reinstall even if cached (default: only for version ranges)",
        )

    def _add_run_command(self, subparsers):
        """Add 'run' subcommand."""
        parser = subparsers.add_parser(
            "run",
            help="Install a package if needed and run its binary",
            description="Install an npm package into the dlx cache and run it",
        )
        parser.add_argument("spec", help="Package spec (e.g. cowsay@1.5.0)")
        parser.add_argument(
            "--binary",
            "-b",
            metavar="NAME",
            help="Binary to run when the package declares several",
        )
        self._add_force_options(parser)
        parser.add_argument(
            "--yes", "-y", action="store_true", help="Auto-approve (implies --force)"
        )
        parser.add_argument(
            "args",
            nargs=argparse.REMAINDER,
            help="Arguments passed to the binary (after --)",
        )

    def _add_install_command(self, subparsers):
        """Add 'install' subcommand."""
        parser = subparsers.add_parser(
            "install",
            help="Install a package into the dlx cache",
            description="Install an npm package into the dlx cache without running it",
        )
        parser.add_argument("spec", help="Package spec (e.g. left-pad@1.3.0)")
        self._add_force_options(parser)

    def _add_cache_command(self, subparsers):
        """Add 'cache' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "cache",
            help="Manage the dlx cache",
            description="Inspect and clean the dlx cache",
        )

        cache_subparsers = parser.add_subparsers(
            dest="cache_command", help="Cache management commands", metavar="COMMAND"
        )

        # cache list
        cache_subparsers.add_parser(
            "list",
            help="List installation slots",
            description="Show installed packages and downloaded binaries",
        )

        # cache remove
        remove_parser = cache_subparsers.add_parser(
            "remove",
            help="Remove installation slots",
            description="Remove one or more slots by cache key",
        )
        remove_parser.add_argument("keys", nargs="+", metavar="KEY", help="Cache key")

        # cache clear
        cache_subparsers.add_parser(
            "clear",
            help="Remove everything",
            description="Remove every slot and the manifest",
        )

        # cache clean
        clean_parser = cache_subparsers.add_parser(
            "clean",
            help="Remove expired binaries",
            description="Remove downloaded binaries older than the cache TTL",
        )
        clean_parser.add_argument(
            "--max-age",
            type=float,
            metavar="SECONDS",
            help="Maximum age in seconds (default: configured binary TTL)",
        )

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        # Configure logging
        self._configure_logging(parsed_args)

        # Check if command specified
        if not parsed_args.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except DlxKitError as e:
            logger.error(f"Error: {e}")
            return 1
        except Exception as e:
            logger.error(f"Unexpected error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        # Special handling for cache command (has sub-commands)
        if args.command == "cache":
            return self._dispatch_cache_command(args)

        # Command module mapping
        command_map = {
            "run": "dlxkit.cli.commands.run",
            "install": "dlxkit.cli.commands.install",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module = importlib.import_module(module_name)
        return module.run(args)

    def _dispatch_cache_command(self, args) -> int:
        """
        Dispatch cache sub-commands.

        Args:
            args: Parsed arguments with cache_command field

        Returns:
            Exit code from command handler
        """
        if not getattr(args, "cache_command", None):
            logger.error("No cache sub-command specified")
            self.parser.parse_args(["cache", "--help"])
            return 1

        from dlxkit.cli.commands import cache

        # Map sub-commands to functions
        cache_command_map = {
            "list": cache.run_list,
            "remove": cache.run_remove,
            "clear": cache.run_clear,
            "clean": cache.run_clean,
        }

        handler = cache_command_map.get(args.cache_command)
        if not handler:
            logger.error(f"Unknown cache command: {args.cache_command}")
            return 1

        return handler(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
