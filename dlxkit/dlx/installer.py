"""
Package installer boundary.

The install coordinator never talks to npm directly. It builds an
``InstallRequest`` and hands it to an ``Installer``; ``NpmInstaller`` is the
production implementation and runs the npm CLI in a subprocess. Tests
substitute their own Installer.

Failures raise ``InstallerError`` carrying npm's error code (E404,
ETARGET, ENOTFOUND, ...) so the coordinator can classify them.
"""

import logging
import os
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dlxkit.core.exceptions import InstallerError

logger = logging.getLogger(__name__)

# npm 6-9 print "npm ERR! code E404", npm 10+ prints "npm error code E404"
_NPM_ERROR_CODE = re.compile(r"npm (?:ERR!|error) code (\S+)")


@dataclass(frozen=True)
class InstallRequest:
    """
    Everything an installer needs to place one package in a slot.

    Attributes:
        target_dir: Installation slot root (node_modules is created inside)
        cache_dir: Shared download cache
        spec: Package spec to install, e.g. 'left-pad@1.3.0'
        production_only: Skip dev dependencies
        ignore_scripts: Do not run lifecycle scripts
        bin_links: Create bin links/wrappers for declared binaries
        quiet: Suppress audit and funding output
    """

    target_dir: Path
    cache_dir: Path
    spec: str
    production_only: bool = True
    ignore_scripts: bool = True
    bin_links: bool = True
    quiet: bool = True


class Installer(ABC):
    """Abstract package installer."""

    @abstractmethod
    def install(self, request: InstallRequest) -> None:
        """
        Install request.spec into request.target_dir.

        Raises:
            InstallerError: If installation fails
        """
        pass


def parse_npm_error_code(output: str) -> Optional[str]:
    """
    Extract npm's error code from its output.

    Example:
        >>> parse_npm_error_code("npm ERR! code E404\\nnpm ERR! 404 Not Found")
        'E404'
    """
    match = _NPM_ERROR_CODE.search(output or "")
    return match.group(1) if match else None


class NpmInstaller(Installer):
    """
    Installs packages by running ``npm install`` in the slot directory.

    Example:
        >>> installer = NpmInstaller()
        >>> installer.install(InstallRequest(slot, cacache, "left-pad@1.3.0"))
    """

    def __init__(
        self,
        npm_executable: str = "npm",
        registry: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize npm installer.

        Args:
            npm_executable: npm command name or path
            registry: Registry URL passed as --registry
            env: Extra environment variables for the npm process
        """
        self.npm_executable = npm_executable
        self.registry = registry
        self.env = dict(env or {})
        self._npm_path: Optional[str] = None

    def get_npm_executable(self) -> str:
        """
        Resolve the npm executable.

        Raises:
            InstallerError: If npm cannot be found
        """
        if self._npm_path:
            return self._npm_path

        resolved = shutil.which(self.npm_executable)
        if resolved is None:
            raise InstallerError(
                f"npm executable not found: {self.npm_executable}\n"
                "Install Node.js (https://nodejs.org/) or set 'npm' in the dlxkit config.",
                code="ENOENT",
            )
        self._npm_path = resolved
        return resolved

    def build_command(self, request: InstallRequest) -> List[str]:
        """Translate an InstallRequest into an npm command line."""
        cmd = [
            self.get_npm_executable(),
            "install",
            "--prefix",
            str(request.target_dir),
            "--cache",
            str(request.cache_dir),
        ]
        if request.production_only:
            cmd.append("--omit=dev")
        if request.ignore_scripts:
            cmd.append("--ignore-scripts")
        cmd.append("--bin-links" if request.bin_links else "--no-bin-links")
        if request.quiet:
            cmd.extend(["--no-audit", "--no-fund", "--loglevel=error"])
        if self.registry:
            cmd.extend(["--registry", self.registry])
        cmd.extend(["--save", request.spec])
        return cmd

    def _environment(self) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.env)
        # Keep npm from prompting or printing update notices
        env.setdefault("NPM_CONFIG_UPDATE_NOTIFIER", "false")
        env.setdefault("NPM_CONFIG_YES", "true")
        return env

    def install(self, request: InstallRequest) -> None:
        """
        Run npm install for the request.

        Raises:
            InstallerError: If npm is missing or exits non-zero
        """
        cmd = self.build_command(request)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                cwd=request.target_dir,
                env=self._environment(),
            )
        except OSError as e:
            raise InstallerError(
                f"Failed to execute npm: {e}\nCommand: {' '.join(cmd)}", code="ENOENT"
            ) from e

        if result.returncode != 0:
            output = f"{result.stderr or ''}\n{result.stdout or ''}"
            code = parse_npm_error_code(output)
            raise InstallerError(
                f"npm install failed with exit code {result.returncode}"
                + (f" ({code})" if code else "")
                + f"\nCommand: {' '.join(cmd)}\n"
                f"Error output:\n{(result.stderr or '').strip()}",
                code=code,
            )

        logger.debug(f"Installed {request.spec} into {request.target_dir}")


__all__ = [
    "InstallRequest",
    "Installer",
    "NpmInstaller",
    "parse_npm_error_code",
]
