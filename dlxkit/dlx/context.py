"""
Process-wide wiring of the dlx components.

A DlxContext owns the single LockRegistry of the process and builds every
component around it from one DlxConfig. The registry's exit hook releases
whatever locks are still held when the interpreter exits; ``close()`` does
the same explicitly.

Usage:
    with DlxContext() as ctx:
        result = ctx.coordinator.download_package("cowsay@1.5.0")
"""

import atexit
import logging
from typing import Callable, Optional

import requests

from dlxkit.config.parser import DlxConfig, load_config
from dlxkit.core.locking import LockManager, LockRegistry
from dlxkit.dlx.binary import BinaryResolver
from dlxkit.dlx.download import BinaryDownloader
from dlxkit.dlx.installer import Installer, NpmInstaller
from dlxkit.dlx.manifest import ManifestStore
from dlxkit.dlx.package import InstallCoordinator
from dlxkit.dlx.slots import DirectoryManager

logger = logging.getLogger(__name__)


class DlxContext:
    """
    Owner of the lock registry and the components sharing it.

    Attributes:
        config: Resolved configuration
        registry: Locks held by this process
        lock_manager: Lock manager bound to the registry
        manifest: Manifest store
        slots: Slot directory manager
        resolver: Binary resolver
        coordinator: Package install coordinator
        downloader: Binary downloader
    """

    def __init__(
        self,
        config: Optional[DlxConfig] = None,
        installer: Optional[Installer] = None,
        exit_hook: Optional[Callable] = atexit.register,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or load_config()
        self.registry = LockRegistry(exit_hook=exit_hook)
        self.lock_manager = LockManager(registry=self.registry)

        self.manifest = ManifestStore(
            self.config.manifest_path,
            lock_manager=self.lock_manager,
            lock_settings=self.config.manifest_lock,
        )
        self.slots = DirectoryManager(self.config.dlx_dir)
        self.resolver = BinaryResolver()
        self.coordinator = InstallCoordinator(
            dlx_dir=self.config.dlx_dir,
            cacache_dir=self.config.cacache_dir,
            installer=installer
            or NpmInstaller(self.config.npm_executable, registry=self.config.registry),
            lock_manager=self.lock_manager,
            lock_settings=self.config.install_lock,
            manifest=self.manifest,
            resolver=self.resolver,
        )
        self.downloader = BinaryDownloader(
            dlx_dir=self.config.dlx_dir,
            lock_manager=self.lock_manager,
            lock_settings=self.config.install_lock,
            manifest=self.manifest,
            session=session,
            cache_ttl=self.config.binary_cache_ttl,
        )

    def close(self) -> int:
        """Release every lock still held by this context."""
        released = self.registry.drain()
        if released:
            logger.debug(f"Released {released} lock(s) on close")
        return released

    def __enter__(self) -> "DlxContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


__all__ = ["DlxContext"]
