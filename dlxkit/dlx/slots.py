"""
Management of the installation slots under the dlx directory.

Each slot is one directory named by its cache key. This module lists,
inspects and removes slots. Synchronous and asyncio variants are provided;
the async ones run the blocking filesystem work in a worker thread.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from dlxkit.core.directory import get_dlx_dir
from dlxkit.core.exceptions import SlotRemovalError
from dlxkit.core.filesystem import (
    PERMISSION_DENIED,
    READ_ONLY,
    classify_os_error,
    ensure_directory,
    read_dir_names,
    remove_tree,
)
from dlxkit.dlx.paths import get_installed_package_dir

logger = logging.getLogger(__name__)


def _validate_slot_name(name: str) -> None:
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise ValueError(f"Invalid slot name: {name!r}")


class DirectoryManager:
    """
    Lists and removes installation slots.

    Example:
        >>> manager = DirectoryManager(Path("~/.dlxkit/_dlx").expanduser())
        >>> for slot in manager.list_slots():
        ...     print(slot)
    """

    def __init__(self, dlx_dir: Optional[Path] = None):
        self.dlx_dir = Path(dlx_dir) if dlx_dir is not None else get_dlx_dir()

    def exists(self) -> bool:
        return self.dlx_dir.is_dir()

    async def exists_async(self) -> bool:
        return await asyncio.to_thread(self.exists)

    def ensure(self) -> Path:
        """Create the dlx directory if needed."""
        return ensure_directory(self.dlx_dir)

    def slot_path(self, name: str) -> Path:
        _validate_slot_name(name)
        return self.dlx_dir / name

    def list_slots(self, sort: bool = True) -> List[str]:
        """
        List slot names, one level deep.

        Dot-entries (the manifest and its lock) are skipped. A missing or
        unreadable directory yields an empty list.
        """
        try:
            return read_dir_names(self.dlx_dir, sort=sort)
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning(f"Cannot list {self.dlx_dir}: {e}")
            return []

    async def list_slots_async(self) -> List[str]:
        return await asyncio.to_thread(self.list_slots)

    def has_slot(self, name: str) -> bool:
        return self.slot_path(name).is_dir()

    def is_package_installed(self, slot: str, package_name: str) -> bool:
        """Check whether a slot contains an installed package."""
        return get_installed_package_dir(self.slot_path(slot), package_name).exists()

    def remove_slot(self, name: str) -> None:
        """
        Remove one slot. A missing slot is not an error.

        Raises:
            SlotRemovalError: If the slot cannot be removed
        """
        directory = self.slot_path(name)
        try:
            remove_tree(directory)
        except OSError as e:
            kind = classify_os_error(e)
            if kind == PERMISSION_DENIED:
                message = (
                    f'Permission denied removing dlx slot "{name}"\n'
                    f"Directory: {directory}\n"
                    "To resolve:\n"
                    "  1. Check file/directory permissions\n"
                    "  2. Close any programs using files in this directory\n"
                    "  3. Try running with elevated privileges if necessary\n"
                    f'  4. Manually remove: rm -rf "{directory}"'
                )
            elif kind == READ_ONLY:
                message = (
                    f'Cannot remove dlx slot "{name}" from read-only filesystem\n'
                    f"Directory: {directory}\n"
                    "The filesystem is mounted read-only."
                )
            else:
                message = (
                    f'Failed to remove dlx slot "{name}"\n'
                    f"Directory: {directory}\n"
                    "Check permissions and ensure no programs are using this directory."
                )
            raise SlotRemovalError(message, name, directory) from e

        logger.debug(f"Removed slot: {directory}")

    async def remove_slot_async(self, name: str) -> None:
        """
        Remove one slot in a worker thread.

        Raises:
            SlotRemovalError: If the slot cannot be removed
        """
        directory = self.slot_path(name)
        try:
            await asyncio.to_thread(remove_tree, directory)
        except OSError as e:
            raise SlotRemovalError(
                f'Failed to remove dlx slot "{name}": {e}', name, directory
            ) from e

    def clear(self) -> int:
        """
        Remove every slot.

        Returns:
            Number of slots removed
        """
        slots = self.list_slots()
        for name in slots:
            self.remove_slot(name)
        return len(slots)

    async def clear_async(self) -> int:
        slots = await self.list_slots_async()
        await asyncio.gather(*(self.remove_slot_async(name) for name in slots))
        return len(slots)


__all__ = ["DirectoryManager"]
