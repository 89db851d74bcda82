"""
Unit tests for slot directory management.

Tests cover:
- Listing slots (sync and async)
- Slot name validation
- Removing one slot or all of them
- Removal error messages
"""

import asyncio
import errno
from unittest.mock import patch

import pytest

from dlxkit.core.exceptions import SlotRemovalError
from dlxkit.dlx.slots import DirectoryManager


@pytest.fixture
def manager(dlx_dir):
    for name in ("bbb", "aaa"):
        (dlx_dir / name / "node_modules" / "pkg").mkdir(parents=True)
    (dlx_dir / ".dlx-manifest.json").write_text("{}")
    (dlx_dir / ".dlx-manifest.json.lock").mkdir()
    return DirectoryManager(dlx_dir)


class TestListing:
    """Test slot listing."""

    def test_list_slots(self, manager):
        """Test slots are listed sorted, without dot-entries."""
        assert manager.list_slots() == ["aaa", "bbb"]

    def test_list_missing_dir(self, tmp_path):
        """Test a missing dlx directory lists nothing."""
        manager = DirectoryManager(tmp_path / "missing")

        assert manager.list_slots() == []
        assert not manager.exists()

    def test_list_unreadable(self, manager):
        """Test a listing error degrades to an empty list."""
        with patch(
            "dlxkit.dlx.slots.read_dir_names", side_effect=PermissionError(errno.EACCES, "denied")
        ):
            assert manager.list_slots() == []

    def test_list_async(self, manager):
        """Test the async listing matches the sync one."""
        assert asyncio.run(manager.list_slots_async()) == ["aaa", "bbb"]
        assert asyncio.run(manager.exists_async())

    def test_has_slot(self, manager):
        """Test slot existence checks."""
        assert manager.has_slot("aaa")
        assert not manager.has_slot("zzz")

    def test_is_package_installed(self, manager):
        """Test package presence inside a slot."""
        assert manager.is_package_installed("aaa", "pkg")
        assert not manager.is_package_installed("aaa", "other")

    def test_ensure(self, tmp_path):
        """Test ensure creates the dlx directory."""
        manager = DirectoryManager(tmp_path / "new" / "_dlx")

        manager.ensure()

        assert manager.exists()


class TestValidation:
    """Test slot name validation."""

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b", "a\\b"])
    def test_invalid_names(self, manager, name):
        """Test names that could escape the dlx directory are rejected."""
        with pytest.raises(ValueError):
            manager.slot_path(name)


class TestRemoval:
    """Test slot removal."""

    def test_remove_slot(self, manager, dlx_dir):
        """Test one slot is removed."""
        manager.remove_slot("aaa")

        assert not (dlx_dir / "aaa").exists()
        assert manager.list_slots() == ["bbb"]

    def test_remove_missing_slot(self, manager):
        """Test removing a missing slot is not an error."""
        manager.remove_slot("zzz")

    def test_permission_message(self, manager, dlx_dir):
        """Test permission errors explain how to remove the slot manually."""
        with patch(
            "dlxkit.dlx.slots.remove_tree", side_effect=PermissionError(errno.EACCES, "denied")
        ):
            with pytest.raises(SlotRemovalError) as exc_info:
                manager.remove_slot("aaa")

        message = str(exc_info.value)
        assert "Permission denied" in message
        assert f'rm -rf "{dlx_dir / "aaa"}"' in message
        assert exc_info.value.slot == "aaa"
        assert exc_info.value.directory == dlx_dir / "aaa"

    def test_read_only_message(self, manager):
        """Test read-only filesystems are named as such."""
        with patch("dlxkit.dlx.slots.remove_tree", side_effect=OSError(errno.EROFS, "ro")):
            with pytest.raises(SlotRemovalError) as exc_info:
                manager.remove_slot("aaa")

        assert "read-only" in str(exc_info.value)

    def test_generic_message(self, manager):
        """Test other errors get the generic message."""
        with patch("dlxkit.dlx.slots.remove_tree", side_effect=OSError(errno.EBUSY, "busy")):
            with pytest.raises(SlotRemovalError) as exc_info:
                manager.remove_slot("aaa")

        assert "Failed to remove" in str(exc_info.value)

    def test_clear(self, manager, dlx_dir):
        """Test clear removes every slot but not the manifest."""
        assert manager.clear() == 2

        assert manager.list_slots() == []
        assert (dlx_dir / ".dlx-manifest.json").exists()

    def test_clear_async(self, manager):
        """Test the async clear removes every slot."""
        assert asyncio.run(manager.clear_async()) == 2
        assert manager.list_slots() == []

    def test_remove_async_error(self, manager):
        """Test async removal wraps errors."""
        with patch("dlxkit.dlx.slots.remove_tree", side_effect=OSError(errno.EBUSY, "busy")):
            with pytest.raises(SlotRemovalError):
                asyncio.run(manager.remove_slot_async("aaa"))
