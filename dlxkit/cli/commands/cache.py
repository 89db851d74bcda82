"""
Cache command implementation.

Lists, removes and cleans installation slots in the dlx cache.
"""

import logging

from dlxkit.cli.utils import create_context, format_age, format_size
from dlxkit.dlx.manifest import BinaryEntry, PackageEntry

logger = logging.getLogger(__name__)


def run_list(args) -> int:
    """List slots with the spec recorded for each."""
    with create_context(args) as ctx:
        slots = ctx.slots.list_slots()
        specs_by_key = {}
        for spec, entry in ctx.manifest.get_entries().items():
            specs_by_key.setdefault(entry.cache_key, []).append((spec, entry))
        binaries = ctx.downloader.list_cache()

    if not slots:
        print(f"Cache is empty ({ctx.config.dlx_dir})")
        return 0

    print(f"Cache: {ctx.config.dlx_dir}")
    print()
    for key in slots:
        recorded = specs_by_key.get(key)
        if not recorded:
            print(f"  {key}  (unrecorded)")
            continue
        for spec, entry in recorded:
            if isinstance(entry, PackageEntry):
                detail = f"package {entry.details.installed_version}"
                if entry.details.size is not None:
                    detail += f", {format_size(entry.details.size)}"
            elif isinstance(entry, BinaryEntry):
                detail = f"binary, {format_size(entry.details.size)}"
            else:
                detail = entry.type
            print(f"  {key}  {spec}  ({detail})")

    if binaries:
        print()
        print("Downloaded binaries:")
        for binary in binaries:
            print(
                f"  {binary.name}  {format_size(binary.size)}  "
                f"{format_age(binary.age)} old  {binary.url}"
            )

    return 0


def run_remove(args) -> int:
    """Remove slots by cache key and forget their manifest entries."""
    exit_code = 0

    with create_context(args) as ctx:
        entries = ctx.manifest.get_entries()
        for key in args.keys:
            if not ctx.slots.has_slot(key):
                logger.error(f"No such cache entry: {key}")
                exit_code = 1
                continue

            ctx.slots.remove_slot(key)
            for spec, entry in entries.items():
                if entry.cache_key == key:
                    ctx.manifest.clear(spec)
            print(f"Removed {key}")

    return exit_code


def run_clear(args) -> int:
    """Remove every slot and the manifest."""
    with create_context(args) as ctx:
        removed = ctx.slots.clear()
        ctx.manifest.clear_all()

    print(f"Removed {removed} cache entr{'y' if removed == 1 else 'ies'}")
    return 0


def run_clean(args) -> int:
    """Remove expired binary downloads."""
    with create_context(args) as ctx:
        cleaned = ctx.downloader.clean_cache(args.max_age)

    print(f"Removed {cleaned} expired cache entr{'y' if cleaned == 1 else 'ies'}")
    return 0
