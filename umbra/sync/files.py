"""Filesystem helpers shared by the sync engine and the shadow initializer.

Paths handled here are repository-relative and use ``/`` separators.
"""

from __future__ import annotations

import asyncio
import logging
import os
import posixpath
import shutil
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import TypeVar

from umbra.sync.models import SyncStats

logger = logging.getLogger(__name__)

IGNORE_FILE = ".hgignore"
METADATA_DIR = ".hg"

T = TypeVar("T")


def is_metadata(path: str) -> bool:
    """True for paths inside the repository's own metadata directory."""
    return path.split("/", 1)[0] == METADATA_DIR


def path_set_of_files(files: Iterable[str]) -> set[str]:
    """Return ``"."`` plus every ancestor directory of every file."""
    combined = {"."}
    for name in files:
        directory = posixpath.dirname(name) or "."
        while directory not in combined:
            combined.add(directory)
            directory = posixpath.dirname(directory) or "."
    return combined


async def _bounded(
    concurrency: int, items: Iterable[str], work: Callable[[str], Awaitable[T]]
) -> list[T]:
    semaphore = asyncio.Semaphore(concurrency)

    async def run(item: str) -> T:
        async with semaphore:
            return await work(item)

    return await asyncio.gather(*(run(item) for item in items))


async def existing(root: str, paths: Iterable[str], concurrency: int = 8) -> set[str]:
    """The subset of *paths* present under *root*."""
    names = sorted(paths)
    flags = await _bounded(
        concurrency, names, lambda name: asyncio.to_thread(os.path.lexists, os.path.join(root, name))
    )
    return {name for name, present in zip(names, flags) if present}


async def ignore_files(root: str, dirs: Iterable[str], concurrency: int = 8) -> set[str]:
    """Ignore files that exist directly inside any of *dirs* under *root*."""
    candidates = {posixpath.normpath(posixpath.join(d, IGNORE_FILE)) for d in dirs}
    return await existing(root, candidates, concurrency)


def _copy_one(source_root: str, target_root: str, name: str) -> bool:
    src = os.path.join(source_root, name)
    if not os.path.lexists(src):
        return False
    dest = os.path.join(target_root, name)
    os.makedirs(os.path.dirname(dest), exist_ok=True)
    shutil.copy2(src, dest, follow_symlinks=False)
    return True


def _delete_one(target_root: str, name: str) -> bool:
    try:
        os.unlink(os.path.join(target_root, name))
    except FileNotFoundError:
        return False
    return True


def _touch_one(target_root: str, name: str) -> bool:
    path = Path(target_root, name)
    if not path.exists():
        return False
    path.touch()
    return True


async def copy_files(
    source_root: str, target_root: str, paths: Iterable[str], concurrency: int = 8
) -> int:
    """Copy every path that exists under *source_root*; return how many were copied."""
    done = await _bounded(
        concurrency,
        sorted(paths),
        lambda name: asyncio.to_thread(_copy_one, source_root, target_root, name),
    )
    return sum(done)


async def delete_files(target_root: str, paths: Iterable[str], concurrency: int = 8) -> int:
    done = await _bounded(
        concurrency, sorted(paths), lambda name: asyncio.to_thread(_delete_one, target_root, name)
    )
    return sum(done)


async def touch_files(target_root: str, paths: Iterable[str], concurrency: int = 8) -> int:
    done = await _bounded(
        concurrency, sorted(paths), lambda name: asyncio.to_thread(_touch_one, target_root, name)
    )
    return sum(done)


async def mirror_files(
    source_root: str,
    target_root: str,
    changes: Iterable[str],
    deletions: Iterable[str],
    touches: Iterable[str] = (),
    concurrency: int = 8,
) -> SyncStats:
    """Propagate changed and deleted files from one workspace to another.

    Changed paths missing from the source are skipped. Deleted and touched
    paths only count when they exist in the target.
    """
    copied, deleted, touched = await asyncio.gather(
        copy_files(source_root, target_root, changes, concurrency),
        delete_files(target_root, deletions, concurrency),
        touch_files(target_root, touches, concurrency),
    )
    stats = SyncStats(copied=copied, deleted=deleted, touched=touched)
    if stats.total:
        logger.info(
            "Synced %s -> %s: %d copied, %d deleted, %d touched",
            source_root,
            target_root,
            copied,
            deleted,
            touched,
        )
    return stats
