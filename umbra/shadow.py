"""Create a shadow repository holding only a subtree's base files."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterable

from umbra.config.models import SyncConfig
from umbra.sync.files import copy_files, ignore_files, path_set_of_files
from umbra.vcs.base import VCSClient

logger = logging.getLogger(__name__)

HGRC = os.path.join(".hg", "hgrc")


async def _make_public_commit(vcs: VCSClient, repo: str, message: str) -> str:
    await vcs.add(repo, ["."])
    await vcs.commit(repo, message)
    commit_hash = await vcs.current_revision(repo)
    await vcs.set_phase(repo, "public", commit_hash)
    return commit_hash


async def init_shadow_repo(
    vcs: VCSClient,
    source_repo: str,
    shadow_repo: str,
    base_files: Iterable[str],
    config: SyncConfig | None = None,
) -> str:
    """Initialize *shadow_repo* with the files *source_repo* contributes to a subtree.

    Two public commits are made: an initial commit of empty placeholder
    files, then one carrying the source's ignore files and *base_files*.
    Returns the hash of the second, which new history is moved beneath.
    """
    config = config or SyncConfig()
    files = set(base_files)
    dirs = path_set_of_files(files)
    logger.info("Initializing shadow repository %s for %s", shadow_repo, source_repo)
    logger.debug("Path set of base files: %s", sorted(dirs))

    await vcs.init(shadow_repo)

    hgrc = os.path.join(source_repo, HGRC)
    if os.path.exists(hgrc):
        shutil.copyfile(hgrc, os.path.join(shadow_repo, HGRC))

    for directory in sorted(dirs):
        os.makedirs(os.path.join(shadow_repo, directory), exist_ok=True)
    for name in config.default_files:
        with open(os.path.join(shadow_repo, name), "w"):
            pass
    await _make_public_commit(vcs, shadow_repo, "Initial commit")

    ignores = await ignore_files(source_repo, dirs, config.copy_concurrency)
    logger.debug("Copying ignore files: %s", sorted(ignores))
    await copy_files(source_repo, shadow_repo, ignores, config.copy_concurrency)

    # An empty base still needs one file so the commit below is not empty.
    if not files and config.fallback_base_file:
        files.add(config.fallback_base_file)
    logger.debug("Copying base files: %s", sorted(files))
    await copy_files(source_repo, shadow_repo, files, config.copy_concurrency)

    return await _make_public_commit(vcs, shadow_repo, "MergeBase commit")
