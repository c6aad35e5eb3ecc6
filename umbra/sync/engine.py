"""Keep a source workspace and its shadow repository consistent.

Two entry points share the classification and propagation code:

- ``sync_tracked`` mirrors workspace changes made since a checkpoint, with no
  history rewriting. It brackets commands forwarded to the shadow repository.
- ``sync`` is the full pass run before every command. Besides mirroring
  changes it detects files the shadow root does not contain yet, folds them
  into the root commit and rebases the shadow history on top.
"""

from __future__ import annotations

import logging
import os
import posixpath

from umbra.config.models import SyncConfig
from umbra.state.models import SerializableAppState, TrackedSyncState
from umbra.subtree.builder import get_subtree
from umbra.subtree.models import Subtree
from umbra.subtree.path import node_at, path_to_current
from umbra.sync.files import (
    existing,
    ignore_files,
    is_metadata,
    mirror_files,
    path_set_of_files,
)
from umbra.sync.models import ChangeSummary, GroupedChanges, SyncResult, SyncStats
from umbra.vcs.base import VCSClient
from umbra.watcher.base import ChangeWatcherClient
from umbra.watcher.models import ChangeSet, WatcherOverflowError

logger = logging.getLogger(__name__)


def group_changes(changes: ChangeSet) -> GroupedChanges:
    """Split watcher output into workspace and metadata paths.

    Deleted workspace files are reported as changed too.
    """
    grouped = GroupedChanges()
    for name, deleted in (
        *((n, False) for n in changes.files_added),
        *((n, True) for n in changes.files_deleted),
        *((n, False) for n in changes.files_modified),
    ):
        if is_metadata(name):
            grouped.metadata.add(name)
            continue
        grouped.workspace_changed.add(name)
        if deleted:
            grouped.workspace_deleted.add(name)
    return grouped


class SyncEngine:
    def __init__(
        self,
        vcs: VCSClient,
        watcher: ChangeWatcherClient,
        config: SyncConfig | None = None,
    ) -> None:
        self.vcs = vcs
        self.watcher = watcher
        self.config = config or SyncConfig()

    @property
    def _concurrency(self) -> int:
        return self.config.copy_concurrency

    async def _changes_since(self, repo: str, checkpoint: str) -> ChangeSet:
        changes = await self.watcher.get_changes(repo, checkpoint)
        if changes.overflown:
            raise WatcherOverflowError(repo)
        return changes

    # ------------------------------------------------------------------
    # Tracked sync
    # ------------------------------------------------------------------

    async def start_tracking(self, repo: str, state: TrackedSyncState) -> None:
        state.checkpoint = await self.watcher.get_checkpoint(repo)
        logger.debug("Tracking %s from checkpoint %s", repo, state.checkpoint)

    async def sync_tracked(
        self, source_repo: str, target_repo: str, state: TrackedSyncState
    ) -> SyncStats:
        """Mirror every workspace change in *source_repo* since ``state.checkpoint``.

        Metadata files that changed are touched in the target when present there,
        so anything watching the target notices them.
        """
        changes = await self._changes_since(source_repo, state.checkpoint)
        workspace_changed: set[str] = set()
        touches: set[str] = set()
        for name in changes.files_added | changes.files_modified:
            (touches if is_metadata(name) else workspace_changed).add(name)
        deletions = {name for name in changes.files_deleted if not is_metadata(name)}

        logger.debug(
            "Syncing back %s -> %s: changes=%s deletions=%s touches=%s",
            source_repo,
            target_repo,
            sorted(workspace_changed),
            sorted(deletions),
            sorted(touches),
        )
        state.checkpoint = changes.checkpoint
        return await mirror_files(
            source_repo,
            target_repo,
            workspace_changed,
            deletions,
            touches,
            concurrency=self._concurrency,
        )

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def root_files(self, source_repo: str, initial_files: frozenset[str]) -> set[str]:
        """Initial files plus the ignore files governing their directories."""
        ignores = await ignore_files(
            source_repo, path_set_of_files(initial_files), self._concurrency
        )
        return set(initial_files) | ignores

    async def summarize(
        self,
        source_repo: str,
        shadow_repo: str,
        source_hash: str,
        root_files: set[str],
        checkpoint: str,
    ) -> ChangeSummary:
        changes = await self._changes_since(source_repo, checkpoint)
        grouped = group_changes(changes)
        if grouped.metadata:
            logger.warning(
                "Detected unexpected changes in source .hg: %s",
                ", ".join(sorted(grouped.metadata)),
            )

        candidates = grouped.workspace_changed - root_files
        new_ignores = (
            await ignore_files(source_repo, path_set_of_files(candidates), self._concurrency)
            - root_files
        )
        if new_ignores:
            logger.info("Detected new ignore files for base: %s", sorted(new_ignores))
        candidates |= new_ignores

        in_source = await existing(source_repo, candidates, self._concurrency)
        in_shadow = await existing(shadow_repo, candidates, self._concurrency)
        candidates = in_source - in_shadow
        if candidates:
            candidates = await self.vcs.tracked_files(source_repo, source_hash, candidates)
        if candidates:
            logger.info("Detected new files for base: %s", sorted(candidates))

        return ChangeSummary(
            new_files_for_base=candidates,
            changes=grouped.workspace_changed,
            deletions=grouped.workspace_deleted,
        )

    async def add_base_files(
        self,
        source_repo: str,
        shadow_repo: str,
        source_hash: str,
        subtree: Subtree,
        new_files: set[str],
    ) -> str:
        """Fold *new_files* into the shadow root and rebase its children.

        Returns the new root hash. The shadow checkout ends up at the commit
        structurally equivalent to where it started.
        """
        root = subtree.root
        restore_path = None
        if subtree.current != subtree.tree.root_slot:
            restore_path = path_to_current(subtree)
            await self.vcs.checkout(shadow_repo, root.hash)

        former_children = [child.hash for child in subtree.tree.children_of(root)]

        for directory in sorted({posixpath.dirname(name) for name in new_files}):
            os.makedirs(os.path.join(shadow_repo, directory), exist_ok=True)
        await self.vcs.extract_files(source_repo, source_hash, shadow_repo, new_files)
        await self.vcs.add(shadow_repo, sorted(new_files))
        await self.vcs.set_phase(shadow_repo, "draft", ".", force=True)
        await self.vcs.amend(shadow_repo)
        await self.vcs.set_phase(shadow_repo, "public", ".")
        new_root = await self.vcs.current_revision(shadow_repo)
        logger.info("Amended shadow root %s -> %s", root.hash[:12], new_root[:12])

        for child in former_children:
            await self.vcs.rebase(shadow_repo, child, new_root)

        if restore_path is not None:
            rebuilt = await get_subtree(self.vcs, shadow_repo)
            target = node_at(rebuilt.tree, restore_path)
            await self.vcs.checkout(shadow_repo, target.hash)

        return new_root

    async def sync(
        self,
        source_repo: str,
        shadow_repo: str,
        subtree: Subtree,
        source_hash: str,
        shadow_is_dirty: bool,
        checkpoint: str,
        shadow_root_sources: dict[str, str] | None = None,
    ) -> SyncResult:
        """Run one full sync pass from *source_repo* into *shadow_repo*.

        A watcher overflow aborts the pass before any file is touched.
        """
        root_files = await self.root_files(source_repo, subtree.initial_files)
        summary = await self.summarize(
            source_repo, shadow_repo, source_hash, root_files, checkpoint
        )

        root_hash = subtree.root.hash
        new_files = summary.new_files_for_base
        shelved = shadow_is_dirty and bool(new_files)
        if shelved:
            await self.vcs.shelve(shadow_repo)
        if new_files:
            root_hash = await self.add_base_files(
                source_repo, shadow_repo, source_hash, subtree, new_files
            )
        if shelved:
            await self.vcs.unshelve(shadow_repo)

        stats = await mirror_files(
            source_repo,
            shadow_repo,
            summary.changes,
            summary.deletions,
            concurrency=self._concurrency,
        )

        roots = dict(shadow_root_sources or {})
        roots.pop(subtree.root.hash, None)
        roots[root_hash] = source_hash
        state = SerializableAppState(
            source_repo_root=source_repo,
            shadow_repo_root=shadow_repo,
            shadow_root_sources=roots,
        )
        return SyncResult(state=state, stats=stats, new_files_for_base=set(new_files))
