"""Command pipelines: break, unbreak, sync and forwarding to the shadow repository.

Each pipeline reads state once, performs its mutations in order, and hands
back the state to persist. A pipeline that starts with a full sync saves the
synced state itself, since the sync may already have rewritten the shadow root.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Awaitable, Callable

from umbra.config.models import UmbraConfig
from umbra.errors import ForwardedCommandError, StateError
from umbra.shadow import init_shadow_repo
from umbra.state.models import (
    InitializedAppState,
    SerializableAppState,
    TrackedSyncState,
)
from umbra.state.store import StateStore
from umbra.subtree.builder import detach_root, fetch_commit_tree, get_subtree
from umbra.subtree.dependencies import file_dependencies
from umbra.subtree.models import Subtree
from umbra.subtree.transplant import SubtreeTransplanter
from umbra.sync.engine import SyncEngine
from umbra.sync.models import SyncResult
from umbra.vcs.base import VCSClient
from umbra.watcher.base import ChangeWatcherClient

logger = logging.getLogger(__name__)


class Commands:
    """Wires the collaborators together for one invocation.

    Use as an async context manager so the watcher client is closed on every
    exit path.
    """

    def __init__(
        self,
        config: UmbraConfig,
        vcs: VCSClient,
        watcher: ChangeWatcherClient,
    ) -> None:
        self.config = config
        self.vcs = vcs
        self.watcher = watcher
        self.store = StateStore(vcs, watcher, config.shadow_path)
        self.engine = SyncEngine(vcs, watcher, config.sync)
        self.transplanter = SubtreeTransplanter(vcs, strip_source=config.sync.strip_source)

    async def __aenter__(self) -> Commands:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.watcher.close()

    async def execute(
        self, pipeline: Callable[[], Awaitable[SerializableAppState]]
    ) -> SerializableAppState:
        """Run *pipeline* and persist the state it produces."""
        state = await pipeline()
        await self.store.save(state)
        logger.debug("Done")
        return state

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def break_subtree(self, cwd: str) -> SerializableAppState:
        """Move the current draft subtree of the source into a new shadow repository."""
        state = await self.store.load_uninitialized(cwd)
        source = state.source_repo_root
        shadow = state.shadow_repo_root
        logger.info("Breaking %s into %s", source, shadow)

        tree = await fetch_commit_tree(self.vcs, source)
        base_files = file_dependencies(tree)
        subtree = detach_root(tree)
        # The root is the shadow's base commit, so whatever it contributed
        # that the drafts touch must be there too.
        touched: set[str] = set()
        for node in tree.dfs():
            if node.phase != "public":
                touched |= node.touched_files()
        base_files |= subtree.initial_files & touched
        logger.info("Base files: %s", sorted(base_files))
        source_root = tree.root.hash
        current = subtree.current_commit

        await self.vcs.checkout(source, source_root)
        shadow_parent = await init_shadow_repo(
            self.vcs, source, shadow, base_files, self.config.sync
        )

        tracked = TrackedSyncState()
        await self.engine.start_tracking(shadow, tracked)
        image = await self.transplanter.transplant(
            self.config.sync.transplant_strategy,
            source,
            tree,
            shadow,
            shadow_parent,
            current.hash,
        )
        await self.engine.sync_tracked(shadow, source, tracked)

        return SerializableAppState(
            source_repo_root=source,
            shadow_repo_root=shadow,
            shadow_root_sources={image.root.hash: source_root},
        )

    async def unbreak_subtree(self, cwd: str) -> SerializableAppState:
        """Fold the shadow subtree back into the source repository.

        Pending source edits are synced into the shadow first, so the
        dirty-shadow check sees them before the source paths are reverted.
        """
        state = await self.store.load_initialized(cwd)
        result = await self._sync(state)
        await self.store.save(result.state)
        state = await self.store.load_initialized(cwd)
        if state.shadow_is_dirty:
            raise StateError(
                f"{state.shadow_repo_root} has uncommitted changes; commit or shelve them first"
            )
        subtree = state.shadow_subtree
        root_hash = subtree.root.hash
        source_root = self._source_of(state)

        touched: set[str] = set()
        for node in subtree.tree.dfs():
            if node.phase != "public":
                touched |= node.touched_files()
        logger.info("Restoring %d touched files in %s", len(touched), state.source_repo_root)

        await self.vcs.revert_files(state.source_repo_root, touched)
        await self.vcs.purge_files(state.source_repo_root, touched)
        await self.transplanter.transplant(
            self.config.sync.transplant_strategy,
            state.shadow_repo_root,
            subtree.tree,
            state.source_repo_root,
            source_root,
            subtree.current_commit.hash,
        )

        roots = dict(state.shadow_root_sources)
        del roots[root_hash]
        if not roots and self.config.sync.remove_shadow_on_unbreak:
            logger.info("Removing shadow repository %s", state.shadow_repo_root)
            shutil.rmtree(state.shadow_repo_root)

        return SerializableAppState(
            source_repo_root=state.source_repo_root,
            shadow_repo_root=state.shadow_repo_root,
            shadow_root_sources=roots,
        )

    async def sync(self, cwd: str) -> SyncResult:
        state = await self.store.load_initialized(cwd)
        return await self._sync(state)

    async def forward(self, cwd: str, args: list[str]) -> SerializableAppState:
        """Sync, run ``args`` against the shadow repository, then mirror its changes back.

        The synced state is saved even when the forwarded command fails, since
        the sync itself may already have rewritten the shadow root.
        """
        state = await self.store.load_initialized(cwd)
        result = await self._sync(state)

        tracked = TrackedSyncState()
        await self.engine.start_tracking(state.shadow_repo_root, tracked)
        logger.debug("Forwarding command: %s", " ".join(args))
        exit_code = await self.vcs.run_forwarded(state.shadow_repo_root, args)
        await self.engine.sync_tracked(state.shadow_repo_root, state.source_repo_root, tracked)

        if exit_code != 0:
            await self.store.save(result.state)
            raise ForwardedCommandError(exit_code, args)
        return result.state

    async def get_subtree(self, cwd: str) -> Subtree:
        repo = await self.vcs.repo_root(cwd)
        return await get_subtree(self.vcs, repo)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _source_of(self, state: InitializedAppState) -> str:
        root_hash = state.shadow_subtree.root.hash
        source_hash = state.shadow_root_sources.get(root_hash)
        if source_hash is None:
            raise StateError(
                f"Shadow root {root_hash} of {state.shadow_repo_root} has no recorded source commit"
            )
        return source_hash

    async def _sync(self, state: InitializedAppState) -> SyncResult:
        return await self.engine.sync(
            state.source_repo_root,
            state.shadow_repo_root,
            state.shadow_subtree,
            self._source_of(state),
            state.shadow_is_dirty,
            state.checkpoint,
            state.shadow_root_sources,
        )
