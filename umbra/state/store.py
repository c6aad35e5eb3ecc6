"""Load and save the state document kept beside each shadow repository."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from umbra.errors import StateError
from umbra.state.models import (
    AppState,
    InitializedAppState,
    SerializableAppState,
    SerializedAppState,
    UninitializedAppState,
)
from umbra.subtree.builder import get_subtree
from umbra.vcs.base import VCSClient
from umbra.vcs.models import NotARepositoryError
from umbra.watcher.base import ChangeWatcherClient

logger = logging.getLogger(__name__)


class StateStore:
    """Reads state once at command start and writes it once at the end."""

    def __init__(self, vcs: VCSClient, watcher: ChangeWatcherClient, shadow_dir: Path) -> None:
        self.vcs = vcs
        self.watcher = watcher
        self.shadow_dir = Path(shadow_dir).expanduser()

    def shadow_repo_root(self, source_repo_root: str) -> str:
        return str(self.shadow_dir / os.path.basename(source_repo_root.rstrip(os.sep)))

    def state_path(self, shadow_repo_root: str) -> Path:
        shadow = Path(shadow_repo_root)
        return shadow.parent / f"{shadow.name}.state.json"

    def read_document(self, shadow_repo_root: str) -> SerializedAppState | None:
        """Parse the state document; None if there is none."""
        path = self.state_path(shadow_repo_root)
        try:
            raw = path.read_text()
        except FileNotFoundError:
            return None
        try:
            return SerializedAppState.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise StateError(f"Corrupt state document {path}: {e}") from e

    async def load(self, cwd: str) -> AppState:
        source_root = await self.vcs.repo_root(cwd)
        shadow_root = self.shadow_repo_root(source_root)
        serialized = self.read_document(shadow_root)
        if serialized is None:
            return UninitializedAppState(source_root, shadow_root)

        try:
            subtree = await get_subtree(self.vcs, shadow_root)
            dirty = await self.vcs.is_dirty(shadow_root)
        except NotARepositoryError:
            logger.warning(
                "State document exists but %s is not a repository; treating as uninitialized",
                shadow_root,
            )
            return UninitializedAppState(source_root, shadow_root)

        state = InitializedAppState(
            checkpoint=serialized.checkpoint,
            source_repo_root=source_root,
            shadow_repo_root=shadow_root,
            shadow_subtree=subtree,
            shadow_is_dirty=dirty,
            shadow_root_sources=serialized.root_map(),
        )
        logger.debug(
            "Loaded state for %s: checkpoint %s, %d shadow roots, dirty=%s",
            source_root,
            state.checkpoint,
            len(state.shadow_root_sources),
            dirty,
        )
        return state

    async def load_uninitialized(self, cwd: str) -> UninitializedAppState:
        state = await self.load(cwd)
        if isinstance(state, InitializedAppState):
            raise StateError(f"{state.source_repo_root} is already broken into {state.shadow_repo_root}")
        return state

    async def load_initialized(self, cwd: str) -> InitializedAppState:
        state = await self.load(cwd)
        if not isinstance(state, InitializedAppState):
            raise StateError(f"{state.source_repo_root} has not been broken yet; run `umbra break` first")
        return state

    async def save(self, state: SerializableAppState) -> None:
        """Persist *state* with a fresh checkpoint for the source workspace.

        An empty shadow-root map means nothing is left to track, so the
        document is removed instead.
        """
        path = self.state_path(state.shadow_repo_root)
        if not state.shadow_root_sources:
            if path.exists():
                path.unlink()
                logger.info("Removed state document %s", path)
            return

        checkpoint = await self.watcher.get_checkpoint(state.source_repo_root)
        document = SerializedAppState.from_state(state, checkpoint)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(document.model_dump_json(indent=2))
        logger.debug("Saved state to %s: %s", path, document.model_dump_json())
