"""Application state carried between and across invocations."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from umbra.subtree.models import Subtree


@dataclass
class UninitializedAppState:
    """A source repository that has no shadow repository yet."""

    source_repo_root: str
    shadow_repo_root: str
    initialized: bool = field(default=False, init=False)


@dataclass
class InitializedAppState:
    """State of a source repository with a live shadow repository.

    ``shadow_root_sources`` maps every shadow root commit to the source
    commit whose files it mirrors.
    """

    checkpoint: str
    source_repo_root: str
    shadow_repo_root: str
    shadow_subtree: Subtree
    shadow_is_dirty: bool
    shadow_root_sources: dict[str, str] = field(default_factory=dict)
    initialized: bool = field(default=True, init=False)


@dataclass
class SerializableAppState:
    """What a command hands back to be persisted."""

    source_repo_root: str
    shadow_repo_root: str
    shadow_root_sources: dict[str, str] = field(default_factory=dict)


@dataclass
class TrackedSyncState:
    """Checkpoint of one tracked-sync pass; never persisted."""

    checkpoint: str = ""


class SerializedAppState(BaseModel):
    """On-disk state document."""

    checkpoint: str
    shadow_root_sources: list[tuple[str, str]] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: SerializableAppState, checkpoint: str) -> SerializedAppState:
        return cls(
            checkpoint=checkpoint,
            shadow_root_sources=list(state.shadow_root_sources.items()),
        )

    def root_map(self) -> dict[str, str]:
        return dict(self.shadow_root_sources)


AppState = UninitializedAppState | InitializedAppState
