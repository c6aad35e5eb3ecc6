"""Intermediate results of a sync pass."""

from __future__ import annotations

from dataclasses import dataclass, field

from umbra.state.models import SerializableAppState


@dataclass
class GroupedChanges:
    """Watcher output split into workspace files and repository metadata."""

    workspace_changed: set[str] = field(default_factory=set)
    workspace_deleted: set[str] = field(default_factory=set)
    metadata: set[str] = field(default_factory=set)


@dataclass
class ChangeSummary:
    new_files_for_base: set[str] = field(default_factory=set)
    changes: set[str] = field(default_factory=set)
    deletions: set[str] = field(default_factory=set)


@dataclass
class SyncStats:
    """File operations one pass actually performed."""

    copied: int = 0
    deleted: int = 0
    touched: int = 0

    @property
    def total(self) -> int:
        return self.copied + self.deleted + self.touched

    def __add__(self, other: SyncStats) -> SyncStats:
        return SyncStats(
            self.copied + other.copied,
            self.deleted + other.deleted,
            self.touched + other.touched,
        )


@dataclass
class SyncResult:
    state: SerializableAppState
    stats: SyncStats
    new_files_for_base: set[str] = field(default_factory=set)
