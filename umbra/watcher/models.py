"""Change-watcher response model and errors."""

from __future__ import annotations

from pydantic import BaseModel, Field

from umbra.errors import UmbraError


class ChangeSet(BaseModel):
    """Files changed in a workspace since a checkpoint.

    Paths are relative to the queried workspace root. A file that was deleted
    and recreated is reported as added even though the repository may only
    see a modification.
    """

    checkpoint: str
    overflown: bool = False
    files_added: set[str] = Field(default_factory=set)
    files_deleted: set[str] = Field(default_factory=set)
    files_modified: set[str] = Field(default_factory=set)


class WatcherError(UmbraError):
    """Wraps a failed change-watcher request."""

    def __init__(self, operation: str, cause: Exception | str) -> None:
        self.operation = operation
        super().__init__(f"watcher {operation} failed: {cause}")
        if isinstance(cause, Exception):
            self.__cause__ = cause


class WatcherOverflowError(UmbraError):
    """The watcher lost track of changes since the checkpoint."""

    def __init__(self, root: str) -> None:
        self.root = root
        super().__init__(
            f"Change watcher lost incremental state for {root}; "
            "changes since the last sync are unknown"
        )
