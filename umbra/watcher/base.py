"""Abstract change-watcher interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from umbra.watcher.models import ChangeSet


class ChangeWatcherClient(ABC):
    """Incremental change queries against a watched workspace.

    A client is acquired once per process and must be closed on every exit
    path; use it as an async context manager.
    """

    @abstractmethod
    async def get_checkpoint(self, root: str) -> str:
        """Start watching *root* if needed and return its current checkpoint."""
        ...

    @abstractmethod
    async def get_changes(self, root: str, since: str) -> ChangeSet:
        """Files under *root* that changed after checkpoint *since*."""
        ...

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> ChangeWatcherClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
