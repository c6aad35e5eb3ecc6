"""Abstract version-control interface for umbra."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from umbra.subtree.models import CommitPhase


class VCSClient(ABC):
    """Operations umbra needs from the version-control tool.

    Every call may block on an external process, so all of them are async.
    Mutating calls against one repository must be awaited one at a time.
    """

    @abstractmethod
    async def repo_root(self, cwd: str) -> str:
        """Return the root of the repository containing *cwd*.

        Raises NotARepositoryError when *cwd* is not inside a repository.
        """
        ...

    @abstractmethod
    async def current_revision(self, repo: str) -> str:
        """Full hash of the checked-out revision."""
        ...

    @abstractmethod
    async def merge_base(self, repo: str, rev: str = ".") -> str:
        """Hash of the last public ancestor of *rev*."""
        ...

    @abstractmethod
    async def subtree_log(self, repo: str, rev: str = ".") -> str:
        """Section-tagged listing of the subtree around *rev*.

        Covers the last public ancestor of *rev* plus all non-public
        descendants of its children.
        """
        ...

    @abstractmethod
    async def is_dirty(self, repo: str) -> bool:
        """True if tracked files have uncommitted changes."""
        ...

    @abstractmethod
    async def init(self, path: str) -> None: ...

    @abstractmethod
    async def add(self, repo: str, paths: Iterable[str]) -> None: ...

    @abstractmethod
    async def commit(self, repo: str, message: str) -> None: ...

    @abstractmethod
    async def amend(self, repo: str) -> None:
        """Fold pending changes into the checked-out commit, keeping its message."""
        ...

    @abstractmethod
    async def checkout(self, repo: str, rev: str) -> None: ...

    @abstractmethod
    async def set_phase(
        self, repo: str, phase: CommitPhase, rev: str, force: bool = False
    ) -> None: ...

    @abstractmethod
    async def export_patch(self, repo: str, revs: list[str]) -> str:
        """Export one or more revisions as a single patch stream."""
        ...

    @abstractmethod
    async def import_patch(self, repo: str, patch: str) -> None:
        """Commit every patch in *patch* on top of the checked-out revision.

        Patches whose parent was imported earlier in the same stream are
        applied on top of that parent's image, so tree shape is preserved.
        """
        ...

    @abstractmethod
    async def strip(self, repo: str, rev: str) -> None:
        """Remove *rev* and all its descendants."""
        ...

    @abstractmethod
    async def shelve(self, repo: str) -> None: ...

    @abstractmethod
    async def unshelve(self, repo: str) -> None: ...

    @abstractmethod
    async def rebase(self, repo: str, source: str, dest: str) -> None:
        """Move *source* and its descendants onto *dest*."""
        ...

    @abstractmethod
    async def revert_files(self, repo: str, paths: Iterable[str]) -> None: ...

    @abstractmethod
    async def purge_files(self, repo: str, paths: Iterable[str]) -> None: ...

    @abstractmethod
    async def extract_files(
        self, repo: str, rev: str, dest_dir: str, paths: Iterable[str]
    ) -> None:
        """Write the contents of *paths* at *rev* under *dest_dir*."""
        ...

    @abstractmethod
    async def tracked_files(self, repo: str, rev: str, paths: Iterable[str]) -> set[str]:
        """The subset of *paths* that exist at *rev*."""
        ...

    @abstractmethod
    async def run_forwarded(self, repo: str, args: list[str]) -> int:
        """Run the tool with the user's arguments and terminal; return its exit code."""
        ...
