"""Errors and value types for the version-control layer."""

from __future__ import annotations

from umbra.errors import UmbraError


class VCSError(UmbraError):
    """Wraps a failed version-control invocation with its context."""

    def __init__(
        self,
        operation: str,
        repo: str | None,
        cause: Exception,
        stderr: str = "",
    ) -> None:
        self.operation = operation
        self.repo = repo
        self.stderr = stderr
        where = f" in {repo}" if repo else ""
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"{operation} failed{where}: {cause}{detail}")
        self.__cause__ = cause


class NotARepositoryError(VCSError):
    """The command was run outside of a repository."""

    def __init__(self, operation: str, repo: str | None, cause: Exception, stderr: str = "") -> None:
        super().__init__(operation, repo, cause, stderr)
