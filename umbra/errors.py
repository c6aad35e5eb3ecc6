"""Exception hierarchy shared by every umbra subsystem."""

from __future__ import annotations


class UmbraError(Exception):
    """Base class for failures the CLI reports to the user."""


class StateError(UmbraError):
    """Persisted state does not match what the command expects."""


class LockTimeoutError(UmbraError):
    """The system-wide lock could not be acquired in time."""

    def __init__(self, path: str, waited: float) -> None:
        self.path = path
        self.waited = waited
        super().__init__(f"Timed out after {waited:.0f}s waiting for lock {path}")


class ForwardedCommandError(UmbraError):
    """A command forwarded to the version-control tool exited non-zero."""

    def __init__(self, exit_code: int, args: list[str]) -> None:
        self.exit_code = exit_code
        self.args_forwarded = list(args)
        super().__init__(
            f"Forwarded command failed with exit code {exit_code}: {' '.join(args)}"
        )
