"""Version-control clients for umbra."""

from umbra.config.models import VCSConfig
from umbra.vcs.base import VCSClient
from umbra.vcs.hg import MercurialClient
from umbra.vcs.models import NotARepositoryError, VCSError


def create_client(config: VCSConfig) -> VCSClient:
    """Create the version-control client described by config."""
    return MercurialClient(config)


__all__ = [
    "VCSClient",
    "MercurialClient",
    "VCSError",
    "NotARepositoryError",
    "create_client",
]
