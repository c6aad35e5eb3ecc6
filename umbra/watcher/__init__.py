"""Change watching: incremental queries and follow mode."""

from umbra.config.models import WatcherConfig
from umbra.watcher.base import ChangeWatcherClient
from umbra.watcher.follow import FollowWatcher, follow_changes
from umbra.watcher.models import ChangeSet, WatcherError, WatcherOverflowError
from umbra.watcher.watchman import WatchmanClient


def create_watcher(config: WatcherConfig) -> ChangeWatcherClient:
    """Create the change-watcher client described by config."""
    return WatchmanClient(config)


__all__ = [
    "ChangeSet",
    "ChangeWatcherClient",
    "FollowWatcher",
    "WatcherError",
    "WatcherOverflowError",
    "WatchmanClient",
    "create_watcher",
    "follow_changes",
]
