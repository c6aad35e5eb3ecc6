"""Change synchronization between a source workspace and its shadow."""

from umbra.sync.engine import SyncEngine, group_changes
from umbra.sync.files import ignore_files, mirror_files, path_set_of_files
from umbra.sync.models import ChangeSummary, GroupedChanges, SyncResult, SyncStats

__all__ = [
    "ChangeSummary",
    "GroupedChanges",
    "SyncEngine",
    "SyncResult",
    "SyncStats",
    "group_changes",
    "ignore_files",
    "mirror_files",
    "path_set_of_files",
]
