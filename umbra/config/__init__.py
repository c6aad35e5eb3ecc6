from .loader import load_config
from .models import (
    LockConfig,
    SyncConfig,
    UmbraConfig,
    VCSConfig,
    WatcherConfig,
)

__all__ = [
    "LockConfig",
    "SyncConfig",
    "UmbraConfig",
    "VCSConfig",
    "WatcherConfig",
    "load_config",
]
