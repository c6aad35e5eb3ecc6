"""Persisted application state and the system-wide lock."""

from umbra.state.lock import SystemLock
from umbra.state.models import (
    AppState,
    InitializedAppState,
    SerializableAppState,
    SerializedAppState,
    TrackedSyncState,
    UninitializedAppState,
)
from umbra.state.store import StateStore

__all__ = [
    "AppState",
    "InitializedAppState",
    "SerializableAppState",
    "SerializedAppState",
    "StateStore",
    "SystemLock",
    "TrackedSyncState",
    "UninitializedAppState",
]
