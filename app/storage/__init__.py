"""Persisted Watch Later and Watch History lists."""

from app.storage.backends import (
    BackendChain,
    CookieBackend,
    CookieJar,
    KeyValueBackend,
    MemoryBackend,
    StorageBackend,
)
from app.storage.engine import (
    HISTORY_EVENT,
    WATCH_LATER_EVENT,
    ListStore,
    StoreConfig,
    select_backends,
    watch_history_config,
    watch_later_config,
)
from app.storage.errors import CorruptionError, StorageError, StorageUnavailableError
from app.storage.notifier import ChangeEvent, ChangeNotifier, StoreAction
from app.storage.queries import ListSort, StoreQueries

__all__ = [
    "BackendChain",
    "ChangeEvent",
    "ChangeNotifier",
    "CookieBackend",
    "CookieJar",
    "CorruptionError",
    "HISTORY_EVENT",
    "KeyValueBackend",
    "ListSort",
    "ListStore",
    "MemoryBackend",
    "StorageBackend",
    "StorageError",
    "StorageUnavailableError",
    "StoreAction",
    "StoreConfig",
    "StoreQueries",
    "WATCH_LATER_EVENT",
    "select_backends",
    "watch_history_config",
    "watch_later_config",
]
