"""pyconfigsync - JSON file backed config store with debounced writes and live reload."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyconfigsync")
except PackageNotFoundError:
    __version__ = "0+local"
from pyconfigsync.client import ConfigStore
from pyconfigsync.config import StoreOptions
from pyconfigsync.exceptions import (
    ConfigEncodeError,
    ConfigIOError,
    ConfigNotFoundError,
    ConfigOptionsError,
    ConfigSyncError,
    CorruptConfigError,
    MissingDirectoryError,
)
from pyconfigsync.models import (
    MISSING,
    ChangeEvent,
    ChangeKind,
    ConfigChange,
    SchedulerState,
    WatchState,
)
from pyconfigsync.notifier import ChangeNotifier, WatchdogNotifier, WatchHandle
from pyconfigsync.storage import DirectoryStorage, StorageBackend

__all__ = [
    "__version__",
    "MISSING",
    "ChangeEvent",
    "ChangeKind",
    "ChangeNotifier",
    "ConfigChange",
    "ConfigEncodeError",
    "ConfigIOError",
    "ConfigNotFoundError",
    "ConfigOptionsError",
    "ConfigStore",
    "ConfigSyncError",
    "CorruptConfigError",
    "DirectoryStorage",
    "MissingDirectoryError",
    "SchedulerState",
    "StorageBackend",
    "StoreOptions",
    "WatchHandle",
    "WatchState",
    "WatchdogNotifier",
]
