"""High-level async config store backed by a single JSON file."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from pyconfigsync._scheduler import FlushScheduler, Persister
from pyconfigsync._watch import WatchEngine, WatchGate, read_config
from pyconfigsync.config import StoreOptions
from pyconfigsync.exceptions import ConfigSyncError
from pyconfigsync.models import MISSING, ConfigChange, SchedulerState, WatchState
from pyconfigsync.notifier import ChangeNotifier, WatchdogNotifier
from pyconfigsync.state.store import ConfigData
from pyconfigsync.state.sync import SyncPoint
from pyconfigsync.storage import DirectoryStorage, StorageBackend

_logger = logging.getLogger(__name__)

ChangeListener = Callable[[dict[str, Any], dict[str, Any]], None]
ErrorListener = Callable[[Exception], None]


class ConfigStore:
    """Key-value config kept in sync with a JSON file.

    Mutations are written back after a debounce delay; changes made to the
    file by other processes are reloaded and published to change listeners.

    Usage::

        async with ConfigStore(StoreOptions(directory="/var/lib/myapp")) as store:
            store.set("theme", "dark")
            theme = store.get("theme", "light")

    All methods must be called from the event loop that ran :meth:`init`.
    """

    def __init__(
        self,
        options: StoreOptions,
        *,
        storage: StorageBackend | None = None,
        notifier: ChangeNotifier | None = None,
        on_change: ChangeListener | None = None,
        on_error: ErrorListener | None = None,
    ) -> None:
        self._options = options
        self._path = str(options.path)
        self._storage: StorageBackend = storage if storage is not None else DirectoryStorage(options.directory)
        self._data = ConfigData()
        self._sync = SyncPoint()
        self._gate = WatchGate()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ready = False
        self._closed = False
        self._change_listeners: list[ChangeListener] = []
        self._error_listeners: list[ErrorListener] = []

        self._persister = Persister(
            storage=self._storage,
            filename=options.filename,
            data=self._data,
            sync=self._sync,
            gate=self._gate,
            path=self._path,
        )
        self._scheduler = FlushScheduler(flush=self._persister.flush, on_error=self._emit_error)

        self._watcher: WatchEngine | None = None
        if options.watch:
            self._watcher = WatchEngine(
                notifier=notifier if notifier is not None else WatchdogNotifier(),
                storage=self._storage,
                directory=options.directory,
                filename=options.filename,
                data=self._data,
                sync=self._sync,
                gate=self._gate,
                on_change=self._emit_change,
                on_error=self._emit_error,
            )

        if on_change is not None:
            self.add_change_listener(on_change)
        if on_error is not None:
            self.add_error_listener(on_error)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ConfigStore:
        await self.init()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.exit()

    async def init(self) -> None:
        """Load the file and start watching it.

        A missing file means an empty config. Raises ``CorruptConfigError``
        if the file is not a valid JSON object and ``ConfigIOError`` if it
        cannot be read; the in-memory data is left untouched in both cases.
        """
        if self._closed:
            raise ConfigSyncError("Store has been closed")
        if self._ready:
            return

        self._loop = asyncio.get_running_loop()
        self._scheduler.bind(self._loop)

        async with self._sync.lock:
            loaded = await read_config(self._storage, self._options.filename, path=self._path)
            if loaded is not None:
                data, digest = loaded
                self._data.load(data)
                self._sync.digest = digest
        _logger.debug("loaded %s (%s)", self._path, "existing" if loaded is not None else "empty")

        if self._watcher is not None:
            self._watcher.start(self._loop)
        self._ready = True

        # Mutations made before init with no file on disk yet.
        if self._data.dirty:
            self._schedule_flush()

    async def exit(self) -> None:
        """Stop watching and write any unsaved changes.

        Raises ``ConfigIOError`` if the final write fails.
        """
        if self._closed:
            return
        self._closed = True
        await self._scheduler.close()
        if self._watcher is not None:
            await self._watcher.close()
        self._gate.close()
        await self._scheduler.fire_now()
        _logger.debug("store closed %s", self._path)

    async def flush(self) -> bool:
        """Write unsaved changes now. Returns True if the file was written."""
        return await self._scheduler.fire_now()

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for ``key``, or ``default`` if absent."""
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> Any:
        """Set ``key`` and schedule a write; returns the previous value or ``MISSING``."""
        if key is None:
            return MISSING
        previous = self._data.set(key, value)
        self._schedule_flush()
        return previous

    def delete(self, key: str) -> Any:
        """Remove ``key`` and schedule a write; returns the removed value or ``MISSING``."""
        if key is None:
            return MISSING
        previous = self._data.delete(key)
        self._schedule_flush()
        return previous

    def replace(self, data: Mapping[str, Any]) -> Any:
        """Replace the whole config and schedule a write; returns the previous config."""
        if data is None:
            return MISSING
        previous = self._data.replace(data)
        self._schedule_flush()
        return previous

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the whole config."""
        return self._data.snapshot()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_change_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener(old, new)`` after each external change; returns an unsubscribe function."""
        self._change_listeners.append(listener)
        return lambda: self._remove(self._change_listeners, listener)

    def add_error_listener(self, listener: ErrorListener) -> Callable[[], None]:
        """Call ``listener(exc)`` for background flush and reload errors."""
        self._error_listeners.append(listener)
        return lambda: self._remove(self._error_listeners, listener)

    @staticmethod
    def _remove(listeners: list[Any], listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def options(self) -> StoreOptions:
        return self._options

    @property
    def path(self) -> Path:
        return self._options.path

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._closed

    @property
    def is_dirty(self) -> bool:
        return self._data.dirty

    @property
    def scheduler_state(self) -> SchedulerState:
        return self._scheduler.state

    @property
    def watch_state(self) -> WatchState:
        return self._gate.state

    @property
    def last_digest(self) -> bytes | None:
        """Digest of the content last written or read."""
        return self._sync.digest

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _schedule_flush(self) -> None:
        if self._closed or self._loop is None:
            return
        self._scheduler.arm(self._options.debounce_delay)

    def _emit_change(self, change: ConfigChange) -> None:
        for listener in list(self._change_listeners):
            try:
                listener(copy.deepcopy(change.old), copy.deepcopy(change.new))
            except Exception:
                _logger.debug("change listener failed", exc_info=True)

    def _emit_error(self, exc: Exception) -> None:
        if not self._error_listeners:
            _logger.warning("background error for %s: %s", self._path, exc)
            return
        for listener in list(self._error_listeners):
            try:
                listener(exc)
            except Exception:
                _logger.debug("error listener failed", exc_info=True)
