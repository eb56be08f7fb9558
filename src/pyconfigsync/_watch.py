"""Watch/reconcile engine.

Owns:
- the suspension gate that keeps our own reads and writes from triggering
  reconciliation
- the notifier subscription and its hand-off onto the event loop
- reconciliation: re-read, fingerprint, reload and publish external changes
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

from pyconfigsync import _codec, _fingerprint
from pyconfigsync.exceptions import ConfigIOError, ConfigNotFoundError
from pyconfigsync.models import ChangeEvent, ChangeKind, ConfigChange, WatchState
from pyconfigsync.notifier import ChangeNotifier, WatchHandle
from pyconfigsync.state.store import ConfigData
from pyconfigsync.state.sync import SyncPoint
from pyconfigsync.storage import StorageBackend

_logger = logging.getLogger(__name__)


class WatchGate:
    """Counted suspension of change handling.

    Flushes and reconciles hold the gate suspended for the duration of their
    own I/O; notifications arriving meanwhile are deferred until the last
    suspension is released. ``close`` is permanent.
    """

    def __init__(self) -> None:
        self._opened = False
        self._closed = False
        self._suspensions = 0
        self._resume_callbacks: list[Callable[[], None]] = []

    @property
    def state(self) -> WatchState:
        if self._closed:
            return WatchState.CLOSED
        if not self._opened:
            return WatchState.UNWATCHED
        if self._suspensions:
            return WatchState.SUSPENDED
        return WatchState.WATCHING

    @property
    def accepting(self) -> bool:
        return self.state is WatchState.WATCHING

    def open(self) -> None:
        if not self._closed:
            self._opened = True

    def close(self) -> None:
        self._closed = True

    def suspend(self) -> None:
        self._suspensions += 1

    def resume(self) -> None:
        if self._suspensions > 0:
            self._suspensions -= 1
        if self.accepting:
            for callback in list(self._resume_callbacks):
                callback()

    def add_resume_callback(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` whenever the last suspension is released."""
        self._resume_callbacks.append(callback)

    @contextlib.contextmanager
    def suspended(self) -> Iterator[None]:
        self.suspend()
        try:
            yield
        finally:
            self.resume()


async def read_config(
    storage: StorageBackend,
    filename: str,
    *,
    path: str = "",
) -> tuple[dict[str, Any], bytes] | None:
    """Read and decode the config file.

    Returns ``(data, digest)``, or ``None`` when the file does not exist.
    Raises ``ConfigIOError`` or ``CorruptConfigError``.
    """
    try:
        raw = await storage.read_file(filename)
    except ConfigNotFoundError:
        return None
    except ConfigIOError:
        raise
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise ConfigIOError(f"Failed to read {path or filename}: {exc}", path=path) from exc
    data = _codec.decode(raw, path=path)
    return data, _fingerprint.digest(raw)


class WatchEngine:
    """Subscribe to directory notifications and reconcile external writes.

    Notifier callbacks may fire on any thread. They are handed to the event
    loop with ``call_soon_threadsafe``; all state changes happen there, under
    the shared :class:`SyncPoint` lock.
    """

    def __init__(
        self,
        *,
        notifier: ChangeNotifier,
        storage: StorageBackend,
        directory: str | Path,
        filename: str,
        data: ConfigData,
        sync: SyncPoint,
        gate: WatchGate,
        on_change: Callable[[ConfigChange], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self._notifier = notifier
        self._storage = storage
        self._directory = Path(directory)
        self._filename = filename
        self._path = str(self._directory / filename)
        self._data = data
        self._sync = sync
        self._gate = gate
        self._on_change = on_change
        self._on_error = on_error
        self._loop: asyncio.AbstractEventLoop | None = None
        self._handle: WatchHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._pending = False
        gate.add_resume_callback(self._on_gate_resumed)

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Subscribe to the notifier for the config directory."""
        if self._handle is not None or self._gate.state is WatchState.CLOSED:
            return
        self._loop = loop
        try:
            self._handle = self._notifier.watch(self._directory, self._on_notifier_event)
        except OSError as exc:
            raise ConfigIOError(f"Failed to watch {self._directory}: {exc}", path=str(self._directory)) from exc
        self._gate.open()
        _logger.debug("watch started dir=%s file=%s", self._directory, self._filename)

    async def close(self) -> None:
        """Stop watching permanently and wait for in-flight reconciles."""
        self._gate.close()
        handle = self._handle
        self._handle = None
        if handle is not None:
            loop = self._loop or asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, handle.stop)
            except Exception:
                _logger.debug("watch stop failed", exc_info=True)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        _logger.debug("watch closed dir=%s", self._directory)

    def _on_notifier_event(self, event: ChangeEvent) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._dispatch, event)
        except RuntimeError:
            # Loop shut down between the check and the call.
            _logger.debug("dropping change event after loop shutdown: %s", event)

    def _dispatch(self, event: ChangeEvent) -> None:
        if event.name != self._filename or event.kind is not ChangeKind.MODIFIED:
            return
        if self._gate.state is WatchState.SUSPENDED:
            # Our own I/O is in flight; look again once it is done.
            self._pending = True
            _logger.debug("change event deferred while suspended")
            return
        if not self._gate.accepting:
            _logger.debug("change event ignored state=%s", self._gate.state)
            return
        self._pending = False
        assert self._loop is not None  # noqa: S101
        # Suspend before the task runs so the rest of a burst only marks one follow-up.
        self._gate.suspend()
        task = self._loop.create_task(self._run_reconcile())
        self._tasks.add(task)
        task.add_done_callback(self._reconcile_done)

    def _on_gate_resumed(self) -> None:
        if self._pending:
            self._dispatch(ChangeEvent(kind=ChangeKind.MODIFIED, name=self._filename))

    def _reconcile_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        self._gate.resume()

    async def _run_reconcile(self) -> None:
        try:
            change = await self.reconcile()
        except Exception as exc:
            _logger.debug("reconcile failed: %s", exc)
            self._on_error(exc)
            return
        if change is not None:
            self._on_change(change)

    async def reconcile(self) -> ConfigChange | None:
        """Re-read the file and apply it if its content changed.

        Returns the applied change, or ``None`` when the file is missing or
        its digest matches what we last wrote or read. A corrupt file raises
        and leaves the in-memory data untouched.
        """
        async with self._sync.lock:
            loaded = await read_config(self._storage, self._filename, path=self._path)
            if loaded is None:
                _logger.debug("reconcile: %s missing, ignoring", self._path)
                return None
            new_data, new_digest = loaded
            if new_digest == self._sync.digest:
                _logger.debug("reconcile: digest unchanged (%s)", _fingerprint.digest_hex(new_digest))
                return None
            snapshot = copy.deepcopy(new_data)
            old_data = self._data.load(new_data)
            self._sync.digest = new_digest
        _logger.info("reloaded %s after external change", self._path)
        return ConfigChange(old=old_data, new=snapshot)
