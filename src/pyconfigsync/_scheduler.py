"""Debounced persistence.

``Persister`` runs a single flush: encode, fingerprint, write only when the
content changed. ``FlushScheduler`` decides when flushes run: it keeps at
most one pending timer and coalesces every mutation made before it fires.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pyconfigsync import _codec, _fingerprint
from pyconfigsync._watch import WatchGate
from pyconfigsync.exceptions import ConfigIOError
from pyconfigsync.models import SchedulerState
from pyconfigsync.state.store import ConfigData
from pyconfigsync.state.sync import SyncPoint
from pyconfigsync.storage import StorageBackend

_logger = logging.getLogger(__name__)


class Persister:
    """Write the in-memory config to storage when it has changed."""

    def __init__(
        self,
        *,
        storage: StorageBackend,
        filename: str,
        data: ConfigData,
        sync: SyncPoint,
        gate: WatchGate,
        path: str = "",
    ) -> None:
        self._storage = storage
        self._filename = filename
        self._data = data
        self._sync = sync
        self._gate = gate
        self._path = path or filename

    async def flush(self) -> bool:
        """Persist the data if dirty. Returns True if the file was written.

        On a write failure the data stays dirty, so the next flush retries.
        """
        if not self._data.dirty:
            return False
        async with self._sync.lock:
            if not self._data.dirty:
                return False
            with self._gate.suspended():
                generation = self._data.generation
                raw = _codec.encode(self._data.view())
                new_digest = _fingerprint.digest(raw)
                if new_digest == self._sync.digest:
                    # Same bytes as on disk: nothing to write, and nothing unsaved either.
                    self._data.mark_clean(generation)
                    _logger.debug("flush skipped, digest unchanged (%s)", _fingerprint.digest_hex(new_digest))
                    return False
                try:
                    await self._storage.write_file(self._filename, raw)
                except ConfigIOError:
                    raise
                except OSError as exc:
                    raise ConfigIOError(f"Failed to write {self._path}: {exc}", path=self._path) from exc
                self._sync.digest = new_digest
                self._data.mark_clean(generation)
                _logger.debug(
                    "flushed %s (%d bytes, digest=%s)",
                    self._path,
                    len(raw),
                    _fingerprint.digest_hex(new_digest),
                )
                return True


class FlushScheduler:
    """Debounce timer around a flush coroutine.

    State machine: ``IDLE -> ARMED -> FLUSHING -> IDLE``; ``CLOSED`` once
    :meth:`close` has run. Errors from timer-triggered flushes have no
    waiting caller and go to ``on_error``.
    """

    def __init__(
        self,
        *,
        flush: Callable[[], Awaitable[bool]],
        on_error: Callable[[Exception], None],
    ) -> None:
        self._flush = flush
        self._on_error = on_error
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._running = 0
        self._closed = False

    @property
    def state(self) -> SchedulerState:
        if self._running:
            return SchedulerState.FLUSHING
        if self._timer is not None:
            return SchedulerState.ARMED
        if self._closed:
            return SchedulerState.CLOSED
        return SchedulerState.IDLE

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def arm(self, delay: float) -> bool:
        """(Re)start the debounce timer. Returns False if it cannot be armed."""
        if self._closed or self._loop is None:
            return False
        self.cancel()
        self._timer = self._loop.call_later(delay, self._on_timer)
        return True

    def cancel(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()

    async def fire_now(self) -> bool:
        """Cancel the timer and flush immediately; errors propagate to the caller."""
        self.cancel()
        return await self._run()

    async def close(self) -> None:
        """Stop arming timers and wait for a timer-triggered flush in flight."""
        self._closed = True
        self.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _on_timer(self) -> None:
        self._timer = None
        assert self._loop is not None  # noqa: S101
        task = self._loop.create_task(self._run_background())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_background(self) -> None:
        try:
            await self._run()
        except Exception as exc:
            _logger.debug("background flush failed: %s", exc)
            self._on_error(exc)

    async def _run(self) -> bool:
        self._running += 1
        try:
            return await self._flush()
        finally:
            self._running -= 1
