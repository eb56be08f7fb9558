"""Filesystem change-notification backends."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from pyconfigsync.models import ChangeEvent, ChangeKind

_logger = logging.getLogger(__name__)

_JOIN_TIMEOUT_S = 5.0

_KIND_BY_EVENT_TYPE: dict[str, ChangeKind] = {
    "modified": ChangeKind.MODIFIED,
    "created": ChangeKind.CREATED,
    "deleted": ChangeKind.REMOVED,
}


class WatchHandle(Protocol):
    def stop(self) -> None:
        """Stop delivering events. Safe to call more than once."""
        ...


class ChangeNotifier(Protocol):
    """Structural interface for directory change notifications.

    ``on_event`` may be called from any thread; consumers must hand the
    event over to their own execution context.
    """

    def watch(self, directory: str | Path, on_event: Callable[[ChangeEvent], None]) -> WatchHandle: ...


def translate_event(event: FileSystemEvent) -> ChangeEvent | None:
    """Map a watchdog event onto a :class:`ChangeEvent`.

    Directory events are dropped. A file moved into place counts as a
    modification of its destination, which is how atomic replace-by-rename
    writers show up.
    """
    if event.is_directory:
        return None
    if event.event_type == "moved":
        dest = os.fsdecode(event.dest_path)
        if not dest:
            return None
        return ChangeEvent(kind=ChangeKind.MODIFIED, name=os.path.basename(dest))
    kind = _KIND_BY_EVENT_TYPE.get(event.event_type, ChangeKind.OTHER)
    return ChangeEvent(kind=kind, name=os.path.basename(os.fsdecode(event.src_path)))


class _ForwardingHandler(FileSystemEventHandler):
    def __init__(self, on_event: Callable[[ChangeEvent], None]) -> None:
        super().__init__()
        self._on_event = on_event

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            change = translate_event(event)
            if change is None:
                return
            self._on_event(change)
        except Exception:
            _logger.debug("change event dispatch failed", exc_info=True)


class _ObserverHandle:
    def __init__(self, observer: Observer, directory: Path) -> None:
        self._observer: Observer | None = observer
        self._directory = directory

    def stop(self) -> None:
        observer = self._observer
        self._observer = None
        if observer is None:
            return
        try:
            observer.stop()
        finally:
            observer.join(timeout=_JOIN_TIMEOUT_S)
            _logger.debug("stopped watching %s", self._directory)


class WatchdogNotifier:
    """Watch one directory (non-recursively) with a watchdog ``Observer``.

    Events are delivered on the observer thread.
    """

    def watch(self, directory: str | Path, on_event: Callable[[ChangeEvent], None]) -> WatchHandle:
        path = Path(directory)
        path.mkdir(parents=True, exist_ok=True)

        observer = Observer()
        observer.schedule(_ForwardingHandler(on_event), str(path), recursive=False)
        observer.daemon = True
        observer.start()
        _logger.debug("watching %s", path)
        return _ObserverHandle(observer, path)
