from __future__ import annotations

import asyncio
from typing import Any

import pytest

from fakes import FakeNotifier, FakeStorage, settle
from pyconfigsync._watch import WatchGate
from pyconfigsync.client import ConfigStore
from pyconfigsync.config import StoreOptions
from pyconfigsync.exceptions import ConfigIOError, CorruptConfigError
from pyconfigsync.models import ChangeKind, WatchState


class _Recorder:
    def __init__(self) -> None:
        self.changes: list[tuple[dict[str, Any], dict[str, Any]]] = []
        self.errors: list[Exception] = []

    def on_change(self, old: dict[str, Any], new: dict[str, Any]) -> None:
        self.changes.append((old, new))

    def on_error(self, exc: Exception) -> None:
        self.errors.append(exc)


def _store(storage: FakeStorage, notifier: FakeNotifier, recorder: _Recorder, delay_ms: int = 0) -> ConfigStore:
    return ConfigStore(
        StoreOptions(directory="/cfg", debounce_delay_ms=delay_ms),
        storage=storage,
        notifier=notifier,
        on_change=recorder.on_change,
        on_error=recorder.on_error,
    )


def test_gate_states() -> None:
    gate = WatchGate()
    assert gate.state is WatchState.UNWATCHED

    gate.open()
    assert gate.state is WatchState.WATCHING
    with gate.suspended():
        with gate.suspended():
            assert gate.state is WatchState.SUSPENDED
        assert gate.state is WatchState.SUSPENDED
    assert gate.state is WatchState.WATCHING

    gate.close()
    gate.open()
    assert gate.state is WatchState.CLOSED


def test_gate_resumes_on_error() -> None:
    gate = WatchGate()
    gate.open()
    with pytest.raises(RuntimeError), gate.suspended():
        raise RuntimeError("boom")
    assert gate.accepting


@pytest.mark.asyncio
async def test_external_change_reloads_and_notifies(storage: FakeStorage, notifier: FakeNotifier) -> None:
    storage.files["options.json"] = b'{"a":1}'
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()
    assert notifier.directories == ["/cfg"]
    assert store.watch_state is WatchState.WATCHING

    storage.files["options.json"] = b'{"a":2,"b":[1]}'
    notifier.emit("options.json")
    await settle()

    assert store.snapshot() == {"a": 2, "b": [1]}
    assert recorder.changes == [({"a": 1}, {"a": 2, "b": [1]})]
    assert recorder.errors == []
    assert not store.is_dirty
    await store.exit()


@pytest.mark.asyncio
async def test_identical_content_emits_nothing(storage: FakeStorage, notifier: FakeNotifier) -> None:
    storage.files["options.json"] = b'{"a":1}'
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()

    notifier.emit("options.json")
    await settle()

    assert recorder.changes == []
    assert len(storage.reads) == 2
    await store.exit()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("name", "kind"),
    [
        ("other.json", ChangeKind.MODIFIED),
        ("options.json", ChangeKind.CREATED),
        ("options.json", ChangeKind.REMOVED),
        ("options.json", ChangeKind.OTHER),
    ],
)
async def test_unrelated_events_are_ignored(
    storage: FakeStorage, notifier: FakeNotifier, name: str, kind: ChangeKind
) -> None:
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()
    reads_after_init = len(storage.reads)

    storage.files["options.json"] = b'{"a":1}'
    notifier.emit(name, kind)
    await settle()

    assert len(storage.reads) == reads_after_init
    assert store.snapshot() == {}
    await store.exit()


@pytest.mark.asyncio
async def test_missing_file_during_reconcile_is_a_no_op(storage: FakeStorage, notifier: FakeNotifier) -> None:
    storage.files["options.json"] = b'{"a":1}'
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()

    del storage.files["options.json"]
    notifier.emit("options.json")
    await settle()

    assert store.get("a") == 1
    assert recorder.changes == []
    assert recorder.errors == []
    assert store.watch_state is WatchState.WATCHING
    await store.exit()


@pytest.mark.asyncio
async def test_external_corruption_keeps_data_and_keeps_watching(
    storage: FakeStorage, notifier: FakeNotifier
) -> None:
    storage.files["options.json"] = b'{"a":1}'
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()

    storage.files["options.json"] = b'{"a": '
    notifier.emit("options.json")
    await settle()

    assert store.snapshot() == {"a": 1}
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], CorruptConfigError)
    assert store.watch_state is WatchState.WATCHING

    storage.files["options.json"] = b'{"a":3}'
    notifier.emit("options.json")
    await settle()

    assert store.get("a") == 3
    assert recorder.changes == [({"a": 1}, {"a": 3})]
    await store.exit()


@pytest.mark.asyncio
async def test_read_error_during_reconcile_is_reported(storage: FakeStorage, notifier: FakeNotifier) -> None:
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()

    storage.fail_reads = True
    notifier.emit("options.json")
    await settle()

    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], ConfigIOError)
    assert store.watch_state is WatchState.WATCHING
    await store.exit()


@pytest.mark.asyncio
async def test_own_writes_do_not_trigger_change_events(storage: FakeStorage, notifier: FakeNotifier) -> None:
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    # Every write produces a notification, like a real filesystem would.
    storage.after_write = notifier.emit
    await store.init()

    store.set("a", 1)
    await settle()
    store.set("a", 2)
    await store.flush()
    await settle()

    assert storage.files["options.json"] == b'{"a":2}'
    assert recorder.changes == []
    assert recorder.errors == []
    await store.exit()


@pytest.mark.asyncio
async def test_burst_of_notifications_applies_one_change(storage: FakeStorage, notifier: FakeNotifier) -> None:
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()
    reads_after_init = len(storage.reads)

    storage.files["options.json"] = b'{"x":1}'
    for _ in range(5):
        notifier.emit("options.json")
    await settle()

    # One reconcile for the burst, one follow-up for the events it deferred.
    assert len(storage.reads) == reads_after_init + 2
    assert recorder.changes == [({}, {"x": 1})]
    await store.exit()


@pytest.mark.asyncio
async def test_change_during_reconcile_read_is_picked_up(storage: FakeStorage, notifier: FakeNotifier) -> None:
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()

    release = asyncio.Event()
    storage.hold_reads = release
    storage.files["options.json"] = b'{"v":1}'
    notifier.emit("options.json")
    await asyncio.wait_for(storage.read_started.wait(), timeout=1)

    # Another process writes again while the first read is still in flight.
    storage.files["options.json"] = b'{"v":2}'
    notifier.emit("options.json")
    await settle()
    assert store.watch_state is WatchState.SUSPENDED

    storage.hold_reads = None
    release.set()
    await settle()

    assert store.snapshot() == {"v": 2}
    assert recorder.changes == [({}, {"v": 1}), ({"v": 1}, {"v": 2})]
    assert store.watch_state is WatchState.WATCHING
    await store.exit()


@pytest.mark.asyncio
async def test_external_change_discards_unsaved_local_edits(storage: FakeStorage, notifier: FakeNotifier) -> None:
    recorder = _Recorder()
    store = _store(storage, notifier, recorder, delay_ms=1000)
    await store.init()

    store.set("local", True)
    storage.files["options.json"] = b'{"remote":true}'
    notifier.emit("options.json")
    await settle()

    assert store.snapshot() == {"remote": True}
    assert not store.is_dirty
    await store.exit()
    assert storage.writes == []


@pytest.mark.asyncio
async def test_listener_failures_do_not_break_the_store(storage: FakeStorage, notifier: FakeNotifier) -> None:
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)

    def broken(_old: dict[str, Any], _new: dict[str, Any]) -> None:
        raise RuntimeError("listener bug")

    store.add_change_listener(broken)
    await store.init()

    storage.files["options.json"] = b'{"a":1}'
    notifier.emit("options.json")
    await settle()

    assert store.get("a") == 1
    assert len(recorder.changes) == 1
    assert store.watch_state is WatchState.WATCHING
    await store.exit()


@pytest.mark.asyncio
async def test_unsubscribed_listener_is_not_called(storage: FakeStorage, notifier: FakeNotifier) -> None:
    recorder = _Recorder()
    store = ConfigStore(StoreOptions(directory="/cfg"), storage=storage, notifier=notifier)
    remove = store.add_change_listener(recorder.on_change)
    await store.init()
    remove()

    storage.files["options.json"] = b'{"a":1}'
    notifier.emit("options.json")
    await settle()

    assert store.get("a") == 1
    assert recorder.changes == []
    await store.exit()


@pytest.mark.asyncio
async def test_exit_closes_subscription_permanently(storage: FakeStorage, notifier: FakeNotifier) -> None:
    recorder = _Recorder()
    store = _store(storage, notifier, recorder)
    await store.init()

    await store.exit()
    assert store.watch_state is WatchState.CLOSED
    assert notifier.handles[0].stopped == 1

    storage.files["options.json"] = b'{"a":1}'
    notifier.emit("options.json")
    await settle()

    assert store.snapshot() == {}
    assert recorder.changes == []


@pytest.mark.asyncio
async def test_watch_disabled_never_subscribes(storage: FakeStorage, notifier: FakeNotifier) -> None:
    store = ConfigStore(StoreOptions(directory="/cfg", watch=False), storage=storage, notifier=notifier)
    await store.init()

    assert notifier.directories == []
    assert store.watch_state is WatchState.UNWATCHED
    await store.exit()
