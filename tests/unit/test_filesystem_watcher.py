import queue
import sys
import threading
import time

import pytest

from app.models.schemas import WatchEventKind
from domains.file_ingest.collectors.filesystem import (
    EventDebouncer,
    FolderWatcher,
    SinkClosed,
    is_supported,
)
from domains.file_ingest.errors import WatchSetupError


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _debouncer(sink=None, clock=None):
    return EventDebouncer(sink or (lambda event: None), debounce_ms=500, clock=clock or FakeClock())


def test_is_supported_is_case_insensitive(tmp_path):
    assert is_supported(tmp_path / "report.PDF")
    assert is_supported(tmp_path / "notes.md")
    assert not is_supported(tmp_path / "movie.mkv")
    assert not is_supported(tmp_path / "Makefile")


def test_maps_created_and_modified(tmp_path):
    debouncer = _debouncer()

    created = debouncer.process("created", str(tmp_path / "a.json"))
    modified = debouncer.process("modified", str(tmp_path / "b.json"))

    assert created.kind == WatchEventKind.CREATED
    assert created.path == tmp_path / "a.json"
    assert modified.kind == WatchEventKind.MODIFIED


def test_drops_other_event_kinds(tmp_path):
    debouncer = _debouncer()

    for kind in ("deleted", "moved", "closed", "opened"):
        assert debouncer.process(kind, str(tmp_path / f"{kind}.json")) is None


def test_drops_unsupported_extensions(tmp_path):
    assert _debouncer().process("created", str(tmp_path / "video.mkv")) is None


def test_drops_directories(tmp_path):
    directory = tmp_path / "looks_like.json"
    directory.mkdir()
    debouncer = _debouncer()

    assert debouncer.process("created", str(directory)) is None
    assert debouncer.process("created", str(tmp_path / "other.json"), True) is None


def test_events_within_window_are_collapsed(tmp_path):
    clock = FakeClock()
    debouncer = _debouncer(clock=clock)
    path = str(tmp_path / "report.md")

    first = debouncer.process("created", path)
    clock.now += 0.2
    second = debouncer.process("modified", path)

    assert first is not None
    assert second is None


def test_events_outside_window_are_both_emitted(tmp_path):
    clock = FakeClock()
    debouncer = _debouncer(clock=clock)
    path = str(tmp_path / "report.md")

    first = debouncer.process("modified", path)
    clock.now += 0.6
    second = debouncer.process("modified", path)

    assert first is not None
    assert second is not None


def test_open_and_close_do_not_swallow_modify(tmp_path):
    debouncer = _debouncer()
    path = str(tmp_path / "notes.md")

    assert debouncer.process("opened", path) is None
    modified = debouncer.process("modified", path)
    assert debouncer.process("closed", path) is None

    assert modified is not None
    assert modified.kind == WatchEventKind.MODIFIED


def test_expired_paths_are_forgotten(tmp_path):
    clock = FakeClock()
    debouncer = _debouncer(clock=clock)

    debouncer.process("created", str(tmp_path / "a.md"))
    clock.now += 0.6
    debouncer.process("created", str(tmp_path / "b.md"))

    assert list(debouncer.last_seen) == [tmp_path / "b.md"]


def test_debounce_is_per_path(tmp_path):
    debouncer = _debouncer()

    assert debouncer.process("created", str(tmp_path / "a.md")) is not None
    assert debouncer.process("created", str(tmp_path / "b.md")) is not None


def test_run_stops_when_sink_closes(tmp_path):
    received = []

    def sink(event):
        received.append(event)
        raise SinkClosed()

    debouncer = EventDebouncer(sink, debounce_ms=0)
    raw = queue.Queue()
    stop = threading.Event()
    raw.put(("created", str(tmp_path / "a.md"), False))
    raw.put(("created", str(tmp_path / "b.md"), False))

    thread = threading.Thread(target=debouncer.run, args=(raw, stop), daemon=True)
    thread.start()
    thread.join(timeout=2)

    assert not thread.is_alive()
    assert len(received) == 1
    assert stop.is_set()


def test_run_returns_when_stopped(tmp_path):
    debouncer = EventDebouncer(lambda event: None)
    stop = threading.Event()
    stop.set()

    debouncer.run(queue.Queue(), stop)


def test_folder_watcher_emits_for_new_file(tmp_path):
    pytest.importorskip("watchdog", reason="watchdog dependency is required for watcher tests")

    received = []
    with FolderWatcher.start(tmp_path, received.append, debounce_ms=500) as watcher:
        assert watcher.is_running
        (tmp_path / "report.md").write_text("hello")

        deadline = time.monotonic() + 5
        while not received and time.monotonic() < deadline:
            time.sleep(0.05)

    assert received, "expected at least one watch event"
    assert received[0].path.name == "report.md"
    assert not watcher.is_running


def test_folder_watcher_emits_for_edit_of_existing_file(tmp_path):
    pytest.importorskip("watchdog", reason="watchdog dependency is required for watcher tests")

    notes = tmp_path / "notes.md"
    notes.write_text("v1\n")

    received = []
    with FolderWatcher.start(tmp_path, received.append, debounce_ms=500):
        with notes.open("a") as handle:
            handle.write("v2\n")

        deadline = time.monotonic() + 5
        while not received and time.monotonic() < deadline:
            time.sleep(0.05)

    assert received, "expected a watch event for the edit"
    assert received[0].path.name == "notes.md"
    assert received[0].kind == WatchEventKind.MODIFIED


@pytest.mark.skipif(sys.platform != "linux", reason="inotify reports missing paths at start")
def test_folder_watcher_missing_folder_fails_setup(tmp_path):
    pytest.importorskip("watchdog", reason="watchdog dependency is required for watcher tests")

    with pytest.raises(WatchSetupError):
        FolderWatcher.start(tmp_path / "missing", lambda event: None)
