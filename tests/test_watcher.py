import queue
import time
from pathlib import Path

from liteblog import watcher
from liteblog.build import BuildError
from liteblog.watcher import ChangeEvent, ProjectWatcher, RebuildLoop, _ChangeHandler, is_watched


class DummyEvent:
    def __init__(self, path, event_type="modified", is_directory=False, dest_path=""):
        self.src_path = str(path)
        self.dest_path = str(dest_path)
        self.event_type = event_type
        self.is_directory = is_directory


def wait_for(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_is_watched_filters_paths(tmp_path):
    assert is_watched(tmp_path, tmp_path / "pages" / "post.md")
    assert is_watched(tmp_path, tmp_path / "templates" / "post.html")
    assert is_watched(tmp_path, tmp_path / "static" / "css" / "style.css")
    assert is_watched(tmp_path, tmp_path / "config.json")
    assert not is_watched(tmp_path, tmp_path / ".liteblog-cache.json")
    assert not is_watched(tmp_path, tmp_path / "README.md")
    assert not is_watched(tmp_path, tmp_path / "public" / "index.html")
    assert not is_watched(tmp_path, tmp_path / "pages" / ".post.md.swp")
    assert not is_watched(tmp_path, Path("/elsewhere/pages/post.md"))


def test_change_handler_queues_relevant_events(tmp_path):
    events = queue.Queue()
    handler = _ChangeHandler(tmp_path, events)

    handler.on_any_event(DummyEvent(tmp_path / "pages", is_directory=True))
    handler.on_any_event(DummyEvent(tmp_path / "pages" / "a.md", event_type="opened"))
    handler.on_any_event(DummyEvent(tmp_path / "public" / "a.html"))
    assert events.empty()

    handler.on_any_event(DummyEvent(tmp_path / "pages" / "a.md", event_type="created"))
    handler.on_any_event(
        DummyEvent(
            tmp_path / "pages" / ".a.md.tmp",
            event_type="moved",
            dest_path=tmp_path / "pages" / "a.md",
        )
    )
    handler.on_any_event(DummyEvent(tmp_path / "config.json", event_type="deleted"))

    queued = [events.get_nowait() for _ in range(3)]
    assert queued == [
        ChangeEvent("created", tmp_path / "pages" / "a.md"),
        ChangeEvent("moved", tmp_path / "pages" / "a.md"),
        ChangeEvent("deleted", tmp_path / "config.json"),
    ]


def test_burst_of_events_triggers_one_rebuild():
    calls = []
    reloads = []
    loop = RebuildLoop(lambda: calls.append("build"), on_success=lambda: reloads.append(1), debounce=0.1)
    loop.start()
    try:
        for name in ("a.md", "b.md", "c.md"):
            loop.events.put(ChangeEvent("modified", Path(name)))
        assert wait_for(lambda: len(calls) == 1)
        time.sleep(0.3)
        assert calls == ["build"]
        assert reloads == [1]

        loop.events.put(ChangeEvent("modified", Path("d.md")))
        assert wait_for(lambda: len(calls) == 2)
        assert wait_for(lambda: len(reloads) == 2)
    finally:
        loop.stop()


def test_failed_rebuild_skips_reload_and_keeps_running(caplog):
    outcomes = [BuildError(Path("pages/bad.md"), "boom"), RuntimeError("unexpected"), None]
    calls = []
    reloads = []

    def rebuild():
        calls.append(1)
        outcome = outcomes.pop(0)
        if outcome is not None:
            raise outcome

    loop = RebuildLoop(rebuild, on_success=lambda: reloads.append(1), debounce=0.02)
    loop.start()
    try:
        for expected in (1, 2, 3):
            loop.events.put(ChangeEvent("modified", Path("bad.md")))
            assert wait_for(lambda: len(calls) == expected)
        assert wait_for(lambda: reloads == [1])
    finally:
        loop.stop()

    assert "Build failed: pages/bad.md: boom" in caplog.text
    assert "Rebuild failed" in caplog.text


def test_stop_ends_idle_loop():
    loop = RebuildLoop(lambda: None)
    loop.start()
    loop.stop(timeout=2)
    assert loop._thread is None


def test_project_watcher_schedules_source_dirs(monkeypatch, tmp_path):
    (tmp_path / "pages").mkdir()
    (tmp_path / "static").mkdir()

    class DummyObserver:
        instances = []

        def __init__(self):
            self.scheduled = []
            self.calls = []
            DummyObserver.instances.append(self)

        def schedule(self, handler, path, recursive=False):
            self.scheduled.append((Path(path), recursive))

        def start(self):
            self.calls.append("start")

        def stop(self):
            self.calls.append("stop")

        def join(self):
            self.calls.append("join")

    monkeypatch.setattr(watcher, "Observer", DummyObserver)
    root = tmp_path.resolve()
    project = ProjectWatcher(tmp_path, queue.Queue())
    project.start()
    project.stop()

    observer = DummyObserver.instances[0]
    assert observer.scheduled == [
        (root / "pages", True),
        (root / "static", True),
        (root, False),
    ]
    assert observer.calls == ["start", "stop", "join"]
