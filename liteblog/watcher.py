"""File watching and debounced rebuilds for the development server.

watchdog reports changes from its own threads; :class:`_ChangeHandler`
turns the relevant ones into :class:`ChangeEvent` objects on a single
queue. :class:`RebuildLoop` is the only consumer. It owns the debounce
window, so a burst of saves produces one rebuild, and rebuilds never
overlap because they all run on its thread.

Key classes:
- ChangeEvent: One add, change or removal of a source file.
- ProjectWatcher: Schedules watchdog observers over a project.
- RebuildLoop: Debounces events and runs rebuilds.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .build import CONFIG_NAME, BuildError

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.15
WATCHED_DIRS = ("pages", "templates", "static")
WATCHED_EVENT_TYPES = {"created", "modified", "deleted", "moved"}

_STOP = object()


@dataclass(frozen=True)
class ChangeEvent:
    """A change to a watched source file.

    Attributes:
        kind: watchdog event type ("created", "modified", "deleted", "moved").
        path: Absolute path of the file.
    """

    kind: str
    path: Path


def is_watched(project_root: Path, path: Path) -> bool:
    """Whether a change to ``path`` should trigger a rebuild.

    Files below ``pages/``, ``templates/`` and ``static/`` count, as does
    ``config.json`` at the project root. Hidden files never count, which
    keeps the build caches and editor swap files out.
    """
    try:
        rel = path.relative_to(project_root)
    except ValueError:
        return False
    if not rel.parts or any(part.startswith(".") for part in rel.parts):
        return False
    if len(rel.parts) == 1:
        return rel.name == CONFIG_NAME
    return rel.parts[0] in WATCHED_DIRS


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, project_root: Path, events: queue.Queue):
        super().__init__()
        self.project_root = project_root
        self.events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in WATCHED_EVENT_TYPES:
            return
        paths = [event.src_path]
        if event.event_type == "moved":
            paths.append(event.dest_path)
        for raw in paths:
            path = Path(str(raw))
            if is_watched(self.project_root, path):
                self.events.put(ChangeEvent(event.event_type, path))
                return


class ProjectWatcher:
    """Watches a project's sources with a watchdog observer.

    Attributes:
        project_root: Root directory of the project.
        events: Queue receiving ChangeEvent objects.
    """

    def __init__(self, project_root: Path, events: queue.Queue):
        self.project_root = project_root.resolve()
        self.events = events
        self._observer: Observer | None = None

    def start(self) -> None:
        handler = _ChangeHandler(self.project_root, self.events)
        observer = Observer()
        for folder in WATCHED_DIRS:
            watch_path = self.project_root / folder
            if watch_path.is_dir():
                observer.schedule(handler, str(watch_path), recursive=True)
        # config.json lives at the root; everything else there is ignored
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None


class RebuildLoop:
    """Single consumer of change events.

    Every event restarts the debounce window; when the window expires with
    events pending, ``rebuild`` runs once for all of them. After a
    successful rebuild ``on_success`` runs (the server clears its file
    cache and tells clients to reload). A failed rebuild is logged and the
    loop keeps going.

    Attributes:
        events: Queue of pending ChangeEvent objects.
        debounce: Quiet period in seconds before rebuilding.
    """

    def __init__(
        self,
        rebuild: Callable[[], object],
        on_success: Callable[[], None] | None = None,
        debounce: float = DEFAULT_DEBOUNCE,
        events: queue.Queue | None = None,
    ):
        self.rebuild = rebuild
        self.on_success = on_success
        self.debounce = debounce
        self.events: queue.Queue = events if events is not None else queue.Queue()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="liteblog-rebuild", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self.events.put(_STOP)
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def run(self) -> None:
        """Consume events until stopped."""
        pending: list[ChangeEvent] = []
        while True:
            try:
                event = self.events.get(timeout=self.debounce if pending else None)
            except queue.Empty:
                self._rebuild(pending)
                pending = []
                continue
            if event is _STOP:
                return
            pending.append(event)

    def _rebuild(self, pending: list[ChangeEvent]) -> None:
        last = pending[-1]
        logger.info(
            "%s: %s (%d changes); rebuilding", last.kind.capitalize(), last.path.name, len(pending)
        )
        try:
            self.rebuild()
        except BuildError as exc:
            logger.error("Build failed: %s", exc)
            return
        except Exception:
            logger.exception("Rebuild failed")
            return
        if self.on_success:
            self.on_success()
        logger.info("Rebuild complete")
