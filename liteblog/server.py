"""Development server for liteblog.

Serves the built site with live reload and sane defaults for local authoring:
- Injects a reload script into HTML responses.
- Answers conditional requests with 304 using content fingerprints.
- Rejects path traversal attempts with a 403.
- Serves 404.html (when present) for missing paths.
- Watches source folders and triggers rebuilds plus client reloads.

Key classes:
- DevServer: Main class for running the development server.
- FileCache: Bounded, mtime-validated cache of served files.
- LiveReloadRequestHandler: HTTP request handler for the output tree.

Functions:
    sanitize_path: Map a request path to a file under the output root.
    cache_control: Cache-Control header value for a content type.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import threading
from collections import deque
from dataclasses import dataclass
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote, urlsplit

from .build import OUTPUT_DIR_NAME, build_site
from .livereload import LIVE_RELOAD_PATH, LiveReloadHub, inject_reload_script
from .watcher import DEFAULT_DEBOUNCE, ProjectWatcher, RebuildLoop

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
FILE_CACHE_CAPACITY = 50

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
DEV_CACHE_CONTROL = "no-cache, no-store, must-revalidate"


def cache_control(content_type: str, dev_mode: bool = True) -> str:
    """Cache-Control value for a response.

    Args:
        content_type: MIME type of the response.
        dev_mode: Development mode disables caching entirely.

    Returns:
        Header value.
    """
    if dev_mode:
        return DEV_CACHE_CONTROL
    if content_type.startswith(("image/", "font/")) or "font" in content_type:
        return "public, max-age=31536000, immutable"
    if "css" in content_type or "javascript" in content_type:
        return "public, max-age=86400"
    return "public, max-age=3600"


def sanitize_path(root: Path, url_path: str) -> Path | None:
    """Resolve a request path to a location inside ``root``.

    Args:
        root: Output directory being served.
        url_path: Path component of the request URL, still percent-encoded.

    Returns:
        The resolved path, or None when the request must be refused: it
        does not decode, contains ``..``, ``//``, a backslash or NUL, or
        resolves outside ``root``.

    Examples:
        >>> sanitize_path(Path("/srv/public"), "/%2e%2e/etc/passwd") is None
        True
    """
    try:
        decoded = unquote(url_path, errors="strict")
    except UnicodeDecodeError:
        return None
    if any(bad in decoded for bad in ("..", "//", "\\", "\x00")):
        return None
    base = root.resolve()
    resolved = (base / decoded.lstrip("/")).resolve()
    if resolved != base and base not in resolved.parents:
        return None
    return resolved


@dataclass(frozen=True)
class CachedFile:
    """A served file held in memory.

    Attributes:
        content: Raw file bytes.
        mtime: Modification time when the file was read.
        etag: Quoted MD5 hex digest of ``content``.
    """

    content: bytes
    mtime: float
    etag: str


def fingerprint(content: bytes) -> str:
    return f'"{hashlib.md5(content).hexdigest()}"'


class FileCache:
    """Bounded cache of served files, evicting the oldest insertion first.

    Keys live in a deque in insertion order next to the entry mapping, so
    eviction is a ``popleft``. Refreshing a stale entry replaces it in place
    and keeps its position. Entries are valid while the file's mtime has not
    advanced past the recorded one.

    Attributes:
        capacity: Maximum number of entries.
    """

    def __init__(self, capacity: int = FILE_CACHE_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: dict[Path, CachedFile] = {}
        self._order: deque[Path] = deque()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def get(self, path: Path) -> CachedFile | None:
        """Return the cached entry if the file has not changed since."""
        with self._lock:
            entry = self._entries.get(path)
        if entry is None:
            return None
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None
        if mtime > entry.mtime:
            return None
        return entry

    def put(self, path: Path, content: bytes, mtime: float) -> CachedFile:
        entry = CachedFile(content=content, mtime=mtime, etag=fingerprint(content))
        with self._lock:
            if path not in self._entries:
                while len(self._order) >= self.capacity:
                    del self._entries[self._order.popleft()]
                self._order.append(path)
            self._entries[path] = entry
        return entry

    def load(self, path: Path) -> CachedFile:
        """Return the entry for ``path``, reading the file on a miss.

        Raises:
            OSError: If the file cannot be read.
        """
        entry = self.get(path)
        if entry is not None:
            return entry
        mtime = path.stat().st_mtime
        return self.put(path, path.read_bytes(), mtime)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._order.clear()


class LiveReloadRequestHandler(SimpleHTTPRequestHandler):
    """Serves the output tree and the live reload event stream.

    Attributes:
        file_cache: Shared cache of served files.
        hub: Live reload client registry.
        dev_mode: Disable browser caching and inject the reload script.
    """

    file_cache: FileCache
    hub: LiveReloadHub
    dev_mode: bool = True

    def __init__(
        self,
        *args,
        file_cache: FileCache,
        hub: LiveReloadHub,
        dev_mode: bool = True,
        **kwargs,
    ):
        self.file_cache = file_cache
        self.hub = hub
        self.dev_mode = dev_mode
        super().__init__(*args, **kwargs)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self):
        self._serve(send_body=True)

    def do_HEAD(self):
        self._serve(send_body=False)

    def _serve(self, send_body: bool) -> None:
        url_path = urlsplit(self.path).path
        if url_path == LIVE_RELOAD_PATH and send_body:
            self._serve_events()
            return

        target = self._resolve(url_path)
        if target is None:
            self._send_text(HTTPStatus.FORBIDDEN, "Forbidden", send_body)
            return
        if not target.is_file():
            self._serve_404(send_body)
            return

        try:
            entry = self.file_cache.load(target)
        except OSError:
            self._serve_404(send_body)
            return

        content_type = self.guess_type(str(target))
        caching = cache_control(content_type, self.dev_mode)
        if self.headers.get("If-None-Match") == entry.etag:
            self.send_response(HTTPStatus.NOT_MODIFIED)
            self.send_header("ETag", entry.etag)
            self.send_header("Cache-Control", caching)
            self._end_with_security_headers()
            return

        body = entry.content
        if content_type == "text/html":
            body = self._with_reload_script(body)
            content_type = "text/html; charset=utf-8"
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("ETag", entry.etag)
        self.send_header("Cache-Control", caching)
        self._end_with_security_headers()
        if send_body:
            self.wfile.write(body)

    def _resolve(self, url_path: str) -> Path | None:
        """Map a URL path to a file, or None when the request is refused.

        ``/`` serves ``index.html``. A path without an extension tries
        ``{path}.html`` first and ``{path}/index.html`` second.
        """
        root = Path(self.directory)
        if url_path in ("", "/"):
            url_path = "/index.html"
        if Path(url_path).suffix:
            return sanitize_path(root, url_path)
        page = sanitize_path(root, url_path.rstrip("/") + ".html")
        if page is None:
            return None
        if page.is_file():
            return page
        index = sanitize_path(root, url_path.rstrip("/") + "/index.html")
        return index if index is not None else page

    def _with_reload_script(self, body: bytes) -> bytes:
        if not self.dev_mode:
            return body
        return inject_reload_script(body.decode("utf-8", errors="replace")).encode("utf-8")

    def _serve_404(self, send_body: bool) -> None:
        """Serve 404.html (when present) with the reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if not error_page.is_file():
            self._send_text(HTTPStatus.NOT_FOUND, "404 Not Found", send_body)
            return
        body = self._with_reload_script(error_page.read_bytes())
        self.send_response(HTTPStatus.NOT_FOUND)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", DEV_CACHE_CONTROL)
        self._end_with_security_headers()
        if send_body:
            self.wfile.write(body)

    def _send_text(self, status: HTTPStatus, text: str, send_body: bool) -> None:
        body = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self._end_with_security_headers()
        if send_body:
            self.wfile.write(body)

    def _serve_events(self) -> None:
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", "text/event-stream")
        self.send_header("Cache-Control", "no-cache")
        self.send_header("Connection", "keep-alive")
        self.send_header("Access-Control-Allow-Origin", "*")
        self._end_with_security_headers()
        self.wfile.flush()
        client = self.hub.subscribe()
        self.hub.stream(client, self.wfile)
        self.close_connection = True

    def _end_with_security_headers(self) -> None:
        for name, value in SECURITY_HEADERS.items():
            self.send_header(name, value)
        self.end_headers()


def make_server(
    output_dir: Path,
    file_cache: FileCache,
    hub: LiveReloadHub,
    host: str = "",
    port: int = DEFAULT_PORT,
    dev_mode: bool = True,
) -> ThreadingHTTPServer:
    """Create (and bind) an HTTP server for ``output_dir``.

    Args:
        output_dir: Directory to serve.
        file_cache: Cache shared with the rebuild loop.
        hub: Live reload client registry.
        host: Interface to bind; all interfaces by default.
        port: Port to bind; 0 picks a free one.
        dev_mode: Disable browser caching and inject the reload script.

    Returns:
        A bound server; call ``serve_forever`` to run it.
    """
    handler = functools.partial(
        LiveReloadRequestHandler,
        directory=str(output_dir),
        file_cache=file_cache,
        hub=hub,
        dev_mode=dev_mode,
    )
    httpd = ThreadingHTTPServer((host, port), handler)
    httpd.daemon_threads = True
    return httpd


class DevServer:
    """Development server with live reload functionality.

    Attributes:
        project_root: Root directory of the project.
        output_dir: Directory where the built site is served from.
        port: Port for the HTTP server.
        file_cache: Cache of served files, cleared after each rebuild.
        hub: Connected live reload clients.
    """

    def __init__(
        self,
        project_root: Path,
        port: int = DEFAULT_PORT,
        host: str = "",
        debounce: float = DEFAULT_DEBOUNCE,
    ):
        self.project_root = project_root
        self.output_dir = project_root / OUTPUT_DIR_NAME
        self.port = port
        self.host = host
        self.debounce = debounce
        self.file_cache = FileCache()
        self.hub = LiveReloadHub()
        self._httpd: ThreadingHTTPServer | None = None
        self._watcher: ProjectWatcher | None = None
        self._loop: RebuildLoop | None = None

    def rebuild(self) -> None:
        """Incremental rebuild run by the rebuild loop."""
        build_site(self.project_root, incremental=True)

    def start(self) -> None:  # pragma: no cover - integration path
        """Build from scratch, then serve and watch until interrupted.

        Raises:
            BuildError: If the initial build fails.
        """
        logger.info("Initial build...")
        build_site(self.project_root, incremental=False)

        self._loop = RebuildLoop(
            self.rebuild,
            on_success=self._after_rebuild,
            debounce=self.debounce,
        )
        self._loop.start()
        self._watcher = ProjectWatcher(self.project_root, self._loop.events)
        self._watcher.start()

        self._httpd = make_server(self.output_dir, self.file_cache, self.hub, self.host, self.port)
        logger.info("Dev server running at http://localhost:%d", self.port)
        try:
            self._httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        finally:
            self.stop()

    def _after_rebuild(self) -> None:
        self.file_cache.clear()
        self.hub.broadcast()

    def stop(self) -> None:
        if self._watcher:
            self._watcher.stop()
            self._watcher = None
        if self._loop:
            self._loop.stop()
            self._loop = None
        self.hub.close()
        if self._httpd:
            self._httpd.server_close()
            self._httpd = None
