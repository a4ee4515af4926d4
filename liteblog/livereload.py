"""Live reload for the development server.

Browsers open an ``EventSource`` on ``/__live-reload``; each open stream is a
client of :class:`LiveReloadHub`. After a successful rebuild the watcher
broadcasts ``reload`` and every client's stream writes it out, which makes
the injected script call ``location.reload()``.

Key classes:
- LiveReloadHub: Registry of connected clients with broadcast.
- LiveReloadClient: One connected stream's message queue.

Functions:
    inject_reload_script: Splice the client script into an HTML page.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import BinaryIO

logger = logging.getLogger(__name__)

LIVE_RELOAD_PATH = "/__live-reload"
KEEPALIVE_SECONDS = 15.0
RELOAD_MESSAGE = "reload"

RELOAD_SCRIPT = (
    "<script>!function(){"
    f'var e=new EventSource("{LIVE_RELOAD_PATH}");'
    'e.onmessage=function(e){"reload"===e.data&&location.reload()},'
    "e.onerror=function(){e.close(),setTimeout(function(){location.reload()},1000)}"
    "}();</script>"
)

_CLOSED = object()


def inject_reload_script(html: str, script: str = RELOAD_SCRIPT) -> str:
    """Insert the reload script before ``</body>``, or append it."""
    index = html.rfind("</body>")
    if index == -1:
        return html + script
    return html[:index] + script + html[index:]


class LiveReloadClient:
    """Message queue of a single connected browser."""

    def __init__(self) -> None:
        self._messages: queue.Queue = queue.Queue()

    def send(self, message: str) -> None:
        self._messages.put(message)

    def close(self) -> None:
        self._messages.put(_CLOSED)

    def next_message(self, timeout: float | None = None) -> str | None:
        """Wait for the next message.

        Returns:
            The message, or None once the client has been closed.

        Raises:
            queue.Empty: If nothing arrived within ``timeout``.
        """
        message = self._messages.get(timeout=timeout)
        if message is _CLOSED:
            return None
        return message


class LiveReloadHub:
    """Set of connected live reload clients.

    Clients are added when a stream opens and removed when it closes or a
    write to it fails. The lock only guards the set itself.
    """

    def __init__(self, keepalive: float = KEEPALIVE_SECONDS):
        self.keepalive = keepalive
        self._clients: set[LiveReloadClient] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def subscribe(self) -> LiveReloadClient:
        client = LiveReloadClient()
        with self._lock:
            self._clients.add(client)
        return client

    def unsubscribe(self, client: LiveReloadClient) -> None:
        with self._lock:
            self._clients.discard(client)

    def broadcast(self, message: str = RELOAD_MESSAGE) -> int:
        """Queue ``message`` for every connected client.

        Returns:
            Number of clients the message was queued for.
        """
        with self._lock:
            clients = list(self._clients)
        for client in clients:
            client.send(message)
        logger.debug("Broadcast %r to %d clients", message, len(clients))
        return len(clients)

    def close(self) -> None:
        """Close every stream, e.g. on server shutdown."""
        with self._lock:
            clients = list(self._clients)
            self._clients.clear()
        for client in clients:
            client.close()

    def stream(self, client: LiveReloadClient, wfile: BinaryIO) -> None:
        """Write server-sent events to ``wfile`` until the client goes away.

        Messages become ``data:`` events; idle periods produce a comment
        line so proxies and browsers keep the connection open. A failed
        write ends the stream and removes the client.

        Args:
            client: Client returned by :meth:`subscribe`.
            wfile: Response stream of the HTTP handler.
        """
        try:
            while True:
                try:
                    message = client.next_message(timeout=self.keepalive)
                except queue.Empty:
                    chunk = b": ping\n\n"
                else:
                    if message is None:
                        return
                    chunk = f"data: {message}\n\n".encode()
                wfile.write(chunk)
                wfile.flush()
        except (BrokenPipeError, ConnectionResetError, ConnectionAbortedError):
            logger.debug("Live reload client disconnected")
        finally:
            self.unsubscribe(client)
