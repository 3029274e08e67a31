"""A small threaded HTTP server that runs in the background."""

from __future__ import annotations

import logging
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

READ_TIMEOUT = 10.0

logger = logging.getLogger(__name__)


class _TimeoutHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def get_request(self) -> tuple[socket.socket, object]:
        conn, addr = super().get_request()
        conn.settimeout(READ_TIMEOUT)
        return conn, addr


class Server:
    """An HTTP server bound to ``port`` that serves requests on a background thread."""

    def __init__(self, port: int, handler_class: type[BaseHTTPRequestHandler]) -> None:
        self._httpd = _TimeoutHTTPServer(("", port), handler_class)
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """The port actually listened on."""
        return self._httpd.server_address[1]

    def start(self) -> None:
        logger.info("Starting the HTTP server...")
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        if self._thread is not None:
            self._httpd.shutdown()
            self._thread.join()
            self._thread = None
        self._httpd.server_close()

    def __enter__(self) -> Server:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()


def create_server(port: int, handler_class: type[BaseHTTPRequestHandler]) -> Server:
    return Server(port, handler_class)