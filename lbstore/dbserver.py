"""HTTP front end for the key/value store."""

from __future__ import annotations

import argparse
import json
import logging
import urllib.parse
from http.server import BaseHTTPRequestHandler

from lbstore.db import Db, DatabaseClosedError, KeyNotFoundError
from lbstore.entry import ChecksumError

DATA_DIRECTORY = "/opt/practice-4/out"
SEGMENT_SIZE = 250
PORT = 8083
_PREFIX = "/db/"

logger = logging.getLogger(__name__)


def _format_value(value: object) -> str:
    """Render a decoded JSON value the way a generic value formatter does."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, list):
        return "[" + " ".join(_format_value(v) for v in value) + "]"
    if isinstance(value, dict):
        items = " ".join(f"{k}:{_format_value(value[k])}" for k in sorted(value))
        return f"map[{items}]"
    return str(value)


def make_handler(db: Db) -> type[BaseHTTPRequestHandler]:
    class DbHandler(BaseHTTPRequestHandler):
        def _reply(self, status: int, body: bytes = b"") -> None:
            self.send_response(status)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _key(self) -> str | None:
            path = urllib.parse.unquote(urllib.parse.urlsplit(self.path).path)
            if path == "/db/health":
                self._reply(200, b"OK")
                return None
            if not path.startswith(_PREFIX):
                self._reply(404, b"404 page not found\n")
                return None
            return path[len(_PREFIX):]

        def do_GET(self) -> None:
            key = self._key()
            if key is None:
                return
            try:
                value = db.get(key)
            except (KeyNotFoundError, OSError, ValueError, EOFError):
                self._reply(404)
                return
            self._reply(200, (json.dumps({"key": key, "value": value}) + "\n").encode())

        def do_POST(self) -> None:
            key = self._key()
            if key is None:
                return
            length = int(self.headers.get("Content-Length") or 0)
            try:
                request = json.loads(self.rfile.read(length))
                if request is not None and not isinstance(request, dict):
                    raise ValueError("not an object")
            except ValueError:
                self._reply(400)
                return
            value = (request or {}).get("value")
            try:
                db.put(key, _format_value(value))
            except (DatabaseClosedError, OSError, ChecksumError):
                self._reply(500)
                return
            self._reply(200)

        def _not_allowed(self) -> None:
            if self._key() is not None:
                self._reply(405)

        do_PUT = do_DELETE = do_PATCH = _not_allowed

        def log_message(self, format: str, *args: object) -> None:
            logger.debug(format, *args)

    return DbHandler


def main(argv: list[str] | None = None) -> int:
    from lbstore.httpserver import create_server
    from lbstore.signals import wait_for_termination_signal

    parser = argparse.ArgumentParser(description="Key/value store HTTP server")
    parser.add_argument("--dir", default=DATA_DIRECTORY, help="data directory")
    parser.add_argument("--port", type=int, default=PORT, help="server port")
    parser.add_argument("--segment-size", type=int, default=SEGMENT_SIZE, help="maximum segment size")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    try:
        db = Db(args.dir, args.segment_size)
    except (OSError, ValueError) as exc:
        logger.error("DB initialization failed: %s", exc)
        return 1
    with db:
        server = create_server(args.port, make_handler(db))
        logger.info("Starting DB server on :%d", args.port)
        server.start()
        wait_for_termination_signal()
        server.shutdown()
    return 0