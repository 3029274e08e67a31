"""Backend application server: health endpoint, data lookup through the DB service and a request report."""

from __future__ import annotations

import argparse
import datetime
import json
import logging
import os
import time
import urllib.error
import urllib.parse
import urllib.request
from http.server import BaseHTTPRequestHandler

from lbstore.httpserver import create_server
from lbstore.report import Report
from lbstore.signals import wait_for_termination_signal

CONF_RESPONSE_DELAY_SEC = "CONF_RESPONSE_DELAY_SEC"
CONF_HEALTH_FAILURE = "CONF_HEALTH_FAILURE"
TEAM_NAME = "osb"
DB_SERVICE_URL = "http://db:8083/db/"

logger = logging.getLogger(__name__)


def get_port(default: int = 8080) -> int:
    """Port from the PORT environment variable, or ``default``."""
    try:
        return int(os.environ.get("PORT", ""))
    except ValueError:
        return default


def _request(url: str, data: bytes | None = None, timeout: float = 10.0) -> tuple[int, bytes]:
    headers = {"Content-Type": "application/json"} if data is not None else {}
    req = urllib.request.Request(url, data=data, headers=headers)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()


def initialize_db(
    db_url: str = DB_SERVICE_URL, max_retries: int = 10, retry_interval: float = 5.0
) -> bool:
    """Store today's date under the team key; return True on success."""
    body = json.dumps({"value": datetime.date.today().isoformat()}).encode()
    for attempt in range(1, max_retries + 1):
        try:
            status, _ = _request(db_url + TEAM_NAME, body)
        except OSError as exc:
            logger.warning("Attempt %d: DB connection failed: %s", attempt, exc)
        else:
            if status == 200:
                logger.info("Successfully initialized DB")
                return True
            logger.warning("Attempt %d: DB returned status %d", attempt, status)
        if attempt < max_retries:
            time.sleep(retry_interval)
    logger.error("Failed to initialize DB after multiple attempts")
    return False


def _response_delay() -> int:
    try:
        delay = int(os.environ.get(CONF_RESPONSE_DELAY_SEC, ""))
    except ValueError:
        return 0
    return delay if 0 < delay < 300 else 0


def make_handler(report: Report, db_url: str = DB_SERVICE_URL) -> type[BaseHTTPRequestHandler]:
    class AppHandler(BaseHTTPRequestHandler):
        def _reply(self, status: int, body: bytes = b"", headers: dict[str, str] | None = None) -> None:
            self.send_response(status)
            for key, value in (headers or {}).items():
                self.send_header(key, value)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _handle(self) -> None:
            url = urllib.parse.urlsplit(self.path)
            if url.path == "/health":
                if os.environ.get(CONF_HEALTH_FAILURE):
                    self._reply(503, b"Unhealthy")
                else:
                    self._reply(200, b"OK")
            elif url.path == "/api/v1/some-data":
                self._some_data(url.query)
            elif url.path == "/report":
                self._reply(200, report.to_json().encode(), {"content-type": "application/json"})
            else:
                self._reply(404, b"404 page not found\n")

        def _some_data(self, query: str) -> None:
            delay = _response_delay()
            if delay:
                time.sleep(delay)
            report.process(self.headers)
            server_id = os.environ.get("SERVER_ID") or f"server-{self.server.server_address[1]}"
            headers = {"lb-from": server_id}

            key = urllib.parse.parse_qs(query).get("key", [""])[0]
            if not key:
                self._reply(400, headers=headers)
                return
            try:
                status, body = _request(db_url + urllib.parse.quote(key, safe=""))
            except OSError:
                self._reply(404, headers=headers)
                return
            if status == 404:
                self._reply(404, headers=headers)
                return
            try:
                data = json.loads(body)
                if not isinstance(data, dict):
                    raise ValueError("not an object")
            except ValueError:
                self._reply(500, headers=headers)
                return
            headers["content-type"] = "application/json"
            self._reply(200, (json.dumps(data.get("value")) + "\n").encode(), headers)

        do_GET = do_POST = do_PUT = do_DELETE = do_HEAD = _handle

        def log_message(self, format: str, *args: object) -> None:
            logger.debug(format, *args)

    return AppHandler


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Backend application server")
    parser.add_argument("--port", type=int, default=8080, help="server port")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    initialize_db()
    report = Report()
    server = create_server(get_port(args.port), make_handler(report, DB_SERVICE_URL))
    server.start()
    wait_for_termination_signal()
    server.shutdown()
    return 0