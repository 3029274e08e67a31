"""Load balancer that pins clients to healthy backends by address hash."""

from __future__ import annotations

import argparse
import http.client
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler

from lbstore.httpserver import create_server
from lbstore.signals import wait_for_termination_signal

SERVERS_POOL = ("server1:8080", "server2:8080", "server3:8080")
HEALTH_INTERVAL = 10.0
_HOP_HEADERS = {"connection", "transfer-encoding", "keep-alive"}

logger = logging.getLogger(__name__)


class NoHealthyServersError(RuntimeError):
    """No backend is currently healthy."""


@dataclass
class ServerConnection:
    address: str
    health: bool = False


@dataclass
class ForwardedResponse:
    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        return next((v for k, v in self.headers if k.lower() == lowered), None)


def _fnv32a(data: bytes) -> int:
    value = 0x811C9DC5
    for byte in data:
        value ^= byte
        value = (value * 0x01000193) & 0xFFFFFFFF
    return value


class LoadBalancer:
    """Tracks backend health and picks a backend for each client."""

    def __init__(self, servers: Iterable[str]) -> None:
        self.servers = [ServerConnection(address) for address in servers]
        self._lock = threading.Lock()

    def healthy_servers(self) -> list[ServerConnection]:
        with self._lock:
            return [ServerConnection(s.address, s.health) for s in self.servers if s.health]

    def get_server(self, client_addr: str) -> ServerConnection:
        healthy = self.healthy_servers()
        if not healthy:
            raise NoHealthyServersError("no healthy servers available")
        return healthy[_fnv32a(client_addr.encode()) % len(healthy)]

    def update_server_health(self, index: int, is_healthy: bool) -> None:
        with self._lock:
            self.servers[index].health = is_healthy


def _connection(dst: str, timeout: float, https: bool) -> http.client.HTTPConnection:
    cls = http.client.HTTPSConnection if https else http.client.HTTPConnection
    return cls(dst, timeout=timeout)


def health(dst: str, timeout: float = 3.0, https: bool = False) -> bool:
    """Return True if ``dst`` answers 200 on /health."""
    conn = _connection(dst, timeout, https)
    try:
        conn.request("GET", "/health")
        return conn.getresponse().status == 200
    except (OSError, http.client.HTTPException):
        return False
    finally:
        conn.close()


def forward(
    dst: str,
    method: str,
    path: str,
    headers: Mapping[str, str],
    body: bytes,
    timeout: float = 3.0,
    https: bool = False,
    trace: bool = False,
) -> ForwardedResponse:
    """Send the request to ``dst`` and return its response; raise ConnectionError on failure."""
    outgoing = {k: v for k, v in headers.items() if k.lower() != "host" and k.lower() not in _HOP_HEADERS}
    conn = _connection(dst, timeout, https)
    try:
        conn.request(method, path, body=body or None, headers=outgoing)
        resp = conn.getresponse()
        data = resp.read()
        response_headers = [
            (k, v) for k, v in resp.getheaders() if k.lower() not in _HOP_HEADERS
        ]
        status = resp.status
    except (OSError, http.client.HTTPException) as exc:
        logger.warning("Failed to get response from %s: %s", dst, exc)
        raise ConnectionError(str(exc)) from exc
    finally:
        conn.close()

    if trace:
        response_headers = [(k, v) for k, v in response_headers if k.lower() != "lb-from"]
        response_headers.append(("lb-from", dst))
    logger.info("fwd %s %s -> %s", method, path, dst)
    return ForwardedResponse(status, response_headers, data)


def make_handler(
    lb: LoadBalancer, timeout: float = 3.0, https: bool = False, trace: bool = False
) -> type[BaseHTTPRequestHandler]:
    class BalancerHandler(BaseHTTPRequestHandler):
        def _handle(self) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length else b""
            host, port = self.client_address[:2]
            try:
                server = lb.get_server(f"{host}:{port}")
                resp = forward(
                    server.address, self.command, self.path, dict(self.headers.items()),
                    body, timeout, https, trace,
                )
            except (NoHealthyServersError, ConnectionError) as exc:
                logger.warning("Error forwarding request: %s", exc)
                self.send_response_only(503)
                self.send_header("Content-Length", "0")
                self.end_headers()
                return
            self.send_response_only(resp.status)
            has_length = False
            for key, value in resp.headers:
                has_length |= key.lower() == "content-length"
                self.send_header(key, value)
            if not has_length:
                self.send_header("Content-Length", str(len(resp.body)))
            self.end_headers()
            self.wfile.write(resp.body)

        do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _handle

        def log_message(self, format: str, *args: object) -> None:
            logger.debug(format, *args)

    return BalancerHandler


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="HTTP load balancer")
    parser.add_argument("--port", type=int, default=8090, help="load balancer port")
    parser.add_argument("--timeout-sec", type=int, default=3, help="request timeout time in seconds")
    parser.add_argument("--https", action="store_true", help="whether backends support HTTPs")
    parser.add_argument("--trace", action="store_true", help="whether to include client info in responses")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    lb = LoadBalancer(SERVERS_POOL)
    stop = threading.Event()

    def monitor(index: int, address: str) -> None:
        while True:
            is_healthy = health(address, args.timeout_sec, args.https)
            lb.update_server_health(index, is_healthy)
            logger.info("Server %s health is %s", address, is_healthy)
            if stop.wait(HEALTH_INTERVAL):
                return

    for index, address in enumerate(SERVERS_POOL):
        threading.Thread(target=monitor, args=(index, address), daemon=True).start()

    frontend = create_server(args.port, make_handler(lb, args.timeout_sec, args.https, args.trace))
    logger.info("Starting load balancer on port %d", args.port)
    logger.info("Tracing support enabled: %s", args.trace)
    frontend.start()
    wait_for_termination_signal()
    stop.set()
    frontend.shutdown()
    return 0