"""Client that polls the load balancer once a second."""

from __future__ import annotations

import argparse
import logging
import time
import urllib.error
import urllib.request

DEFAULT_TARGET = "http://localhost:8090"

logger = logging.getLogger(__name__)


def request_url(target: str) -> str:
    return f"{target}/api/v1/some-data"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Poll the load balancer")
    parser.add_argument("--target", default=DEFAULT_TARGET, help="request target")
    parser.add_argument("--count", type=int, default=0, help="number of requests; 0 runs forever")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    url = request_url(args.target)
    sent = 0
    while True:
        try:
            with urllib.request.urlopen(url, timeout=10) as resp:
                logger.info("response %d", resp.status)
        except urllib.error.HTTPError as exc:
            logger.info("response %d", exc.code)
        except OSError as exc:
            logger.info("error %s", exc)
        sent += 1
        if args.count and sent >= args.count:
            return 0
        time.sleep(1)