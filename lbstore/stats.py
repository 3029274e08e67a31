"""Collects and prints the request reports of the backend servers."""

from __future__ import annotations

import argparse
import json
import logging
import urllib.request
from collections.abc import Mapping

SERVERS_POOL = ("localhost:8080", "localhost:8081", "localhost:8082")

logger = logging.getLogger(__name__)


def trim_report(report: Mapping[str, list[str]], limit: int = 5) -> dict[str, list[str]]:
    """Keep only the last ``limit`` entries for each author."""
    return {author: list(entries[len(entries) - min(len(entries), limit):]) for author, entries in report.items()}


def fetch_report(address: str, https: bool = False, timeout: float = 10.0) -> dict[str, list[str]] | None:
    """Fetch /report from ``address``; None if it cannot be fetched or decoded."""
    scheme = "https" if https else "http"
    try:
        with urllib.request.urlopen(f"{scheme}://{address}/report", timeout=timeout) as resp:
            body = resp.read()
    except OSError as exc:
        logger.warning("error %s %s", address, exc)
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Print backend request reports")
    parser.add_argument("--https", action="store_true", help="whether backends support HTTPs")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    for index, address in enumerate(SERVERS_POOL):
        data = fetch_report(address, args.https)
        result = trim_report(data) if data is not None else None
        logger.info("=========================")
        logger.info("SERVER %d %s", index, address)
        logger.info("=========================")
        logger.info("%s", json.dumps(result, indent=2))
    return 0