"""Per-author log of recent request counters."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping

REPORT_MAX_LEN = 100

logger = logging.getLogger(__name__)


def _header(headers: Mapping[str, str], name: str) -> str:
    lowered = name.lower()
    return next((v for k, v in headers.items() if k.lower() == lowered), "")


class Report(dict):
    """Maps an author to the last ``REPORT_MAX_LEN`` request counters seen from it."""

    def __init__(self, *args: object, **kwargs: object) -> None:
        super().__init__(*args, **kwargs)
        self._lock = threading.Lock()

    def process(self, headers: Mapping[str, str]) -> None:
        author = _header(headers, "lb-author")
        counter = _header(headers, "lb-req-cnt")
        logger.info("GET some-data from [%s] request [%s]", author, counter)
        if author:
            with self._lock:
                entries = [*self.get(author, []), counter]
                self[author] = entries[-REPORT_MAX_LEN:]

    def to_json(self) -> str:
        with self._lock:
            return json.dumps(dict(self)) + "\n"