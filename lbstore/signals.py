"""Blocking wait for SIGINT or SIGTERM."""

from __future__ import annotations

import logging
import signal
import threading

logger = logging.getLogger(__name__)


def wait_for_termination_signal() -> int:
    """Block until SIGINT or SIGTERM arrives; return the signal number."""
    received: list[int] = []
    event = threading.Event()

    def _handler(signum: int, _frame: object) -> None:
        received.append(signum)
        event.set()

    watched = (signal.SIGINT, signal.SIGTERM)
    previous = {sig: signal.signal(sig, _handler) for sig in watched}
    try:
        while not event.wait(0.2):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    logger.info("Shutting down...")
    return received[0]