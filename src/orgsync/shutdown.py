"""Graceful shutdown handling for org-sync.

Translates SIGINT and SIGTERM into a ``threading.Event`` the polling loop
waits on, so the loop exits between cycles instead of mid-query.
"""

from __future__ import annotations

import signal
import threading
from types import FrameType

from orgsync.logging import get_logger

logger = get_logger(__name__)


class ShutdownHandler:
    """Manages graceful shutdown of the polling loop."""

    def __init__(self, stop_event: threading.Event | None = None) -> None:
        self.stop_event = stop_event or threading.Event()

    @property
    def shutdown_requested(self) -> bool:
        return self.stop_event.is_set()

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        logger.info("Shutdown requested")
        self.stop_event.set()

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM)."""
        signal_name = signal.Signals(signum).name
        logger.info("Received %s, initiating graceful shutdown...", signal_name)
        self.request_shutdown()

    def install_signal_handlers(self) -> None:
        """Install signal handlers for SIGINT and SIGTERM."""
        signal.signal(signal.SIGINT, self.handle_signal)
        signal.signal(signal.SIGTERM, self.handle_signal)
        logger.debug("Signal handlers installed for SIGINT and SIGTERM")


def create_shutdown_handler() -> ShutdownHandler:
    """Create a shutdown handler with signal handlers installed."""
    handler = ShutdownHandler()
    handler.install_signal_handlers()
    return handler


__all__ = [
    "ShutdownHandler",
    "create_shutdown_handler",
]
