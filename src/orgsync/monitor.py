"""Poll monitors and the per-subject monitor registry.

A ``PollMonitor`` stands for one recurring query against a fixed endpoint.
Whatever performs the query (see ``orgsync.scheduler``) hands the outcome to
``PollMonitor.complete``, which fans it out to the registered completion
handlers exactly once. The ``MonitorRegistry`` is the ordered set of monitors
attached to a subject; membership in it is what the scheduler polls.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from orgsync.exceptions import RegistryError
from orgsync.logging import get_logger
from orgsync.records import Record
from orgsync.types import Endpoint

logger = get_logger(__name__)

CompletionCallback = Callable[["QueryResult"], None]


@dataclass(frozen=True)
class QueryResult:
    """Outcome of one poll: a payload of records, or an API/transport error.

    Errors are values, not exceptions: a failed poll still completes its
    cycle and is merged as zero records.
    """

    payload: Sequence[Record] | None = None
    error_code: int | None = None
    error_message: str = ""
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def success(cls, records: Sequence[Record]) -> QueryResult:
        return cls(payload=tuple(records))

    @classmethod
    def failure(cls, error_code: int, error_message: str) -> QueryResult:
        return cls(error_code=error_code, error_message=error_message)

    @property
    def has_error(self) -> bool:
        return self.error_code is not None

    @property
    def records(self) -> Sequence[Record]:
        """Records of a successful poll; empty for errors."""
        if self.has_error or self.payload is None:
            return ()
        return self.payload


class PollMonitor:
    """One recurring query against a named endpoint.

    Thread Safety:
        ``complete`` may be called from any worker thread. Handler
        registration and the last-result bookkeeping are lock protected;
        handlers themselves run outside the lock.
    """

    def __init__(self, endpoint: Endpoint, enabled: bool = True) -> None:
        self._endpoint = endpoint
        self._enabled = enabled
        self._callbacks: list[CompletionCallback] = []
        self._lock = threading.Lock()
        self._last_result: QueryResult | None = None
        self._last_completed_at: datetime | None = None
        self._registry: MonitorRegistry | None = None

    def __repr__(self) -> str:
        return f"PollMonitor(endpoint={self._endpoint.value!r}, enabled={self._enabled})"

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    @property
    def last_result(self) -> QueryResult | None:
        with self._lock:
            return self._last_result

    @property
    def last_completed_at(self) -> datetime | None:
        with self._lock:
            return self._last_completed_at

    def on_completion(self, callback: CompletionCallback) -> None:
        """Register a handler invoked with each completed result."""
        with self._lock:
            self._callbacks.append(callback)

    def complete(self, result: QueryResult) -> bool:
        """Deliver the result of one poll cycle to every handler.

        Args:
            result: The poll outcome.

        Returns:
            True if the result was delivered, False if the monitor is
            disabled (disabled monitors never fire).
        """
        if not self._enabled:
            logger.debug(
                "Dropping result for disabled monitor %s",
                self._endpoint,
                extra={"endpoint": self._endpoint},
            )
            return False

        with self._lock:
            self._last_result = result
            self._last_completed_at = result.received_at
            callbacks = list(self._callbacks)

        for callback in callbacks:
            callback(result)
        return True


class MonitorRegistry:
    """Ordered set of poll monitors attached to one subject.

    Registration is idempotent: registering a member or removing a
    non-member leaves the registry unchanged. Membership, not a counter, is
    what the coordinators control.

    Thread Safety:
        All public methods are thread-safe. Iteration works on a snapshot.
    """

    def __init__(self) -> None:
        self._monitors: list[PollMonitor] = []
        self._lock = threading.Lock()

    def register(self, monitor: PollMonitor) -> bool:
        """Add a monitor to the registry.

        Returns:
            True if the monitor was added, False if it was already a member.

        Raises:
            RegistryError: If the monitor belongs to another registry.
        """
        with self._lock:
            if monitor._registry is not None and monitor._registry is not self:
                raise RegistryError(
                    f"Monitor for {monitor.endpoint} already belongs to another registry"
                )
            if any(m is monitor for m in self._monitors):
                return False
            self._monitors.append(monitor)
            monitor._registry = self
            return True

    def remove(self, monitor: PollMonitor) -> bool:
        """Remove a monitor from the registry.

        Returns:
            True if the monitor was removed, False if it was not a member.
        """
        with self._lock:
            for index, member in enumerate(self._monitors):
                if member is monitor:
                    del self._monitors[index]
                    monitor._registry = None
                    return True
            return False

    def contains(self, monitor: PollMonitor) -> bool:
        with self._lock:
            return any(m is monitor for m in self._monitors)

    def __contains__(self, monitor: object) -> bool:
        return isinstance(monitor, PollMonitor) and self.contains(monitor)

    def lookup(self, endpoint: Endpoint) -> PollMonitor | None:
        """Find the registered monitor for an endpoint, if any."""
        with self._lock:
            for monitor in self._monitors:
                if monitor.endpoint == endpoint:
                    return monitor
            return None

    def is_enabled(self, monitor: PollMonitor) -> bool:
        """True if the monitor is registered here and enabled."""
        return monitor.enabled and self.contains(monitor)

    def enabled_monitors(self) -> list[PollMonitor]:
        """Snapshot of registered monitors that will be polled."""
        with self._lock:
            return [m for m in self._monitors if m.enabled]

    def __iter__(self) -> Iterator[PollMonitor]:
        with self._lock:
            return iter(list(self._monitors))

    def __len__(self) -> int:
        with self._lock:
            return len(self._monitors)
