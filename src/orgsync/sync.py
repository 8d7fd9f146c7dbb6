"""Cross-scope synchronization primitive.

Each data set (orders, jobs) is polled twice: once at entity scope and once
at organization scope. The two results are merged into one working set and
imported into the subject's presented state only when both sides have
reported, whichever side finishes first.

``DataSetSync`` holds the completion ("updated") and merge ("added") flags of
both scopes for one data set. ``ScopeDataQuerying`` is the coordinator base
class: it owns one poll monitor per data set at its scope and drives every
completion through ``DataSetSync.complete``. The entity-scope and
organization-scope coordinators are its two instances, so both sides run the
exact same set-flag, check-peer, import sequence.

Epochs
------
An epoch runs from the first completion after an import up to and including
the next import. Flags only ever go from False to True inside an epoch. The
first completion that arrives after an import opens the next epoch, which
clears all four flags before recording itself. Flags therefore stay readable
after an import until the next poll cycle reports.

Lock Ordering
-------------
``DataSetSync._lock`` is held while the merge, the peer-monitor lookup and
the import into the presented state run. Those may take the subject's
working-set, presented-state and monitor registry locks. None of those locks
is ever held while acquiring a ``DataSetSync`` lock. Import listeners run
after the ``DataSetSync`` lock is released.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, ClassVar

from orgsync.logging import get_logger
from orgsync.monitor import PollMonitor, QueryResult
from orgsync.types import DataSet, Endpoint, Scope

if TYPE_CHECKING:
    from orgsync.records import Record
    from orgsync.subject import Subject

logger = get_logger(__name__)


class DataSetSync:
    """Completion and merge flags of both scopes for one data set.

    Thread Safety:
        All flag reads and the whole completion sequence run under one lock,
        so exactly one of two racing completions performs the import.
    """

    def __init__(self, data_set: DataSet) -> None:
        self.data_set = data_set
        self._updated: dict[Scope, bool] = dict.fromkeys(Scope, False)
        self._added: dict[Scope, bool] = dict.fromkeys(Scope, False)
        self._imported = False
        self._epoch = 1
        self._import_count = 0
        self._lock = threading.Lock()

    def updated(self, scope: Scope) -> bool:
        with self._lock:
            return self._updated[scope]

    def added(self, scope: Scope) -> bool:
        with self._lock:
            return self._added[scope]

    @property
    def epoch(self) -> int:
        with self._lock:
            return self._epoch

    @property
    def import_count(self) -> int:
        with self._lock:
            return self._import_count

    def complete(
        self,
        scope: Scope,
        merge: Callable[[bool], bool],
        peer_unavailable: Callable[[], bool],
        do_import: Callable[[], None],
        on_updated: Callable[[], None] | None = None,
        on_imported: Callable[[], None] | None = None,
    ) -> bool:
        """Record one scope's poll completion and import if both sides are in.

        The sequence, run as a single critical section:

        1. Open a new epoch if the current one already imported.
        2. Set this scope's updated flag.
        3. Run ``on_updated`` (error notification).
        4. Merge, passing the peer's added flag; store this scope's added flag.
        5. OR the peer's updated flag with ``peer_unavailable()``.
        6. Import if the peer is updated, otherwise defer to the peer.

        ``on_imported`` runs after the lock is released, so it may read the
        flags or complete other monitors. By then the epoch is already marked
        imported and counted.

        Args:
            scope: The scope whose poll completed.
            merge: Called with the peer's added flag, returns whether records
                were added.
            peer_unavailable: True when the peer scope's monitor for this data
                set is absent or disabled and will never report.
            do_import: Imports the merged working set.
            on_updated: Optional hook run right after the updated flag is set.
            on_imported: Optional hook run outside the lock after an import.

        Returns:
            True if this call performed the import, False if deferred.
        """
        peer = scope.peer
        with self._lock:
            if self._imported:
                self._start_epoch()

            self._updated[scope] = True
            if on_updated is not None:
                on_updated()

            self._added[scope] = merge(self._added[peer])

            self._updated[peer] |= peer_unavailable()

            if not self._updated[peer]:
                logger.debug(
                    "Deferring %s import until %s scope reports",
                    self.data_set,
                    peer,
                    extra={
                        "diagnostic_tag": "sync",
                        "scope": scope,
                        "data_set": self.data_set,
                        "epoch": self._epoch,
                    },
                )
                return False

            do_import()
            self._imported = True
            self._import_count += 1
            logger.debug(
                "Imported %s after %s scope completed",
                self.data_set,
                scope,
                extra={
                    "diagnostic_tag": "sync",
                    "scope": scope,
                    "data_set": self.data_set,
                    "epoch": self._epoch,
                },
            )

        if on_imported is not None:
            on_imported()
        return True

    def _start_epoch(self) -> None:
        for flags in (self._updated, self._added):
            for key in flags:
                flags[key] = False
        self._imported = False
        self._epoch += 1


class ScopeDataQuerying(ABC):
    """Coordinator for the data sets of one scope.

    Subclasses set ``scope``. On construction the coordinator creates one
    monitor per data set bound to the scope's fixed endpoints, subscribes a
    dedicated completion handler to each, and registers them into the
    subject's monitor registry.
    """

    scope: ClassVar[Scope]

    def __init__(self, subject: Subject) -> None:
        self._subject = subject
        self._orders_monitor = PollMonitor(Endpoint.for_scope(self.scope, DataSet.ORDERS))
        self._orders_monitor.on_completion(self._on_orders_updated)
        self._jobs_monitor = PollMonitor(Endpoint.for_scope(self.scope, DataSet.JOBS))
        self._jobs_monitor.on_completion(self._on_jobs_updated)
        self._monitors: tuple[PollMonitor, ...] = (self._orders_monitor, self._jobs_monitor)
        self._log = logger.with_context(subject=subject.subject_id, scope=self.scope)

        for monitor in self._monitors:
            subject.monitors.register(monitor)

    @property
    def subject(self) -> Subject:
        return self._subject

    @property
    def orders_monitor(self) -> PollMonitor:
        return self._orders_monitor

    @property
    def jobs_monitor(self) -> PollMonitor:
        return self._jobs_monitor

    @property
    def monitors(self) -> tuple[PollMonitor, ...]:
        return self._monitors

    def monitor_for(self, data_set: DataSet) -> PollMonitor:
        return self._orders_monitor if data_set == DataSet.ORDERS else self._jobs_monitor

    @abstractmethod
    def _notify_error(self, data_set: DataSet, result: QueryResult) -> None:
        """Raise the scope-specific error notification for a data set."""

    def _on_orders_updated(self, result: QueryResult) -> None:
        """Processes the queried orders of this scope.

        Sensitive to which scope's orders get queried first: see
        ``DataSetSync.complete``.
        """
        self._on_data_set_updated(DataSet.ORDERS, result)

    def _on_jobs_updated(self, result: QueryResult) -> None:
        """Processes the queried jobs of this scope."""
        self._on_data_set_updated(DataSet.JOBS, result)

    def _on_data_set_updated(self, data_set: DataSet, result: QueryResult) -> bool:
        subject = self._subject
        endpoint = Endpoint.for_scope(self.scope, data_set)
        peer_endpoint = Endpoint.for_scope(self.scope.peer, data_set)
        issued_for = self.scope.issued_for

        def notify_if_needed() -> None:
            if subject.should_notify_error(result, endpoint):
                self._notify_error(data_set, result)

        def merge(peer_added: bool) -> bool:
            return subject.merge(data_set, result, peer_added, issued_for)

        def peer_unavailable() -> bool:
            # A peer that can never report counts as already reported
            peer_monitor = subject.monitors.lookup(peer_endpoint)
            return peer_monitor is None or not peer_monitor.enabled

        imported: list[Record] = []

        def do_import() -> None:
            imported.extend(subject.publish_import(data_set))

        def notify_imported() -> None:
            subject.notify_import_listeners(data_set, imported)

        self._log.debug(
            "%s completed (%s)",
            endpoint,
            "error" if result.has_error else f"{len(result.records)} record(s)",
            extra={"diagnostic_tag": "sync", "data_set": data_set},
        )
        return subject.sync_state(data_set).complete(
            self.scope,
            merge=merge,
            peer_unavailable=peer_unavailable,
            do_import=do_import,
            on_updated=notify_if_needed,
            on_imported=notify_imported,
        )

    def _flag_updated(self, data_set: DataSet) -> bool:
        return self._subject.sync_state(data_set).updated(self.scope)

    def _flag_added(self, data_set: DataSet) -> bool:
        return self._subject.sync_state(data_set).added(self.scope)
