"""Poll scheduler driving the monitors of one or more subjects.

Each cycle snapshots the enabled monitors of every subject's registry and
runs one query per monitor on a thread pool. The query result is handed to
``PollMonitor.complete`` on the worker thread, so completion handlers of
different monitors run concurrently.

A monitor removed from its registry while its query is in flight still
delivers that last result; coordinators tolerate late completions. A monitor
whose query is still in flight is skipped by later cycles until it
completes, so one monitor never has two queries outstanding.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from orgsync.logging import get_logger

if TYPE_CHECKING:
    from orgsync.monitor import PollMonitor, QueryResult
    from orgsync.subject import Subject
    from orgsync.types import Endpoint

logger = get_logger(__name__)

FetchFunction = Callable[["Endpoint", "Subject"], "QueryResult"]


class PollScheduler:
    """Runs poll cycles on a ``ThreadPoolExecutor``.

    Thread Safety:
        ``poll_once`` may be called from one driver thread at a time. The
        pool lifecycle and the in-flight set are guarded by a lock.
    """

    def __init__(self, fetch: FetchFunction, max_workers: int = 4) -> None:
        """Initialize the scheduler.

        Args:
            fetch: Performs one query and returns its result.
            max_workers: Number of worker threads.
        """
        self._fetch = fetch
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._in_flight: set[PollMonitor] = set()
        self._lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="orgsync-poll",
                )
            return self._executor

    def poll_once(self, subject: Subject) -> list[Future[bool]]:
        """Submit one query for every enabled monitor of a subject.

        Returns:
            One future per submitted query; each resolves to whether the
            monitor delivered its result. Monitors with a query still in
            flight get no new one.
        """
        executor = self._get_executor()
        enabled = subject.monitors.enabled_monitors()
        with self._lock:
            monitors = [m for m in enabled if m not in self._in_flight]
            self._in_flight.update(monitors)
        busy = len(enabled) - len(monitors)
        logger.debug(
            "Polling %d monitor(s), %d still in flight",
            len(monitors),
            busy,
            extra={"subject": subject.subject_id, "diagnostic_tag": "polling"},
        )
        return [executor.submit(self._run_query, subject, monitor) for monitor in monitors]

    def _run_query(self, subject: Subject, monitor: PollMonitor) -> bool:
        try:
            return self._query_and_complete(subject, monitor)
        finally:
            with self._lock:
                self._in_flight.discard(monitor)

    def _query_and_complete(self, subject: Subject, monitor: PollMonitor) -> bool:
        log_extra = {"subject": subject.subject_id, "endpoint": monitor.endpoint}
        try:
            result = self._fetch(monitor.endpoint, subject)
        except (OSError, TimeoutError) as e:
            logger.error("Query for %s failed: %s", monitor.endpoint, e, extra=log_extra)
            return False
        except Exception as e:
            logger.exception("Query for %s failed: %s", monitor.endpoint, e, extra=log_extra)
            return False

        try:
            return monitor.complete(result)
        except Exception as e:
            # Any handler failure is logged; the cycle goes on
            logger.exception(
                "Completion handler for %s failed: %s", monitor.endpoint, e, extra=log_extra
            )
            return False

    def run_cycle(self, subjects: Iterable[Subject], timeout: float | None = None) -> int:
        """Poll every subject once and wait for all queries to finish.

        Returns:
            Number of results delivered.
        """
        futures: list[Future[bool]] = []
        for subject in subjects:
            futures.extend(self.poll_once(subject))
        done, not_done = wait(futures, timeout=timeout)
        if not_done:
            logger.warning("%d query(ies) still running after %ss", len(not_done), timeout)
        return sum(1 for future in done if future.result())

    def run(
        self,
        subjects: Iterable[Subject],
        interval: float,
        stop_event: threading.Event,
    ) -> None:
        """Poll in a loop until ``stop_event`` is set."""
        subjects = list(subjects)
        logger.info("Polling %d subject(s) every %ss", len(subjects), interval)
        while not stop_event.is_set():
            delivered = self.run_cycle(subjects, timeout=interval)
            logger.debug(
                "Cycle delivered %d result(s)", delivered, extra={"diagnostic_tag": "polling"}
            )
            stop_event.wait(interval)
        logger.info("Polling stopped")

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
