"""Tests for PollScheduler."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from concurrent.futures import FIRST_COMPLETED, wait

import pytest

from orgsync.monitor import QueryResult
from orgsync.scheduler import PollScheduler
from orgsync.subject import Subject
from orgsync.types import CredentialKind, DataSet, Endpoint
from tests.helpers import make_jobs, make_orders, make_subject, ok
from tests.mocks import BlockingFetcher, ImportRecorder, ScriptedFetcher


@pytest.fixture
def scheduler_factory() -> Iterator[list[PollScheduler]]:
    """Collects schedulers created by a test and shuts them down afterwards."""
    schedulers: list[PollScheduler] = []
    yield schedulers
    for scheduler in schedulers:
        scheduler.shutdown()


def _scheduler(fetcher: ScriptedFetcher, created: list[PollScheduler]) -> PollScheduler:
    scheduler = PollScheduler(fetcher, max_workers=2)
    created.append(scheduler)
    return scheduler


class TestPollScheduler:
    def test_polls_every_enabled_monitor(self, scheduler_factory: list[PollScheduler]) -> None:
        fetcher = ScriptedFetcher()
        subject = make_subject(CredentialKind.ORGANIZATION)
        subject.organization_querying.jobs_monitor.enabled = False

        delivered = _scheduler(fetcher, scheduler_factory).run_cycle([subject], timeout=10)

        assert delivered == 3
        assert sorted(fetcher.endpoints) == sorted(
            [Endpoint.MARKET_ORDERS, Endpoint.INDUSTRY_JOBS, Endpoint.ORG_MARKET_ORDERS]
        )

    def test_removed_monitors_are_not_polled(self, scheduler_factory: list[PollScheduler]) -> None:
        fetcher = ScriptedFetcher()
        subject = make_subject(CredentialKind.ORGANIZATION, CredentialKind.CHARACTER)
        org = next(c for c in subject.credentials if c.kind == CredentialKind.ORGANIZATION)
        subject.remove_credential(org)

        _scheduler(fetcher, scheduler_factory).run_cycle([subject], timeout=10)

        assert sorted(fetcher.endpoints) == sorted([Endpoint.MARKET_ORDERS, Endpoint.INDUSTRY_JOBS])

    def test_full_cycle_imports_both_data_sets(
        self, scheduler_factory: list[PollScheduler]
    ) -> None:
        fetcher = ScriptedFetcher(
            {
                Endpoint.MARKET_ORDERS: ok(make_orders(2)),
                Endpoint.ORG_MARKET_ORDERS: ok(make_orders(3)),
                Endpoint.INDUSTRY_JOBS: ok(make_jobs(1)),
                Endpoint.ORG_INDUSTRY_JOBS: ok(make_jobs(1, start=2)),
            }
        )
        subject = make_subject(CredentialKind.ORGANIZATION)
        recorder = ImportRecorder(subject)

        _scheduler(fetcher, scheduler_factory).run_cycle([subject], timeout=10)

        assert recorder.count(DataSet.ORDERS) == 1
        assert recorder.count(DataSet.JOBS) == 1
        assert sorted(order.order_id for order in subject.orders) == [1, 2, 3]
        assert sorted(job.job_id for job in subject.jobs) == [1, 2]

    def test_fetch_os_error_is_logged_not_raised(
        self, scheduler_factory: list[PollScheduler], caplog: pytest.LogCaptureFixture
    ) -> None:
        fetcher = ScriptedFetcher(errors={Endpoint.MARKET_ORDERS: ConnectionError("down")})
        subject = make_subject(CredentialKind.CHARACTER)

        with caplog.at_level(logging.ERROR, logger="orgsync.scheduler"):
            delivered = _scheduler(fetcher, scheduler_factory).run_cycle([subject], timeout=10)

        assert delivered == 3
        assert "down" in caplog.text

    def test_handler_error_is_logged_not_raised(
        self, scheduler_factory: list[PollScheduler], caplog: pytest.LogCaptureFixture
    ) -> None:
        fetcher = ScriptedFetcher()
        subject = make_subject(CredentialKind.CHARACTER)

        def fail(result: QueryResult) -> None:
            raise RuntimeError("handler broke")

        subject.entity_querying.jobs_monitor.on_completion(fail)

        with caplog.at_level(logging.ERROR, logger="orgsync.scheduler"):
            delivered = _scheduler(fetcher, scheduler_factory).run_cycle([subject], timeout=10)

        assert delivered == 3
        assert "handler broke" in caplog.text

    def test_unexpected_handler_error_type_is_logged_not_raised(
        self, scheduler_factory: list[PollScheduler], caplog: pytest.LogCaptureFixture
    ) -> None:
        fetcher = ScriptedFetcher()
        subject = make_subject(CredentialKind.ORGANIZATION)
        subject.monitors.remove(subject.entity_querying.jobs_monitor)

        def fail(result: QueryResult) -> None:
            raise AttributeError("handler bug")

        subject.organization_querying.orders_monitor.on_completion(fail)

        with caplog.at_level(logging.ERROR, logger="orgsync.scheduler"):
            delivered = _scheduler(fetcher, scheduler_factory).run_cycle([subject], timeout=10)

        assert delivered == 2
        assert "handler bug" in caplog.text
        assert "Completion handler for org_market_orders failed" in caplog.text

    def test_unexpected_fetch_error_type_is_logged_not_raised(
        self, scheduler_factory: list[PollScheduler], caplog: pytest.LogCaptureFixture
    ) -> None:
        fetcher = ScriptedFetcher(errors={Endpoint.INDUSTRY_JOBS: KeyError("rows")})
        subject = make_subject(CredentialKind.CHARACTER)

        with caplog.at_level(logging.ERROR, logger="orgsync.scheduler"):
            delivered = _scheduler(fetcher, scheduler_factory).run_cycle([subject], timeout=10)

        assert delivered == 3
        assert "Query for industry_jobs failed" in caplog.text

    def test_in_flight_monitor_is_not_polled_again(
        self, scheduler_factory: list[PollScheduler]
    ) -> None:
        fetcher = BlockingFetcher(Endpoint.ORG_MARKET_ORDERS)
        subject = make_subject(CredentialKind.ORGANIZATION)
        scheduler = PollScheduler(fetcher, max_workers=4)
        scheduler_factory.append(scheduler)

        first = scheduler.poll_once(subject)
        assert fetcher.entered.wait(timeout=5)
        pending = set(first)
        while len(pending) > 1:
            done, pending = wait(pending, timeout=5, return_when=FIRST_COMPLETED)
            assert done

        second = scheduler.poll_once(subject)
        assert len(second) == 3
        for future in second:
            assert future.result(timeout=10)

        fetcher.release.set()
        assert all(future.result(timeout=10) for future in first)
        assert fetcher.endpoints.count(Endpoint.ORG_MARKET_ORDERS) == 1

        third = scheduler.poll_once(subject)
        assert len(third) == 4
        assert all(future.result(timeout=10) for future in third)
        assert fetcher.endpoints.count(Endpoint.ORG_MARKET_ORDERS) == 2

    def test_poll_once_returns_futures(self, scheduler_factory: list[PollScheduler]) -> None:
        subject = make_subject(CredentialKind.ORGANIZATION)

        futures = _scheduler(ScriptedFetcher(), scheduler_factory).poll_once(subject)

        assert len(futures) == 4
        assert all(future.result(timeout=10) for future in futures)

    def test_run_stops_on_event(self, scheduler_factory: list[PollScheduler]) -> None:
        fetcher = ScriptedFetcher()
        subject = make_subject(CredentialKind.CHARACTER)
        scheduler = _scheduler(fetcher, scheduler_factory)
        stop = threading.Event()
        cycles: list[int] = []

        def count_and_stop(data_set: DataSet, records: object) -> None:
            cycles.append(1)
            if len(cycles) >= 2:
                stop.set()

        subject.add_import_listener(count_and_stop)
        runner = threading.Thread(target=scheduler.run, args=([subject], 0.01, stop))
        runner.start()
        runner.join(timeout=30)

        assert not runner.is_alive()
        assert len(cycles) >= 2

    def test_shutdown_is_idempotent(self) -> None:
        scheduler = PollScheduler(ScriptedFetcher())
        scheduler.run_cycle([make_subject()], timeout=10)

        scheduler.shutdown()
        scheduler.shutdown()

    def test_multiple_subjects(self, scheduler_factory: list[PollScheduler]) -> None:
        fetcher = ScriptedFetcher()
        subjects: list[Subject] = [
            make_subject(CredentialKind.CHARACTER, subject_id="1"),
            make_subject(CredentialKind.CHARACTER, subject_id="2"),
        ]

        delivered = _scheduler(fetcher, scheduler_factory).run_cycle(subjects, timeout=10)

        assert delivered == 8
        assert {subject_id for _, subject_id in fetcher.calls} == {"1", "2"}
