"""Test helper functions for org-sync tests.

These helpers build subjects, records and results with sensible defaults so
tests only spell out what they care about.

Usage
=====

Import and use helpers directly in tests::

    from tests.helpers import make_orders, make_subject, ok

    def test_example():
        subject = make_subject(CredentialKind.ORGANIZATION)
        subject.organization_querying.orders_monitor.complete(ok(make_orders(3)))
"""

from __future__ import annotations

from orgsync.config import Config, CredentialSpec
from orgsync.credentials import Credential, CredentialChangeNotifier
from orgsync.monitor import QueryResult
from orgsync.notifications import NotificationCenter
from orgsync.records import JobRecord, OrderRecord, Record
from orgsync.subject import Subject
from orgsync.types import CredentialKind

SUBJECT_ID = "90000001"
OTHER_MEMBER_ID = "90000002"


def make_subject(
    *kinds: CredentialKind,
    subject_id: str = SUBJECT_ID,
    name: str = "Test Pilot",
    notifier: CredentialChangeNotifier | None = None,
    notifications: NotificationCenter | None = None,
    benign_error_codes: frozenset[int] = frozenset(),
) -> Subject:
    """Create a subject holding one credential per given kind."""
    credentials = [Credential(f"key-{i}", kind) for i, kind in enumerate(kinds, start=1)]
    return Subject(
        subject_id,
        name=name,
        credentials=credentials,
        notifier=notifier,
        notifications=notifications,
        benign_error_codes=benign_error_codes,
    )


def credential_of_kind(subject: Subject, kind: CredentialKind) -> Credential:
    """Return the first credential of ``kind`` held by ``subject``."""
    credential = subject.credentials.first_of_kind(kind)
    assert credential is not None, f"subject holds no {kind} credential"
    return credential


def make_orders(count: int, issuer_id: str = SUBJECT_ID, start: int = 1) -> list[OrderRecord]:
    """Create ``count`` orders with consecutive ids."""
    return [
        OrderRecord(order_id=order_id, issuer_id=issuer_id, type_id=34, volume=10, price=5.0)
        for order_id in range(start, start + count)
    ]


def make_jobs(count: int, installer_id: str = SUBJECT_ID, start: int = 1) -> list[JobRecord]:
    """Create ``count`` jobs with consecutive ids."""
    return [
        JobRecord(job_id=job_id, installer_id=installer_id, activity="1", status="active")
        for job_id in range(start, start + count)
    ]


def ok(records: list[OrderRecord] | list[JobRecord] | list[Record] | None = None) -> QueryResult:
    """A successful query result."""
    return QueryResult.success(records or [])


def failed(code: int = 500, message: str = "Internal error") -> QueryResult:
    """A failed query result."""
    return QueryResult.failure(code, message)


def make_config(**overrides: object) -> Config:
    """Create a Config for testing with a configured subject."""
    values: dict[str, object] = {
        "subject_id": SUBJECT_ID,
        "subject_name": "Test Pilot",
        "credentials": (CredentialSpec("key-1", CredentialKind.CHARACTER),),
        "api_base_url": "https://api.test",
    }
    values.update(overrides)
    return Config(**values)  # type: ignore[arg-type]
