"""The subject being synchronized.

A ``Subject`` owns everything the coordinators act on: the monitor registry,
the credential set, the working sets the two scopes merge into, the
presented (imported) state, and one ``DataSetSync`` per data set. Both
coordinators are created at construction and live as long as the subject.
"""

from __future__ import annotations

import threading
import types
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING

from orgsync.credentials import (
    Credential,
    CredentialChange,
    CredentialChangeNotifier,
    CredentialSet,
)
from orgsync.logging import get_logger
from orgsync.monitor import MonitorRegistry
from orgsync.notifications import NotificationCenter
from orgsync.querying import EntityDataQuerying, OrganizationDataQuerying
from orgsync.sync import DataSetSync
from orgsync.types import ChangeType, CredentialKind, DataSet, Endpoint, IssuedFor

if TYPE_CHECKING:
    from orgsync.monitor import QueryResult
    from orgsync.records import JobRecord, OrderRecord, Record

logger = get_logger(__name__)

ImportListener = Callable[[DataSet, Sequence["Record"]], None]


class _WorkingSet:
    """Records merged from both scopes during one epoch, keyed by record id."""

    def __init__(self) -> None:
        self._records: dict[int, Record] = {}
        self._lock = threading.Lock()

    def merge(self, records: Iterable[Record], reset: bool, issued_for: IssuedFor) -> int:
        """Add records, skipping ids already present.

        Args:
            records: Records of one poll.
            reset: Drop whatever the previous epoch left behind first.
            issued_for: Tag applied to the added records.

        Returns:
            Number of records added.
        """
        added = 0
        with self._lock:
            if reset:
                self._records.clear()
            for record in records:
                if record.record_id in self._records:
                    continue
                self._records[record.record_id] = record.tagged(issued_for)
                added += 1
        return added

    def snapshot(self) -> list[Record]:
        with self._lock:
            return list(self._records.values())


class Subject:
    """An entity whose entity- and organization-level data are synchronized.

    Args:
        subject_id: Identifier of the entity; matched against record owners on
            import.
        name: Display name used in logs and notifications.
        credentials: Initial credentials. Adding them here does not publish
            change events.
        notifier: Credential-change notifier the organization coordinator
            subscribes to. A private notifier is created when omitted.
        notifications: Error notification sink. A private one is created when
            omitted.
        benign_error_codes: API error codes never surfaced as notifications.
    """

    def __init__(
        self,
        subject_id: str,
        name: str = "",
        credentials: Iterable[Credential] = (),
        notifier: CredentialChangeNotifier | None = None,
        notifications: NotificationCenter | None = None,
        benign_error_codes: frozenset[int] = frozenset(),
    ) -> None:
        self.subject_id = subject_id
        self.name = name or subject_id
        self.notifier = notifier if notifier is not None else CredentialChangeNotifier()
        self.notifications = notifications if notifications is not None else NotificationCenter()
        self.benign_error_codes = benign_error_codes

        self.monitors = MonitorRegistry()
        self.credentials = CredentialSet(credentials)

        self._sync = {data_set: DataSetSync(data_set) for data_set in DataSet}
        self._working = {data_set: _WorkingSet() for data_set in DataSet}
        self._presented: dict[DataSet, list[Record]] = {data_set: [] for data_set in DataSet}
        self._presented_lock = threading.Lock()
        self._import_listeners: list[ImportListener] = []
        self._closed = False

        self.entity_querying = EntityDataQuerying(self)
        self.organization_querying = OrganizationDataQuerying(self, self.notifier)

    def __repr__(self) -> str:
        return f"Subject(subject_id={self.subject_id!r}, name={self.name!r})"

    # =========================================================================
    # Synchronization state
    # =========================================================================

    def sync_state(self, data_set: DataSet) -> DataSetSync:
        return self._sync[data_set]

    @property
    def orders(self) -> list[OrderRecord]:
        """Imported orders issued by this subject."""
        with self._presented_lock:
            return list(self._presented[DataSet.ORDERS])  # type: ignore[arg-type]

    @property
    def jobs(self) -> list[JobRecord]:
        """Imported jobs installed by this subject."""
        with self._presented_lock:
            return list(self._presented[DataSet.JOBS])  # type: ignore[arg-type]

    @property
    def orders_import_count(self) -> int:
        return self._sync[DataSet.ORDERS].import_count

    @property
    def jobs_import_count(self) -> int:
        return self._sync[DataSet.JOBS].import_count

    def add_import_listener(self, listener: ImportListener) -> None:
        """Register a callback run after each import with the imported records."""
        self._import_listeners.append(listener)

    # =========================================================================
    # Error policy
    # =========================================================================

    def should_notify_error(self, result: QueryResult, endpoint: Endpoint) -> bool:
        """Decide whether a poll result warrants an error notification.

        A successful result clears any earlier notification for the endpoint.
        Errors whose code is configured as benign are expected and ignored.
        """
        if not result.has_error:
            self.notifications.invalidate_error(self, endpoint)
            return False
        if result.error_code in self.benign_error_codes:
            logger.debug(
                "Ignoring benign error %s from %s",
                result.error_code,
                endpoint,
                extra={"subject": self.subject_id, "endpoint": endpoint},
            )
            return False
        return True

    # =========================================================================
    # Merge and import
    # =========================================================================

    def merge(
        self,
        data_set: DataSet,
        result: QueryResult,
        peer_added: bool,
        issued_for: IssuedFor,
    ) -> bool:
        """Merge one poll's records into the working set of a data set.

        When the other scope has not added anything this epoch, the working
        set still holds the previous epoch's records and is reset first.
        Records already present (visible from both scopes) are not counted
        twice. Error results contribute no records.

        Returns:
            True if at least one record was added.
        """
        added = self._working[data_set].merge(
            result.records, reset=not peer_added, issued_for=issued_for
        )
        logger.debug(
            "Merged %d %s record(s) issued for %s",
            added,
            data_set,
            issued_for,
            extra={"diagnostic_tag": "sync", "subject": self.subject_id, "data_set": data_set},
        )
        return added > 0

    def merge_orders(self, result: QueryResult, peer_added: bool, issued_for: IssuedFor) -> bool:
        return self.merge(DataSet.ORDERS, result, peer_added, issued_for)

    def merge_jobs(self, result: QueryResult, peer_added: bool, issued_for: IssuedFor) -> bool:
        return self.merge(DataSet.JOBS, result, peer_added, issued_for)

    def import_data(self, data_set: DataSet) -> list[Record]:
        """Publish the working set of a data set and notify import listeners.

        Returns:
            The imported records.
        """
        records = self.publish_import(data_set)
        self.notify_import_listeners(data_set, records)
        return records

    def publish_import(self, data_set: DataSet) -> list[Record]:
        """Store the working set of a data set as the presented state.

        Organization payloads carry every member's records; only the ones
        owned by this subject are kept. Listeners are not called; the
        coordinators call them once the synchronization lock is released.
        """
        records = [
            record
            for record in self._working[data_set].snapshot()
            if record.owner_id == self.subject_id
        ]
        with self._presented_lock:
            self._presented[data_set] = records

        logger.info(
            "Imported %d %s for %s",
            len(records),
            data_set,
            self.name,
            extra={"subject": self.subject_id, "data_set": data_set},
        )
        return records

    def notify_import_listeners(self, data_set: DataSet, records: Sequence[Record]) -> None:
        for listener in list(self._import_listeners):
            listener(data_set, records)

    def import_orders(self) -> list[Record]:
        return self.import_data(DataSet.ORDERS)

    def import_jobs(self) -> list[Record]:
        return self.import_data(DataSet.JOBS)

    # =========================================================================
    # Credentials
    # =========================================================================

    def add_credential(self, credential: Credential) -> bool:
        """Attach a credential and broadcast the change."""
        if not self.credentials.add(credential):
            return False
        self._publish(credential, ChangeType.ADDED)
        return True

    def remove_credential(self, credential: Credential) -> bool:
        """Detach a credential and broadcast the change."""
        if not self.credentials.remove(credential):
            return False
        self._publish(credential, ChangeType.REMOVED)
        return True

    def retype_credential(self, credential: Credential, kind: CredentialKind) -> None:
        """Change the kind of a held credential and broadcast the change."""
        credential.retype(kind)
        self._publish(credential, ChangeType.RETYPED)

    def _publish(self, credential: Credential, change_type: ChangeType) -> None:
        self.notifier.publish(
            CredentialChange(credential, change_type, holders=frozenset({self.subject_id}))
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Tear down: detach the coordinators from process-wide events."""
        if self._closed:
            return
        self._closed = True
        self.organization_querying.close()
        logger.debug("Closed subject %s", self.name, extra={"subject": self.subject_id})

    def __enter__(self) -> Subject:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()
