"""Entity-scope and organization-scope data querying coordinators.

Both coordinators are instances of ``ScopeDataQuerying``; the organization
one additionally keeps its monitors registered only while the subject holds a
credential that can reach organization data.

Component Boundaries
--------------------
The coordinators own their monitors and the completion handlers. Flags live
in the subject's shared ``DataSetSync`` objects; merge, import and the error
policy are subject operations. Querying itself belongs to whatever drives the
monitor registry (``orgsync.scheduler`` for the bundled runner).

See Also
--------
- orgsync.sync : The shared completion/merge sequence
- orgsync.credentials : Credential change events
- orgsync.subject : Merge and import of the working sets
"""

from __future__ import annotations

import threading
from collections import deque
from typing import TYPE_CHECKING

from orgsync.credentials import CredentialChange, CredentialChangeNotifier, Subscription
from orgsync.logging import get_logger
from orgsync.sync import ScopeDataQuerying
from orgsync.types import CredentialKind, DataSet, Scope

if TYPE_CHECKING:
    from orgsync.monitor import QueryResult
    from orgsync.subject import Subject

logger = get_logger(__name__)


class EntityDataQuerying(ScopeDataQuerying):
    """Queries the subject's own orders and jobs."""

    scope = Scope.ENTITY

    @property
    def entity_orders_updated(self) -> bool:
        return self._flag_updated(DataSet.ORDERS)

    @property
    def entity_orders_added(self) -> bool:
        return self._flag_added(DataSet.ORDERS)

    @property
    def entity_jobs_updated(self) -> bool:
        return self._flag_updated(DataSet.JOBS)

    @property
    def entity_jobs_added(self) -> bool:
        return self._flag_added(DataSet.JOBS)

    def _notify_error(self, data_set: DataSet, result: QueryResult) -> None:
        if data_set == DataSet.ORDERS:
            self._subject.notifications.notify_orders_error(self._subject, result)
        else:
            self._subject.notifications.notify_jobs_error(self._subject, result)


class OrganizationDataQuerying(ScopeDataQuerying):
    """Queries the orders and jobs of the subject's parent organization.

    On top of the shared completion handling, this coordinator listens to
    credential changes and adds or removes its two monitors so that they are
    registered exactly when organization polling can succeed.

    Thread Safety:
        The credential-change handler may run on any thread, concurrently with
        completion handlers. Changes are queued and applied one at a time by
        whichever thread is already draining the queue, so a membership
        decision and its registry mutations are never interleaved with
        another change. A change published from inside a registry mutation
        (same thread) is applied right after the current one.
    """

    scope = Scope.ORGANIZATION

    def __init__(self, subject: Subject, notifier: CredentialChangeNotifier) -> None:
        super().__init__(subject)
        self._pending: deque[CredentialChange] = deque()
        self._draining = False
        self._pending_lock = threading.Lock()
        self._subscription: Subscription | None = notifier.subscribe(self._on_credential_changed)

    @property
    def org_orders_updated(self) -> bool:
        return self._flag_updated(DataSet.ORDERS)

    @property
    def org_orders_added(self) -> bool:
        return self._flag_added(DataSet.ORDERS)

    @property
    def org_jobs_updated(self) -> bool:
        return self._flag_updated(DataSet.JOBS)

    @property
    def org_jobs_added(self) -> bool:
        return self._flag_added(DataSet.JOBS)

    @property
    def is_registered(self) -> bool:
        """True if any of the organization monitors is in the registry."""
        registry = self._subject.monitors
        return any(registry.contains(monitor) for monitor in self._monitors)

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def close(self) -> None:
        """Detach from the credential-change notifier."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _notify_error(self, data_set: DataSet, result: QueryResult) -> None:
        if data_set == DataSet.ORDERS:
            self._subject.notifications.notify_organization_orders_error(self._subject, result)
        else:
            self._subject.notifications.notify_organization_jobs_error(self._subject, result)

    def _on_credential_changed(self, change: CredentialChange) -> None:
        """Queue a credential change and apply queued changes in order."""
        with self._pending_lock:
            self._pending.append(change)
            if self._draining:
                return
            self._draining = True

        try:
            while True:
                with self._pending_lock:
                    if not self._pending:
                        self._draining = False
                        return
                    change = self._pending.popleft()
                self._apply_credential_change(change)
        except Exception:
            with self._pending_lock:
                self._draining = False
            raise

    def _apply_credential_change(self, change: CredentialChange) -> None:
        """Re-evaluate monitor membership after a credential changed."""
        subject = self._subject
        credential = change.credential
        if credential not in subject.credentials and subject.subject_id not in change.holders:
            return

        registry = subject.monitors

        # Demotion: no organization credential left
        if (
            (change.removed or credential.kind.is_entity_kind)
            and subject.credentials.only_entity_kinds()
            and self.is_registered
        ):
            for monitor in self._monitors:
                registry.remove(monitor)
            self._log.info(
                "Organization credential no longer held, organization polling stopped",
            )
            return

        # Promotion: an organization credential appeared
        if (
            not change.removed
            and credential.kind == CredentialKind.ORGANIZATION
            and not self.is_registered
        ):
            for monitor in self._monitors:
                registry.register(monitor)
            self._log.info("Organization credential added, organization polling resumed")
            return

        self._log.debug(
            "Credential %s %s, organization monitors unchanged",
            credential.credential_id,
            change.change_type,
            extra={"diagnostic_tag": "membership"},
        )
