"""Error notification sink for failed polls.

Notifications are keyed by (subject, endpoint): a new error for the same key
replaces the previous one, and a later successful poll invalidates it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from orgsync.logging import get_logger
from orgsync.types import Endpoint

if TYPE_CHECKING:
    from orgsync.monitor import QueryResult
    from orgsync.subject import Subject

logger = get_logger(__name__)


@dataclass(frozen=True)
class ErrorNotification:
    """A poll error surfaced to the user."""

    subject_id: str
    subject_name: str
    endpoint: Endpoint
    error_code: int | None
    error_message: str
    raised_at: datetime


class NotificationCenter:
    """Collects poll error notifications.

    Thread Safety:
        All public methods are thread-safe.
    """

    def __init__(self) -> None:
        self._notifications: dict[tuple[str, Endpoint], ErrorNotification] = {}
        self._lock = threading.Lock()

    def notify_orders_error(self, subject: Subject, result: QueryResult) -> None:
        self._notify(subject, Endpoint.MARKET_ORDERS, result)

    def notify_jobs_error(self, subject: Subject, result: QueryResult) -> None:
        self._notify(subject, Endpoint.INDUSTRY_JOBS, result)

    def notify_organization_orders_error(self, subject: Subject, result: QueryResult) -> None:
        self._notify(subject, Endpoint.ORG_MARKET_ORDERS, result)

    def notify_organization_jobs_error(self, subject: Subject, result: QueryResult) -> None:
        self._notify(subject, Endpoint.ORG_INDUSTRY_JOBS, result)

    def invalidate_error(self, subject: Subject, endpoint: Endpoint) -> bool:
        """Drop the notification for an endpoint after it recovered.

        Returns:
            True if a notification was removed.
        """
        with self._lock:
            removed = self._notifications.pop((subject.subject_id, endpoint), None)
        if removed is not None:
            logger.info(
                "%s recovered for %s",
                endpoint,
                subject.name,
                extra={"subject": subject.subject_id, "endpoint": endpoint},
            )
        return removed is not None

    def get_notifications(self) -> list[ErrorNotification]:
        """Current notifications, oldest first."""
        with self._lock:
            return sorted(self._notifications.values(), key=lambda n: n.raised_at)

    def _notify(self, subject: Subject, endpoint: Endpoint, result: QueryResult) -> None:
        notification = ErrorNotification(
            subject_id=subject.subject_id,
            subject_name=subject.name,
            endpoint=endpoint,
            error_code=result.error_code,
            error_message=result.error_message,
            raised_at=datetime.now(UTC),
        )
        with self._lock:
            self._notifications[(subject.subject_id, endpoint)] = notification

        logger.warning(
            "Querying %s for %s failed: [%s] %s",
            endpoint,
            subject.name,
            result.error_code,
            result.error_message,
            extra={
                "subject": subject.subject_id,
                "endpoint": endpoint,
                "error_code": result.error_code,
            },
        )
