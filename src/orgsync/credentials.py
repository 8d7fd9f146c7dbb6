"""Credentials and the credential-change notifier.

A subject holds a set of credentials; the kinds present in that set decide
whether organization-level polling makes sense. Any add, remove or retype of
a credential is broadcast through a ``CredentialChangeNotifier`` so that
coordinators can adjust which monitors they keep registered.

Subscribers are held weakly: a coordinator that is garbage collected without
calling ``close()`` silently drops out of the subscriber list instead of
keeping its subject alive.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from orgsync.logging import get_logger
from orgsync.types import ENTITY_CREDENTIAL_KINDS, ChangeType, CredentialKind

logger = get_logger(__name__)

ChangeCallback = Callable[["CredentialChange"], None]


class Credential:
    """An access grant of one kind.

    Credentials compare by identity; two grants with the same id are still
    distinct objects unless they are the same instance.
    """

    def __init__(self, credential_id: str, kind: CredentialKind) -> None:
        self.credential_id = credential_id
        self._kind = kind

    def __repr__(self) -> str:
        return f"Credential(credential_id={self.credential_id!r}, kind={self._kind.value!r})"

    @property
    def kind(self) -> CredentialKind:
        return self._kind

    def retype(self, kind: CredentialKind) -> CredentialKind:
        """Change the kind of this credential.

        Returns:
            The previous kind.
        """
        previous = self._kind
        self._kind = kind
        return previous


@dataclass(frozen=True)
class CredentialChange:
    """Event describing a change to one credential.

    Attributes:
        credential: The credential that changed; ``credential.kind`` is its
            kind after the change.
        change_type: Whether the credential was added, removed or retyped.
        holders: Ids of subjects whose credential sets the change touched.
            Needed for removals, where the credential is no longer in its
            former holder's set when the event is delivered.
    """

    credential: Credential
    change_type: ChangeType = ChangeType.RETYPED
    holders: frozenset[str] = field(default_factory=frozenset)

    @property
    def removed(self) -> bool:
        return self.change_type == ChangeType.REMOVED


class _WeakCallbackRef:
    """Weak reference to a subscriber callback.

    Bound methods are referenced through ``weakref.WeakMethod`` so that the
    subscription does not keep the owning instance alive.
    """

    def __init__(self, callback: ChangeCallback) -> None:
        if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
            self._ref: Callable[[], ChangeCallback | None] = weakref.WeakMethod(callback)  # type: ignore[arg-type]
        else:
            self._ref = weakref.ref(callback)

    def __call__(self) -> ChangeCallback | None:
        return self._ref()

    def matches(self, callback: ChangeCallback) -> bool:
        target = self._ref()
        return target is not None and target == callback


class Subscription:
    """Handle returned by ``CredentialChangeNotifier.subscribe``.

    ``close()`` detaches the callback and may be called more than once.
    """

    def __init__(self, notifier: CredentialChangeNotifier, callback: ChangeCallback) -> None:
        self._notifier = notifier
        self._callback: ChangeCallback | None = callback

    @property
    def active(self) -> bool:
        return self._callback is not None

    def close(self) -> None:
        if self._callback is None:
            return
        self._notifier.unsubscribe(self._callback)
        self._callback = None

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class CredentialChangeNotifier:
    """Broadcasts credential changes to subscribed callbacks.

    One notifier is usually shared process-wide, but it is always passed in
    explicitly so tests and embedders can scope it.

    Thread Safety:
        Subscription management is lock protected. ``publish`` dispatches on
        a snapshot of live subscribers outside the lock, so callbacks may
        subscribe or unsubscribe re-entrantly.
    """

    def __init__(self) -> None:
        self._subscribers: list[_WeakCallbackRef] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        """Register a callback for every published change."""
        with self._lock:
            self._subscribers.append(_WeakCallbackRef(callback))
        return Subscription(self, callback)

    def unsubscribe(self, callback: ChangeCallback) -> bool:
        """Remove a callback.

        Returns:
            True if the callback was subscribed.
        """
        with self._lock:
            for index, ref in enumerate(self._subscribers):
                if ref.matches(callback):
                    del self._subscribers[index]
                    return True
            return False

    @property
    def subscriber_count(self) -> int:
        """Number of live subscribers."""
        with self._lock:
            self._prune()
            return len(self._subscribers)

    def publish(self, change: CredentialChange) -> int:
        """Deliver a change to every live subscriber.

        Returns:
            Number of callbacks invoked.
        """
        with self._lock:
            self._prune()
            callbacks = [cb for cb in (ref() for ref in self._subscribers) if cb is not None]

        logger.debug(
            "Publishing %s change for credential %s (kind=%s) to %d subscriber(s)",
            change.change_type,
            change.credential.credential_id,
            change.credential.kind,
            len(callbacks),
            extra={"diagnostic_tag": "membership"},
        )
        for callback in callbacks:
            callback(change)
        return len(callbacks)

    def _prune(self) -> None:
        self._subscribers = [ref for ref in self._subscribers if ref() is not None]


class CredentialSet:
    """Thread-safe set of the credentials held by one subject."""

    def __init__(self, credentials: Iterable[Credential] = ()) -> None:
        self._credentials: list[Credential] = []
        self._lock = threading.Lock()
        for credential in credentials:
            self.add(credential)

    def add(self, credential: Credential) -> bool:
        with self._lock:
            if any(c is credential for c in self._credentials):
                return False
            self._credentials.append(credential)
            return True

    def remove(self, credential: Credential) -> bool:
        with self._lock:
            for index, member in enumerate(self._credentials):
                if member is credential:
                    del self._credentials[index]
                    return True
            return False

    def __contains__(self, credential: object) -> bool:
        with self._lock:
            return any(c is credential for c in self._credentials)

    def __iter__(self) -> Iterator[Credential]:
        with self._lock:
            return iter(list(self._credentials))

    def __len__(self) -> int:
        with self._lock:
            return len(self._credentials)

    def kinds(self) -> frozenset[CredentialKind]:
        with self._lock:
            return frozenset(c.kind for c in self._credentials)

    def only_entity_kinds(self) -> bool:
        """True when every credential is a character or account grant.

        An empty set also qualifies: nothing can reach organization data.
        """
        return self.kinds() <= ENTITY_CREDENTIAL_KINDS

    def has_organization(self) -> bool:
        return CredentialKind.ORGANIZATION in self.kinds()

    def first_of_kind(self, *kinds: CredentialKind) -> Credential | None:
        """First credential whose kind is one of ``kinds``, in insertion order."""
        with self._lock:
            for credential in self._credentials:
                if credential.kind in kinds:
                    return credential
            return None
