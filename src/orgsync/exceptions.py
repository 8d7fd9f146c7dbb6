"""Exceptions raised by org-sync."""

from __future__ import annotations


class OrgSyncError(Exception):
    """Base class for org-sync errors."""

    pass


class RegistryError(OrgSyncError):
    """Raised when a monitor cannot join a registry.

    A monitor belongs to exactly one subject's registry; registering it into
    a second registry is a programming error.
    """

    pass


class QueryClientError(OrgSyncError):
    """Raised when the query client is misconfigured."""

    pass
