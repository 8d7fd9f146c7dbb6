"""Type definitions and enums for org-sync.

This module provides centralized type definitions for credential kinds,
synchronization scopes, data sets and API endpoints, replacing magic strings
throughout the codebase with type-safe constants.

Usage:
    from orgsync.types import CredentialKind, DataSet, Endpoint, Scope

    # StrEnum members compare equal to their string values
    if credential.kind == CredentialKind.ORGANIZATION:
        ...

    # Resolve the fixed endpoint for a scope/data set pair
    Endpoint.for_scope(Scope.ORGANIZATION, DataSet.ORDERS)  # Endpoint.ORG_MARKET_ORDERS

    # Validation
    CredentialKind.is_valid("account")  # True
"""

from __future__ import annotations

from enum import StrEnum


class CredentialKind(StrEnum):
    """Classification of an access grant.

    Values:
        CHARACTER: Grant limited to a single entity ("character")
        ACCOUNT: Grant covering every entity of an account ("account")
        ORGANIZATION: Grant covering the parent organization ("organization")
    """

    CHARACTER = "character"
    ACCOUNT = "account"
    ORGANIZATION = "organization"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if a string value is a valid credential kind.

        Args:
            value: The string value to validate.

        Returns:
            True if the value matches a valid credential kind.
        """
        return value in cls._value2member_map_

    @classmethod
    def values(cls) -> frozenset[str]:
        """Return all valid credential kind values as a frozenset."""
        return frozenset(member.value for member in cls)

    @property
    def is_entity_kind(self) -> bool:
        """True for kinds that only grant entity-level access."""
        return self in ENTITY_CREDENTIAL_KINDS


# Kinds that cannot be used to query organization-level data
ENTITY_CREDENTIAL_KINDS: frozenset[CredentialKind] = frozenset(
    {CredentialKind.CHARACTER, CredentialKind.ACCOUNT}
)


class IssuedFor(StrEnum):
    """Tag recording which scope a merged record was queried from."""

    ENTITY = "entity"
    ORGANIZATION = "organization"


class Scope(StrEnum):
    """Synchronization scope of a coordinator.

    Values:
        ENTITY: Entity-level data sets ("entity")
        ORGANIZATION: Parent-organization data sets ("organization")
    """

    ENTITY = "entity"
    ORGANIZATION = "organization"

    @property
    def peer(self) -> Scope:
        """The other scope of the pair."""
        return Scope.ORGANIZATION if self is Scope.ENTITY else Scope.ENTITY

    @property
    def issued_for(self) -> IssuedFor:
        """The record tag used for data merged from this scope."""
        return IssuedFor(self.value)


class DataSet(StrEnum):
    """Data sets synchronized across both scopes."""

    ORDERS = "orders"
    JOBS = "jobs"


class Endpoint(StrEnum):
    """Fixed API endpoint identifiers polled by the coordinators."""

    MARKET_ORDERS = "market_orders"
    INDUSTRY_JOBS = "industry_jobs"
    ORG_MARKET_ORDERS = "org_market_orders"
    ORG_INDUSTRY_JOBS = "org_industry_jobs"

    @classmethod
    def for_scope(cls, scope: Scope, data_set: DataSet) -> Endpoint:
        """Resolve the endpoint polled for a data set at a given scope.

        Args:
            scope: The synchronization scope.
            data_set: The data set.

        Returns:
            The matching endpoint.
        """
        return _ENDPOINTS[(scope, data_set)]

    @property
    def scope(self) -> Scope:
        """The scope this endpoint belongs to."""
        return Scope.ORGANIZATION if self.value.startswith("org_") else Scope.ENTITY


_ENDPOINTS: dict[tuple[Scope, DataSet], Endpoint] = {
    (Scope.ENTITY, DataSet.ORDERS): Endpoint.MARKET_ORDERS,
    (Scope.ENTITY, DataSet.JOBS): Endpoint.INDUSTRY_JOBS,
    (Scope.ORGANIZATION, DataSet.ORDERS): Endpoint.ORG_MARKET_ORDERS,
    (Scope.ORGANIZATION, DataSet.JOBS): Endpoint.ORG_INDUSTRY_JOBS,
}


class ChangeType(StrEnum):
    """Kind of change carried by a credential change event."""

    ADDED = "added"
    REMOVED = "removed"
    RETYPED = "retyped"
