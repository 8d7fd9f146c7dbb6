"""Record types carried in query payloads.

Records are kept deliberately thin: only the fields the merge and import
steps look at are modelled, everything else from the API row is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Protocol

from orgsync.types import IssuedFor


class Record(Protocol):
    """Common shape of merged records."""

    @property
    def record_id(self) -> int: ...

    @property
    def owner_id(self) -> str: ...

    @property
    def issued_for(self) -> IssuedFor | None: ...

    def tagged(self, issued_for: IssuedFor) -> Record: ...


@dataclass(frozen=True)
class OrderRecord:
    """A market order row."""

    order_id: int
    issuer_id: str
    type_id: int = 0
    volume: int = 0
    price: float = 0.0
    state: str = "open"
    issued_for: IssuedFor | None = None

    @property
    def record_id(self) -> int:
        return self.order_id

    @property
    def owner_id(self) -> str:
        return self.issuer_id

    def tagged(self, issued_for: IssuedFor) -> OrderRecord:
        """Return a copy tagged with the scope it was merged from."""
        return replace(self, issued_for=issued_for)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> OrderRecord:
        """Create an OrderRecord from one API row.

        Args:
            data: Raw row from the orders endpoint.

        Returns:
            OrderRecord instance.

        Raises:
            KeyError: If the row has no order id.
            ValueError: If a numeric field cannot be converted.
        """
        return cls(
            order_id=int(data["orderID"]),
            issuer_id=str(data.get("charID", "")),
            type_id=int(data.get("typeID", 0)),
            volume=int(data.get("volRemaining", 0)),
            price=float(data.get("price", 0.0)),
            state=str(data.get("orderState", "open")),
        )


@dataclass(frozen=True)
class JobRecord:
    """An industry job row."""

    job_id: int
    installer_id: str
    activity: str = ""
    status: str = ""
    issued_for: IssuedFor | None = None

    @property
    def record_id(self) -> int:
        return self.job_id

    @property
    def owner_id(self) -> str:
        return self.installer_id

    def tagged(self, issued_for: IssuedFor) -> JobRecord:
        """Return a copy tagged with the scope it was merged from."""
        return replace(self, issued_for=issued_for)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> JobRecord:
        """Create a JobRecord from one API row.

        Raises:
            KeyError: If the row has no job id.
            ValueError: If the job id cannot be converted.
        """
        return cls(
            job_id=int(data["jobID"]),
            installer_id=str(data.get("installerID", "")),
            activity=str(data.get("activityID", "")),
            status=str(data.get("status", "")),
        )
