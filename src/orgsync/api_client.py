"""HTTP query client for the remote read-only data API.

The client turns one (endpoint, subject) pair into a ``QueryResult``.
Transport failures, HTTP errors and API error bodies all come back as
failure results rather than exceptions, so a failed poll still completes its
monitor's cycle. There is no retry logic here: a failed poll is simply
retried on the next scheduled cycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

import httpx

from orgsync.exceptions import QueryClientError
from orgsync.logging import get_logger
from orgsync.monitor import QueryResult
from orgsync.records import JobRecord, OrderRecord
from orgsync.types import ENTITY_CREDENTIAL_KINDS, CredentialKind, Endpoint, Scope

if TYPE_CHECKING:
    from orgsync.credentials import Credential
    from orgsync.records import Record
    from orgsync.subject import Subject

logger = get_logger(__name__)

# Default timeout for HTTP requests (connect, read, write, pool)
DEFAULT_TIMEOUT = httpx.Timeout(10.0, read=30.0)

# Error codes for failures that never reached the API
TRANSPORT_ERROR_CODE = -1
MISSING_CREDENTIAL_ERROR_CODE = -2
MALFORMED_RESPONSE_ERROR_CODE = -3

_RECORD_PARSERS = {
    Endpoint.MARKET_ORDERS: OrderRecord.from_api_response,
    Endpoint.ORG_MARKET_ORDERS: OrderRecord.from_api_response,
    Endpoint.INDUSTRY_JOBS: JobRecord.from_api_response,
    Endpoint.ORG_INDUSTRY_JOBS: JobRecord.from_api_response,
}


def select_credential(subject: Subject, endpoint: Endpoint) -> Credential | None:
    """Pick the credential used to query an endpoint for a subject.

    Organization endpoints need an organization credential; entity endpoints
    use the first character or account credential.
    """
    if endpoint.scope == Scope.ORGANIZATION:
        return subject.credentials.first_of_kind(CredentialKind.ORGANIZATION)
    return subject.credentials.first_of_kind(*ENTITY_CREDENTIAL_KINDS)


def parse_rows(endpoint: Endpoint, body: Any) -> list[Record]:
    """Parse the ``rows`` array of an API response body into records.

    Raises:
        ValueError: If the body does not have the expected shape.
    """
    if not isinstance(body, dict):
        raise ValueError(f"Expected a JSON object, got {type(body).__name__}")
    rows = body.get("rows", [])
    if not isinstance(rows, list):
        raise ValueError("'rows' is not a list")
    parser = _RECORD_PARSERS[endpoint]
    try:
        return [parser(row) for row in rows]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed row: {e}") from e


class ApiQueryClient:
    """Queries the remote data API over HTTP.

    Uses connection pooling via a lazily created, reusable ``httpx.Client``.
    Safe to share between scheduler worker threads.
    """

    def __init__(self, base_url: str, timeout: httpx.Timeout | None = None) -> None:
        """Initialize the client.

        Args:
            base_url: API base URL (e.g., "https://api.example.com").
            timeout: Optional custom timeout configuration.

        Raises:
            QueryClientError: If ``base_url`` is empty.
        """
        if not base_url:
            raise QueryClientError("API base URL must not be empty")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def build_url(self, endpoint: Endpoint) -> str:
        return f"{self.base_url}/{endpoint.scope.value}/{endpoint.value}"

    def fetch(self, endpoint: Endpoint, subject: Subject) -> QueryResult:
        """Query one endpoint for a subject.

        Returns:
            A success result with the parsed records, or a failure result.
        """
        credential = select_credential(subject, endpoint)
        if credential is None:
            return QueryResult.failure(
                MISSING_CREDENTIAL_ERROR_CODE,
                f"No credential can query {endpoint}",
            )

        url = self.build_url(endpoint)
        params = {"subject_id": subject.subject_id, "credential_id": credential.credential_id}
        log_extra = {"subject": subject.subject_id, "endpoint": endpoint}

        try:
            response = self._get_client().get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning("Request to %s failed: %s", url, e, extra=log_extra)
            return QueryResult.failure(TRANSPORT_ERROR_CODE, str(e))

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            return self._error_result(response.status_code, body, response.reason_phrase)

        if isinstance(body, dict) and "error" in body:
            return self._error_result(response.status_code, body, "API error")

        try:
            records = parse_rows(endpoint, body)
        except ValueError as e:
            logger.warning("Malformed response from %s: %s", url, e, extra=log_extra)
            return QueryResult.failure(MALFORMED_RESPONSE_ERROR_CODE, str(e))

        logger.debug(
            "Fetched %d row(s) from %s", len(records), url,
            extra={**log_extra, "diagnostic_tag": "polling"},
        )
        return QueryResult.success(records)

    @staticmethod
    def _error_result(status_code: int, body: Any, fallback: str) -> QueryResult:
        """Build a failure result, preferring the API's own error code."""
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            try:
                code = int(error.get("code", status_code))
            except (TypeError, ValueError):
                code = status_code
            return QueryResult.failure(code, str(error.get("message", fallback)))
        return QueryResult.failure(status_code, fallback)

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
