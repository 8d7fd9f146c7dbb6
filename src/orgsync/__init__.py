"""org-sync - entity and organization data synchronizer."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("org-sync")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from orgsync.credentials import Credential, CredentialChange, CredentialChangeNotifier
from orgsync.monitor import MonitorRegistry, PollMonitor, QueryResult
from orgsync.querying import EntityDataQuerying, OrganizationDataQuerying
from orgsync.subject import Subject
from orgsync.sync import DataSetSync
from orgsync.types import CredentialKind, DataSet, Endpoint, IssuedFor, Scope

# NOTE: Update this list when adding new exports to this module.
__all__ = [
    "__version__",
    "Credential",
    "CredentialChange",
    "CredentialChangeNotifier",
    "CredentialKind",
    "DataSet",
    "DataSetSync",
    "Endpoint",
    "EntityDataQuerying",
    "IssuedFor",
    "MonitorRegistry",
    "OrganizationDataQuerying",
    "PollMonitor",
    "QueryResult",
    "Scope",
    "Subject",
]
