"""Command-line flags of the ``org-sync`` console script.

Every flag overrides the matching ``ORGSYNC_*`` setting, so one subject can
be synchronized from the command line without an env file::

    org-sync --once --subject-id 90000001 \\
        --credential key-1:character --credential key-2:organization
"""

from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path

from orgsync.config import VALID_LOG_LEVELS, Config, CredentialSpec
from orgsync.types import CredentialKind


def credential_spec(value: str) -> CredentialSpec:
    """Parse one ``--credential`` value of the form ``id:kind``.

    Raises:
        argparse.ArgumentTypeError: If the value is not ``id:kind`` or the
            kind is unknown.
    """
    credential_id, sep, kind = value.partition(":")
    credential_id = credential_id.strip()
    kind = kind.strip().lower()
    if not sep or not credential_id:
        raise argparse.ArgumentTypeError(f"expected id:kind, got '{value}'")
    if not CredentialKind.is_valid(kind):
        raise argparse.ArgumentTypeError(
            f"unknown credential kind '{kind}' "
            f"(expected one of {', '.join(sorted(CredentialKind.values()))})"
        )
    return CredentialSpec(credential_id, CredentialKind(kind))


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Namespace with ``once``, ``interval``, ``log_level``, ``json_logs``,
        ``diagnostic_tags``, ``subject_id``, ``subject_name``, ``credentials``
        and ``env_file``. Unset overrides are None.
    """
    parser = argparse.ArgumentParser(
        prog="org-sync",
        description="Synchronize a subject's entity and organization orders and jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    polling = parser.add_argument_group("polling")
    polling.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit",
    )
    polling.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Poll interval in seconds (overrides ORGSYNC_POLL_INTERVAL)",
    )

    subject = parser.add_argument_group("subject")
    subject.add_argument(
        "--subject-id",
        default=None,
        help="Entity to synchronize (overrides ORGSYNC_SUBJECT_ID)",
    )
    subject.add_argument(
        "--subject-name",
        default=None,
        help="Display name in logs (overrides ORGSYNC_SUBJECT_NAME)",
    )
    subject.add_argument(
        "--credential",
        dest="credentials",
        metavar="ID:KIND",
        type=credential_spec,
        action="append",
        default=None,
        help="Credential held by the subject; repeat for several "
        "(replaces ORGSYNC_CREDENTIALS)",
    )

    logs = parser.add_argument_group("logging")
    logs.add_argument(
        "--log-level",
        type=str.upper,
        choices=sorted(VALID_LOG_LEVELS),
        default=None,
        help="Log level (overrides ORGSYNC_LOG_LEVEL)",
    )
    logs.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit one JSON object per log line (overrides ORGSYNC_LOG_JSON)",
    )
    logs.add_argument(
        "--diagnostic-tags",
        default=None,
        metavar="TAGS",
        help="Comma-separated diagnostic tags to log, e.g. sync,polling "
        "(overrides ORGSYNC_DIAGNOSTIC_TAGS)",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )

    return parser.parse_args(args)


def apply_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Return ``config`` with every flag given on the command line applied."""
    overrides = {
        "poll_interval": parsed.interval,
        "log_level": parsed.log_level,
        "log_json": parsed.json_logs,
        "diagnostic_tags": parsed.diagnostic_tags,
        "subject_id": parsed.subject_id.strip() if parsed.subject_id else None,
        "subject_name": parsed.subject_name,
        "credentials": tuple(parsed.credentials) if parsed.credentials else None,
    }
    return dataclasses.replace(
        config, **{key: value for key, value in overrides.items() if value is not None}
    )


__all__ = ["apply_overrides", "credential_spec", "parse_args"]
