"""Configuration loading from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from orgsync.types import CredentialKind

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_API_BASE_URL = "https://api.example.invalid"


@dataclass(frozen=True)
class CredentialSpec:
    """A credential declared in configuration as ``id:kind``."""

    credential_id: str
    kind: CredentialKind


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment.

    This dataclass is frozen (immutable) to prevent accidental modification
    after creation.
    """

    # Polling configuration
    poll_interval: int = 300  # seconds
    max_workers: int = 4  # scheduler worker threads

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    diagnostic_tags: str = ""

    # Remote API
    api_base_url: str = DEFAULT_API_BASE_URL
    http_timeout: float = 30.0

    # API error codes that are expected and never surfaced as notifications
    benign_error_codes: frozenset[int] = field(default_factory=frozenset)

    # Subject to synchronize
    subject_id: str = ""
    subject_name: str = ""
    credentials: tuple[CredentialSpec, ...] = ()

    @property
    def subject_configured(self) -> bool:
        """Check if a subject and at least one credential are configured."""
        return bool(self.subject_id and self.credentials)


def _parse_positive_int(value: str, name: str, default: int) -> int:
    """Parse a string as a positive integer with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive integer, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = int(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %d is not positive, using default %d",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid integer, using default %d",
            name,
            value,
            default,
        )
        return default


def _parse_positive_float(value: str, name: str, default: float) -> float:
    """Parse a string as a positive float with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive float, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = float(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %f is not positive, using default %f",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid number, using default %f",
            name,
            value,
            default,
        )
        return default


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Args:
        value: The log level string to validate.
        default: The default value to use if invalid.

    Returns:
        The validated log level (uppercase), or the default if invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid ORGSYNC_LOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _parse_error_codes(value: str) -> frozenset[int]:
    """Parse a comma-separated list of integer API error codes.

    Entries that are not integers are skipped with a warning.
    """
    codes: set[int] = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            codes.add(int(part))
        except ValueError:
            logging.warning(
                "Invalid ORGSYNC_BENIGN_ERROR_CODES entry: '%s' is not an integer, skipping",
                part,
            )
    return frozenset(codes)


def _parse_credentials(value: str) -> tuple[CredentialSpec, ...]:
    """Parse ``id:kind`` pairs, e.g. ``"1001:character,2002:organization"``.

    Malformed entries and unknown kinds are skipped with a warning.
    """
    specs: list[CredentialSpec] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        credential_id, sep, kind = part.partition(":")
        kind = kind.strip().lower()
        if not sep or not credential_id.strip() or not CredentialKind.is_valid(kind):
            logging.warning(
                "Invalid ORGSYNC_CREDENTIALS entry: '%s' (expected id:kind with kind in %s), "
                "skipping",
                part,
                ", ".join(sorted(CredentialKind.values())),
            )
            continue
        specs.append(CredentialSpec(credential_id.strip(), CredentialKind(kind)))
    return tuple(specs)


def load_config(env_file: Path | None = None) -> Config:
    """Load configuration from environment variables.

    Args:
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Config object with loaded values.

    Values are validated and defaults are used for invalid inputs.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    poll_interval = _parse_positive_int(
        os.getenv("ORGSYNC_POLL_INTERVAL", "300"),
        "ORGSYNC_POLL_INTERVAL",
        300,
    )
    max_workers = _parse_positive_int(
        os.getenv("ORGSYNC_MAX_WORKERS", "4"),
        "ORGSYNC_MAX_WORKERS",
        4,
    )

    log_level = _validate_log_level(os.getenv("ORGSYNC_LOG_LEVEL", "INFO"))
    log_json = _parse_bool(os.getenv("ORGSYNC_LOG_JSON", ""))

    http_timeout = _parse_positive_float(
        os.getenv("ORGSYNC_HTTP_TIMEOUT", "30.0"),
        "ORGSYNC_HTTP_TIMEOUT",
        30.0,
    )

    return Config(
        poll_interval=poll_interval,
        max_workers=max_workers,
        log_level=log_level,
        log_json=log_json,
        diagnostic_tags=os.getenv("ORGSYNC_DIAGNOSTIC_TAGS", ""),
        api_base_url=os.getenv("ORGSYNC_API_BASE_URL", DEFAULT_API_BASE_URL),
        http_timeout=http_timeout,
        benign_error_codes=_parse_error_codes(os.getenv("ORGSYNC_BENIGN_ERROR_CODES", "")),
        subject_id=os.getenv("ORGSYNC_SUBJECT_ID", "").strip(),
        subject_name=os.getenv("ORGSYNC_SUBJECT_NAME", "").strip(),
        credentials=_parse_credentials(os.getenv("ORGSYNC_CREDENTIALS", "")),
    )
