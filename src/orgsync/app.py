"""Application runner for org-sync.

Wires configuration, logging, the subject, the HTTP query client and the
poll scheduler together, then runs one cycle (``--once``) or polls until a
shutdown signal arrives.
"""

from __future__ import annotations

import httpx

from orgsync.api_client import ApiQueryClient
from orgsync.cli import apply_overrides, parse_args
from orgsync.config import Config, load_config
from orgsync.credentials import Credential, CredentialChangeNotifier
from orgsync.logging import get_logger, setup_logging
from orgsync.scheduler import PollScheduler
from orgsync.shutdown import create_shutdown_handler
from orgsync.subject import Subject

logger = get_logger(__name__)


def build_subject(config: Config, notifier: CredentialChangeNotifier) -> Subject:
    """Create the configured subject with its credentials."""
    credentials = [Credential(spec.credential_id, spec.kind) for spec in config.credentials]
    return Subject(
        config.subject_id,
        name=config.subject_name,
        credentials=credentials,
        notifier=notifier,
        benign_error_codes=config.benign_error_codes,
    )


def main(args: list[str] | None = None) -> int:
    """Entry point of the ``org-sync`` console script.

    Returns:
        Process exit code.
    """
    parsed = parse_args(args)
    config = apply_overrides(load_config(parsed.env_file), parsed)

    setup_logging(
        level=config.log_level,
        json_format=config.log_json,
        diagnostic_tags=config.diagnostic_tags,
    )

    if not config.subject_configured:
        logger.error(
            "A subject id and at least one credential must be set "
            "(ORGSYNC_SUBJECT_ID and ORGSYNC_CREDENTIALS, or --subject-id and --credential)"
        )
        return 1

    notifier = CredentialChangeNotifier()
    client = ApiQueryClient(config.api_base_url, timeout=httpx.Timeout(config.http_timeout))
    scheduler = PollScheduler(client.fetch, max_workers=config.max_workers)

    with client, build_subject(config, notifier) as subject:
        try:
            if parsed.once:
                delivered = scheduler.run_cycle([subject], timeout=config.http_timeout * 2)
                logger.info("Single cycle delivered %d result(s)", delivered)
            else:
                shutdown = create_shutdown_handler()
                scheduler.run([subject], config.poll_interval, shutdown.stop_event)
        finally:
            scheduler.shutdown()

        for notification in subject.notifications.get_notifications():
            logger.warning(
                "Unresolved error on %s: [%s] %s",
                notification.endpoint,
                notification.error_code,
                notification.error_message,
            )
    return 0
