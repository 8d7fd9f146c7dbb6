"""Shared pytest fixtures for org-sync tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from orgsync.credentials import CredentialChangeNotifier
from orgsync.notifications import NotificationCenter


@pytest.fixture
def notifier() -> CredentialChangeNotifier:
    """A credential-change notifier scoped to one test."""
    return CredentialChangeNotifier()


@pytest.fixture
def notifications() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[pytest.MonkeyPatch]:
    """Remove every ORGSYNC_* variable and stop .env loading."""
    import os

    for key in list(os.environ):
        if key.startswith("ORGSYNC_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("orgsync.config.load_dotenv", lambda *args, **kwargs: False)
    yield monkeypatch
