"""Tests for configuration loading."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

from orgsync.config import (
    DEFAULT_API_BASE_URL,
    Config,
    CredentialSpec,
    _parse_credentials,
    _parse_error_codes,
    _parse_positive_float,
    _parse_positive_int,
    _validate_log_level,
    load_config,
)
from orgsync.types import CredentialKind


class TestConfig:
    def test_defaults(self) -> None:
        config = Config()

        assert config.poll_interval == 300
        assert config.max_workers == 4
        assert config.log_level == "INFO"
        assert config.api_base_url == DEFAULT_API_BASE_URL
        assert config.benign_error_codes == frozenset()
        assert not config.subject_configured

    def test_subject_configured_needs_credentials(self) -> None:
        assert not Config(subject_id="1").subject_configured
        assert Config(
            subject_id="1", credentials=(CredentialSpec("k", CredentialKind.ACCOUNT),)
        ).subject_configured


class TestParsePositiveInt:
    def test_valid(self) -> None:
        assert _parse_positive_int("42", "TEST_VAR", 10) == 42

    def test_invalid_non_numeric(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _parse_positive_int("abc", "TEST_VAR", 10) == 10
        assert "Invalid TEST_VAR: 'abc' is not a valid integer" in caplog.text

    def test_invalid_zero(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _parse_positive_int("0", "TEST_VAR", 10) == 10
        assert "Invalid TEST_VAR: 0 is not positive" in caplog.text


class TestParsePositiveFloat:
    def test_valid(self) -> None:
        assert _parse_positive_float("2.5", "TEST_VAR", 1.0) == 2.5

    def test_negative(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _parse_positive_float("-1", "TEST_VAR", 1.0) == 1.0
        assert "is not positive" in caplog.text

    def test_zero(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _parse_positive_float("0", "TEST_VAR", 1.0) == 1.0
        assert "Invalid TEST_VAR: 0.000000 is not positive" in caplog.text

    def test_not_a_number(self) -> None:
        assert _parse_positive_float("soon", "TEST_VAR", 1.0) == 1.0

class TestValidateLogLevel:
    def test_normalizes_case(self) -> None:
        assert _validate_log_level("debug") == "DEBUG"

    def test_invalid_log_level(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _validate_log_level("LOUD") == "INFO"
        assert "Invalid ORGSYNC_LOG_LEVEL: 'LOUD' is not valid" in caplog.text


class TestParseErrorCodes:
    def test_parses_list(self) -> None:
        assert _parse_error_codes("221, 222,") == frozenset({221, 222})

    def test_skips_invalid_entries(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _parse_error_codes("221,x") == frozenset({221})
        assert "'x' is not an integer" in caplog.text


class TestParseCredentials:
    def test_parses_pairs(self) -> None:
        assert _parse_credentials("1001:character, 2002:Organization") == (
            CredentialSpec("1001", CredentialKind.CHARACTER),
            CredentialSpec("2002", CredentialKind.ORGANIZATION),
        )

    @pytest.mark.parametrize("entry", ["1001", ":account", "1001:corporation"])
    def test_skips_invalid_entries(self, entry: str, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _parse_credentials(f"{entry},3003:account") == (
                CredentialSpec("3003", CredentialKind.ACCOUNT),
            )
        assert "Invalid ORGSYNC_CREDENTIALS entry" in caplog.text

    def test_empty(self) -> None:
        assert _parse_credentials("") == ()


class TestLoadConfig:
    def test_defaults_without_env(self, clean_env: pytest.MonkeyPatch) -> None:
        config = load_config()

        assert config == Config()

    def test_loads_from_env_vars(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ORGSYNC_POLL_INTERVAL", "60")
        clean_env.setenv("ORGSYNC_MAX_WORKERS", "8")
        clean_env.setenv("ORGSYNC_LOG_LEVEL", "debug")
        clean_env.setenv("ORGSYNC_LOG_JSON", "yes")
        clean_env.setenv("ORGSYNC_DIAGNOSTIC_TAGS", "sync")
        clean_env.setenv("ORGSYNC_API_BASE_URL", "https://api.test")
        clean_env.setenv("ORGSYNC_HTTP_TIMEOUT", "12.5")
        clean_env.setenv("ORGSYNC_BENIGN_ERROR_CODES", "221")
        clean_env.setenv("ORGSYNC_SUBJECT_ID", " 90000001 ")
        clean_env.setenv("ORGSYNC_SUBJECT_NAME", "Pilot")
        clean_env.setenv("ORGSYNC_CREDENTIALS", "k1:character,k2:organization")

        config = load_config()

        assert config.poll_interval == 60
        assert config.max_workers == 8
        assert config.log_level == "DEBUG"
        assert config.log_json is True
        assert config.diagnostic_tags == "sync"
        assert config.api_base_url == "https://api.test"
        assert config.http_timeout == 12.5
        assert config.benign_error_codes == frozenset({221})
        assert config.subject_id == "90000001"
        assert config.subject_name == "Pilot"
        assert len(config.credentials) == 2
        assert config.subject_configured

    def test_invalid_values_fall_back(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ORGSYNC_POLL_INTERVAL", "-5")
        clean_env.setenv("ORGSYNC_MAX_WORKERS", "many")

        config = load_config()

        assert config.poll_interval == 300
        assert config.max_workers == 4

    def test_zero_http_timeout_falls_back(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ORGSYNC_HTTP_TIMEOUT", "0")

        config = load_config()

        assert config.http_timeout == 30.0

    def test_loads_from_env_file(self, tmp_path: Path, clean_env: pytest.MonkeyPatch) -> None:
        from dotenv import load_dotenv

        clean_env.setattr("orgsync.config.load_dotenv", load_dotenv)
        env_file = tmp_path / ".env"
        env_file.write_text("ORGSYNC_POLL_INTERVAL=45\nORGSYNC_SUBJECT_ID=7\n")

        try:
            config = load_config(env_file)
        finally:
            # load_dotenv writes os.environ directly
            os.environ.pop("ORGSYNC_POLL_INTERVAL", None)
            os.environ.pop("ORGSYNC_SUBJECT_ID", None)

        assert config.poll_interval == 45
        assert config.subject_id == "7"
