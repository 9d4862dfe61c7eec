"""Tests for configuration settings.

Tests the Config class, environment variable handling and the
governance settings file.
"""

import logging
import warnings
from pathlib import Path

import pytest
import yaml

from codewarden.common.config.settings import (
    AuditStorageType,
    Config,
    Environment,
    LogLevel,
    get_config,
    reset_config,
)
from codewarden.common.exceptions import ConfigurationError
from codewarden.common.logging import get_logger
from codewarden.governance.schemas import Severity
from codewarden.governance.settings import GovernanceSettings, load_settings


PROJECT_ROOT = Path(__file__).resolve().parents[3]


class TestConfig:
    """Tests for Config class."""

    def test_default_config(self):
        """Test Config with default values."""
        config = Config()

        assert config.environment == Environment.DEVELOPMENT
        assert config.debug is False
        assert config.log_level == LogLevel.INFO
        assert config.api_port == 8000
        assert config.audit_storage_type == AuditStorageType.MEMORY
        assert config.load_builtin_rules is True

    def test_values_from_env_vars(self, monkeypatch):
        """Test settings loaded from environment variables."""
        monkeypatch.setenv("CODEWARDEN_ENVIRONMENT", "staging")
        monkeypatch.setenv("CODEWARDEN_AUDIT_STORAGE_TYPE", "file")
        monkeypatch.setenv("CODEWARDEN_API_PORT", "9100")

        config = Config()

        assert config.environment == Environment.STAGING
        assert config.audit_storage_type == AuditStorageType.FILE
        assert config.api_port == 9100

    def test_audit_values_from_env_vars(self, monkeypatch):
        monkeypatch.setenv("CODEWARDEN_AUDIT_FSYNC", "TRUE")
        monkeypatch.setenv("CODEWARDEN_AUDIT_S3_PREFIX", "governance/")
        monkeypatch.setenv("CODEWARDEN_AUDIT_LOG_DIR", "/var/log/codewarden")
        monkeypatch.setenv("AWS_PROFILE", "audit")

        config = Config()

        assert config.audit_fsync is True
        assert config.audit_s3_prefix == "governance/"
        assert config.audit_log_dir == Path("/var/log/codewarden")
        assert config.aws_profile == "audit"

    def test_s3_requires_bucket(self, monkeypatch):
        """Test S3 storage without a bucket is rejected."""
        monkeypatch.setenv("CODEWARDEN_AUDIT_STORAGE_TYPE", "s3")

        with pytest.raises(ValueError, match="CODEWARDEN_AUDIT_S3_BUCKET"):
            Config()

    def test_production_warnings(self, monkeypatch):
        """Test debug mode and memory storage warn in production."""
        monkeypatch.setenv("CODEWARDEN_ENVIRONMENT", "production")
        monkeypatch.setenv("CODEWARDEN_DEBUG", "true")

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            config = Config()

        assert config.is_production
        messages = " ".join(str(w.message) for w in caught)
        assert "Debug mode" in messages
        assert "In-memory audit storage" in messages

    def test_singleton(self):
        """Test get_config returns one instance until reset."""
        first = get_config()

        assert get_config() is first
        reset_config()
        assert get_config() is not first

    def test_resolved_policy_file(self, tmp_path, monkeypatch):
        policy = tmp_path / "governance.yaml"
        policy.write_text("metadata:\n  version: '2.0.0'\n")
        monkeypatch.setenv("CODEWARDEN_POLICY_FILE", str(policy))

        assert Config().resolved_policy_file == policy

    def test_missing_policy_file_resolves_to_none(self, monkeypatch):
        monkeypatch.setenv("CODEWARDEN_POLICY_FILE", "/nonexistent/governance.yaml")

        assert Config().resolved_policy_file is None


class TestGovernanceSettings:
    """Tests for governance settings parsing."""

    def test_defaults(self):
        settings = GovernanceSettings()

        assert settings.evaluation.default_timeout_seconds == 10.0
        assert settings.evaluation.predicate_failure_severity == Severity.HIGH
        assert settings.override.min_justification_length == 20
        assert settings.audit.hash_algorithm == "sha256"
        assert settings.audit.storage_retry_attempts == 3

    def test_shipped_file_loads(self):
        settings = load_settings(PROJECT_ROOT / "config" / "governance.yaml")

        assert settings.version == "1.0.0"
        assert "password" in settings.audit.sensitive_key_patterns

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "governance.yaml"
        path.write_text("override:\n  min_justification_length: 40\n")

        settings = load_settings(path)

        assert settings.override.min_justification_length == 40
        assert settings.registry.min_name_length == 5

    def test_no_file_means_defaults(self):
        assert load_settings(None) == GovernanceSettings()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_settings(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "governance.yaml"
        path.write_text("audit: [unclosed\n")

        with pytest.raises(ConfigurationError, match="not valid YAML"):
            load_settings(path)

    @pytest.mark.parametrize("audit", [
        {"hash_algorithm": "md5"},
        {"hash_algorithm": "crc32"},
        {"sensitive_key_patterns": []},
        {"storage_retry_attempts": 0},
    ])
    def test_invalid_audit_settings(self, tmp_path, audit):
        path = tmp_path / "governance.yaml"
        path.write_text(yaml.safe_dump({"audit": audit}))

        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_predicate_failures_must_be_serious(self):
        with pytest.raises(ValueError):
            GovernanceSettings.model_validate(
                {"evaluation": {"predicate_failure_severity": "low"}}
            )

    @pytest.mark.parametrize("timeout", [None, 0, -1])
    def test_evaluation_timeout_must_be_bounded(self, tmp_path, timeout):
        path = tmp_path / "governance.yaml"
        path.write_text(yaml.safe_dump({"evaluation": {"default_timeout_seconds": timeout}}))

        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_hash_algorithm_normalized(self):
        settings = GovernanceSettings.model_validate({"audit": {"hash_algorithm": "SHA512"}})

        assert settings.audit.hash_algorithm == "sha512"


class TestLogging:
    """Tests for the logging helper."""

    def test_level_from_config(self, monkeypatch):
        monkeypatch.setenv("CODEWARDEN_LOG_LEVEL", "WARNING")

        logger = get_logger("codewarden.tests.level")

        assert logger.level == logging.WARNING

    def test_handler_added_once(self):
        logger = get_logger("codewarden.tests.handlers", "DEBUG")
        get_logger("codewarden.tests.handlers", "DEBUG")

        assert len(logger.handlers) == 1
