"""Governance settings parsed from YAML.

This is the in-memory representation of config/governance.yaml. Every
threshold the engine, registry, override handler and audit logger rely on
lives here rather than in code.
"""

import hashlib
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from codewarden.common.constants import (
    AuditConstants,
    EvaluationConstants,
    OverrideConstants,
    RegistryConstants,
)
from codewarden.common.exceptions import ConfigurationError
from codewarden.governance.schemas import Severity


class GovernanceSettings(BaseModel):
    """Parsed governance settings."""

    class Metadata(BaseModel):
        version: str = "1.0.0"
        last_updated: Optional[str] = None
        author: Optional[str] = None
        description: Optional[str] = None

    class EvaluationSettings(BaseModel):
        default_timeout_seconds: float = Field(
            default=EvaluationConstants.DEFAULT_TIMEOUT_SECONDS, gt=0
        )
        max_workers: int = Field(default=EvaluationConstants.DEFAULT_MAX_WORKERS, ge=1)
        predicate_failure_severity: Severity = Severity(
            EvaluationConstants.PREDICATE_FAILURE_SEVERITY
        )

        @field_validator("predicate_failure_severity")
        @classmethod
        def _fail_closed(cls, value: Severity) -> Severity:
            if not value.at_least(Severity.HIGH):
                raise ValueError(
                    "predicate_failure_severity must be 'high' or 'critical'"
                )
            return value

    class RegistrySettings(BaseModel):
        min_name_length: int = Field(default=RegistryConstants.MIN_NAME_LENGTH, ge=1)
        min_description_length: int = Field(
            default=RegistryConstants.MIN_DESCRIPTION_LENGTH, ge=1
        )
        min_rationale_length: int = Field(
            default=RegistryConstants.MIN_RATIONALE_LENGTH, ge=1
        )
        id_sequence_digits: int = Field(
            default=RegistryConstants.RULE_ID_SEQUENCE_DIGITS, ge=1
        )

    class OverrideSettings(BaseModel):
        min_justification_length: int = Field(
            default=OverrideConstants.MIN_JUSTIFICATION_LENGTH, ge=1
        )

    class AuditSettings(BaseModel):
        hash_algorithm: str = AuditConstants.HASH_ALGORITHM
        redaction_marker: str = AuditConstants.REDACTION_MARKER
        sensitive_key_patterns: List[str] = Field(
            default_factory=lambda: list(AuditConstants.SENSITIVE_KEY_PATTERNS)
        )
        storage_retry_attempts: int = Field(
            default=AuditConstants.STORAGE_RETRY_ATTEMPTS, ge=1
        )
        storage_retry_backoff_seconds: float = Field(
            default=AuditConstants.STORAGE_RETRY_BACKOFF_SECONDS, ge=0
        )

        @field_validator("hash_algorithm")
        @classmethod
        def _cryptographic_hash(cls, value: str) -> str:
            value = value.lower()
            if value not in AuditConstants.ALLOWED_HASH_ALGORITHMS:
                raise ValueError(
                    f"hash_algorithm must be one of {AuditConstants.ALLOWED_HASH_ALGORITHMS}"
                )
            if value not in hashlib.algorithms_available:
                raise ValueError(f"hash algorithm '{value}' is not available")
            return value

        @field_validator("sensitive_key_patterns")
        @classmethod
        def _non_empty_patterns(cls, value: List[str]) -> List[str]:
            patterns = [p.lower() for p in value if p and p.strip()]
            if not patterns:
                raise ValueError("sensitive_key_patterns must not be empty")
            return patterns

    metadata: Metadata = Field(default_factory=Metadata)
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    override: OverrideSettings = Field(default_factory=OverrideSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)

    @property
    def version(self) -> str:
        return self.metadata.version


def load_settings(policy_file: Optional[Union[str, Path]] = None) -> GovernanceSettings:
    """Load and validate governance settings from YAML.

    Args:
        policy_file: Path to governance.yaml. Defaults are used if None.

    Returns:
        GovernanceSettings

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    if policy_file is None:
        return GovernanceSettings()

    path = Path(policy_file)
    if not path.exists():
        raise ConfigurationError(
            f"Policy settings file not found: {path}",
            details={"path": str(path)},
        )

    with open(path, "r") as f:
        try:
            raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Policy settings file is not valid YAML: {e}",
                details={"path": str(path)},
            ) from e

    try:
        return GovernanceSettings.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid policy settings in {path}: {e}",
            details={"path": str(path)},
        ) from e
