"""Process configuration for CodeWarden.

Everything here comes from CODEWARDEN_* environment variables (plus the
standard AWS ones) and is read once per Config instance. Rule thresholds
and audit tuning live in the governance YAML file instead; see
codewarden.governance.settings.
"""

import os
import warnings
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

ENV_PREFIX = "CODEWARDEN_"

# settings.py -> config -> common -> codewarden -> src -> project root
PROJECT_ROOT = Path(__file__).resolve().parents[4]


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditStorageType(str, Enum):
    """Where the audit chain is persisted."""
    MEMORY = "memory"
    FILE = "file"
    S3 = "s3"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(ENV_PREFIX + name, default)


def _env_flag(name: str, default: bool) -> bool:
    return _env(name, "true" if default else "false").lower() == "true"


def _from_env(name: str, default: Optional[str] = None, cast=str):
    """dataclass field whose default is read from CODEWARDEN_<name>."""
    def factory():
        value = _env(name, default)
        return cast(value) if value is not None else None
    return field(default_factory=factory)


def _flag_from_env(name: str, default: bool):
    return field(default_factory=lambda: _env_flag(name, default))


@dataclass
class Config:
    """Runtime configuration.

    Example:
        CODEWARDEN_ENVIRONMENT=production
        CODEWARDEN_AUDIT_STORAGE_TYPE=file
        CODEWARDEN_AUDIT_LOG_DIR=/var/log/codewarden
    """

    environment: Environment = _from_env("ENVIRONMENT", "development", Environment)
    debug: bool = _flag_from_env("DEBUG", False)
    log_level: LogLevel = _from_env("LOG_LEVEL", "INFO", LogLevel)

    api_host: str = _from_env("API_HOST", "0.0.0.0")
    api_port: int = _from_env("API_PORT", "8000", int)

    policy_file: Path = _from_env("POLICY_FILE", "config/governance.yaml", Path)
    load_builtin_rules: bool = _flag_from_env("LOAD_BUILTIN_RULES", True)

    audit_storage_type: AuditStorageType = _from_env(
        "AUDIT_STORAGE_TYPE", "memory", AuditStorageType
    )
    audit_log_dir: Path = _from_env("AUDIT_LOG_DIR", "logs/audit", Path)
    audit_fsync: bool = _flag_from_env("AUDIT_FSYNC", False)
    audit_s3_bucket: Optional[str] = _from_env("AUDIT_S3_BUCKET")
    audit_s3_prefix: str = _from_env("AUDIT_S3_PREFIX", "audit-logs/")

    aws_region: str = field(
        default_factory=lambda: os.getenv("AWS_DEFAULT_REGION", "us-east-1")
    )
    aws_profile: Optional[str] = field(default_factory=lambda: os.getenv("AWS_PROFILE"))

    def __post_init__(self):
        if self.audit_storage_type == AuditStorageType.S3 and not self.audit_s3_bucket:
            raise ValueError(
                "CODEWARDEN_AUDIT_S3_BUCKET must be set when using S3 audit storage"
            )

        if self.is_production and self.debug:
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )
        if self.is_production and self.audit_storage_type == AuditStorageType.MEMORY:
            warnings.warn(
                "In-memory audit storage does not survive restarts; "
                "use file or s3 storage in production",
                RuntimeWarning,
                stacklevel=2
            )

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def resolved_policy_file(self) -> Optional[Path]:
        """Governance settings file, if one exists.

        Relative paths are tried against the working directory first and
        then against the project root.
        """
        candidates = [self.policy_file]
        if not self.policy_file.is_absolute():
            candidates.append(PROJECT_ROOT / self.policy_file)
        return next((path for path in candidates if path.exists()), None)


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() rereads the environment."""
    global _config
    _config = None
