"""Audit Layer Configuration and Initialization.

Provides factory methods for audit stores and the audit logger.

Environment variables:
- CODEWARDEN_AUDIT_STORAGE_TYPE: "memory" (default), "file", or "s3"
- CODEWARDEN_AUDIT_LOG_DIR: Directory for the JSONL audit log
- CODEWARDEN_AUDIT_S3_BUCKET: S3 bucket for audit logs
- CODEWARDEN_AUDIT_S3_PREFIX: Key prefix inside the bucket
- CODEWARDEN_AUDIT_FSYNC: fsync after each file append ("true"/"false")
- AWS_DEFAULT_REGION / AWS_PROFILE: AWS connection settings
"""

import logging
from typing import Optional

from codewarden.common.config.settings import AuditStorageType, get_config
from codewarden.governance.audit.logger import AuditLogger
from codewarden.governance.audit.store import AuditStore, FileAuditStore, InMemoryAuditStore
from codewarden.governance.settings import GovernanceSettings


logger = logging.getLogger(__name__)


class AuditConfig:
    """Configuration for audit layer."""

    def __init__(self):
        """Initialize audit configuration from process config and environment."""
        config = get_config()
        self.storage_type = config.audit_storage_type
        self.log_dir = config.audit_log_dir
        self.s3_bucket = config.audit_s3_bucket
        self.s3_prefix = config.audit_s3_prefix
        self.s3_environment = config.environment.value
        self.aws_region = config.aws_region
        self.aws_profile = config.aws_profile
        self.fsync_on_write = config.audit_fsync


def create_audit_store(
    storage_type: Optional[str] = None,
    settings: Optional[GovernanceSettings] = None,
    **kwargs
) -> AuditStore:
    """Factory method to create audit store based on configuration.

    Args:
        storage_type: "memory", "file" or "s3" (default: from environment)
        settings: Governance settings supplying the hash algorithm
        **kwargs: Overrides for store initialization

    Returns:
        Configured AuditStore instance
    """
    config = AuditConfig()
    settings = settings or GovernanceSettings()
    storage_type = AuditStorageType(storage_type or config.storage_type)
    hash_algorithm = settings.audit.hash_algorithm

    if storage_type == AuditStorageType.S3:
        from codewarden.governance.audit.s3_store import S3AuditStore

        return S3AuditStore(
            bucket_name=kwargs.pop("bucket_name", config.s3_bucket),
            prefix=kwargs.pop("prefix", config.s3_prefix),
            environment=kwargs.pop("environment", config.s3_environment),
            region=kwargs.pop("region", config.aws_region),
            aws_profile=kwargs.pop("aws_profile", config.aws_profile),
            hash_algorithm=hash_algorithm,
            **kwargs
        )

    if storage_type == AuditStorageType.FILE:
        return FileAuditStore(
            log_dir=kwargs.pop("log_dir", config.log_dir),
            fsync_on_write=kwargs.pop("fsync_on_write", config.fsync_on_write),
            hash_algorithm=hash_algorithm,
            **kwargs
        )

    return InMemoryAuditStore(hash_algorithm=hash_algorithm)


def create_audit_logger(
    storage_type: Optional[str] = None,
    settings: Optional[GovernanceSettings] = None,
    **kwargs
) -> AuditLogger:
    """Factory method to create audit logger with configured backend.

    Args:
        storage_type: "memory", "file" or "s3" (default: from environment)
        settings: Governance settings
        **kwargs: Additional arguments for store initialization

    Returns:
        Configured AuditLogger instance
    """
    settings = settings or GovernanceSettings()
    store = create_audit_store(storage_type=storage_type, settings=settings, **kwargs)
    logger.info(f"Audit logger using {type(store).__name__}")
    return AuditLogger(store=store, settings=settings)


__all__ = [
    "AuditConfig",
    "create_audit_store",
    "create_audit_logger",
]
