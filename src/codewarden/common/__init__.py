"""Common utilities - logging, config, exceptions."""

from codewarden.common.logging.logger import get_logger
from codewarden.common.config import Config, get_config, reset_config
from codewarden.common.exceptions import (
    AuditError,
    AuditLogIntegrityError,
    AuditStoreError,
    CodeWardenError,
    ConfigurationError,
    DuplicateRuleError,
    InvalidRuleError,
    OverrideStateError,
    PolicyRegistryError,
    PolicyViolationError,
    RuleNotFoundError,
)

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "get_config",
    "reset_config",
    # Exceptions
    "CodeWardenError",
    "ConfigurationError",
    "PolicyRegistryError",
    "DuplicateRuleError",
    "InvalidRuleError",
    "RuleNotFoundError",
    "PolicyViolationError",
    "AuditError",
    "AuditStoreError",
    "AuditLogIntegrityError",
    "OverrideStateError",
]
