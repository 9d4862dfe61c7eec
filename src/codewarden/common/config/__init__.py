"""Configuration module - process-level settings from the environment."""

from codewarden.common.config.settings import (
    AuditStorageType,
    Config,
    Environment,
    LogLevel,
    get_config,
    reset_config,
)

__all__ = [
    "AuditStorageType",
    "Config",
    "Environment",
    "LogLevel",
    "get_config",
    "reset_config",
]
