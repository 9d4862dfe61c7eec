"""Centralized logging configuration."""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a configured logger instance.

    When ``level`` is omitted the level comes from ``CODEWARDEN_LOG_LEVEL``
    through the process configuration.
    """
    if level is None:
        from codewarden.common.config.settings import get_config
        level = get_config().log_level.value

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))
    
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    
    return logger
