#!/usr/bin/env python3
"""Main entry point for CodeWarden."""

import sys

from codewarden.common.logging import get_logger
from codewarden.common.config import get_config
from codewarden.common.exceptions import AuditLogIntegrityError
from codewarden.governance.service import GovernanceService

logger = get_logger(__name__)


def main():
    """Start the governance core, report its state, and optionally serve the API."""
    config = get_config()
    logger.info(f"CodeWarden initialized in {config.environment.value} mode")

    if len(sys.argv) > 1 and sys.argv[1] == "serve":
        import uvicorn

        uvicorn.run(
            "codewarden.api.gateway:app",
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.value.lower(),
        )
        return

    with GovernanceService(config) as service:
        logger.info(f"Active rules: {', '.join(r.id for r in service.list_rules())}")
        try:
            report = service.audit_logger.require_integrity()
        except AuditLogIntegrityError as e:
            logger.error(f"Audit trail is broken at event {e.broken_at}: {e.message}")
            sys.exit(1)
        logger.info(f"Audit trail: {report.message}")


if __name__ == "__main__":
    main()
