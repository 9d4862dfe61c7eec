"""Audit module - Tamper-evident record of every governance action.

Provides an append-only hash chain with integrity verification and a
query engine. Backends: in-memory, file (local JSONL), S3 (cloud).

Components:
- AuditLogger: Sole writer of the chain
- AuditStore: Abstract base class for storage backends
- InMemoryAuditStore / FileAuditStore / S3AuditStore: Backends
- AuditQuery / AuditQueryEngine: Filtered lookups
- verify_chain: Chain verification shared by every backend
"""

from codewarden.governance.audit.chain import (
    UnreadableRecord,
    canonical_json,
    compute_event_hash,
    verify_chain,
)
from codewarden.governance.audit.config import (
    AuditConfig,
    create_audit_logger,
    create_audit_store,
)
from codewarden.governance.audit.logger import AuditLogger
from codewarden.governance.audit.query import AuditFilter, AuditQuery, AuditQueryEngine
from codewarden.governance.audit.redaction import Redactor
from codewarden.governance.audit.store import (
    AuditStore,
    FileAuditStore,
    InMemoryAuditStore,
)

__all__ = [
    "AuditLogger",
    "AuditStore",
    "InMemoryAuditStore",
    "FileAuditStore",
    "AuditFilter",
    "AuditQuery",
    "AuditQueryEngine",
    "Redactor",
    "UnreadableRecord",
    "canonical_json",
    "compute_event_hash",
    "verify_chain",
    "AuditConfig",
    "create_audit_store",
    "create_audit_logger",
]
