"""Governance - Policy evaluation, tamper-evident audit, and human override.

Components:
- PolicyRegistry: Owns versioned rule definitions
- PolicyEngine: Evaluates and enforces rules before operations run
- AuditLogger: Hash-chained record of every decision
- HumanOverrideHandler: Lets non-critical violations proceed, with a record
- GovernanceService: Lifecycle for all of the above

Design principles:
- Rules are checked BEFORE operations
- Critical violations always block
- Rules are versioned, never edited in place
- Every evaluation, override and fix produces an audit event
- Audit events are never edited or removed
"""

from codewarden.common.exceptions import (
    AuditLogIntegrityError,
    OverrideStateError,
    PolicyViolationError,
)
from codewarden.governance.audit.logger import AuditLogger
from codewarden.governance.override import HumanOverrideHandler
from codewarden.governance.policies.engine import PolicyEngine
from codewarden.governance.policies.registry import PolicyRegistry
from codewarden.governance.schemas import (
    AuditEvent,
    AuditEventType,
    EvaluationResult,
    OperationContext,
    PolicyRule,
    PolicyViolation,
    Severity,
)
from codewarden.governance.service import GovernanceService

__all__ = [
    # Core components
    "AuditLogger",
    "GovernanceService",
    "HumanOverrideHandler",
    "PolicyEngine",
    "PolicyRegistry",
    # Exceptions
    "AuditLogIntegrityError",
    "OverrideStateError",
    "PolicyViolationError",
    # Schemas
    "AuditEvent",
    "AuditEventType",
    "EvaluationResult",
    "OperationContext",
    "PolicyRule",
    "PolicyViolation",
    "Severity",
]
