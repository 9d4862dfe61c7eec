"""Governance schemas - type definitions for policy enforcement and audit.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    """Violation severity, ordered critical > high > medium > low > info."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def at_least(self, other: "Severity") -> bool:
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class EnforcementMode(str, Enum):
    """How a rule's findings are reported."""
    BLOCK = "block"
    WARN = "warn"
    LOG = "log"
    ADVISORY = "advisory"


class PolicyCategory(str, Enum):
    """Rule categories. Each maps to the prefix used in rule ids."""
    SECURITY = "security"
    QUALITY = "quality"
    PERFORMANCE = "performance"
    DEPLOYMENT = "deployment"
    CONFIGURATION = "configuration"
    COMPLIANCE = "compliance"
    DOCUMENTATION = "documentation"

    @property
    def prefix(self) -> str:
        return _CATEGORY_PREFIX[self]


_CATEGORY_PREFIX = {
    PolicyCategory.SECURITY: "SEC",
    PolicyCategory.QUALITY: "QUAL",
    PolicyCategory.PERFORMANCE: "PERF",
    PolicyCategory.DEPLOYMENT: "DEP",
    PolicyCategory.CONFIGURATION: "CONF",
    PolicyCategory.COMPLIANCE: "COMP",
    PolicyCategory.DOCUMENTATION: "DOC",
}


class ActorType(str, Enum):
    """Who initiated an operation."""
    USER = "user"
    SYSTEM = "system"
    SERVICE = "service"


class AuditEventType(str, Enum):
    """Types of audit events."""
    POLICY_EVALUATION = "policy.evaluation"
    POLICY_OVERRIDE = "policy.override"
    POLICY_REMEDIATION = "policy.remediation"
    POLICY_RULE_CHANGE = "policy.rule_change"
    SYSTEM_EVENT = "system.event"


class AuditResult(str, Enum):
    """Outcome recorded on an audit event."""
    SUCCESS = "success"
    FAILURE = "failure"
    BLOCKED = "blocked"


class OverrideStatus(str, Enum):
    """Override lifecycle states. APPROVED and REJECTED are terminal."""
    PROPOSED = "proposed"
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# OPERATION CONTEXT
# =============================================================================

class Actor(BaseModel):
    """The user, system or service behind an operation."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Actor identifier")
    type: ActorType = Field(default=ActorType.USER, description="Actor kind")
    email: Optional[str] = Field(default=None)
    ip: Optional[str] = Field(default=None)


class ResourceRef(BaseModel):
    """Descriptor of the resource an operation touches."""
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Resource type, e.g. 'repository' or 'service'")
    id: str = Field(..., description="Resource identifier")
    name: Optional[str] = Field(default=None)


class OperationContext(BaseModel):
    """Input to policy evaluation.

    Ephemeral: only a summary of it ever reaches the audit log.
    Code snapshots are carried as ``code["files"] = {path: text}``.
    """
    operation: str = Field(..., min_length=1, description="Operation name, e.g. 'code.commit'")
    actor: Actor
    resource: Optional[ResourceRef] = None
    code: Optional[Dict[str, Any]] = None
    deployment: Optional[Dict[str, Any]] = None
    configuration: Optional[Dict[str, Any]] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def files(self) -> Dict[str, str]:
        """Source files in the code snapshot, keyed by path."""
        if not self.code:
            return {}
        return dict(self.code.get("files") or {})

    def summary(self) -> Dict[str, Any]:
        """Audit-safe summary of the context.

        File contents are never included, only paths and line counts.
        """
        summary: Dict[str, Any] = dict(self.input)
        summary["operation"] = self.operation
        if self.files:
            summary["code_files"] = {
                path: {"lines": len(text.splitlines())}
                for path, text in sorted(self.files.items())
            }
        if self.deployment is not None:
            summary["deployment"] = self.deployment
        if self.configuration is not None:
            summary["configuration"] = self.configuration
        return summary


# =============================================================================
# RULES AND CHECKS
# =============================================================================

class Finding(BaseModel):
    """A single problem reported by a rule predicate."""
    model_config = ConfigDict(frozen=True)

    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    hint: Optional[str] = None


class CheckResult(BaseModel):
    """What a rule predicate returns."""
    model_config = ConfigDict(frozen=True)

    passed: bool
    findings: List[Finding] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> "CheckResult":
        return cls(passed=True)

    @classmethod
    def fail(
        cls,
        message: str,
        file: Optional[str] = None,
        line: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> "CheckResult":
        return cls(
            passed=False,
            findings=[Finding(message=message, file=file, line=line, hint=hint)],
        )


class FixResult(BaseModel):
    """What a rule's auto-fix returns.

    ``changes`` holds the patched resource data (for example
    ``{"files": {...}}``); the operation context itself is never mutated.
    """
    success: bool
    message: str = ""
    changes: Dict[str, Any] = Field(default_factory=dict)


class PolicyRule(BaseModel):
    """Declarative, versioned rule definition.

    Immutable. The predicate and optional fix are registered next to the
    rule and looked up by rule id.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Category prefix plus sequence, e.g. 'SEC-001'")
    name: str
    category: PolicyCategory
    description: str
    rationale: str
    severity: Severity
    enforcement: EnforcementMode = EnforcementMode.WARN
    applies_to: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Operation glob patterns this rule is relevant to"
    )
    can_auto_fix: bool = False
    guidance: Optional[str] = Field(default=None, description="Human remediation guidance")
    tags: List[str] = Field(default_factory=list)
    version: int = Field(default=1, ge=1)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


PolicyCheck = Callable[[OperationContext], CheckResult]
PolicyFix = Callable[[OperationContext, "PolicyViolation"], FixResult]


class RuleStateChange(BaseModel):
    """One enable/disable toggle of a rule."""
    model_config = ConfigDict(frozen=True)

    rule_id: str
    enabled: bool
    reason: Optional[str] = None
    changed_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# VIOLATIONS AND EVALUATION RESULTS
# =============================================================================

class ViolationLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: Optional[str] = None
    line: Optional[int] = None


class PolicyViolation(BaseModel):
    """A concrete instance of a rule's condition being unmet.

    Immutable. Used for audit trail.
    """
    model_config = ConfigDict(frozen=True)

    violation_id: str = Field(
        default_factory=lambda: f"vio_{uuid4().hex[:12]}",
        description="Unique violation identifier"
    )
    policy_id: str = Field(..., description="Rule that produced the violation")
    policy_version: int = Field(default=1)
    severity: Severity
    message: str
    location: Optional[ViolationLocation] = None
    remediation_hint: Optional[str] = None
    synthetic: bool = Field(
        default=False,
        description="True when produced by a predicate failure or timeout"
    )

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL


class RuleCheckResult(BaseModel):
    """Outcome of one rule for one evaluation."""
    policy_id: str
    policy_version: int
    severity: Severity
    enforcement: EnforcementMode
    passed: bool
    violations: List[PolicyViolation] = Field(default_factory=list)
    error: Optional[str] = None
    duration_ms: float = 0.0


class EvaluationResult(BaseModel):
    """Result of evaluating an operation context against the registry."""
    evaluation_id: str = Field(default_factory=lambda: f"evl_{uuid4().hex[:12]}")
    operation: str
    passed: bool
    blocked: bool
    timed_out: bool = False
    per_rule_results: List[RuleCheckResult] = Field(default_factory=list)
    violations: List[PolicyViolation] = Field(default_factory=list)
    summary: str = ""
    audit_event_id: Optional[str] = None
    evaluated_at: datetime = Field(default_factory=utc_now)

    @property
    def critical_violations(self) -> List[PolicyViolation]:
        return [v for v in self.violations if v.is_critical]

    @property
    def warnings(self) -> List[PolicyViolation]:
        """Violations that are reported but do not block."""
        return [v for v in self.violations if not v.is_critical]

    @property
    def has_errors(self) -> bool:
        return self.timed_out or any(r.error for r in self.per_rule_results)

    @property
    def outcome(self) -> str:
        """One of 'block', 'error', 'warn', 'pass'."""
        if self.blocked:
            return "block"
        if self.has_errors:
            return "error"
        if self.violations:
            return "warn"
        return "pass"


# =============================================================================
# REMEDIATION AND OVERRIDES
# =============================================================================

class RemediationAttempt(BaseModel):
    """One auto-fix attempt for one violation."""
    violation: PolicyViolation
    success: bool
    message: str = ""
    changes: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    audit_event_id: Optional[str] = None


class RemediationResult(BaseModel):
    fixed: List[RemediationAttempt] = Field(default_factory=list)
    failed: List[RemediationAttempt] = Field(default_factory=list)
    skipped: List[PolicyViolation] = Field(
        default_factory=list,
        description="Violations whose rule cannot auto-fix"
    )


class OverrideRequest(BaseModel):
    """Request to let a non-critical violation proceed.

    Immutable: a decision produces a new copy, never an in-place edit.
    """
    model_config = ConfigDict(frozen=True)

    request_id: str = Field(default_factory=lambda: f"ovr_{uuid4().hex[:12]}")
    violation: PolicyViolation
    justification: str
    approver_id: Optional[str] = None
    requested_at: datetime = Field(default_factory=utc_now)
    status: OverrideStatus = OverrideStatus.PROPOSED
    decided_at: Optional[datetime] = None
    decision_reason: Optional[str] = None


class OverrideResult(BaseModel):
    request: OverrideRequest
    approved: bool
    reason: str
    audit_event_id: Optional[str] = None


# =============================================================================
# AUDIT
# =============================================================================

class AuditContext(BaseModel):
    """Summarized, redacted context stored on an audit event."""
    model_config = ConfigDict(frozen=True)

    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ComplianceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    violations: List[PolicyViolation] = Field(default_factory=list)
    checks: List[Dict[str, Any]] = Field(default_factory=list)
    approved: Optional[bool] = None


class AuditEventDraft(BaseModel):
    """Everything of an audit event except what the logger assigns.

    The logger alone sets id, sequence, timestamp, previous_hash and hash.
    """
    event_type: AuditEventType
    actor: Actor
    action: str
    resource: Optional[ResourceRef] = None
    context: AuditContext = Field(default_factory=AuditContext)
    result: AuditResult
    compliance: ComplianceRecord = Field(default_factory=ComplianceRecord)


class AuditEvent(BaseModel):
    """A single immutable, hash-linked audit record."""
    model_config = ConfigDict(frozen=True)

    id: str
    sequence: int = Field(..., ge=0)
    timestamp: datetime
    event_type: AuditEventType
    actor: Actor
    action: str
    resource: Optional[ResourceRef] = None
    context: AuditContext = Field(default_factory=AuditContext)
    result: AuditResult
    compliance: ComplianceRecord = Field(default_factory=ComplianceRecord)
    previous_hash: str
    hash: str

    @property
    def has_violations(self) -> bool:
        return bool(self.compliance.violations)

    def hashable_content(self) -> Dict[str, Any]:
        """The event as JSON data, minus its own hash."""
        return self.model_dump(mode="json", exclude={"hash"})

    def to_jsonl(self) -> str:
        """Serialize event to JSONL format."""
        import json
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, ensure_ascii=False)

    @classmethod
    def from_jsonl(cls, line: str) -> "AuditEvent":
        """Deserialize event from JSONL format."""
        import json
        return cls.model_validate(json.loads(line))


class IntegrityReport(BaseModel):
    valid: bool
    total_events: int
    broken_at: Optional[int] = None
    message: str = ""


class QueryResult(BaseModel):
    """Audit query outcome. Errors come back as ok=False, never raised."""
    events: List[AuditEvent] = Field(default_factory=list)
    ok: bool = True
    error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.events)
