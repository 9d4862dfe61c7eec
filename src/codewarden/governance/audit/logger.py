"""Audit Logger - Append-only, hash-chained record of every governance action.

The logger is the only writer of the chain. Each event links to its
predecessor through ``previous_hash``; the tail only advances once the
store has confirmed the append.
"""

import logging
import threading
from typing import Any, Dict, List, Optional
from uuid import uuid4

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from codewarden.common.constants import AuditConstants
from codewarden.common.exceptions import (
    AuditLogIntegrityError,
    AuditStoreError,
    ConfigurationError,
)
from codewarden.governance.audit.chain import compute_event_hash
from codewarden.governance.audit.query import AuditFilter, AuditQuery, AuditQueryEngine
from codewarden.governance.audit.redaction import Redactor
from codewarden.governance.audit.store import AuditStore, InMemoryAuditStore
from codewarden.governance.schemas import (
    Actor,
    ActorType,
    AuditContext,
    AuditEvent,
    AuditEventDraft,
    AuditEventType,
    AuditResult,
    ComplianceRecord,
    EvaluationResult,
    IntegrityReport,
    OperationContext,
    OverrideRequest,
    OverrideStatus,
    PolicyViolation,
    QueryResult,
    RemediationAttempt,
    ResourceRef,
    utc_now,
)
from codewarden.governance.settings import GovernanceSettings


logger = logging.getLogger(__name__)

SYSTEM_ACTOR = Actor(id="codewarden", type=ActorType.SYSTEM)


class AuditLogger:
    """Records governance events immutably in a hash chain."""

    def __init__(
        self,
        store: Optional[AuditStore] = None,
        settings: Optional[GovernanceSettings] = None,
    ):
        """Initialize audit logger.

        Args:
            store: Persistence backend. In-memory if not provided.
            settings: Governance settings (hash algorithm, redaction, retry).

        Raises:
            ConfigurationError: If the store was built for another algorithm
        """
        self.settings = settings or GovernanceSettings()
        audit = self.settings.audit
        self.hash_algorithm = audit.hash_algorithm
        self.store = store or InMemoryAuditStore(hash_algorithm=self.hash_algorithm)

        if self.store.hash_algorithm != self.hash_algorithm:
            raise ConfigurationError(
                f"Audit store uses '{self.store.hash_algorithm}' but settings "
                f"require '{self.hash_algorithm}'"
            )

        self.redactor = Redactor(audit.sensitive_key_patterns, audit.redaction_marker)
        self.query_engine = AuditQueryEngine(self.store)

        self._lock = threading.Lock()

        # Resume the chain from whatever the store already holds
        last = self.store.last_event()
        self._tail_hash = last.hash if last else AuditConstants.GENESIS_PREVIOUS_HASH
        self._next_sequence = last.sequence + 1 if last else 0

    @property
    def tail_hash(self) -> str:
        with self._lock:
            return self._tail_hash

    def log(self, draft: AuditEventDraft) -> AuditEvent:
        """Chain and persist one event.

        Raises:
            AuditStoreError: If the store keeps failing after retries. The
                chain tail is unchanged and the event does not exist.
        """
        context = AuditContext(
            input=self.redactor.redact(draft.context.input),
            output=self.redactor.redact(draft.context.output),
            metadata=self.redactor.redact(draft.context.metadata),
        )

        with self._lock:
            unsealed = AuditEvent(
                id=f"{AuditConstants.EVENT_ID_PREFIX}{uuid4().hex}",
                sequence=self._next_sequence,
                timestamp=utc_now(),
                event_type=draft.event_type,
                actor=draft.actor,
                action=draft.action,
                resource=draft.resource,
                context=context,
                result=draft.result,
                compliance=draft.compliance,
                previous_hash=self._tail_hash,
                hash="",
            )
            event = unsealed.model_copy(
                update={"hash": compute_event_hash(unsealed, self.hash_algorithm)}
            )

            self._persist(event)

            self._tail_hash = event.hash
            self._next_sequence += 1

        logger.debug(
            f"Audit event {event.id} #{event.sequence} "
            f"{event.event_type.value} {event.result.value}"
        )
        return event

    def _persist(self, event: AuditEvent) -> None:
        audit = self.settings.audit
        retrying = Retrying(
            retry=retry_if_exception_type(OSError),
            stop=stop_after_attempt(audit.storage_retry_attempts),
            wait=wait_exponential(
                multiplier=audit.storage_retry_backoff_seconds,
                max=AuditConstants.STORAGE_RETRY_MAX_WAIT_SECONDS,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            retrying(self.store.append, event)
        except OSError as e:
            logger.error(
                f"Audit append failed after {audit.storage_retry_attempts} attempts: {e}"
            )
            raise AuditStoreError(
                f"Could not persist audit event: {e}",
                details={"event_type": event.event_type.value, "sequence": event.sequence},
            ) from e

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    def log_evaluation(self, context: OperationContext, result: EvaluationResult) -> AuditEvent:
        """Log a policy evaluation. One event per evaluation."""
        if result.blocked:
            outcome = AuditResult.BLOCKED
        elif result.has_errors:
            outcome = AuditResult.FAILURE
        else:
            outcome = AuditResult.SUCCESS

        draft = AuditEventDraft(
            event_type=AuditEventType.POLICY_EVALUATION,
            actor=context.actor,
            action=context.operation,
            resource=context.resource,
            context=AuditContext(
                input=context.summary(),
                output={
                    "evaluation_id": result.evaluation_id,
                    "passed": result.passed,
                    "blocked": result.blocked,
                    "timed_out": result.timed_out,
                    "outcome": result.outcome,
                    "summary": result.summary,
                },
                metadata=context.metadata,
            ),
            result=outcome,
            compliance=ComplianceRecord(
                violations=result.violations,
                checks=[
                    {
                        "policy_id": r.policy_id,
                        "policy_version": r.policy_version,
                        "passed": r.passed,
                        "error": r.error,
                    }
                    for r in result.per_rule_results
                ],
            ),
        )
        return self.log(draft)

    def log_override(
        self,
        request: OverrideRequest,
        actor: Actor,
        resource: Optional[ResourceRef] = None,
    ) -> AuditEvent:
        """Log a decided override request, approved or rejected."""
        approved = request.status == OverrideStatus.APPROVED
        draft = AuditEventDraft(
            event_type=AuditEventType.POLICY_OVERRIDE,
            actor=actor,
            action=f"override.{request.status.value}",
            resource=resource,
            context=AuditContext(
                input={
                    "request_id": request.request_id,
                    "policy_id": request.violation.policy_id,
                    "violation_id": request.violation.violation_id,
                    "justification": request.justification,
                    "approver_id": request.approver_id,
                },
                output={
                    "status": request.status.value,
                    "reason": request.decision_reason,
                },
            ),
            result=AuditResult.SUCCESS if approved else AuditResult.BLOCKED,
            compliance=ComplianceRecord(
                violations=[request.violation],
                approved=approved,
            ),
        )
        return self.log(draft)

    def log_remediation(
        self,
        context: OperationContext,
        attempt: RemediationAttempt,
    ) -> AuditEvent:
        """Log a single auto-fix attempt."""
        draft = AuditEventDraft(
            event_type=AuditEventType.POLICY_REMEDIATION,
            actor=context.actor,
            action=f"remediate.{attempt.violation.policy_id}",
            resource=context.resource,
            context=AuditContext(
                input={
                    "operation": context.operation,
                    "violation_id": attempt.violation.violation_id,
                },
                output={
                    "success": attempt.success,
                    "message": attempt.message,
                    "changed": sorted(attempt.changes),
                    "error": attempt.error,
                },
                metadata=context.metadata,
            ),
            result=AuditResult.SUCCESS if attempt.success else AuditResult.FAILURE,
            compliance=ComplianceRecord(violations=[attempt.violation]),
        )
        return self.log(draft)

    def log_rule_change(
        self,
        rule_id: str,
        change: str,
        actor: Optional[Actor] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a registry mutation (register, update, enable, disable)."""
        draft = AuditEventDraft(
            event_type=AuditEventType.POLICY_RULE_CHANGE,
            actor=actor or SYSTEM_ACTOR,
            action=f"rule.{change}",
            resource=ResourceRef(type="policy_rule", id=rule_id),
            context=AuditContext(input=details or {}),
            result=AuditResult.SUCCESS,
        )
        return self.log(draft)

    def log_system_event(
        self,
        event_description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a system event (startup, shutdown, config change, etc.)"""
        draft = AuditEventDraft(
            event_type=AuditEventType.SYSTEM_EVENT,
            actor=SYSTEM_ACTOR,
            action=event_description,
            context=AuditContext(metadata=metadata or {}),
            result=AuditResult.SUCCESS,
        )
        return self.log(draft)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(self, query: Optional[AuditQuery] = None) -> QueryResult:
        return self.query_engine.run(query)

    def get_violation_history(self, policy_id: str) -> List[PolicyViolation]:
        """Every recorded violation of a rule, oldest first."""
        result = self.query_engine.run(AuditFilter(has_violations=True, newest_first=False))
        return [
            violation
            for event in result.events
            if event.event_type == AuditEventType.POLICY_EVALUATION
            for violation in event.compliance.violations
            if violation.policy_id == policy_id
        ]

    def verify_integrity(self) -> IntegrityReport:
        return self.store.verify_integrity()

    def require_integrity(self) -> IntegrityReport:
        """Like verify_integrity, but a broken chain raises.

        Raises:
            AuditLogIntegrityError: If any link fails verification
        """
        report = self.store.verify_integrity()
        if not report.valid:
            raise AuditLogIntegrityError(report.message, broken_at=report.broken_at)
        return report

    def get_entry_count(self) -> int:
        return self.store.count()
