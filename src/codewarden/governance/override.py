"""Human Override Handler - Letting a non-critical violation proceed.

An override request moves PROPOSED -> APPROVED or PROPOSED -> REJECTED and
never moves again. Every decided request is written to the audit log, so
a rejected attempt is as visible as an approved one.
"""

import logging
from typing import Dict, FrozenSet, List, Optional

from codewarden.common.exceptions import OverrideStateError
from codewarden.governance.audit.logger import AuditLogger
from codewarden.governance.audit.query import AuditQuery
from codewarden.governance.policies.registry import PolicyRegistry
from codewarden.governance.schemas import (
    AuditEvent,
    AuditEventType,
    OperationContext,
    OverrideRequest,
    OverrideResult,
    OverrideStatus,
    PolicyViolation,
    utc_now,
)
from codewarden.governance.settings import GovernanceSettings


logger = logging.getLogger(__name__)

_TRANSITIONS: Dict[OverrideStatus, FrozenSet[OverrideStatus]] = {
    OverrideStatus.PROPOSED: frozenset({OverrideStatus.APPROVED, OverrideStatus.REJECTED}),
    OverrideStatus.APPROVED: frozenset(),
    OverrideStatus.REJECTED: frozenset(),
}


class HumanOverrideHandler:
    """Decides and records override requests."""

    def __init__(
        self,
        audit_logger: AuditLogger,
        settings: Optional[GovernanceSettings] = None,
        registry: Optional[PolicyRegistry] = None,
    ):
        self.audit_logger = audit_logger
        self.settings = settings or audit_logger.settings
        self.registry = registry

    @property
    def min_justification_length(self) -> int:
        return self.settings.override.min_justification_length

    def request_override(
        self,
        context: OperationContext,
        violation: PolicyViolation,
        justification: str,
        approver_id: Optional[str] = None,
    ) -> OverrideResult:
        """Propose an override and decide it immediately.

        Critical violations are always rejected without consulting the
        approver. Severity is never taken lower than the registered rule
        declares, so a resubmitted violation cannot downgrade itself.
        Anything else is approved when the justification is at least
        ``min_justification_length`` characters long.

        Misuse is never an exception; it is a recorded rejection.

        Raises:
            AuditStoreError: If the decision could not be recorded
        """
        violation = self._with_trusted_severity(violation)
        request = OverrideRequest(
            violation=violation,
            justification=justification or "",
            approver_id=approver_id,
        )

        if violation.is_critical:
            decided = self.decide(
                request, OverrideStatus.REJECTED,
                "Critical violations cannot be overridden",
            )
        elif len(request.justification) < self.min_justification_length:
            decided = self.decide(
                request, OverrideStatus.REJECTED,
                f"Justification must be at least {self.min_justification_length} "
                f"characters, got {len(request.justification)}",
            )
        else:
            decided = self.decide(
                request, OverrideStatus.APPROVED,
                f"Override approved for {violation.policy_id}",
            )

        event = self.audit_logger.log_override(
            decided, actor=context.actor, resource=context.resource
        )

        approved = decided.status == OverrideStatus.APPROVED
        logger.info(
            f"Override {decided.request_id} for {violation.policy_id} "
            f"{decided.status.value} ({context.actor.id})"
        )
        return OverrideResult(
            request=decided,
            approved=approved,
            reason=decided.decision_reason or "",
            audit_event_id=event.id,
        )

    def _with_trusted_severity(self, violation: PolicyViolation) -> PolicyViolation:
        """Raise a violation's severity to its floor.

        Synthetic violations are floored at the predicate failure severity,
        others at the severity of the registered rule.
        """
        if violation.synthetic:
            floor = self.settings.evaluation.predicate_failure_severity
        elif self.registry is not None and self.registry.contains(violation.policy_id):
            floor = self.registry.get(violation.policy_id).severity
        else:
            return violation

        if violation.severity.at_least(floor):
            return violation
        logger.warning(
            f"Override for {violation.policy_id} claimed severity "
            f"'{violation.severity.value}', using '{floor.value}'"
        )
        return violation.model_copy(update={"severity": floor})

    @staticmethod
    def decide(
        request: OverrideRequest,
        status: OverrideStatus,
        reason: str,
    ) -> OverrideRequest:
        """Return a decided copy of a request.

        Raises:
            OverrideStateError: If the transition is not allowed
        """
        if status not in _TRANSITIONS[request.status]:
            raise OverrideStateError(
                f"Override {request.request_id} cannot move from "
                f"'{request.status.value}' to '{status.value}'",
                details={"request_id": request.request_id},
            )
        return request.model_copy(update={
            "status": status,
            "decided_at": utc_now(),
            "decision_reason": reason,
        })

    def get_override_history(
        self,
        policy_id: Optional[str] = None,
        violation_id: Optional[str] = None,
    ) -> List[AuditEvent]:
        """Recorded override decisions, oldest first."""
        result = self.audit_logger.query(
            AuditQuery().event_types(AuditEventType.POLICY_OVERRIDE).oldest_first()
        )
        events = result.events
        if policy_id is not None:
            events = [e for e in events if e.context.input.get("policy_id") == policy_id]
        if violation_id is not None:
            events = [e for e in events if e.context.input.get("violation_id") == violation_id]
        return events
