"""Policy Engine - Evaluates and enforces governance rules before operations run.

The engine holds no evaluation state. Every evaluation reads the current
rule set from the registry, runs the predicates concurrently, and writes
exactly one audit event.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional

from codewarden.common.exceptions import PolicyViolationError
from codewarden.governance.audit.logger import AuditLogger
from codewarden.governance.policies.registry import PolicyRegistry, RegisteredRule
from codewarden.governance.schemas import (
    CheckResult,
    EnforcementMode,
    EvaluationResult,
    FixResult,
    OperationContext,
    PolicyViolation,
    RemediationAttempt,
    RemediationResult,
    RuleCheckResult,
    ViolationLocation,
)
from codewarden.governance.settings import GovernanceSettings


logger = logging.getLogger(__name__)


class PolicyEngine:
    """Evaluates the applicable rules for an operation.

    Execution model:
    1. Select enabled rules whose applies_to matches the operation
    2. Run every predicate on the thread pool
    3. Join within the timeout; unfinished or failing rules become
       synthetic violations
    4. Block iff any violation is critical
    5. Append one policy.evaluation audit event
    """

    def __init__(
        self,
        registry: PolicyRegistry,
        audit_logger: AuditLogger,
        settings: Optional[GovernanceSettings] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize engine.

        Args:
            registry: Source of rule definitions
            audit_logger: Receives one event per evaluation and per fix attempt
            settings: Governance settings. Defaults if not provided.
            executor: Custom executor. A private pool is created if not provided.
        """
        self.registry = registry
        self.audit_logger = audit_logger
        self.settings = settings or registry.settings
        self._executor = executor
        self._owns_executor = executor is None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.evaluation.max_workers,
                thread_name_prefix="PolicyCheck",
            )
            logger.info(
                f"Created policy executor with {self.settings.evaluation.max_workers} workers"
            )
        return self._executor

    def shutdown(self) -> None:
        """Stop the private executor. Injected executors are left alone."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        context: OperationContext,
        timeout: Optional[float] = None,
    ) -> EvaluationResult:
        """Evaluate an operation against every applicable rule.

        Args:
            context: The proposed operation
            timeout: Seconds to wait for all predicates. Falls back to the
                configured default.

        Returns:
            EvaluationResult carrying the id of its audit event

        Raises:
            AuditStoreError: If the evaluation could not be recorded. The
                operation must not proceed in that case.
        """
        if timeout is None:
            timeout = self.settings.evaluation.default_timeout_seconds

        applicable = self.registry.applicable(context.operation)
        executor = self._get_executor()

        futures: Dict[str, Future] = {
            entry.rule.id: executor.submit(self._run_check, entry, context)
            for entry in applicable
        }
        _, not_done = wait(futures.values(), timeout=timeout)
        for future in not_done:
            future.cancel()

        per_rule: List[RuleCheckResult] = []
        for entry in applicable:
            future = futures[entry.rule.id]
            if future in not_done:
                per_rule.append(self._failed_check(
                    entry, f"did not finish within {timeout}s", timeout * 1000.0
                ))
            else:
                per_rule.append(future.result())

        violations = [v for result in per_rule for v in result.violations]
        blocked = any(v.is_critical for v in violations)
        timed_out = bool(not_done)

        result = EvaluationResult(
            operation=context.operation,
            passed=not violations,
            blocked=blocked,
            timed_out=timed_out,
            per_rule_results=per_rule,
            violations=violations,
            summary=self._summarize(applicable, per_rule, violations, blocked, timed_out),
        )

        event = self.audit_logger.log_evaluation(context, result)
        result = result.model_copy(update={"audit_event_id": event.id})

        if blocked:
            logger.info(
                f"Operation {context.operation} by {context.actor.id} blocked: {result.summary}"
            )
        elif timed_out:
            logger.warning(f"Evaluation of {context.operation} timed out after {timeout}s")
        return result

    def enforce(
        self,
        context: OperationContext,
        timeout: Optional[float] = None,
    ) -> EvaluationResult:
        """Evaluate, raising if the operation may not proceed.

        Raises:
            PolicyViolationError: If blocked or timed out
        """
        result = self.evaluate(context, timeout=timeout)
        if result.blocked or result.timed_out:
            raise PolicyViolationError(
                f"Operation '{context.operation}' rejected: {result.summary}",
                result=result,
            )
        return result

    def _run_check(self, entry: RegisteredRule, context: OperationContext) -> RuleCheckResult:
        """Run one predicate. Never raises."""
        rule = entry.rule
        started = time.perf_counter()
        try:
            outcome = entry.check(context)
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000.0
            logger.warning(f"Policy rule {rule.id} failed: {type(e).__name__}: {e}")
            return self._failed_check(entry, f"raised {type(e).__name__}: {e}", elapsed)

        elapsed = (time.perf_counter() - started) * 1000.0
        if not isinstance(outcome, CheckResult):
            logger.warning(
                f"Policy rule {rule.id} returned {type(outcome).__name__}, not CheckResult"
            )
            return self._failed_check(
                entry, f"returned {type(outcome).__name__} instead of CheckResult", elapsed
            )

        violations: List[PolicyViolation] = []
        if not outcome.passed:
            findings = outcome.findings or []
            if not findings:
                violations.append(self._violation(entry, rule.description))
            for finding in findings:
                location = None
                if finding.file is not None or finding.line is not None:
                    location = ViolationLocation(file=finding.file, line=finding.line)
                violations.append(self._violation(
                    entry, finding.message, location=location, hint=finding.hint
                ))

        return RuleCheckResult(
            policy_id=rule.id,
            policy_version=rule.version,
            severity=rule.severity,
            enforcement=rule.enforcement,
            passed=outcome.passed,
            violations=violations,
            duration_ms=elapsed,
        )

    @staticmethod
    def _violation(
        entry: RegisteredRule,
        message: str,
        location: Optional[ViolationLocation] = None,
        hint: Optional[str] = None,
    ) -> PolicyViolation:
        rule = entry.rule
        return PolicyViolation(
            policy_id=rule.id,
            policy_version=rule.version,
            severity=rule.severity,
            message=message,
            location=location,
            remediation_hint=hint or rule.guidance,
        )

    def _failed_check(
        self, entry: RegisteredRule, error: str, elapsed_ms: float
    ) -> RuleCheckResult:
        """Fail closed: a rule that cannot answer counts as violated."""
        rule = entry.rule
        violation = PolicyViolation(
            policy_id=rule.id,
            policy_version=rule.version,
            severity=self.settings.evaluation.predicate_failure_severity,
            message=f"Rule {rule.id} could not be evaluated: {error}",
            remediation_hint="Investigate the rule predicate; the operation was not verified",
            synthetic=True,
        )
        return RuleCheckResult(
            policy_id=rule.id,
            policy_version=rule.version,
            severity=rule.severity,
            enforcement=rule.enforcement,
            passed=False,
            violations=[violation],
            error=error,
            duration_ms=elapsed_ms,
        )

    @staticmethod
    def _summarize(
        applicable: List[RegisteredRule],
        per_rule: List[RuleCheckResult],
        violations: List[PolicyViolation],
        blocked: bool,
        timed_out: bool,
    ) -> str:
        if not applicable:
            return "PASSED: no applicable rules"

        parts: List[str] = []
        critical = sorted({v.policy_id for v in violations if v.is_critical})
        if blocked:
            parts.append(
                f"BLOCKED by {len([v for v in violations if v.is_critical])} "
                f"critical violation(s) ({', '.join(critical)})"
            )

        errored = [r.policy_id for r in per_rule if r.error]
        if errored:
            label = "timed out" if timed_out else "failed"
            parts.append(f"{len(errored)} rule(s) {label} ({', '.join(errored)})")

        by_mode: Dict[EnforcementMode, int] = {}
        for result in per_rule:
            if result.error:
                continue
            for v in result.violations:
                if not v.is_critical:
                    by_mode[result.enforcement] = by_mode.get(result.enforcement, 0) + 1
        for mode in EnforcementMode:
            if by_mode.get(mode):
                parts.append(f"{by_mode[mode]} {mode.value} finding(s)")

        if not parts:
            return f"PASSED: {len(per_rule)} rule(s) checked"
        if not blocked and errored:
            parts.insert(0, "FAILED")
        elif not blocked:
            parts.insert(0, "WARNINGS")
        return "; ".join(parts)

    # ------------------------------------------------------------------
    # Remediation
    # ------------------------------------------------------------------

    def remediate(
        self,
        context: OperationContext,
        violations: Iterable[PolicyViolation],
    ) -> RemediationResult:
        """Attempt auto-fixes for the given violations.

        Only rules registered with can_auto_fix are attempted. Attempts are
        independent: one failing fix never stops the others. Every attempt
        is recorded as a policy.remediation audit event.
        """
        result = RemediationResult()

        for violation in violations:
            fix = self._fix_for(violation)
            if fix is None:
                result.skipped.append(violation)
                continue

            attempt = self._attempt_fix(context, violation, fix)
            event = self.audit_logger.log_remediation(context, attempt)
            attempt = attempt.model_copy(update={"audit_event_id": event.id})

            if attempt.success:
                result.fixed.append(attempt)
            else:
                result.failed.append(attempt)

        logger.info(
            f"Remediation for {context.operation}: {len(result.fixed)} fixed, "
            f"{len(result.failed)} failed, {len(result.skipped)} skipped"
        )
        return result

    def _fix_for(self, violation: PolicyViolation):
        if violation.synthetic or not self.registry.contains(violation.policy_id):
            return None
        entry = self.registry.get_registered(violation.policy_id)
        if not entry.rule.can_auto_fix:
            return None
        return entry.fix

    @staticmethod
    def _attempt_fix(context, violation: PolicyViolation, fix) -> RemediationAttempt:
        try:
            outcome = fix(context, violation)
        except Exception as e:
            logger.warning(
                f"Auto-fix for {violation.policy_id} failed: {type(e).__name__}: {e}"
            )
            return RemediationAttempt(
                violation=violation,
                success=False,
                error=f"{type(e).__name__}: {e}",
            )

        if not isinstance(outcome, FixResult):
            return RemediationAttempt(
                violation=violation,
                success=False,
                error=f"fix returned {type(outcome).__name__} instead of FixResult",
            )

        return RemediationAttempt(
            violation=violation,
            success=outcome.success,
            message=outcome.message,
            changes=outcome.changes,
        )
