"""Policy Registry - Owner of all rule definitions.

Rules are immutable values. Each rule id is paired with a pure check
function (and optionally a fix function) held in a lookup table, so the
registry never stores behaviour on the rule itself. Updates create a new
version; nothing is edited in place and nothing is ever deleted.
"""

import logging
import re
import threading
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Union

from codewarden.common.exceptions import (
    DuplicateRuleError,
    InvalidRuleError,
    RuleNotFoundError,
)
from codewarden.governance.schemas import (
    EnforcementMode,
    PolicyCategory,
    PolicyCheck,
    PolicyFix,
    PolicyRule,
    RuleStateChange,
    Severity,
    utc_now,
)
from codewarden.governance.settings import GovernanceSettings


logger = logging.getLogger(__name__)

# Fields that only the registry may set
_PROTECTED_FIELDS = frozenset({"id", "version", "created_at", "updated_at"})


@dataclass(frozen=True)
class RegisteredRule:
    """A rule version together with the functions that evaluate it."""
    rule: PolicyRule
    check: PolicyCheck
    fix: Optional[PolicyFix] = None


class PolicyRegistry:
    """Holds declarative rule definitions and their version history."""

    def __init__(self, settings: Optional[GovernanceSettings] = None):
        self.settings = settings or GovernanceSettings()
        self._lock = threading.RLock()
        # rule_id -> every version, oldest first
        self._versions: Dict[str, List[RegisteredRule]] = {}
        self._enabled: Dict[str, bool] = {}
        self._state_changes: Dict[str, List[RuleStateChange]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        rule: PolicyRule,
        check: PolicyCheck,
        fix: Optional[PolicyFix] = None,
    ) -> PolicyRule:
        """Register a new rule.

        Args:
            rule: Rule definition
            check: Pure predicate ``check(context) -> CheckResult``
            fix: Optional ``fix(context, violation) -> FixResult``

        Returns:
            The stored rule (version 1, timestamps set)

        Raises:
            DuplicateRuleError: If the id is already registered
            InvalidRuleError: If the definition fails validation
        """
        self._validate(rule, check, fix)

        now = utc_now()
        stored = rule.model_copy(update={
            "version": 1,
            "created_at": now,
            "updated_at": now,
        })

        with self._lock:
            if rule.id in self._versions:
                raise DuplicateRuleError(rule.id)
            self._versions[rule.id] = [RegisteredRule(stored, check, fix)]
            self._enabled[rule.id] = True
            self._state_changes[rule.id] = []

        self._warn_if_mode_ignored(stored)
        logger.info(f"Registered policy rule {stored.id} ({stored.severity.value})")
        return stored

    def update(
        self,
        rule_id: str,
        changes: Dict[str, Any],
        check: Optional[PolicyCheck] = None,
        fix: Optional[PolicyFix] = None,
    ) -> PolicyRule:
        """Create a new version of a rule.

        The previous version stays in the history. Functions not supplied
        are carried over from the current version.

        Raises:
            RuleNotFoundError: If the rule is unknown
            InvalidRuleError: If the change touches a protected field or the
                resulting definition is invalid
        """
        protected = sorted(_PROTECTED_FIELDS.intersection(changes))
        if protected:
            raise InvalidRuleError(
                rule_id, [f"field '{name}' cannot be changed" for name in protected]
            )

        with self._lock:
            current = self._current(rule_id)
            new_check = check or current.check
            new_fix = fix if fix is not None else current.fix

            try:
                candidate = PolicyRule.model_validate({
                    **current.rule.model_dump(),
                    **changes,
                    "version": current.rule.version + 1,
                    "updated_at": utc_now(),
                })
            except ValueError as e:
                raise InvalidRuleError(rule_id, [str(e)]) from e

            self._validate(candidate, new_check, new_fix)
            self._versions[rule_id].append(RegisteredRule(candidate, new_check, new_fix))

        self._warn_if_mode_ignored(candidate)
        logger.info(f"Updated policy rule {rule_id} to version {candidate.version}")
        return candidate

    def disable(self, rule_id: str, reason: str) -> RuleStateChange:
        """Stop applying a rule. Its history is kept."""
        if not reason or not reason.strip():
            raise InvalidRuleError(rule_id, ["a reason is required to disable a rule"])
        return self._set_enabled(rule_id, False, reason)

    def enable(self, rule_id: str) -> RuleStateChange:
        """Resume applying a disabled rule."""
        return self._set_enabled(rule_id, True, None)

    def _set_enabled(self, rule_id: str, enabled: bool, reason: Optional[str]) -> RuleStateChange:
        with self._lock:
            self._current(rule_id)
            change = RuleStateChange(rule_id=rule_id, enabled=enabled, reason=reason)
            self._enabled[rule_id] = enabled
            self._state_changes[rule_id].append(change)

        logger.info(
            f"Policy rule {rule_id} {'enabled' if enabled else 'disabled'}"
            + (f": {reason}" if reason else "")
        )
        return change

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, rule_id: str) -> PolicyRule:
        """Current version of a rule."""
        with self._lock:
            return self._current(rule_id).rule

    def get_registered(self, rule_id: str) -> RegisteredRule:
        with self._lock:
            return self._current(rule_id)

    def check_for(self, rule_id: str) -> PolicyCheck:
        return self.get_registered(rule_id).check

    def fix_for(self, rule_id: str) -> Optional[PolicyFix]:
        return self.get_registered(rule_id).fix

    def contains(self, rule_id: str) -> bool:
        with self._lock:
            return rule_id in self._versions

    def is_enabled(self, rule_id: str) -> bool:
        with self._lock:
            self._current(rule_id)
            return self._enabled[rule_id]

    def history(self, rule_id: str) -> List[PolicyRule]:
        """Every version of a rule, oldest first."""
        with self._lock:
            self._current(rule_id)
            return [entry.rule for entry in self._versions[rule_id]]

    def state_changes(self, rule_id: str) -> List[RuleStateChange]:
        with self._lock:
            self._current(rule_id)
            return list(self._state_changes[rule_id])

    def list_rules(self, include_disabled: bool = True) -> List[PolicyRule]:
        with self._lock:
            return [
                versions[-1].rule
                for rule_id, versions in sorted(self._versions.items())
                if include_disabled or self._enabled[rule_id]
            ]

    def list_by_category(self, category: Union[PolicyCategory, str]) -> List[PolicyRule]:
        category = PolicyCategory(category)
        return [rule for rule in self.list_rules() if rule.category == category]

    def applicable(self, operation: str) -> List[RegisteredRule]:
        """Enabled rules relevant to an operation, ordered by rule id."""
        with self._lock:
            return [
                versions[-1]
                for rule_id, versions in sorted(self._versions.items())
                if self._enabled[rule_id]
                and _matches_operation(versions[-1].rule, operation)
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._versions)

    def _current(self, rule_id: str) -> RegisteredRule:
        versions = self._versions.get(rule_id)
        if not versions:
            raise RuleNotFoundError(rule_id)
        return versions[-1]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(
        self,
        rule: PolicyRule,
        check: Optional[PolicyCheck],
        fix: Optional[PolicyFix],
    ) -> None:
        """Collect every problem with a definition before raising."""
        limits = self.settings.registry
        problems: List[str] = []

        pattern = rf"^{re.escape(rule.category.prefix)}-\d{{{limits.id_sequence_digits},}}$"
        if not re.match(pattern, rule.id):
            problems.append(
                f"id must be '{rule.category.prefix}-' followed by at least "
                f"{limits.id_sequence_digits} digits for category '{rule.category.value}'"
            )

        for field_name, minimum in (
            ("name", limits.min_name_length),
            ("description", limits.min_description_length),
            ("rationale", limits.min_rationale_length),
        ):
            value = getattr(rule, field_name) or ""
            if len(value.strip()) < minimum:
                problems.append(f"{field_name} must be at least {minimum} characters")

        if not rule.applies_to:
            problems.append("applies_to must list at least one operation pattern")

        if check is None:
            problems.append("check function is required")
        elif not callable(check):
            problems.append("check must be callable")

        if fix is not None and not callable(fix):
            problems.append("fix must be callable")
        if rule.can_auto_fix and fix is None:
            problems.append("can_auto_fix requires a fix function")

        if problems:
            raise InvalidRuleError(rule.id, problems)

    @staticmethod
    def _warn_if_mode_ignored(rule: PolicyRule) -> None:
        if rule.severity == Severity.CRITICAL and rule.enforcement != EnforcementMode.BLOCK:
            logger.warning(
                f"Policy rule {rule.id} is critical with enforcement "
                f"'{rule.enforcement.value}'; critical violations always block"
            )


def _matches_operation(rule: PolicyRule, operation: str) -> bool:
    return any(fnmatchcase(operation, pattern) for pattern in rule.applies_to)
