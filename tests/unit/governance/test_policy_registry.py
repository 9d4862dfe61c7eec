"""Unit tests for the Policy Registry.

Tests registration, validation, versioning and enable/disable toggles.
"""

import logging

import pytest

from codewarden.common.exceptions import (
    DuplicateRuleError,
    InvalidRuleError,
    RuleNotFoundError,
)
from codewarden.governance.policies.registry import PolicyRegistry
from codewarden.governance.schemas import (
    CheckResult,
    EnforcementMode,
    FixResult,
    PolicyCategory,
    PolicyRule,
    Severity,
)


def always_pass(context):
    return CheckResult.ok()


def noop_fix(context, violation):
    return FixResult(success=True)


def make_rule(**overrides) -> PolicyRule:
    fields = {
        "id": "SEC-101",
        "name": "No plaintext tokens",
        "category": PolicyCategory.SECURITY,
        "description": "Tokens must never be committed in plaintext form.",
        "rationale": "Plaintext tokens are trivially harvested from history.",
        "severity": Severity.HIGH,
        "enforcement": EnforcementMode.WARN,
        "applies_to": ["code.*"],
    }
    fields.update(overrides)
    return PolicyRule(**fields)


class TestRegistration:
    """Test rule registration."""

    def test_register_stamps_version_and_timestamps(self, registry):
        stored = registry.register(make_rule(), always_pass)

        assert stored.version == 1
        assert stored.created_at is not None
        assert stored.updated_at == stored.created_at
        assert registry.get("SEC-101") == stored
        assert registry.is_enabled("SEC-101")

    def test_duplicate_id_rejected(self, registry):
        registry.register(make_rule(), always_pass)

        with pytest.raises(DuplicateRuleError) as exc_info:
            registry.register(make_rule(name="Another rule name"), always_pass)

        assert exc_info.value.rule_id == "SEC-101"
        assert registry.get("SEC-101").name == "No plaintext tokens"
        assert len(registry) == 1

    @pytest.mark.parametrize("rule_id", ["SEC-1", "QUAL-001", "sec-001", "SEC001", "SEC-00a"])
    def test_id_must_match_category_prefix(self, registry, rule_id):
        with pytest.raises(InvalidRuleError):
            registry.register(make_rule(id=rule_id), always_pass)
        assert len(registry) == 0

    def test_short_fields_rejected_with_every_problem(self, registry):
        rule = make_rule(name="abc", description="short", rationale="short")

        with pytest.raises(InvalidRuleError) as exc_info:
            registry.register(rule, always_pass)

        problems = " ".join(exc_info.value.problems)
        assert "name" in problems
        assert "description" in problems
        assert "rationale" in problems

    def test_missing_check_rejected(self, registry):
        with pytest.raises(InvalidRuleError):
            registry.register(make_rule(), None)

    def test_non_callable_check_rejected(self, registry):
        with pytest.raises(InvalidRuleError):
            registry.register(make_rule(), "not a function")

    def test_auto_fix_requires_fix_function(self, registry):
        with pytest.raises(InvalidRuleError):
            registry.register(make_rule(can_auto_fix=True), always_pass)

        stored = registry.register(make_rule(can_auto_fix=True), always_pass, noop_fix)
        assert stored.can_auto_fix
        assert registry.fix_for("SEC-101") is noop_fix

    def test_empty_applies_to_rejected(self, registry):
        with pytest.raises(InvalidRuleError):
            registry.register(make_rule(applies_to=[]), always_pass)

    def test_critical_without_block_warns(self, registry, caplog):
        with caplog.at_level(logging.WARNING):
            registry.register(
                make_rule(severity=Severity.CRITICAL, enforcement=EnforcementMode.LOG),
                always_pass,
            )

        assert "critical violations always block" in caplog.text

    def test_custom_minimum_lengths(self):
        from codewarden.governance.settings import GovernanceSettings

        strict = GovernanceSettings.model_validate({"registry": {"min_name_length": 40}})
        registry = PolicyRegistry(strict)

        with pytest.raises(InvalidRuleError):
            registry.register(make_rule(), always_pass)


class TestVersioning:
    """Test that updates create new versions instead of editing in place."""

    def test_update_creates_new_version(self, registry):
        original = registry.register(make_rule(), always_pass)

        updated = registry.update("SEC-101", {"severity": Severity.CRITICAL})

        assert updated.version == 2
        assert updated.severity == Severity.CRITICAL
        assert original.severity == Severity.HIGH
        assert [r.version for r in registry.history("SEC-101")] == [1, 2]
        assert registry.get("SEC-101").version == 2

    def test_update_keeps_functions_unless_replaced(self, registry):
        registry.register(make_rule(), always_pass)

        def other_check(context):
            return CheckResult.fail("always")

        registry.update("SEC-101", {"name": "Renamed plaintext rule"})
        assert registry.check_for("SEC-101") is always_pass

        registry.update("SEC-101", {}, check=other_check)
        assert registry.check_for("SEC-101") is other_check

    @pytest.mark.parametrize("field", ["id", "version", "created_at", "updated_at"])
    def test_protected_fields_cannot_change(self, registry, field):
        registry.register(make_rule(), always_pass)

        with pytest.raises(InvalidRuleError):
            registry.update("SEC-101", {field: "anything"})
        assert registry.get("SEC-101").version == 1

    def test_invalid_update_leaves_rule_unchanged(self, registry):
        registry.register(make_rule(), always_pass)

        with pytest.raises(InvalidRuleError):
            registry.update("SEC-101", {"description": "tiny"})

        assert registry.get("SEC-101").version == 1
        assert len(registry.history("SEC-101")) == 1

    def test_update_unknown_rule(self, registry):
        with pytest.raises(RuleNotFoundError):
            registry.update("SEC-999", {"name": "Does not matter"})


class TestEnableDisable:
    """Test toggling rules."""

    def test_disable_requires_reason(self, registry):
        registry.register(make_rule(), always_pass)

        with pytest.raises(InvalidRuleError):
            registry.disable("SEC-101", "   ")
        assert registry.is_enabled("SEC-101")

    def test_disable_and_enable_are_recorded(self, registry):
        registry.register(make_rule(), always_pass)

        registry.disable("SEC-101", "Too noisy during migration")
        assert not registry.is_enabled("SEC-101")
        assert registry.applicable("code.commit") == []

        registry.enable("SEC-101")
        assert registry.is_enabled("SEC-101")

        changes = registry.state_changes("SEC-101")
        assert [c.enabled for c in changes] == [False, True]
        assert changes[0].reason == "Too noisy during migration"
        assert len(registry.history("SEC-101")) == 1

    def test_list_rules_excludes_disabled_on_request(self, registry):
        registry.register(make_rule(), always_pass)
        registry.register(make_rule(id="SEC-102"), always_pass)
        registry.disable("SEC-102", "Superseded by SEC-101")

        assert [r.id for r in registry.list_rules()] == ["SEC-101", "SEC-102"]
        assert [r.id for r in registry.list_rules(include_disabled=False)] == ["SEC-101"]


class TestLookup:
    """Test rule selection and lookup."""

    def test_applicable_matches_operation_patterns(self, registry):
        registry.register(make_rule(id="SEC-102", applies_to=["code.*"]), always_pass)
        registry.register(
            make_rule(
                id="DEP-100",
                category=PolicyCategory.DEPLOYMENT,
                applies_to=["deployment.production"],
            ),
            always_pass,
        )
        registry.register(make_rule(id="SEC-101", applies_to=["*"]), always_pass)

        assert [e.rule.id for e in registry.applicable("code.commit")] == ["SEC-101", "SEC-102"]
        assert [e.rule.id for e in registry.applicable("deployment.production")] == [
            "DEP-100", "SEC-101"
        ]
        assert [e.rule.id for e in registry.applicable("deployment.staging")] == ["SEC-101"]

    def test_list_by_category(self, registry):
        registry.register(make_rule(), always_pass)
        registry.register(
            make_rule(id="QUAL-100", category=PolicyCategory.QUALITY), always_pass
        )

        assert [r.id for r in registry.list_by_category("quality")] == ["QUAL-100"]

    def test_unknown_rule(self, registry):
        with pytest.raises(RuleNotFoundError):
            registry.get("SEC-404")
        assert not registry.contains("SEC-404")
