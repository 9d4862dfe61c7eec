"""Unit tests for Human Override Handler.

Tests that critical violations can never be overridden, that short
justifications are rejected, and that every decision is audited.
"""

import pytest

from codewarden.common.exceptions import OverrideStateError
from codewarden.governance.override import HumanOverrideHandler
from codewarden.governance.policies.builtin import register_builtin_rules
from codewarden.governance.schemas import (
    AuditEventType,
    AuditResult,
    OverrideRequest,
    OverrideStatus,
    PolicyViolation,
    Severity,
)
from codewarden.governance.settings import GovernanceSettings


@pytest.fixture
def handler(audit_logger):
    return HumanOverrideHandler(audit_logger)


def violation(severity=Severity.LOW, policy_id="QUAL-001"):
    return PolicyViolation(policy_id=policy_id, severity=severity, message="Debug statement")


class TestRequestOverride:
    """Test override decisions."""

    def test_adequate_justification_is_approved(self, handler, make_context, store):
        result = handler.request_override(
            make_context(),
            violation(),
            "Temporary debug logging for incident INC-4471",
            approver_id="lead_7",
        )

        assert result.approved
        assert result.request.status == OverrideStatus.APPROVED
        assert result.request.decided_at is not None
        event = store.last_event()
        assert result.audit_event_id == event.id
        assert event.event_type == AuditEventType.POLICY_OVERRIDE
        assert event.result == AuditResult.SUCCESS
        assert event.compliance.approved is True
        assert event.context.input["approver_id"] == "lead_7"

    def test_critical_violation_always_rejected(self, handler, make_context, store):
        result = handler.request_override(
            make_context(),
            violation(Severity.CRITICAL, "SEC-001"),
            "The CEO personally signed off on shipping this key right now",
        )

        assert not result.approved
        assert "Critical" in result.reason
        assert store.last_event().compliance.approved is False
        assert store.last_event().result == AuditResult.BLOCKED

    @pytest.mark.parametrize("justification, approved", [
        ("", False),
        ("x" * 19, False),
        ("x" * 20, True),
        ("x" * 200, True),
    ])
    def test_justification_length_threshold(self, handler, make_context, justification, approved):
        result = handler.request_override(make_context(), violation(), justification)

        assert result.approved is approved

    def test_rejection_is_audited(self, handler, make_context, store):
        result = handler.request_override(make_context(), violation(), "because")

        assert not result.approved
        assert "at least 20" in result.reason
        assert store.count() == 1
        assert store.last_event().action == "override.rejected"

    def test_threshold_comes_from_settings(self, audit_logger, make_context):
        strict = GovernanceSettings.model_validate({"override": {"min_justification_length": 50}})
        handler = HumanOverrideHandler(audit_logger, strict)

        result = handler.request_override(
            make_context(), violation(), "Twenty-five characters ok"
        )

        assert not result.approved

    def test_actor_and_resource_recorded(self, handler, make_context, store):
        handler.request_override(make_context(), violation(), "x" * 25)

        event = store.last_event()
        assert event.actor.id == "user_123"
        assert event.resource.id == "repo_42"


class TestRegisteredSeverity:
    """Test that a submitted violation cannot lower its own severity."""

    @pytest.fixture
    def handler(self, audit_logger, registry):
        register_builtin_rules(registry)
        return HumanOverrideHandler(audit_logger, registry=registry)

    def test_downgraded_critical_is_rejected(self, handler, make_context, store):
        result = handler.request_override(
            make_context(), violation(Severity.MEDIUM, "SEC-001"), "x" * 40
        )

        assert not result.approved
        assert result.request.violation.severity == Severity.CRITICAL
        assert store.last_event().compliance.violations[0].severity == Severity.CRITICAL

    def test_higher_claimed_severity_is_kept(self, handler, make_context):
        result = handler.request_override(
            make_context(), violation(Severity.HIGH, "QUAL-001"), "x" * 40
        )

        assert result.approved
        assert result.request.violation.severity == Severity.HIGH

    def test_unregistered_policy_keeps_its_severity(self, handler, make_context):
        result = handler.request_override(
            make_context(), violation(Severity.MEDIUM, "EXT-001"), "x" * 40
        )

        assert result.approved
        assert result.request.violation.severity == Severity.MEDIUM

    def test_failure_violation_floored_at_failure_severity(self, audit_logger, registry, make_context):
        strict = GovernanceSettings.model_validate(
            {"evaluation": {"predicate_failure_severity": "critical"}}
        )
        handler = HumanOverrideHandler(audit_logger, strict, registry=registry)
        failed = PolicyViolation(
            policy_id="QUAL-001", severity=Severity.LOW, message="Check timed out", synthetic=True
        )

        result = handler.request_override(make_context(), failed, "x" * 40)

        assert not result.approved
        assert result.request.violation.severity == Severity.CRITICAL


class TestStateMachine:
    """Test override transitions."""

    def test_proposed_can_be_decided(self):
        request = OverrideRequest(violation=violation(), justification="x")

        decided = HumanOverrideHandler.decide(request, OverrideStatus.REJECTED, "no")

        assert decided.status == OverrideStatus.REJECTED
        assert decided.decision_reason == "no"
        assert request.status == OverrideStatus.PROPOSED

    @pytest.mark.parametrize("terminal", [OverrideStatus.APPROVED, OverrideStatus.REJECTED])
    def test_terminal_states_never_move(self, terminal):
        request = OverrideRequest(violation=violation(), justification="x", status=terminal)

        for target in OverrideStatus:
            with pytest.raises(OverrideStateError):
                HumanOverrideHandler.decide(request, target, "again")

    def test_cannot_return_to_proposed(self):
        request = OverrideRequest(violation=violation(), justification="x")

        with pytest.raises(OverrideStateError):
            HumanOverrideHandler.decide(request, OverrideStatus.PROPOSED, "reset")


class TestHistory:
    """Test override history lookups."""

    def test_history_filters_by_policy_and_violation(self, handler, make_context):
        first = violation(policy_id="QUAL-001")
        handler.request_override(make_context(), first, "x" * 25)
        handler.request_override(make_context(), violation(policy_id="QUAL-002"), "short")
        handler.request_override(make_context(), first, "y" * 25)

        assert len(handler.get_override_history()) == 3
        assert [
            e.context.input["policy_id"] for e in handler.get_override_history()
        ] == ["QUAL-001", "QUAL-002", "QUAL-001"]
        assert len(handler.get_override_history(policy_id="QUAL-001")) == 2
        assert len(handler.get_override_history(violation_id=first.violation_id)) == 2
        assert handler.get_override_history(policy_id="SEC-001") == []
