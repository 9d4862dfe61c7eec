"""Unit tests for the governance service lifecycle."""

import pytest

from codewarden.common.config.settings import Config
from codewarden.common.exceptions import CodeWardenError, RuleNotFoundError
from codewarden.governance.audit.store import FileAuditStore, InMemoryAuditStore
from codewarden.governance.schemas import Actor, AuditEventType, Severity
from codewarden.governance.service import GovernanceService


@pytest.fixture
def service(settings, store):
    service = GovernanceService(settings=settings, store=store, load_builtin_rules=True)
    service.start()
    yield service
    service.shutdown()


def rule_changes(store):
    return [
        e.action for e in store.events()
        if e.event_type == AuditEventType.POLICY_RULE_CHANGE
    ]


class TestLifecycle:
    """Test start and shutdown."""

    def test_not_started_service_refuses_work(self, settings):
        service = GovernanceService(settings=settings, store=InMemoryAuditStore())

        with pytest.raises(CodeWardenError) as exc_info:
            service.list_rules()

        assert exc_info.value.code == "SERVICE_NOT_STARTED"

    def test_start_builds_components_and_builtin_rules(self, service, store):
        assert service.is_started
        assert len(service.registry) == 4
        events = list(store.events())
        assert events[0].action == "service.start"
        assert rule_changes(store) == ["rule.register"] * 4
        assert store.verify_integrity().valid

    def test_start_is_idempotent(self, service, store):
        before = store.count()

        service.start()

        assert store.count() == before

    def test_builtin_rules_can_be_skipped(self, settings, store):
        with GovernanceService(settings=settings, store=store, load_builtin_rules=False) as service:
            assert len(service.registry) == 0

    def test_shutdown_is_recorded_once(self, settings, store):
        service = GovernanceService(settings=settings, store=store, load_builtin_rules=False)
        service.start()

        service.shutdown()
        service.shutdown()

        assert [e.action for e in store.events()] == ["service.start", "service.stop"]
        assert not service.is_started

    def test_settings_from_policy_file(self, tmp_path, monkeypatch):
        policy = tmp_path / "governance.yaml"
        policy.write_text("override:\n  min_justification_length: 40\n")
        monkeypatch.setenv("CODEWARDEN_POLICY_FILE", str(policy))

        with GovernanceService(config=Config(), load_builtin_rules=False) as service:
            assert service.override_handler.min_justification_length == 40

    def test_store_from_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CODEWARDEN_AUDIT_STORAGE_TYPE", "file")
        monkeypatch.setenv("CODEWARDEN_AUDIT_LOG_DIR", str(tmp_path / "audit"))

        with GovernanceService(config=Config(), load_builtin_rules=False) as service:
            assert isinstance(service.audit_logger.store, FileAuditStore)

        assert (tmp_path / "audit" / "codewarden_audit.jsonl").exists()


class TestAuditedRegistryChanges:
    """Test that registry mutations go through the audit log."""

    def test_update_rule(self, service, store):
        updated = service.update_rule(
            "QUAL-001", {"severity": Severity.MEDIUM}, actor=Actor(id="lead_7")
        )

        assert updated.version == 2
        event = store.last_event()
        assert event.action == "rule.update"
        assert event.actor.id == "lead_7"
        assert event.context.input["changed_fields"] == ["severity"]
        assert event.context.input["version"] == 2

    def test_disable_and_enable_rule(self, service, store):
        service.disable_rule("QUAL-001", "Noisy during the logging migration")
        service.enable_rule("QUAL-001")

        assert rule_changes(store)[-2:] == ["rule.disable", "rule.enable"]
        assert service.registry.is_enabled("QUAL-001")

    def test_failed_change_is_not_audited(self, service, store):
        before = store.count()

        with pytest.raises(RuleNotFoundError):
            service.disable_rule("QUAL-999", "Does not exist anyway")

        assert store.count() == before

    def test_list_rules_excludes_disabled(self, service):
        service.disable_rule("DEP-001", "Deployments gated elsewhere for now")

        ids = [r.id for r in service.list_rules(include_disabled=False)]

        assert "DEP-001" not in ids
        assert len(ids) == 3
