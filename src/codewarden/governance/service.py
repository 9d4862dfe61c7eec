"""Governance Service - Wires registry, audit, engine and overrides together.

The service owns the lifecycle of every governance component. Callers go
through it for registry changes so that those changes are audited too.

Usage:
    with GovernanceService() as service:
        result = service.engine.evaluate(context)
"""

import logging
import threading
from typing import Any, Dict, Iterable, Optional

from codewarden.common.config.settings import Config, get_config
from codewarden.common.exceptions import CodeWardenError
from codewarden.governance.audit.config import create_audit_store
from codewarden.governance.audit.logger import AuditLogger
from codewarden.governance.audit.store import AuditStore
from codewarden.governance.override import HumanOverrideHandler
from codewarden.governance.policies.builtin import BUILTIN_RULES
from codewarden.governance.policies.engine import PolicyEngine
from codewarden.governance.policies.registry import PolicyRegistry
from codewarden.governance.schemas import (
    Actor,
    PolicyCheck,
    PolicyFix,
    PolicyRule,
    RuleStateChange,
)
from codewarden.governance.settings import GovernanceSettings, load_settings


logger = logging.getLogger(__name__)


class GovernanceService:
    """Owns the governance components for one process."""

    def __init__(
        self,
        config: Optional[Config] = None,
        settings: Optional[GovernanceSettings] = None,
        store: Optional[AuditStore] = None,
        load_builtin_rules: Optional[bool] = None,
    ):
        """Initialize service. Nothing is built until start().

        Args:
            config: Process configuration. Global config if not provided.
            settings: Governance settings. Loaded from the policy file if not provided.
            store: Audit store. Built from config if not provided.
            load_builtin_rules: Register the built-in rule pack on start.
        """
        self.config = config or get_config()
        self._settings = settings
        self._store = store
        self.load_builtin_rules = (
            self.config.load_builtin_rules if load_builtin_rules is None else load_builtin_rules
        )

        self._lock = threading.Lock()
        self._started = False

        self.settings: Optional[GovernanceSettings] = None
        self.registry: Optional[PolicyRegistry] = None
        self.audit_logger: Optional[AuditLogger] = None
        self.engine: Optional[PolicyEngine] = None
        self.override_handler: Optional[HumanOverrideHandler] = None

    @property
    def is_started(self) -> bool:
        return self._started

    def start(self) -> "GovernanceService":
        """Build every component. Safe to call more than once."""
        with self._lock:
            if self._started:
                return self

            self.settings = self._settings or load_settings(self.config.resolved_policy_file)
            store = self._store or create_audit_store(
                storage_type=self.config.audit_storage_type.value,
                settings=self.settings,
            )
            self.audit_logger = AuditLogger(store=store, settings=self.settings)
            self.registry = PolicyRegistry(self.settings)
            self.engine = PolicyEngine(self.registry, self.audit_logger, self.settings)
            self.override_handler = HumanOverrideHandler(
                self.audit_logger, self.settings, registry=self.registry
            )
            self._started = True

        self.audit_logger.log_system_event(
            "service.start",
            metadata={
                "environment": self.config.environment.value,
                "settings_version": self.settings.version,
                "store": type(store).__name__,
            },
        )

        if self.load_builtin_rules:
            for rule, check, fix in BUILTIN_RULES:
                if not self.registry.contains(rule.id):
                    self.register_rule(rule, check, fix)

        logger.info(
            f"Governance service started ({len(self.registry)} rules, "
            f"settings v{self.settings.version})"
        )
        return self

    def shutdown(self) -> None:
        """Stop the executor and close the store."""
        with self._lock:
            if not self._started:
                return
            self._started = False

        try:
            self.audit_logger.log_system_event("service.stop")
        except CodeWardenError as e:
            logger.error(f"Could not record service shutdown: {e}")
        self.engine.shutdown()
        self.audit_logger.store.close()
        logger.info("Governance service shutdown complete")

    def __enter__(self) -> "GovernanceService":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _require_started(self) -> None:
        if not self._started:
            raise CodeWardenError(
                "Governance service is not started", code="SERVICE_NOT_STARTED"
            )

    # ------------------------------------------------------------------
    # Audited registry mutations
    # ------------------------------------------------------------------

    def register_rule(
        self,
        rule: PolicyRule,
        check: PolicyCheck,
        fix: Optional[PolicyFix] = None,
        actor: Optional[Actor] = None,
    ) -> PolicyRule:
        self._require_started()
        stored = self.registry.register(rule, check, fix)
        self.audit_logger.log_rule_change(
            stored.id, "register", actor=actor,
            details=_rule_details(stored),
        )
        return stored

    def update_rule(
        self,
        rule_id: str,
        changes: Dict[str, Any],
        check: Optional[PolicyCheck] = None,
        fix: Optional[PolicyFix] = None,
        actor: Optional[Actor] = None,
    ) -> PolicyRule:
        self._require_started()
        updated = self.registry.update(rule_id, changes, check=check, fix=fix)
        self.audit_logger.log_rule_change(
            rule_id, "update", actor=actor,
            details={**_rule_details(updated), "changed_fields": sorted(changes)},
        )
        return updated

    def disable_rule(
        self, rule_id: str, reason: str, actor: Optional[Actor] = None
    ) -> RuleStateChange:
        self._require_started()
        change = self.registry.disable(rule_id, reason)
        self.audit_logger.log_rule_change(
            rule_id, "disable", actor=actor, details={"reason": reason}
        )
        return change

    def enable_rule(self, rule_id: str, actor: Optional[Actor] = None) -> RuleStateChange:
        self._require_started()
        change = self.registry.enable(rule_id)
        self.audit_logger.log_rule_change(rule_id, "enable", actor=actor)
        return change

    def list_rules(self, include_disabled: bool = True) -> Iterable[PolicyRule]:
        self._require_started()
        return self.registry.list_rules(include_disabled=include_disabled)


def _rule_details(rule: PolicyRule) -> Dict[str, Any]:
    return {
        "version": rule.version,
        "severity": rule.severity.value,
        "enforcement": rule.enforcement.value,
        "applies_to": list(rule.applies_to),
    }
