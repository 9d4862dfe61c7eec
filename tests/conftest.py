"""Shared fixtures for CodeWarden tests."""

import pytest

from codewarden.common.config.settings import reset_config
from codewarden.governance.audit.logger import AuditLogger
from codewarden.governance.audit.store import InMemoryAuditStore
from codewarden.governance.policies.engine import PolicyEngine
from codewarden.governance.policies.registry import PolicyRegistry
from codewarden.governance.schemas import Actor, OperationContext, ResourceRef
from codewarden.governance.settings import GovernanceSettings


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    """Isolate every test from the caller's CODEWARDEN_* environment."""
    for name in (
        "CODEWARDEN_ENVIRONMENT",
        "CODEWARDEN_DEBUG",
        "CODEWARDEN_LOG_LEVEL",
        "CODEWARDEN_API_PORT",
        "CODEWARDEN_AUDIT_STORAGE_TYPE",
        "CODEWARDEN_AUDIT_LOG_DIR",
        "CODEWARDEN_AUDIT_S3_BUCKET",
        "CODEWARDEN_AUDIT_S3_PREFIX",
        "CODEWARDEN_AUDIT_FSYNC",
        "CODEWARDEN_POLICY_FILE",
        "CODEWARDEN_LOAD_BUILTIN_RULES",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def settings():
    """Default settings without retry backoff so failure tests stay fast."""
    return GovernanceSettings.model_validate({
        "audit": {"storage_retry_backoff_seconds": 0},
    })


@pytest.fixture
def store():
    return InMemoryAuditStore()


@pytest.fixture
def audit_logger(store, settings):
    return AuditLogger(store=store, settings=settings)


@pytest.fixture
def registry(settings):
    return PolicyRegistry(settings)


@pytest.fixture
def engine(registry, audit_logger, settings):
    engine = PolicyEngine(registry, audit_logger, settings)
    yield engine
    engine.shutdown()


@pytest.fixture
def actor():
    return Actor(id="user_123", email="dev@example.com")


@pytest.fixture
def make_context(actor):
    """Build an OperationContext with sensible defaults."""
    def _make(operation="code.commit", files=None, **kwargs):
        code = {"files": files} if files is not None else kwargs.pop("code", None)
        return OperationContext(
            operation=operation,
            actor=kwargs.pop("actor", actor),
            resource=kwargs.pop(
                "resource", ResourceRef(type="repository", id="repo_42", name="payments")
            ),
            code=code,
            **kwargs,
        )
    return _make
